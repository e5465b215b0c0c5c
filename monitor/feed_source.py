"""
GTFS-RT Vehicle Positions feed sources.

Fetches the protobuf VehiclePositions feed and hands the monitor a plain
snapshot dict (the JSON rendering of the FeedMessage). Default endpoint is
Transport for NSW's bus feed, which needs an API key:

    Authorization: apikey <TFN_API_KEY>

A file source is provided for offline runs: either a saved binary feed
(.pb) or a JSON snapshot (.json).
"""

import json
import logging
from pathlib import Path
from typing import Optional

import requests
from google.protobuf.json_format import MessageToDict
from google.protobuf.message import DecodeError
from google.transit import gtfs_realtime_pb2

from monitor_errors import InvalidSnapshot, SourceUnavailable

logger = logging.getLogger(__name__)

VEHICLE_POSITIONS_URL = "https://api.transport.nsw.gov.au/v1/gtfs/vehiclepos/buses"

FETCH_TIMEOUT = 15


def parse_feed(content: bytes) -> gtfs_realtime_pb2.FeedMessage:
    """Decode a binary GTFS-RT payload."""
    feed = gtfs_realtime_pb2.FeedMessage()
    feed.ParseFromString(content)
    return feed


def fetch_vehicle_positions(
    url: str = VEHICLE_POSITIONS_URL,
    api_key: Optional[str] = None,
    timeout: float = FETCH_TIMEOUT,
) -> gtfs_realtime_pb2.FeedMessage:
    """Fetch and parse the GTFS-RT VehiclePositions feed."""
    headers = {"Authorization": f"apikey {api_key}"} if api_key else {}
    try:
        resp = requests.get(url, headers=headers, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise SourceUnavailable(f"GTFS-RT vehicle positions fetch failed: {e}") from e

    try:
        return parse_feed(resp.content)
    except DecodeError as e:
        raise SourceUnavailable(f"GTFS-RT vehicle positions decode failed: {e}") from e


def feed_to_snapshot(feed: gtfs_realtime_pb2.FeedMessage) -> dict:
    """
    Render a FeedMessage as a snapshot dict with camelCase keys.

    Note that uint64 fields (vehicle.timestamp) come out as strings and
    empty repeated fields are omitted entirely.
    """
    return MessageToDict(feed)


class HttpFeedSource:
    """Callable snapshot source backed by a live GTFS-RT endpoint."""

    def __init__(self, url: str = VEHICLE_POSITIONS_URL, api_key: Optional[str] = None,
                 timeout: float = FETCH_TIMEOUT):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    def __call__(self) -> dict:
        feed = fetch_vehicle_positions(self.url, api_key=self.api_key, timeout=self.timeout)
        logger.debug(f"GTFS-RT: {len(feed.entity)} entities from {self.url}")
        return feed_to_snapshot(feed)

    def __repr__(self):
        return f"HttpFeedSource({self.url!r})"


class FileFeedSource:
    """Callable snapshot source that re-reads a local file on every call."""

    def __init__(self, path):
        self.path = Path(path)

    def __call__(self) -> dict:
        try:
            content = self.path.read_bytes()
        except OSError as e:
            raise SourceUnavailable(f"Feed file unreadable: {self.path}: {e}") from e

        if self.path.suffix.lower() == ".json":
            try:
                return json.loads(content)
            except ValueError as e:
                raise InvalidSnapshot(f"Feed file is not valid JSON: {self.path}: {e}") from e

        try:
            return feed_to_snapshot(parse_feed(content))
        except DecodeError as e:
            raise InvalidSnapshot(f"Feed file is not a GTFS-RT feed: {self.path}: {e}") from e

    def __repr__(self):
        return f"FileFeedSource({str(self.path)!r})"


def build_feed_source(config):
    """Pick the file source when FEED_FILE is configured, else the HTTP feed."""
    if config.feed_file:
        return FileFeedSource(config.feed_file)
    return HttpFeedSource(config.feed_url, api_key=config.api_key, timeout=config.feed_timeout)
