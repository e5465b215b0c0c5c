"""
Snapshot normalizer.

Turns a raw GTFS-RT vehicle-positions snapshot (the JSON rendering of a
FeedMessage, camelCase keys) into a list of VehicleReport objects:

    {"entity": [{"id": "...",
                 "vehicle": {"position": {"latitude": .., "longitude": ..},
                             "trip": {"routeId": "..."},
                             "timestamp": "1700000000"}}]}

Entities without a usable position or route are dropped. Live feeds are
full of them (buses out of service, depot pings), so this is not an error.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional

from geo_utils import is_valid_coordinate
from monitor_errors import InvalidSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VehicleReport:
    """One bus's position at refresh time."""
    id: str
    route_id: str
    latitude: float
    longitude: float
    timestamp: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "routeId": self.route_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": self.timestamp,
        }


def _as_float(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        return float(value)
    except (ValueError, OverflowError):
        # "north", or an integer literal too large for a float
        return None


def _as_text(value) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (str, int)):
        try:
            text = str(value).strip()
        except ValueError:
            # int past the interpreter's str conversion digit limit
            return None
        return text or None
    return None


def _as_timestamp(value) -> Optional[int]:
    # uint64 fields come through MessageToDict as strings
    if value is None or isinstance(value, bool):
        return None
    try:
        ts = int(value)
    except (TypeError, ValueError, OverflowError):
        # json.loads maps Infinity/NaN to floats int() rejects
        return None
    return ts if ts > 0 else None


def _parse_entity(entity) -> Optional[VehicleReport]:
    """Build a VehicleReport from one feed entity, or None if it is unusable."""
    if not isinstance(entity, Mapping):
        return None

    entity_id = _as_text(entity.get("id"))
    vehicle = entity.get("vehicle")
    if entity_id is None or not isinstance(vehicle, Mapping):
        return None

    position = vehicle.get("position")
    trip = vehicle.get("trip")
    if not isinstance(position, Mapping) or not isinstance(trip, Mapping):
        return None

    route_id = _as_text(trip.get("routeId"))
    if route_id is None:
        return None

    lat = _as_float(position.get("latitude"))
    lon = _as_float(position.get("longitude"))
    if not is_valid_coordinate(lat, lon):
        return None

    return VehicleReport(
        id=entity_id,
        route_id=route_id,
        latitude=lat,
        longitude=lon,
        timestamp=_as_timestamp(vehicle.get("timestamp")),
    )


def normalize(snapshot) -> list[VehicleReport]:
    """
    Convert a raw feed snapshot into vehicle reports.

    Order of valid entities is preserved and duplicate ids are passed
    through. Raises InvalidSnapshot when the snapshot itself is missing or
    is not shaped like a feed; individual bad entities are only dropped.
    """
    if snapshot is None:
        raise InvalidSnapshot("Snapshot is missing")
    if not isinstance(snapshot, Mapping):
        raise InvalidSnapshot(f"Snapshot must be a mapping, got {type(snapshot).__name__}")

    # proto3 JSON omits empty repeated fields, so no "entity" key == empty feed
    entities = snapshot.get("entity", [])
    if entities is None:
        entities = []
    if not isinstance(entities, list):
        raise InvalidSnapshot(f"Snapshot 'entity' must be a list, got {type(entities).__name__}")

    reports = []
    for entity in entities:
        report = _parse_entity(entity)
        if report is not None:
            reports.append(report)

    dropped = len(entities) - len(reports)
    if dropped:
        logger.debug(f"Normalizer: dropped {dropped} of {len(entities)} entities without usable position/route")

    return reports
