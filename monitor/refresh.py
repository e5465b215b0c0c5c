"""
Refresh loop: fetch snapshot -> normalize -> detect bunching -> publish.

RefreshController owns the only state that crosses ticks, the most recent
MonitorState. A new state is built completely before it replaces the old
one, so readers (the HTTP handler thread) always see a whole tick.

When a tick fails (feed down, bad snapshot) the previous state stays
published. Stale but valid beats empty.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from bunch_detector import BUNCH_DIST_KM, alerts_to_dict, count_alerts, detect_bunching
from monitor_config import REFRESH_INTERVAL
from monitor_errors import InvalidSnapshot, SourceUnavailable
from normalizer import normalize

logger = logging.getLogger(__name__)

STATS_LOG_INTERVAL = 3600


class TickStatus(Enum):
    PUBLISHED = "published"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class TickOutcome:
    """What one call to tick() did. error is set only for FAILED."""
    status: TickStatus
    error: Optional[str] = None

    @property
    def published(self) -> bool:
        return self.status is TickStatus.PUBLISHED


@dataclass(frozen=True)
class MonitorState:
    """Result of one successful tick."""
    reports: tuple = ()
    alerts: dict = field(default_factory=dict)
    refreshed_at: Optional[datetime] = None

    @classmethod
    def empty(cls) -> "MonitorState":
        return cls()

    @property
    def alert_count(self) -> int:
        return count_alerts(self.alerts)

    def to_dict(self) -> dict:
        return {
            "refreshedAt": self.refreshed_at.isoformat() if self.refreshed_at else None,
            "busCount": len(self.reports),
            "alertCount": self.alert_count,
            "buses": [r.to_dict() for r in self.reports],
            "alerts": alerts_to_dict(self.alerts),
        }


class RefreshController:
    """
    Runs ticks against a snapshot source and keeps the latest result.

    Args:
        fetch_snapshot: callable() -> raw snapshot dict. May raise
            SourceUnavailable or InvalidSnapshot.
        threshold_km: bunching distance threshold.
        interval_sec: seconds between tick starts in run().
    """

    def __init__(self, fetch_snapshot: Callable[[], dict],
                 threshold_km: float = BUNCH_DIST_KM,
                 interval_sec: float = REFRESH_INTERVAL):
        if interval_sec <= 0:
            raise ValueError(f"interval_sec must be > 0, got {interval_sec}")
        self.fetch_snapshot = fetch_snapshot
        self.threshold_km = threshold_km
        self.interval_sec = interval_sec

        self._state = MonitorState.empty()
        self._tick_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._stop = threading.Event()

        self.stats = {
            'ticks_completed': 0,
            'ticks_failed': 0,
            'ticks_skipped': 0,
            'ticks_overrun': 0,
            'alerts_emitted': 0,
            'started_at': None,
            'last_tick_at': None,
            'last_error': None,
        }

    @property
    def state(self) -> MonitorState:
        return self._state

    def tick(self) -> TickOutcome:
        """
        Run one refresh and report what happened to this call.

        Never runs two passes at once: a tick triggered while another is in
        flight is skipped rather than queued.
        """
        if not self._tick_lock.acquire(blocking=False):
            self._bump('ticks_skipped')
            logger.warning("Refresh: previous tick still running, skipping")
            return TickOutcome(TickStatus.SKIPPED)

        try:
            try:
                snapshot = self.fetch_snapshot()
                reports = normalize(snapshot)
            except SourceUnavailable as e:
                logger.warning(f"Refresh: feed unavailable, keeping last state: {e}")
                return self._record_failure(e)
            except InvalidSnapshot as e:
                logger.error(f"Refresh: invalid snapshot, keeping last state: {e}")
                return self._record_failure(e)

            alerts = detect_bunching(reports, self.threshold_km)
            new_state = MonitorState(
                reports=tuple(reports),
                alerts=alerts,
                refreshed_at=datetime.now(timezone.utc),
            )
            self._state = new_state

            n_alerts = new_state.alert_count
            with self._stats_lock:
                self.stats['ticks_completed'] += 1
                self.stats['alerts_emitted'] += n_alerts
                self.stats['last_tick_at'] = new_state.refreshed_at.isoformat()
                self.stats['last_error'] = None

            n_routes = len({r.route_id for r in reports})
            if alerts:
                logger.info(f"Refresh: {len(reports)} buses, {n_routes} routes, "
                            f"{n_alerts} bunching alerts ({', '.join(alerts)})")
            else:
                logger.info(f"Refresh: {len(reports)} buses, {n_routes} routes, no bunching")
            return TickOutcome(TickStatus.PUBLISHED)
        finally:
            self._tick_lock.release()

    def stats_snapshot(self) -> dict:
        with self._stats_lock:
            return dict(self.stats)

    def _bump(self, key: str, n: int = 1) -> None:
        with self._stats_lock:
            self.stats[key] += n

    def _record_failure(self, error: Exception) -> TickOutcome:
        message = f"{type(error).__name__}: {error}"
        with self._stats_lock:
            self.stats['ticks_failed'] += 1
            self.stats['last_error'] = message
        return TickOutcome(TickStatus.FAILED, error=message)

    def log_stats(self):
        """Log refresh statistics."""
        logger.info("=" * 50)
        logger.info("REFRESH STATS")
        logger.info(f"  Ticks completed: {self.stats['ticks_completed']}")
        logger.info(f"  Ticks failed: {self.stats['ticks_failed']}")
        logger.info(f"  Ticks skipped: {self.stats['ticks_skipped']}")
        logger.info(f"  Ticks overrun: {self.stats['ticks_overrun']}")
        logger.info(f"  Alerts emitted: {self.stats['alerts_emitted']}")
        logger.info(f"  Last tick: {self.stats['last_tick_at']}")
        logger.info("=" * 50)

    def stop(self):
        self._stop.set()

    def run(self, stop_event: Optional[threading.Event] = None):
        """
        Tick every interval_sec until stopped.

        Intervals are measured from tick start. If a tick overruns, the
        missed ticks are dropped and the loop waits for the next boundary.
        """
        stop = stop_event or self._stop
        self.stats['started_at'] = datetime.now(timezone.utc).isoformat()
        logger.info(f"Refresh loop: every {self.interval_sec}s, threshold {self.threshold_km} km")

        last_stats_time = time.monotonic()
        next_tick = time.monotonic()

        try:
            while not stop.is_set() and not self._stop.is_set():
                try:
                    self.tick()
                except Exception:
                    self._bump('ticks_failed')
                    logger.exception("Refresh: unexpected error during tick")

                now = time.monotonic()
                if now - last_stats_time >= STATS_LOG_INTERVAL:
                    self.log_stats()
                    last_stats_time = now

                next_tick += self.interval_sec
                if next_tick <= now:
                    missed = int((now - next_tick) // self.interval_sec) + 1
                    self._bump('ticks_overrun', missed)
                    logger.warning(f"Refresh: tick overran interval, skipping {missed} tick(s)")
                    next_tick += missed * self.interval_sec

                stop.wait(max(0.0, next_tick - time.monotonic()))
        except KeyboardInterrupt:
            logger.info("Shutting down...")

        self.log_stats()
