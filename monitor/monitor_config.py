"""
Monitor configuration, read from environment variables.

The entry point calls load_dotenv() first, so a local .env file works too.
"""

import math
import os
from dataclasses import dataclass
from typing import Optional

from bunch_detector import BUNCH_DIST_KM
from feed_source import FETCH_TIMEOUT, VEHICLE_POSITIONS_URL

REFRESH_INTERVAL = 10


def _get_float(environ, name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return float(default)
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if not math.isfinite(value):
        raise ValueError(f"{name} must be finite, got {raw!r}")
    return value


def _get_str(environ, name: str) -> Optional[str]:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    return raw.strip()


@dataclass(frozen=True)
class MonitorConfig:
    feed_url: str = VEHICLE_POSITIONS_URL
    api_key: Optional[str] = None
    feed_file: Optional[str] = None
    feed_timeout: float = FETCH_TIMEOUT
    refresh_interval: float = REFRESH_INTERVAL
    threshold_km: float = BUNCH_DIST_KM
    port: int = 8080
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ=None) -> "MonitorConfig":
        env = os.environ if environ is None else environ

        refresh_interval = _get_float(env, "REFRESH_INTERVAL", REFRESH_INTERVAL)
        if refresh_interval <= 0:
            raise ValueError(f"REFRESH_INTERVAL must be > 0, got {refresh_interval}")

        threshold_km = _get_float(env, "BUNCHING_THRESHOLD_KM", BUNCH_DIST_KM)
        if threshold_km < 0:
            raise ValueError(f"BUNCHING_THRESHOLD_KM must be >= 0, got {threshold_km}")

        feed_timeout = _get_float(env, "FEED_TIMEOUT", FETCH_TIMEOUT)
        if feed_timeout <= 0:
            raise ValueError(f"FEED_TIMEOUT must be > 0, got {feed_timeout}")

        port_raw = _get_str(env, "HEALTH_PORT") or _get_str(env, "PORT") or "8080"
        try:
            port = int(port_raw)
        except ValueError:
            raise ValueError(f"HEALTH_PORT/PORT must be an integer, got {port_raw!r}") from None
        if not 0 <= port <= 65535:
            raise ValueError(f"HEALTH_PORT/PORT must be between 0 and 65535, got {port}")

        return cls(
            feed_url=_get_str(env, "FEED_URL") or VEHICLE_POSITIONS_URL,
            api_key=_get_str(env, "TFN_API_KEY"),
            feed_file=_get_str(env, "FEED_FILE"),
            feed_timeout=feed_timeout,
            refresh_interval=refresh_interval,
            threshold_km=threshold_km,
            port=port,
            log_level=(_get_str(env, "LOG_LEVEL") or "INFO").upper(),
        )
