"""
Shared fixtures for monitor unit tests.

The root conftest.py adds monitor/ to sys.path so bare imports work.
Snapshots are plain dicts shaped like MessageToDict(FeedMessage) output.
"""

import pytest

from feed_helpers import make_entity, make_snapshot


@pytest.fixture(autouse=True)
def no_feed_env(monkeypatch):
    """Keep a developer's .env/shell config out of the tests."""
    for name in ("TFN_API_KEY", "FEED_URL", "FEED_FILE", "FEED_TIMEOUT",
                 "REFRESH_INTERVAL", "BUNCHING_THRESHOLD_KM", "HEALTH_PORT",
                 "PORT", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def sydney_snapshot():
    """Two route-400 buses ~30 m apart plus one lone route-333 bus."""
    return make_snapshot([
        make_entity("bus-1", "400", -33.8688, 151.2093),
        make_entity("bus-2", "400", -33.8690, 151.2095),
        make_entity("bus-3", "333", -33.8800, 151.2000),
    ])
