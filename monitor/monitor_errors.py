"""
Exceptions raised by the bunching monitor.

Entities with missing position or route data are not errors; the
normalizer drops them without raising.
"""


class MonitorError(Exception):
    """Base class for monitor errors."""


class InvalidSnapshot(MonitorError):
    """The feed snapshot is absent or malformed as a whole."""


class SourceUnavailable(MonitorError):
    """The feed source could not produce a snapshot."""


class InvalidCoordinates(MonitorError, ValueError):
    """A position is non-finite or outside the WGS-84 range."""
