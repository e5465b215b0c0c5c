"""
Geometry helpers for vehicle positions.

Distances use the haversine formula on a spherical Earth. Good enough at
city scale, and cheap.
"""

import math

from monitor_errors import InvalidCoordinates

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = math.sin(delta_phi / 2) ** 2 + \
        math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    # float error can push a just above 1 for near-antipodal points
    a = min(a, 1.0)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def midpoint(lat1: float, lon1: float, lat2: float, lon2: float) -> tuple:
    """Arithmetic mean of two positions (not the geodesic midpoint)."""
    return (lat1 + lat2) / 2, (lon1 + lon2) / 2


def is_valid_coordinate(lat, lon) -> bool:
    if isinstance(lat, bool) or isinstance(lon, bool):
        return False
    if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
        return False
    try:
        if not (math.isfinite(lat) and math.isfinite(lon)):
            return False
    except OverflowError:
        # int too large to convert to float
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


def validate_coordinate(lat, lon) -> None:
    """Raise InvalidCoordinates unless (lat, lon) is a usable WGS-84 position."""
    if not is_valid_coordinate(lat, lon):
        raise InvalidCoordinates(f"Invalid coordinates: lat={lat!r}, lon={lon!r}")
