import math
from dataclasses import dataclass

from geo_utils import haversine_km, midpoint, validate_coordinate
from normalizer import VehicleReport

BUNCH_DIST_KM = 0.5


@dataclass(frozen=True)
class Midpoint:
    lat: float
    lng: float


@dataclass(frozen=True)
class BunchingAlert:
    route_id: str
    first_id: str
    second_id: str
    distance_km: float
    midpoint: Midpoint

    def to_dict(self) -> dict:
        return {
            "routeId": self.route_id,
            "firstId": self.first_id,
            "secondId": self.second_id,
            "distanceKm": self.distance_km,
            "midpoint": {"lat": self.midpoint.lat, "lng": self.midpoint.lng},
        }


def _group_by_route(reports: list) -> dict:
    by_route: dict = {}
    for r in reports:
        by_route.setdefault(r.route_id, []).append(r)
    return by_route


def detect_bunching(reports: list[VehicleReport], threshold_km: float = BUNCH_DIST_KM) -> dict:
    """
    Flag pairs of buses on the same route closer than threshold_km.

    Returns {route_id: [BunchingAlert, ...]} with routes in first-seen order
    and alerts in scan order (i < j over the route's reports). Routes with
    no alerts are left out. Every call starts from scratch; nothing is
    remembered between ticks.
    """
    if isinstance(threshold_km, bool) or not isinstance(threshold_km, (int, float)):
        raise ValueError(f"threshold_km must be a number, got {threshold_km!r}")
    if not math.isfinite(threshold_km) or threshold_km < 0:
        raise ValueError(f"threshold_km must be finite and >= 0, got {threshold_km!r}")

    for r in reports:
        validate_coordinate(r.latitude, r.longitude)

    alerts: dict = {}

    for rt, rt_reports in _group_by_route(reports).items():
        if len(rt_reports) < 2:
            continue
        for i in range(len(rt_reports)):
            for j in range(i + 1, len(rt_reports)):
                ra, rb = rt_reports[i], rt_reports[j]
                dist = haversine_km(ra.latitude, ra.longitude, rb.latitude, rb.longitude)
                if dist < threshold_km:
                    mid_lat, mid_lng = midpoint(ra.latitude, ra.longitude, rb.latitude, rb.longitude)
                    alerts.setdefault(rt, []).append(BunchingAlert(
                        route_id=rt, first_id=ra.id, second_id=rb.id,
                        distance_km=dist, midpoint=Midpoint(lat=mid_lat, lng=mid_lng),
                    ))

    return alerts


def count_alerts(alert_set: dict) -> int:
    return sum(len(route_alerts) for route_alerts in alert_set.values())


def alerts_to_dict(alert_set: dict) -> dict:
    """JSON-ready form of an alert set: {route_id: [alert dict, ...]}."""
    return {rt: [a.to_dict() for a in route_alerts] for rt, route_alerts in alert_set.items()}
