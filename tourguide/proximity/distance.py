from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

from tourguide.models import PointOfInterest, Position

EARTH_RADIUS_M = 6_371_000.0


@dataclass(frozen=True)
class ProximityReading:
    poi: PointOfInterest
    distance_m: float
    computed_at: float


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two lat/lon points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = math.sin(delta_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_m(position: Position, poi: PointOfInterest) -> float:
    return haversine_m(position.latitude, position.longitude, poi.latitude, poi.longitude)


def distance_between(a: Position, b: Position) -> float:
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)


def classify(
    position: Position,
    pois: Iterable[PointOfInterest],
    radius_m: float,
    computed_at: float = 0.0,
) -> list[ProximityReading]:
    """POIs within ``radius_m`` of ``position``, closest first, ties broken by id."""
    readings = []
    for poi in pois:
        d = distance_m(position, poi)
        if d <= radius_m:
            readings.append(ProximityReading(poi=poi, distance_m=d, computed_at=computed_at))
    readings.sort(key=lambda r: (r.distance_m, r.poi.id))
    return readings
