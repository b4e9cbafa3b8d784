"""Great-circle distance math for route totals and the return geofence."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(b.longitude - a.longitude)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def route_distance_km(points: Iterable[GeoPoint]) -> float:
    """Sum of consecutive segment distances; 0 for fewer than two points."""
    total = 0.0
    previous = None
    for point in points:
        if previous is not None:
            total += haversine_km(previous, point)
        previous = point
    return total


def within_radius(point: GeoPoint, center: GeoPoint, radius_km: float) -> bool:
    return haversine_km(point, center) <= radius_km


class GeoProvider(Protocol):
    """External distance/geocoding service. Any call may raise or hang."""

    def calculate_distance(self, origin: GeoPoint, destination: GeoPoint) -> float:
        ...

    def geocode_address(self, address: str) -> GeoPoint | None:
        ...

    def reverse_geocode(self, point: GeoPoint) -> str | None:
        ...
