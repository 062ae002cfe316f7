"""
Nearest safe base resolution and capacity classification.

Everything here is pure: callers load the resource directory and pass it in.

Haversine great-circle distance with R = 6371 km:

    a = sin²(Δlat/2) + cos(lat1)·cos(lat2)·sin²(Δlon/2)
    d = 2·R·atan2(√a, √(1 − a))
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional

from sosrelay.wire import format_ack

EARTH_RADIUS_KM = 6371.0
NEARLY_FULL_RATIO = 0.2


class CapacityStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    NEARLY_FULL = "NEARLY_FULL"
    FULL = "FULL"


@dataclass(frozen=True)
class Resolution:
    safe_base: Optional[Any]
    distance_km: float
    capacity_status: CapacityStatus

    @property
    def safe_base_id(self) -> Optional[str]:
        return self.safe_base.id if self.safe_base is not None else None

    @property
    def ack(self) -> str:
        return format_ack(self.safe_base_id, self.distance_km, self.capacity_status.value)


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in km between two points in decimal degrees."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    a = min(a, 1.0)  # rounding near antipodal points
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def capacity_status(capacity: int, filled: int) -> CapacityStatus:
    """
    Classify a base by its free places.

    FULL when nothing is free, NEARLY_FULL when fewer than 20% of the
    capacity (rounded up) is free, otherwise AVAILABLE.
    """
    free = capacity - filled
    if free <= 0:
        return CapacityStatus.FULL
    if free < math.ceil(capacity * NEARLY_FULL_RATIO):
        return CapacityStatus.NEARLY_FULL
    return CapacityStatus.AVAILABLE


def find_nearest(lat: float, lon: float, bases: Iterable[Any]):
    """
    Linear scan for the base closest to (lat, lon).

    bases are any objects with id, lat and lon attributes. Equal distances
    resolve to the lowest id, independent of iteration order.

    Returns:
        (base, distance_km), or (None, inf) when bases is empty
    """
    nearest = None
    min_distance = math.inf
    for base in bases:
        d = haversine(lat, lon, base.lat, base.lon)
        if d < min_distance or (d == min_distance and nearest is not None and base.id < nearest.id):
            nearest = base
            min_distance = d
    return nearest, min_distance


def resolve(lat: float, lon: float, bases: Iterable[Any]) -> Resolution:
    """
    Nearest base and its capacity status for an alert location.

    An empty directory resolves to no base at infinite distance, reported
    as AVAILABLE.
    """
    nearest, distance = find_nearest(lat, lon, bases)
    if nearest is None:
        return Resolution(None, distance, CapacityStatus.AVAILABLE)
    return Resolution(nearest, distance, capacity_status(nearest.capacity, nearest.filled))
