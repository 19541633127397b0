"""
Distance and fallback travel-time estimates using the Haversine formula.

When the directions service is unavailable the client still needs an ETA.
Great-circle distance with an assumed urban average speed (40 km/h) gives a
deterministic estimate: the same inputs always produce the same output.

Complexity: O(1) per call.
"""

import math

from .entities import Coordinates, LegEstimate

EARTH_RADIUS_M = 6_371_000.0
URBAN_SPEED_KM_PER_MIN = 0.666  # 40 km/h


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Return the great-circle distance in **meters** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    return haversine_m(lat1, lng1, lat2, lng2) / 1000


def fallback_duration_min(
    origin: Coordinates,
    destination: Coordinates,
    speed_km_per_min: float = URBAN_SPEED_KM_PER_MIN,
) -> int:
    """Whole minutes, rounded up."""
    km = haversine_km(
        origin.latitude, origin.longitude, destination.latitude, destination.longitude
    )
    return math.ceil(km / speed_km_per_min)


def fallback_distance_km(origin: Coordinates, destination: Coordinates) -> float:
    """Kilometres rounded to one decimal place."""
    km = haversine_km(
        origin.latitude, origin.longitude, destination.latitude, destination.longitude
    )
    return round(km, 1)


def fallback_leg(
    origin: Coordinates,
    destination: Coordinates,
    speed_km_per_min: float = URBAN_SPEED_KM_PER_MIN,
) -> LegEstimate:
    return LegEstimate(
        duration_min=fallback_duration_min(origin, destination, speed_km_per_min),
        distance_km=fallback_distance_km(origin, destination),
    )
