"""
Directions / ETA estimation
===========================

Primary path: Google Directions API, one request per leg, first route's
first leg.  Fallback path: haversine distance at an assumed urban speed.

The fallback is used when the API key is absent, the request fails, the
HTTP status is not 2xx, or the payload status is not ``"OK"``.  ETA is
advisory, so ``get_ride_durations`` never raises: every failure is logged
and replaced by the deterministic estimate.

``fetch_route`` returns the driving polyline from the OSRM route service
for map display; it yields ``[]`` on failure.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Any, Callable, Optional

import httpx

from medride.config import Settings
from medride.domain.distance import URBAN_SPEED_KM_PER_MIN, fallback_leg
from medride.domain.entities import Coordinates, DirectionsResult, LegEstimate
from medride.infrastructure.cache import TTLCache, cache_key

logger = logging.getLogger(__name__)


class DirectionsUnavailable(Exception):
    """The directions service answered but gave no usable route."""


class DirectionsEstimator:
    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: Optional[str] = None,
        *,
        directions_url: str = "https://maps.googleapis.com/maps/api/directions/json",
        route_url: str = "https://router.project-osrm.org/route/v1/driving",
        speed_km_per_min: float = URBAN_SPEED_KM_PER_MIN,
    ):
        self.http = http
        self.api_key = api_key
        self.directions_url = directions_url
        self.route_url = route_url.rstrip("/")
        self.speed_km_per_min = speed_km_per_min
        if not api_key:
            logger.warning(
                "Google Maps API key not configured, using fallback ETA estimates"
            )

    def fallback(self, origin: Coordinates, destination: Coordinates) -> LegEstimate:
        return fallback_leg(origin, destination, self.speed_km_per_min)

    async def estimate_leg(
        self, origin: Coordinates, destination: Coordinates
    ) -> LegEstimate:
        if not self.api_key:
            return self.fallback(origin, destination)
        try:
            return await self._fetch_leg(origin, destination)
        except (httpx.HTTPError, ValueError, DirectionsUnavailable) as exc:
            logger.warning("Directions lookup failed, using fallback: %s", exc)
            return self.fallback(origin, destination)

    async def get_ride_durations(
        self, origin: Coordinates, pickup: Coordinates, drop: Coordinates
    ) -> DirectionsResult:
        to_pickup, to_drop = await asyncio.gather(
            self.estimate_leg(origin, pickup),
            self.estimate_leg(pickup, drop),
        )
        return DirectionsResult(
            to_pickup=to_pickup.duration_min,
            to_dropoff=to_drop.duration_min,
            pickup_distance=to_pickup.distance_km,
            dropoff_distance=to_drop.distance_km,
        )

    async def _fetch_leg(
        self, origin: Coordinates, destination: Coordinates
    ) -> LegEstimate:
        response = await self.http.get(
            self.directions_url,
            params={
                "origin": f"{origin.latitude},{origin.longitude}",
                "destination": f"{destination.latitude},{destination.longitude}",
                "key": self.api_key,
                "mode": "driving",
            },
        )
        response.raise_for_status()
        body = response.json()
        if not isinstance(body, dict):
            raise DirectionsUnavailable("unexpected payload")
        if body.get("status") != "OK":
            raise DirectionsUnavailable(
                f"{body.get('status')} - {body.get('error_message') or 'Unknown error'}"
            )

        leg = _first_leg(body)
        duration_s = _number(leg.get("duration"))
        distance_m = _number(leg.get("distance"))
        fallback = self.fallback(origin, destination)
        return LegEstimate(
            duration_min=math.ceil(duration_s / 60) if duration_s else fallback.duration_min,
            distance_km=round(distance_m / 1000, 1) if distance_m else fallback.distance_km,
        )

    async def fetch_route(
        self, origin: Coordinates, destination: Coordinates
    ) -> list[Coordinates]:
        url = (
            f"{self.route_url}/{origin.longitude},{origin.latitude};"
            f"{destination.longitude},{destination.latitude}"
        )
        try:
            response = await self.http.get(
                url, params={"overview": "full", "geometries": "geojson"}
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Route lookup failed: %s", exc)
            return []

        routes = body.get("routes") if isinstance(body, dict) else None
        if not routes or not isinstance(routes[0], dict):
            return []
        points = (routes[0].get("geometry") or {}).get("coordinates") or []
        # GeoJSON order is [lng, lat]
        return [
            Coordinates(latitude=float(p[1]), longitude=float(p[0]))
            for p in points
            if isinstance(p, (list, tuple)) and len(p) >= 2
        ]


def _first_leg(body: dict[str, Any]) -> dict[str, Any]:
    routes = body.get("routes") or []
    if not routes or not isinstance(routes[0], dict):
        return {}
    legs = routes[0].get("legs") or []
    if not legs or not isinstance(legs[0], dict):
        return {}
    return legs[0]


def _number(field: Any) -> Optional[float]:
    if not isinstance(field, dict):
        return None
    value = field.get("value")
    return float(value) if isinstance(value, (int, float)) else None


class CachedDirections:
    """Memoises ride durations per (origin, pickup, drop) for ``ttl_seconds``."""

    def __init__(
        self,
        estimator: DirectionsEstimator,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.estimator = estimator
        self.cache: TTLCache[DirectionsResult] = TTLCache(ttl_seconds, clock=clock)

    async def get_ride_durations(
        self, origin: Coordinates, pickup: Coordinates, drop: Coordinates
    ) -> DirectionsResult:
        key = cache_key(origin, pickup, drop)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        result = await self.estimator.get_ride_durations(origin, pickup, drop)
        self.cache.set(key, result)
        return result


def build_directions(
    settings: Settings, http: Optional[httpx.AsyncClient] = None
) -> DirectionsEstimator:
    return DirectionsEstimator(
        http or httpx.AsyncClient(timeout=settings.request_timeout_seconds),
        settings.google_maps_api_key,
        directions_url=settings.directions_url,
        route_url=settings.route_url,
        speed_km_per_min=settings.urban_speed_km_per_min,
    )
