"""
Authenticated ride / driver endpoints
=====================================

GET   /driver/profile          -- driver record (incl. online flag)
PUT   /driver/online-status    -- {isOnline}
GET   /driver/stats            -- earnings / ride counters
GET   /ride/driverrides        -- rides visible to this driver
GET   /ride/{ride_id}          -- one ride (resume an accepted ride)
PATCH /ride/accept/{ride_id}   -- accept a searching ride
PATCH /ride/update/{ride_id}   -- {status}
POST  /ride/create             -- patient books a ride
GET   /ride/rides?id=          -- patient polls a ride
PUT   /auth/profile            -- update profile fields

On HTTP 401 the session is refreshed once and ``AuthError`` is raised; the
original request is not replayed, the caller decides whether to retry.
"""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError as PydanticValidationError

from medride.domain.entities import DriverProfile, DriverStats, Ride
from medride.domain.enums import RideStatus
from medride.domain.exceptions import AuthError, ServerError
from medride.infrastructure.session import Session

from .base import decode_json, send
from .schemas import (
    DriverProfileSchema,
    DriverStatsSchema,
    OnlineStatusRequest,
    ProfileUpdateRequest,
    RideCreateRequest,
    RideEnvelope,
    StatusUpdateRequest,
    parse_ride_list,
)

logger = logging.getLogger(__name__)


def _ride_path(prefix: str, ride_id: str) -> str:
    return f"{prefix}/{quote(ride_id, safe='')}"


class RideServiceClient:
    def __init__(self, http: httpx.AsyncClient, session: Session):
        self.http = http
        self.session = session

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> "RideServiceClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def authenticated_request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        token = await self.session.require_access_token()
        response = await send(
            self.http,
            method,
            path,
            headers={"Authorization": f"Bearer {token}"},
            json=json,
            params=params,
        )
        if response.status_code == 401:
            logger.warning("%s %s rejected the access token", method, path)
            # raises SessionExpiredError when the refresh token is dead too
            await self.session.refresh_if_needed(stale_token=token)
            raise AuthError("Your session was refreshed. Please try again.")
        return decode_json(response)

    # ── Driver ────────────────────────────────────────────────────

    async def get_driver_profile(self) -> DriverProfile:
        body = await self.authenticated_request("GET", "/driver/profile")
        return _parse(DriverProfileSchema, body.get("data", body)).to_entity()

    async def set_online_status(self, is_online: bool) -> Optional[DriverProfile]:
        body = await self.authenticated_request(
            "PUT",
            "/driver/online-status",
            json=OnlineStatusRequest(is_online=is_online).to_wire(),
        )
        data = body.get("data")
        if isinstance(data, dict):
            return _parse(DriverProfileSchema, data).to_entity()
        return None

    async def get_driver_stats(self) -> DriverStats:
        body = await self.authenticated_request("GET", "/driver/stats")
        return _parse(DriverStatsSchema, body.get("data") or {}).to_entity()

    async def get_driver_rides(self) -> list[Ride]:
        body = await self.authenticated_request("GET", "/ride/driverrides")
        return parse_ride_list(body)

    async def accept_ride(self, ride_id: str) -> Ride:
        body = await self.authenticated_request(
            "PATCH", _ride_path("/ride/accept", ride_id)
        )
        return _parse(RideEnvelope, body).ride.to_entity()

    async def get_ride_by_id(self, ride_id: str) -> Ride:
        body = await self.authenticated_request("GET", _ride_path("/ride", ride_id))
        return _parse(RideEnvelope, body).ride.to_entity()

    async def update_ride_status(self, ride_id: str, status: RideStatus) -> Ride:
        body = await self.authenticated_request(
            "PATCH",
            _ride_path("/ride/update", ride_id),
            json=StatusUpdateRequest(status=status).model_dump(mode="json"),
        )
        return _parse(RideEnvelope, body).ride.to_entity()

    async def update_profile(self, request: ProfileUpdateRequest) -> dict[str, Any]:
        body = await self.authenticated_request(
            "PUT", "/auth/profile", json=request.to_wire()
        )
        return body.get("user") or body.get("data") or {}

    # ── Patient ───────────────────────────────────────────────────

    async def create_ride(self, request: RideCreateRequest) -> Ride:
        body = await self.authenticated_request(
            "POST", "/ride/create", json=request.model_dump(mode="json")
        )
        return _parse(RideEnvelope, body).ride.to_entity()

    async def get_ride(self, ride_id: str) -> Optional[Ride]:
        body = await self.authenticated_request(
            "GET", "/ride/rides", params={"id": ride_id}
        )
        rides = parse_ride_list(body)
        return rides[0] if rides else None


def _parse(schema, data: Any):
    try:
        return schema.model_validate(data)
    except PydanticValidationError as exc:
        logger.warning("Unexpected %s payload: %s", schema.__name__, exc)
        raise ServerError(200, "Unexpected response from server") from exc
