"""Patient-side booking and driver profile updates."""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

from medride.client.rides import RideServiceClient
from medride.client.schemas import (
    ProfileUpdateRequest,
    RideCreateRequest,
    validate_request,
)
from medride.config import Settings, settings as default_settings
from medride.domain.emergency import suggest_vehicle
from medride.domain.entities import Location
from medride.domain.enums import VehicleType
from medride.domain.exceptions import MedrideError
from medride.infrastructure.scheduler import AsyncioScheduler, Scheduler
from medride.infrastructure.session import Session, profile_is_complete
from medride.infrastructure.storage import PROFILE_COMPLETE
from medride.workers.ride_tracker import RideTracker

from .driver_lifecycle import OperationResult
from .notifications import LoggingNotifier, Notifier, info, notification_for

logger = logging.getLogger(__name__)


def _location(value: Union[Location, dict[str, Any]]) -> dict[str, Any]:
    if isinstance(value, Location):
        return {
            "address": value.address,
            "latitude": value.latitude,
            "longitude": value.longitude,
        }
    return value


class BookingService:
    def __init__(
        self,
        client: RideServiceClient,
        session: Session,
        notifier: Optional[Notifier] = None,
        *,
        scheduler: Optional[Scheduler] = None,
        settings: Settings = default_settings,
    ):
        self.client = client
        self.session = session
        self.notifier = notifier or LoggingNotifier()
        self.scheduler = scheduler or AsyncioScheduler()
        self.settings = settings

    async def book_ride(
        self,
        vehicle: Union[VehicleType, str],
        pickup: Union[Location, dict[str, Any]],
        drop: Union[Location, dict[str, Any]],
    ) -> OperationResult:
        """Create a ride request.  Inputs are checked before anything is sent."""
        try:
            request = validate_request(
                RideCreateRequest,
                vehicle=vehicle,
                pickup=_location(pickup),
                drop=_location(drop),
            )
            ride = await self.client.create_ride(request)
        except MedrideError as exc:
            self.notifier.notify(notification_for(exc, "Failed to book ride"))
            return OperationResult(False, exc.user_message, exc.error_code)

        logger.info("Booked ride %s (%s)", ride.id, request.vehicle.value)
        self.notifier.notify(info(
            "Ride Booked",
            f"Searching for a driver. Share OTP {ride.otp} at pickup."
            if ride.otp
            else "Searching for a driver.",
        ))
        return OperationResult(True, "Ride booked", ride=ride)

    async def book_for_emergency(
        self,
        emergency_id: Optional[str],
        pickup: Union[Location, dict[str, Any]],
        drop: Union[Location, dict[str, Any]],
    ) -> OperationResult:
        """Book the most capable ambulance class the emergency calls for."""
        return await self.book_ride(suggest_vehicle(emergency_id), pickup, drop)

    def track(self, ride_id: str) -> RideTracker:
        """Start polling *ride_id*; the caller stops the returned tracker."""
        tracker = RideTracker.from_settings(
            self.client, self.scheduler, ride_id, self.settings
        )
        tracker.start()
        return tracker

    async def update_profile(self, **fields: Any) -> OperationResult:
        """Validate and save driver profile fields (name, email, vehicle, ...)."""
        try:
            request = validate_request(ProfileUpdateRequest, **fields)
            user = await self.client.update_profile(request)
        except MedrideError as exc:
            self.notifier.notify(notification_for(exc, "Failed to update profile"))
            return OperationResult(False, exc.user_message, exc.error_code)

        if profile_is_complete(user or request.to_wire()):
            await self.session.store.set(PROFILE_COMPLETE, "true")
        self.notifier.notify(info("Profile Saved", "Your profile has been updated."))
        return OperationResult(True, "Profile updated")
