"""
Domain entities.

- ``Ride`` carries the driver-side state pattern: ``transition_to``
  enforces the client-side ride lifecycle
  (SEARCHING_FOR_RIDER -> START -> [ARRIVED ->] COMPLETED).
- ``DirectionsResult`` is derived and never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .enums import RIDE_TRANSITIONS, RideStatus
from .exceptions import InvalidStateTransition


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Location:
    address: str
    latitude: float
    longitude: float

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(self.latitude, self.longitude)


@dataclass(frozen=True)
class Customer:
    id: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None


@dataclass(frozen=True)
class LegEstimate:
    duration_min: int
    distance_km: float


@dataclass(frozen=True)
class DirectionsResult:
    to_pickup: int  # minutes
    to_dropoff: int  # minutes
    pickup_distance: float  # km
    dropoff_distance: float  # km


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Ride:
    id: str
    pickup: Location
    drop: Location
    fare: float = 0.0
    status: RideStatus = RideStatus.SEARCHING_FOR_RIDER
    vehicle: Optional[str] = None
    otp: Optional[str] = None
    customer: Optional[Customer] = None
    driver: Optional[Customer] = None
    driver_location: Optional[Coordinates] = None
    created_at: Optional[datetime] = None

    def can_transition_to(self, new_status: RideStatus) -> bool:
        return new_status in RIDE_TRANSITIONS.get(self.status, set())

    def check_transition(self, new_status: RideStatus) -> None:
        """Raise if a driver may not request *new_status* from here."""
        if not self.can_transition_to(new_status):
            raise InvalidStateTransition(
                f"Cannot change ride status from {self.status.value} "
                f"to {new_status.value}"
            )

    def transition_to(self, new_status: RideStatus) -> None:
        self.check_transition(new_status)
        self.status = new_status

    @property
    def is_open(self) -> bool:
        return self.status == RideStatus.SEARCHING_FOR_RIDER


@dataclass
class DriverProfile:
    id: str = ""
    name: str = "Driver"
    is_online: bool = False
    phone: Optional[str] = None
    vehicle: dict[str, Any] = field(default_factory=dict)


@dataclass
class DriverStats:
    total_rides: int = 0
    today_rides: int = 0
    weekly_rides: int = 0
    today_earnings: float = 0.0
    weekly_earnings: float = 0.0
    monthly_earnings: float = 0.0
    rating: float = 0.0


@dataclass
class AuthTokens:
    access_token: str
    refresh_token: str
    user_id: Optional[str] = None
    user: dict[str, Any] = field(default_factory=dict)
