"""Pydantic request / response schemas for the backend wire format."""

from __future__ import annotations

import enum
import logging
import re
from datetime import datetime
from typing import Any, Optional, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from medride.domain.entities import (
    AuthTokens,
    Coordinates,
    Customer,
    DriverProfile,
    DriverStats,
    Location,
    Ride,
)
from medride.domain.enums import RideStatus, UserRole, VehicleType
from medride.domain.exceptions import ValidationError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def validate_request(model: type[M], **data: Any) -> M:
    """Build *model* or raise a local ``ValidationError`` with a readable message."""
    try:
        return model(**data)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        raise ValidationError(f"{field}: {message}" if field else message) from exc


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ── Shared ────────────────────────────────────────────────────────────


class LocationSchema(BaseModel):
    address: str = ""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    def to_entity(self) -> Location:
        return Location(self.address, self.latitude, self.longitude)


# ── Requests ──────────────────────────────────────────────────────────


class SigninRequest(BaseModel):
    phone: str
    role: UserRole

    @field_validator("phone", mode="before")
    @classmethod
    def _ten_digits(cls, value: Any) -> str:
        digits = re.sub(r"[\s-]", "", str(value or ""))
        if not digits:
            raise ValueError("Please enter your phone number")
        if not re.fullmatch(r"\d{10}", digits):
            raise ValueError("Please enter a valid 10-digit phone number")
        return digits


class OnlineStatusRequest(_CamelModel):
    is_online: bool


class StatusUpdateRequest(BaseModel):
    status: RideStatus


class RideCreateRequest(BaseModel):
    vehicle: VehicleType
    pickup: LocationSchema
    drop: LocationSchema


class CertificationLevel(str, enum.Enum):
    EMT_BASIC = "EMT-Basic"
    EMT_INTERMEDIATE = "EMT-Intermediate"
    EMT_PARAMEDIC = "EMT-Paramedic"
    CRITICAL_CARE = "Critical Care"


class VehicleInfo(_CamelModel):
    type: VehicleType
    plate_number: str
    model: str
    license_number: str
    certification_level: CertificationLevel

    @field_validator("plate_number")
    @classmethod
    def _plate(cls, value: str) -> str:
        value = value.strip().upper()
        if not 3 <= len(value) <= 15:
            raise ValueError("Please enter a valid license plate number (3-15 characters)")
        return value

    @field_validator("model", "license_number")
    @classmethod
    def _required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("This field is required")
        return value


class HospitalAffiliation(_CamelModel):
    is_affiliated: bool = False
    hospital_name: str = ""
    hospital_id: str = ""
    hospital_address: str = ""
    employee_id: str = ""

    @model_validator(mode="after")
    def _affiliation_fields(self) -> "HospitalAffiliation":
        if self.is_affiliated:
            for name in ("hospital_name", "hospital_id", "employee_id"):
                if not getattr(self, name).strip():
                    raise ValueError(f"Please enter {name.replace('_', ' ')}")
        return self


class ProfileUpdateRequest(_CamelModel):
    name: str
    email: Optional[str] = None
    vehicle: VehicleInfo
    hospital_affiliation: HospitalAffiliation = Field(
        default_factory=HospitalAffiliation
    )

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise ValueError("Please enter a valid name (minimum 2 characters)")
        return value

    @field_validator("email")
    @classmethod
    def _email(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        value = value.strip()
        if not EMAIL_RE.match(value):
            raise ValueError("Please enter a valid email address")
        return value


# ── Responses ─────────────────────────────────────────────────────────


class CustomerSchema(BaseModel):
    id: Optional[str] = Field(None, validation_alias=AliasChoices("_id", "id"))
    name: Optional[str] = None
    phone: Optional[str] = None

    def to_entity(self) -> Customer:
        return Customer(id=self.id, name=self.name, phone=self.phone)


class PositionSchema(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class RiderSchema(CustomerSchema):
    """The driver assigned to a ride (``rider`` on the wire)."""

    location: Optional[PositionSchema] = None


class RideSchema(BaseModel):
    id: str = Field(..., validation_alias=AliasChoices("_id", "id"))
    pickup: LocationSchema
    drop: LocationSchema
    fare: float = 0.0
    status: RideStatus
    vehicle: Optional[str] = None
    otp: Optional[str] = None
    customer: Optional[CustomerSchema] = None
    rider: Optional[RiderSchema] = None
    created_at: Optional[datetime] = Field(
        None, validation_alias=AliasChoices("createdAt", "created_at")
    )

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> RideStatus:
        if isinstance(value, RideStatus):
            return value
        return RideStatus.parse(str(value))

    @field_validator("otp", mode="before")
    @classmethod
    def _otp(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)

    @field_validator("customer", "rider", mode="before")
    @classmethod
    def _customer(cls, value: Any) -> Any:
        # unpopulated references arrive as a bare id
        if isinstance(value, str):
            return {"_id": value}
        return value

    def to_entity(self) -> Ride:
        return Ride(
            id=self.id,
            pickup=self.pickup.to_entity(),
            drop=self.drop.to_entity(),
            fare=self.fare,
            status=self.status,
            vehicle=self.vehicle,
            otp=self.otp,
            customer=self.customer.to_entity() if self.customer else None,
            driver=self.rider.to_entity() if self.rider else None,
            driver_location=(
                Coordinates(self.rider.location.latitude, self.rider.location.longitude)
                if self.rider and self.rider.location
                else None
            ),
            created_at=self.created_at,
        )


class RideEnvelope(BaseModel):
    ride: RideSchema


def parse_ride_list(body: dict[str, Any]) -> list[Ride]:
    """Parse ``{"rides": [...]}``, skipping entries that do not validate."""
    raw = body.get("rides")
    if not isinstance(raw, list):
        return []
    rides: list[Ride] = []
    for item in raw:
        try:
            rides.append(RideSchema.model_validate(item).to_entity())
        except (PydanticValidationError, ValueError) as exc:
            logger.warning("Skipping malformed ride in listing: %s", exc)
    return rides


class DriverProfileSchema(BaseModel):
    id: str = Field("", validation_alias=AliasChoices("_id", "id"))
    name: Optional[str] = None
    is_online: bool = Field(False, validation_alias=AliasChoices("isOnline", "is_online"))
    phone: Optional[str] = None
    vehicle: Optional[dict[str, Any]] = None

    def to_entity(self) -> DriverProfile:
        return DriverProfile(
            id=self.id,
            name=self.name or "Driver",
            is_online=self.is_online,
            phone=self.phone,
            vehicle=self.vehicle or {},
        )


class DriverStatsSchema(_CamelModel):
    total_rides: int = 0
    today_rides: int = 0
    weekly_rides: int = 0
    today_earnings: float = 0.0
    weekly_earnings: float = 0.0
    monthly_earnings: float = 0.0
    rating: float = 0.0

    @field_validator("*", mode="before")
    @classmethod
    def _none_is_zero(cls, value: Any) -> Any:
        return 0 if value is None else value

    def to_entity(self) -> DriverStats:
        return DriverStats(**self.model_dump())


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    user: dict[str, Any] = Field(default_factory=dict)
    message: Optional[str] = None

    def to_entity(self) -> AuthTokens:
        user_id = self.user.get("_id") or self.user.get("id")
        return AuthTokens(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            user_id=str(user_id) if user_id else None,
            user=self.user,
        )
