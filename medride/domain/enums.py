"""Domain enumerations and state-transition rules."""

import enum
import logging

logger = logging.getLogger(__name__)


class RideStatus(str, enum.Enum):
    SEARCHING_FOR_RIDER = "SEARCHING_FOR_RIDER"
    START = "START"
    ARRIVED = "ARRIVED"
    COMPLETED = "COMPLETED"

    @classmethod
    def parse(cls, value: str) -> "RideStatus":
        """Parse a wire status, mapping the deprecated two-state values."""
        if value in LEGACY_RIDE_STATUSES:
            logger.warning(
                "Deprecated ride status %r received; treating it as %s",
                value,
                LEGACY_RIDE_STATUSES[value].value,
            )
            return LEGACY_RIDE_STATUSES[value]
        return cls(value)


# The older driver flow used STARTED and had no ARRIVED step. It is read but
# never sent.
LEGACY_RIDE_STATUSES: dict[str, RideStatus] = {
    "STARTED": RideStatus.START,
}


# State machine: maps current status -> set of statuses a driver may request
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.SEARCHING_FOR_RIDER: {RideStatus.START},
    RideStatus.START: {RideStatus.ARRIVED, RideStatus.COMPLETED},
    RideStatus.ARRIVED: {RideStatus.COMPLETED},
    RideStatus.COMPLETED: set(),
}


class VehicleType(str, enum.Enum):
    BLS = "bls"  # Basic Life Support
    ALS = "als"  # Advanced Life Support
    CCS = "ccs"  # Critical Care Support
    AUTO = "auto"
    BIKE = "bike"


class UserRole(str, enum.Enum):
    DRIVER = "driver"
    PATIENT = "patient"


class DriverState(str, enum.Enum):
    OFFLINE = "OFFLINE"
    ONLINE_SEARCHING = "ONLINE_SEARCHING"
    ONLINE_RIDE_ACCEPTED = "ONLINE_RIDE_ACCEPTED"


class DriverEvent(str, enum.Enum):
    GO_ONLINE = "GO_ONLINE"
    GO_OFFLINE = "GO_OFFLINE"
    ACCEPT_RIDE = "ACCEPT_RIDE"
    COMPLETE_RIDE = "COMPLETE_RIDE"
    SESSION_LOST = "SESSION_LOST"


# Going offline is not listed for ONLINE_RIDE_ACCEPTED: the toggle is blocked
# until the trip is completed.
DRIVER_TRANSITIONS: dict[DriverState, dict[DriverEvent, DriverState]] = {
    DriverState.OFFLINE: {
        DriverEvent.GO_ONLINE: DriverState.ONLINE_SEARCHING,
    },
    DriverState.ONLINE_SEARCHING: {
        DriverEvent.GO_OFFLINE: DriverState.OFFLINE,
        DriverEvent.ACCEPT_RIDE: DriverState.ONLINE_RIDE_ACCEPTED,
        DriverEvent.SESSION_LOST: DriverState.OFFLINE,
    },
    DriverState.ONLINE_RIDE_ACCEPTED: {
        DriverEvent.COMPLETE_RIDE: DriverState.ONLINE_SEARCHING,
        DriverEvent.SESSION_LOST: DriverState.OFFLINE,
    },
}


class SearchState(str, enum.Enum):
    IDLE = "IDLE"
    ACTIVE_SEARCH = "ACTIVE_SEARCH"
    PAUSED = "PAUSED"
