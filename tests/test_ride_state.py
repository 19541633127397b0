"""Unit tests for ride and driver state transitions (State Pattern)."""

import pytest

from medride.domain.entities import Location, Ride
from medride.domain.enums import (
    DRIVER_TRANSITIONS,
    DriverEvent,
    DriverState,
    RideStatus,
)
from medride.domain.exceptions import InvalidStateTransition, ValidationError

PICKUP = Location("14 Residency Road", 12.9352, 77.6245)
DROP = Location("City Hospital", 12.9716, 77.5946)


def make_ride(status: RideStatus = RideStatus.SEARCHING_FOR_RIDER) -> Ride:
    return Ride(id="ride-1", pickup=PICKUP, drop=DROP, status=status)


class TestRideStateMachine:
    def test_initial_status_is_searching(self):
        ride = Ride(id="ride-1", pickup=PICKUP, drop=DROP)
        assert ride.status == RideStatus.SEARCHING_FOR_RIDER
        assert ride.is_open

    # ── Valid transitions ─────────────────────────────────────────

    def test_searching_to_start(self):
        ride = make_ride()
        ride.transition_to(RideStatus.START)
        assert ride.status == RideStatus.START
        assert not ride.is_open

    def test_start_to_arrived(self):
        ride = make_ride(RideStatus.START)
        ride.transition_to(RideStatus.ARRIVED)
        assert ride.status == RideStatus.ARRIVED

    def test_start_to_completed(self):
        ride = make_ride(RideStatus.START)
        ride.transition_to(RideStatus.COMPLETED)
        assert ride.status == RideStatus.COMPLETED

    def test_arrived_to_completed(self):
        ride = make_ride(RideStatus.ARRIVED)
        ride.transition_to(RideStatus.COMPLETED)
        assert ride.status == RideStatus.COMPLETED

    # ── Invalid transitions ───────────────────────────────────────

    def test_searching_to_completed_fails(self):
        ride = make_ride()
        with pytest.raises(InvalidStateTransition):
            ride.transition_to(RideStatus.COMPLETED)

    def test_completed_to_anything_fails(self):
        ride = make_ride(RideStatus.COMPLETED)
        for status in RideStatus:
            assert not ride.can_transition_to(status)

    def test_arrived_back_to_start_fails(self):
        ride = make_ride(RideStatus.ARRIVED)
        with pytest.raises(InvalidStateTransition):
            ride.transition_to(RideStatus.START)

    def test_failed_transition_keeps_status(self):
        ride = make_ride(RideStatus.ARRIVED)
        with pytest.raises(InvalidStateTransition):
            ride.transition_to(RideStatus.SEARCHING_FOR_RIDER)
        assert ride.status == RideStatus.ARRIVED

    def test_invalid_transition_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            make_ride().check_transition(RideStatus.ARRIVED)


class TestRideStatusParsing:
    def test_current_values(self):
        assert RideStatus.parse("ARRIVED") is RideStatus.ARRIVED

    def test_legacy_started_maps_to_start(self, caplog):
        with caplog.at_level("WARNING"):
            assert RideStatus.parse("STARTED") is RideStatus.START
        assert "Deprecated ride status" in caplog.text

    def test_unknown_value_raises(self):
        with pytest.raises(ValueError):
            RideStatus.parse("CANCELLED")


class TestDriverTransitions:
    def test_offline_can_only_go_online(self):
        assert DRIVER_TRANSITIONS[DriverState.OFFLINE] == {
            DriverEvent.GO_ONLINE: DriverState.ONLINE_SEARCHING
        }

    def test_cannot_go_offline_with_accepted_ride(self):
        assert DriverEvent.GO_OFFLINE not in DRIVER_TRANSITIONS[DriverState.ONLINE_RIDE_ACCEPTED]

    def test_completion_returns_to_searching(self):
        table = DRIVER_TRANSITIONS[DriverState.ONLINE_RIDE_ACCEPTED]
        assert table[DriverEvent.COMPLETE_RIDE] is DriverState.ONLINE_SEARCHING

    @pytest.mark.parametrize(
        "state", [DriverState.ONLINE_SEARCHING, DriverState.ONLINE_RIDE_ACCEPTED]
    )
    def test_session_loss_forces_offline(self, state):
        assert DRIVER_TRANSITIONS[state][DriverEvent.SESSION_LOST] is DriverState.OFFLINE
