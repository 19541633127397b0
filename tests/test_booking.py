"""Patient booking, ride tracking and profile update tests."""

from __future__ import annotations

import pytest

from medride.config import Settings
from medride.domain.entities import Coordinates, Location
from medride.domain.enums import RideStatus, VehicleType
from medride.infrastructure.storage import PROFILE_COMPLETE
from medride.services.booking import BookingService
from medride.workers.ride_tracker import RideTracker
from tests.fakes import HOME, HOSPITAL

VEHICLE = {
    "type": "bls",
    "plate_number": "ka05mn4321",
    "model": "Tata Winger",
    "license_number": "DL-77",
    "certification_level": "EMT-Basic",
}


@pytest.fixture
def booking(client, session, notifier, scheduler, test_settings) -> BookingService:
    return BookingService(
        client, session, notifier, scheduler=scheduler, settings=test_settings
    )


class TestBookRide:
    @pytest.mark.asyncio
    async def test_books_ride_with_otp(self, booking, backend, notifier):
        result = await booking.book_ride(
            VehicleType.ALS, Location(**HOME), HOSPITAL
        )

        assert result.success
        assert result.ride.status is RideStatus.SEARCHING_FOR_RIDER
        assert result.ride.otp == "4821"
        assert backend.rides[result.ride.id]["vehicle"] == "als"
        assert "4821" in notifier.last.message

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "vehicle, pickup",
        [
            ("helicopter", HOME),
            ("bls", {**HOME, "latitude": 123.0}),
            ("bls", {"address": "nowhere"}),
        ],
        ids=["vehicle", "latitude-range", "missing-coordinates"],
    )
    async def test_invalid_input_is_not_sent(self, booking, backend, notifier, vehicle, pickup):
        result = await booking.book_ride(vehicle, pickup, HOSPITAL)

        assert not result.success
        assert result.error_code == "validation"
        assert backend.calls == []
        assert notifier.last.title == "Validation Error"

    @pytest.mark.asyncio
    async def test_server_failure(self, booking, backend, notifier):
        backend.fail("POST", "/ride/create", 503, {"message": "No ambulances nearby"})

        result = await booking.book_ride("bls", HOME, HOSPITAL)

        assert not result.success
        assert result.error_code == "server"
        assert notifier.last.message == "Failed to book ride: No ambulances nearby"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "emergency, vehicle",
        [("heart_attack", "ccs"), ("labor_delivery", "als"), ("chest_pain", "als"), (None, "bls")],
    )
    async def test_books_suggested_vehicle_for_emergency(self, booking, backend, emergency, vehicle):
        result = await booking.book_for_emergency(emergency, HOME, HOSPITAL)

        assert result.success
        assert backend.rides[result.ride.id]["vehicle"] == vehicle


class TestUpdateProfile:
    @pytest.mark.asyncio
    async def test_saves_profile(self, booking, backend, store):
        await store.delete(PROFILE_COMPLETE)

        result = await booking.update_profile(name="Asha K", vehicle=VEHICLE)

        assert result.success
        assert backend.driver["vehicle"]["plateNumber"] == "KA05MN4321"
        assert await store.get(PROFILE_COMPLETE) == "true"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "fields, message",
        [
            ({"name": "A", "vehicle": VEHICLE}, "minimum 2 characters"),
            ({"name": "Asha", "email": "asha@", "vehicle": VEHICLE}, "valid email"),
            ({"name": "Asha", "vehicle": {**VEHICLE, "plate_number": "K1"}}, "license plate"),
            (
                {"name": "Asha", "vehicle": VEHICLE,
                 "hospital_affiliation": {"is_affiliated": True, "hospital_name": "City"}},
                "hospital id",
            ),
        ],
        ids=["name", "email", "plate", "affiliation"],
    )
    async def test_rejects_invalid_fields(self, booking, backend, fields, message):
        result = await booking.update_profile(**fields)

        assert not result.success
        assert message in result.message
        assert backend.calls == []


class TestRideTracker:
    @pytest.mark.asyncio
    async def test_polls_until_completed(self, client, backend, scheduler):
        backend.add_ride("ride-1")
        tracker = RideTracker(client, scheduler, "ride-1", poll_interval=10)

        tracker.start()
        await tracker.wait()
        assert tracker.status is RideStatus.SEARCHING_FOR_RIDER
        assert tracker.driver_position is None

        backend.rides["ride-1"]["status"] = "START"
        backend.rides["ride-1"]["rider"] = {
            "_id": "driver-1", "name": "Asha",
            "location": {"latitude": 12.95, "longitude": 77.61},
        }
        scheduler.advance(10)
        await tracker.wait()
        assert tracker.status is RideStatus.START
        assert tracker.driver_position == Coordinates(12.95, 77.61)

        backend.rides["ride-1"]["status"] = "COMPLETED"
        scheduler.advance(10)
        await tracker.wait()
        assert tracker.status is RideStatus.COMPLETED
        assert not tracker.is_running
        assert scheduler.pending == []
        assert backend.count("GET", "/ride/rides") == 3

    @pytest.mark.asyncio
    async def test_driver_position_falls_back_to_pickup(self, client, backend, scheduler):
        backend.add_ride("ride-1", status="ARRIVED")
        tracker = RideTracker(client, scheduler, "ride-1")

        await tracker.refresh()

        assert tracker.driver_position == Coordinates(HOME["latitude"], HOME["longitude"])

    @pytest.mark.asyncio
    async def test_missing_ride_sets_error(self, client, scheduler):
        tracker = RideTracker(client, scheduler, "ride-404")
        await tracker.refresh()
        assert tracker.error == "Ride not found"
        assert tracker.ride is None

    @pytest.mark.asyncio
    async def test_errors_are_kept_not_raised(self, client, backend, scheduler):
        backend.add_ride("ride-1")
        tracker = RideTracker(client, scheduler, "ride-1")
        await tracker.refresh()

        backend.fail("GET", "/ride/rides", 500, {"message": "oops"})
        ride = await tracker.refresh()

        assert ride.id == "ride-1"
        assert tracker.error == "oops"

    @pytest.mark.asyncio
    async def test_stop_cancels_polling(self, client, backend, scheduler):
        backend.add_ride("ride-1")
        tracker = RideTracker(client, scheduler, "ride-1")

        tracker.start()
        await tracker.wait()
        tracker.stop()
        scheduler.advance(60)

        assert scheduler.pending == []
        assert backend.count("GET", "/ride/rides") == 1

    @pytest.mark.asyncio
    async def test_track_uses_configured_interval(self, client, session, backend, scheduler):
        backend.add_ride("ride-1")
        booking = BookingService(
            client, session, scheduler=scheduler,
            settings=Settings(_env_file=None, tracking_poll_interval_seconds=4),
        )

        tracker = booking.track("ride-1")
        await tracker.wait()
        assert tracker.is_running
        assert tracker.poll_interval == 4

        scheduler.advance(4)
        await tracker.wait()
        assert backend.count("GET", "/ride/rides") == 2

        tracker.stop()
        assert scheduler.pending == []
