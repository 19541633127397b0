"""
Driver Lifecycle State Machine
==============================

One object owns everything the driver client knows: the online flag, the
rides currently offered, the accepted ride and its progress.

States (``DRIVER_TRANSITIONS``)::

    OFFLINE --GO_ONLINE--> ONLINE_SEARCHING --ACCEPT_RIDE--> ONLINE_RIDE_ACCEPTED
    ONLINE_SEARCHING --GO_OFFLINE--> OFFLINE
    ONLINE_RIDE_ACCEPTED --COMPLETE_RIDE--> ONLINE_SEARCHING
    any online state --SESSION_LOST--> OFFLINE

Rules
-----
* Command/response: local state changes only after the server confirms.
  A failed call leaves state untouched and produces a notification.
* Overlapping work is guarded by in-flight flags (one ride fetch, one
  online toggle, one accept at a time).
* A response that arrives after the state moved on (session lost, driver
  forced offline) is dropped with a "stale" result.
* Timers and background tasks are owned here and cancelled by ``close()``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Coroutine, Optional, Union

from medride.client.rides import RideServiceClient
from medride.config import Settings, settings as default_settings
from medride.domain.entities import (
    Coordinates,
    DirectionsResult,
    DriverProfile,
    DriverStats,
    Ride,
)
from medride.domain.enums import (
    DRIVER_TRANSITIONS,
    DriverEvent,
    DriverState,
    RideStatus,
)
from medride.domain.exceptions import (
    AuthError,
    InvalidStateTransition,
    MedrideError,
    SessionExpiredError,
    ValidationError,
)
from medride.domain.formatting import display_fare, relative_time
from medride.infrastructure.scheduler import Scheduler, TimerHandle, cancel
from medride.infrastructure.session import Session
from medride.workers.search_cycle import SearchCycleController

from .directions import CachedDirections, DirectionsEstimator
from .notifications import (
    LoggingNotifier,
    Notification,
    Notifier,
    info,
    notification_for,
)

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    """Outcome of a lifecycle operation."""
    success: bool
    message: str = ""
    error_code: Optional[str] = None
    ride: Optional[Ride] = None


class DriverLifecycle:
    def __init__(
        self,
        client: RideServiceClient,
        session: Session,
        directions: DirectionsEstimator,
        scheduler: Scheduler,
        *,
        notifier: Optional[Notifier] = None,
        settings: Settings = default_settings,
        search: Optional[SearchCycleController] = None,
    ):
        self.client = client
        self.session = session
        self.directions = directions
        self.scheduler = scheduler
        self.notifier = notifier or LoggingNotifier()
        self.settings = settings

        self.search = search or SearchCycleController.from_settings(scheduler, settings)
        self.search.on_poll = self._on_poll

        self._accepted_eta = CachedDirections(
            directions, settings.accepted_ride_cache_ttl_seconds, clock=scheduler.now
        )
        self._list_eta = CachedDirections(
            directions, settings.ride_list_cache_ttl_seconds, clock=scheduler.now
        )

        self.state = DriverState.OFFLINE
        self.profile = DriverProfile()
        self.stats = DriverStats()
        self.driver_location: Optional[Coordinates] = None
        self._available_rides: list[Ride] = []
        self._accepted_ride: Optional[Ride] = None
        self._trip_started = False
        self._destination: Optional[Coordinates] = None
        self._route_coords: list[Coordinates] = []

        self._fetch_in_flight = False
        self._toggle_in_flight = False
        self._accept_in_flight = False
        self._auth_check: Optional[TimerHandle] = None
        self._refresh_timer: Optional[TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    # ── Read-only views ───────────────────────────────────────────

    @property
    def online(self) -> bool:
        return self.state is not DriverState.OFFLINE

    @property
    def available_rides(self) -> list[Ride]:
        return list(self._available_rides)

    @property
    def accepted_ride(self) -> Optional[Ride]:
        return self._accepted_ride

    @property
    def trip_started(self) -> bool:
        return self._trip_started

    @property
    def destination(self) -> Optional[Coordinates]:
        return self._destination

    @property
    def route_coords(self) -> list[Coordinates]:
        return list(self._route_coords)

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "available_rides": len(self._available_rides),
            "accepted_ride": self._accepted_ride.id if self._accepted_ride else None,
            "ride_status": self._accepted_ride.status.value if self._accepted_ride else None,
            "trip_started": self._trip_started,
            "searching": self.search.is_searching,
            "next_search_in": round(self.search.time_until_next_search),
            "max_search_time_reached": self.search.max_search_time_reached,
        }

    def ride_summaries(self, now: Optional[datetime] = None) -> list[dict[str, Any]]:
        """One display row per offered ride: addresses, rounded fare, age."""
        return [
            {
                "id": ride.id,
                "pickup": ride.pickup.address,
                "drop": ride.drop.address,
                "fare": display_fare(ride.fare),
                "requested": relative_time(ride.created_at, now),
            }
            for ride in self._available_rides
        ]

    # ── Online presence ───────────────────────────────────────────

    async def toggle_online(self) -> OperationResult:
        if self._toggle_in_flight or self._accept_in_flight:
            return self._reject("Please wait for the current request to finish.")
        if self.state is DriverState.ONLINE_RIDE_ACCEPTED:
            return self._reject("Complete the active trip before going offline.")

        before = self.state
        going_online = before is DriverState.OFFLINE
        self._toggle_in_flight = True
        try:
            profile = await self.client.set_online_status(going_online)
        except MedrideError as exc:
            return await self._handle_error(exc, "Failed to update online status")
        finally:
            self._toggle_in_flight = False

        if self.state is not before:
            return self._superseded("Your session changed before the status update finished.")

        self._transition(DriverEvent.GO_ONLINE if going_online else DriverEvent.GO_OFFLINE)
        if profile is not None:
            self.profile = profile
        self.profile.is_online = going_online

        if going_online:
            self._schedule_auth_check()
            self._notify(info(
                "Going Online",
                "You are now online and ready to accept ride requests.",
            ))
        else:
            self._auth_check = cancel(self._auth_check)
            self._available_rides = []
            self._notify(info(
                "Going Offline",
                "You are now offline and will stop receiving new requests.",
            ))
        self._sync_search()
        return OperationResult(True, "online" if going_online else "offline")

    def _schedule_auth_check(self) -> None:
        # Re-toggling within the delay replaces the pending check.
        cancel(self._auth_check)
        self._auth_check = self.scheduler.call_later(
            self.settings.auth_check_delay_seconds,
            lambda: self._spawn(self._check_auth()),
        )

    async def _check_auth(self) -> None:
        self._auth_check = None
        if self.state is DriverState.OFFLINE:
            return
        for attempt in (1, 2):
            try:
                self.profile = await self.client.get_driver_profile()
                self.profile.is_online = True
                return
            except SessionExpiredError as exc:
                await self._end_session(exc)
                return
            except AuthError as exc:
                # a first 401 may just have refreshed the token
                if attempt == 2:
                    logger.warning("Auth check failed: %s", exc)
                    self._drop_offline()
                    self._notify(Notification(
                        exc.error_code, "Authentication Error", "Please log in again."
                    ))
            except MedrideError as exc:
                logger.warning("Auth check inconclusive: %s", exc)
                return

    # ── Available rides ───────────────────────────────────────────

    async def fetch_available_rides(self) -> OperationResult:
        if self._fetch_in_flight:
            logger.debug("Ride fetch already in flight, skipping")
            return OperationResult(False, "Already refreshing rides", "in_flight")
        if self.state is not DriverState.ONLINE_SEARCHING:
            return OperationResult(False, "Not searching for rides", "not_searching")

        self._fetch_in_flight = True
        try:
            rides = await self.client.get_driver_rides()
        except MedrideError as exc:
            self._fetch_in_flight = False
            result = await self._handle_error(exc, "Failed to fetch available rides")
            self._sync_search(just_polled=True)
            return result
        self._fetch_in_flight = False

        # An accept or toggle may have landed while the request was out.
        if self.state is not DriverState.ONLINE_SEARCHING:
            logger.debug("Discarding ride list fetched in state %s", self.state.value)
            return OperationResult(False, "Not searching for rides", "not_searching")

        self._available_rides = [r for r in rides if r.is_open]
        logger.info("Available rides: %d", len(self._available_rides))
        self._sync_search(just_polled=True)
        return OperationResult(True, f"{len(self._available_rides)} ride(s) available")

    def reject_ride(self, ride_id: str) -> OperationResult:
        """Hide a ride locally.  Other drivers still see it."""
        before = len(self._available_rides)
        self._available_rides = [r for r in self._available_rides if r.id != ride_id]
        if len(self._available_rides) == before:
            return OperationResult(False, "Ride is no longer listed", "not_found")
        self._sync_search()
        return OperationResult(True, "Ride dismissed")

    # ── Accepted ride ─────────────────────────────────────────────

    async def accept_ride(self, ride_id: str) -> OperationResult:
        if self.state is DriverState.OFFLINE:
            return self._reject("Please go online to start receiving ride requests.")
        if self._accepted_ride is not None:
            return self._reject("You already have an active ride.")
        if self._accept_in_flight or self._toggle_in_flight:
            return self._reject("Please wait for the current request to finish.")

        self._accept_in_flight = True
        try:
            ride = await self.client.accept_ride(ride_id)
        except MedrideError as exc:
            return await self._handle_error(exc, "Failed to accept ride")
        finally:
            self._accept_in_flight = False

        if self.state is not DriverState.ONLINE_SEARCHING or self._accepted_ride is not None:
            logger.warning(
                "Ride %s was accepted on the server after the driver went %s",
                ride.id, self.state.value,
            )
            return self._superseded(
                "The ride was accepted after you went offline. "
                "Go online and resume it to continue."
            )

        self._adopt_ride(ride)
        logger.info("Accepted ride %s", ride.id)
        self._notify(info("Ride Accepted", "Ride accepted!"))
        return OperationResult(True, "Ride accepted", ride=ride)

    async def resume_ride(self, ride_id: str) -> OperationResult:
        """Pick an in-progress ride back up by id, e.g. after a restart."""
        if self.state is DriverState.OFFLINE:
            return self._reject("Please go online to resume your ride.")
        if self._accepted_ride is not None:
            return self._reject("You already have an active ride.")
        if self._accept_in_flight or self._toggle_in_flight:
            return self._reject("Please wait for the current request to finish.")

        self._accept_in_flight = True
        try:
            ride = await self.client.get_ride_by_id(ride_id)
        except MedrideError as exc:
            return await self._handle_error(exc, "Failed to load your ride")
        finally:
            self._accept_in_flight = False

        if ride.status not in (RideStatus.START, RideStatus.ARRIVED):
            return self._reject(f"Ride {ride_id} is not in progress ({ride.status.value}).")
        if self.state is not DriverState.ONLINE_SEARCHING or self._accepted_ride is not None:
            return self._superseded("Your session changed before the ride was loaded.")

        self._adopt_ride(ride, trip_started=True)
        logger.info("Resumed ride %s (%s)", ride.id, ride.status.value)
        self._notify(info("Ride Resumed", f"Continuing ride {ride.id}."))
        return OperationResult(True, "Ride resumed", ride=ride)

    def _adopt_ride(self, ride: Ride, trip_started: bool = False) -> None:
        self._transition(DriverEvent.ACCEPT_RIDE)
        self._accepted_ride = ride
        self._available_rides = []
        self._trip_started = trip_started
        self._destination = ride.drop.coordinates
        self._route_coords = []
        self._sync_search()
        if self.driver_location is not None:
            self._spawn(self._load_route(ride.id, self.driver_location, self._destination))

    async def _load_route(
        self, ride_id: str, origin: Coordinates, destination: Coordinates
    ) -> None:
        route = await self.directions.fetch_route(origin, destination)
        if self._accepted_ride is None or self._accepted_ride.id != ride_id:
            return
        if not route:
            self._notify(Notification("warning", "Route", "Could not fetch route."))
            return
        self._route_coords = route

    async def update_ride_status(
        self, ride_id: str, status: Union[RideStatus, str]
    ) -> OperationResult:
        try:
            status = RideStatus.parse(status) if isinstance(status, str) else status
            ride = self._require_accepted(ride_id)
            ride.check_transition(status)
            updated = await self.client.update_ride_status(ride_id, status)
        except ValueError:
            return self._reject(f"Unknown ride status: {status}")
        except MedrideError as exc:
            return await self._handle_error(exc, "Could not update ride status")

        if self._accepted_ride is not ride or self.state is not DriverState.ONLINE_RIDE_ACCEPTED:
            logger.warning("Ride %s became %s after the local ride was dropped", ride_id, status.value)
            return self._superseded("Your session changed before the ride update finished.")

        if status is RideStatus.COMPLETED:
            self._reset_ride_state()
            self._transition(DriverEvent.COMPLETE_RIDE)
            self._schedule_refresh()
            await self.session.clear_otp_verified(ride_id)
        else:
            self._accepted_ride = updated
            self._trip_started = True

        logger.info("Ride %s is now %s", ride_id, status.value)
        self._notify(info("Success", f"Ride status updated to {status.value}"))
        return OperationResult(True, status.value, ride=updated)

    def _schedule_refresh(self) -> None:
        # Give the cleared state a moment before the list is refilled.
        cancel(self._refresh_timer)
        self._refresh_timer = self.scheduler.call_later(
            self.settings.completion_refresh_delay_seconds,
            self._on_refresh_due,
        )

    def _on_refresh_due(self) -> None:
        self._refresh_timer = None
        self._spawn(self._refresh_after_completion())

    async def _refresh_after_completion(self) -> None:
        result = await self.fetch_available_rides()
        if result.error_code == "in_flight":
            self._sync_search()

    async def verify_otp(self, ride_id: str, code: str) -> OperationResult:
        try:
            ride = self._require_accepted(ride_id)
            code = (code or "").strip()
            if not code.isdigit():
                raise ValidationError("Please enter the OTP shown to the patient.")
            if not ride.otp:
                raise ValidationError("No OTP is available for this ride.")
            if code != ride.otp:
                raise ValidationError("Invalid OTP. Please check with the patient.")
            await self.session.mark_otp_verified(ride_id)
        except MedrideError as exc:
            return await self._handle_error(exc)
        self._notify(info("OTP Verified", "Patient identity confirmed."))
        return OperationResult(True, "OTP verified", ride=ride)

    async def is_otp_verified(self, ride_id: str) -> bool:
        return await self.session.is_otp_verified(ride_id)

    def _require_accepted(self, ride_id: str) -> Ride:
        ride = self._accepted_ride
        if ride is None or ride.id != ride_id:
            raise ValidationError("This ride is not your active ride.")
        return ride

    # ── Profile, stats, session ───────────────────────────────────

    async def load_driver_data(self) -> OperationResult:
        """Fetch stats and profile; adopt the server's online flag."""
        try:
            self.stats = await self.client.get_driver_stats()
        except SessionExpiredError as exc:
            return await self._handle_error(exc)
        except MedrideError as exc:
            logger.warning("Failed to fetch driver stats: %s", exc)

        try:
            profile = await self.client.get_driver_profile()
        except MedrideError as exc:
            return await self._handle_error(exc, "Failed to load driver data")

        self.profile = profile
        if profile.is_online and self.state is DriverState.OFFLINE:
            self._transition(DriverEvent.GO_ONLINE)
        elif not profile.is_online and self.state is DriverState.ONLINE_SEARCHING:
            self._transition(DriverEvent.GO_OFFLINE)
            self._available_rides = []
        self._sync_search()
        return OperationResult(True, "Driver data loaded")

    async def refresh_session(self) -> OperationResult:
        try:
            await self.session.refresh_if_needed()
        except MedrideError as exc:
            return await self._handle_error(exc, "Could not refresh session")
        return OperationResult(True, "Session refreshed")

    def update_location(self, latitude: float, longitude: float) -> None:
        self.driver_location = Coordinates(latitude, longitude)

    async def ride_directions(self, ride: Ride) -> Optional[DirectionsResult]:
        """ETA/distance from the driver to pickup and on to drop, cached."""
        if self.driver_location is None:
            return None
        is_accepted = self._accepted_ride is not None and self._accepted_ride.id == ride.id
        cache = self._accepted_eta if is_accepted else self._list_eta
        return await cache.get_ride_durations(
            self.driver_location, ride.pickup.coordinates, ride.drop.coordinates
        )

    def restart_search(self) -> None:
        """Resume searching after the search ceiling was reached."""
        self.search.restart()
        self._sync_search()

    # ── Teardown ──────────────────────────────────────────────────

    async def wait_for_background(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        self._closed = True
        self._auth_check = cancel(self._auth_check)
        self._refresh_timer = cancel(self._refresh_timer)
        self.search.stop()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ── Internals ─────────────────────────────────────────────────

    def _transition(self, event: DriverEvent) -> None:
        new_state = DRIVER_TRANSITIONS.get(self.state, {}).get(event)
        if new_state is None:
            raise InvalidStateTransition(
                f"{event.value} is not allowed while {self.state.value}"
            )
        logger.debug("Driver %s -> %s (%s)", self.state.value, new_state.value, event.value)
        self.state = new_state

    def _sync_search(self, just_polled: bool = False) -> None:
        self.search.sync(
            online=self.online,
            has_accepted_ride=self._accepted_ride is not None,
            rides_available=len(self._available_rides),
            just_polled=just_polled,
        )

    def _on_poll(self) -> None:
        if not self._fetch_in_flight:
            self._spawn(self.fetch_available_rides())

    def _reset_ride_state(self) -> None:
        self._accepted_ride = None
        self._destination = None
        self._route_coords = []
        self._trip_started = False

    def _drop_offline(self) -> None:
        if self.state is not DriverState.OFFLINE:
            self._transition(DriverEvent.SESSION_LOST)
        self._reset_ride_state()
        self._available_rides = []
        self.profile.is_online = False
        self._auth_check = cancel(self._auth_check)
        self._refresh_timer = cancel(self._refresh_timer)
        self._sync_search()

    async def _end_session(self, exc: SessionExpiredError) -> None:
        logger.warning("Session expired; forcing logout")
        await self.session.clear()
        self._drop_offline()
        self._notify(notification_for(exc))

    async def _handle_error(self, exc: MedrideError, context: str = "") -> OperationResult:
        if isinstance(exc, SessionExpiredError):
            await self._end_session(exc)
        else:
            self._notify(notification_for(exc, context))
        return OperationResult(False, exc.user_message, exc.error_code)

    def _reject(self, message: str) -> OperationResult:
        exc = ValidationError(message)
        self._notify(notification_for(exc))
        return OperationResult(False, message, exc.error_code)

    def _superseded(self, message: str) -> OperationResult:
        # The state moved while a request was out; the server answer is dropped.
        self._notify(Notification("stale", "Request Superseded", message))
        return OperationResult(False, message, "stale")

    def _notify(self, notification: Notification) -> None:
        self.notifier.notify(notification)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        if self._closed:
            coro.close()
            return
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background task failed", exc_info=task.exception())
