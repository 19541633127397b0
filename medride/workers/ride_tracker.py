"""
Patient-side ride tracking: poll one ride until it completes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from medride.client.rides import RideServiceClient
from medride.config import Settings
from medride.domain.entities import Coordinates, Ride
from medride.domain.enums import RideStatus
from medride.domain.exceptions import MedrideError
from medride.infrastructure.scheduler import Scheduler, TimerHandle, cancel

logger = logging.getLogger(__name__)


class RideTracker:
    def __init__(
        self,
        client: RideServiceClient,
        scheduler: Scheduler,
        ride_id: str,
        *,
        poll_interval: float = 10.0,
    ):
        self.client = client
        self.scheduler = scheduler
        self.ride_id = ride_id
        self.poll_interval = poll_interval

        self.ride: Optional[Ride] = None
        self.error: Optional[str] = None
        self._timer: Optional[TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @classmethod
    def from_settings(
        cls,
        client: RideServiceClient,
        scheduler: Scheduler,
        ride_id: str,
        settings: Settings,
    ) -> "RideTracker":
        return cls(
            client,
            scheduler,
            ride_id,
            poll_interval=settings.tracking_poll_interval_seconds,
        )

    @property
    def status(self) -> RideStatus:
        return self.ride.status if self.ride else RideStatus.SEARCHING_FOR_RIDER

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def driver_position(self) -> Optional[Coordinates]:
        """Where to draw the driver once the trip is under way."""
        ride = self.ride
        if ride is None or ride.status not in (RideStatus.START, RideStatus.ARRIVED):
            return None
        return ride.driver_location or ride.pickup.coordinates

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._tick()

    def stop(self) -> None:
        self._running = False
        self._timer = cancel(self._timer)
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def refresh(self) -> Optional[Ride]:
        """Fetch the ride once.  Errors are kept in ``error``, never raised."""
        try:
            ride = await self.client.get_ride(self.ride_id)
        except MedrideError as exc:
            logger.warning("Failed to fetch ride %s: %s", self.ride_id, exc)
            self.error = exc.user_message
            return self.ride

        if ride is None:
            self.error = "Ride not found"
            return self.ride

        self.error = None
        if self.ride is None or ride.status != self.ride.status:
            logger.info("Ride %s is %s", ride.id, ride.status.value)
        self.ride = ride
        if ride.status is RideStatus.COMPLETED:
            self._running = False
            self._timer = cancel(self._timer)
        return ride

    def _tick(self) -> None:
        self._timer = None
        if not self._running:
            return
        self._timer = self.scheduler.call_later(self.poll_interval, self._tick)
        if self._task is None or self._task.done():
            self._task = asyncio.ensure_future(self.refresh())

    async def wait(self) -> None:
        """Wait for the in-flight fetch, if any."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
