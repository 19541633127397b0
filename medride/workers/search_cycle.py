"""
Ride Search Duty Cycle
======================

Gates how often the driver client polls for available rides so it feels
live without hammering the backend.

States
------
* ``IDLE``          -- offline, a ride is accepted, or the ceiling was hit.
* ``ACTIVE_SEARCH`` -- polling every ``poll_interval`` seconds.
* ``PAUSED``        -- between bursts.

Cycle
-----
ACTIVE_SEARCH for ``active_seconds`` -> PAUSED for ``pause_seconds`` ->
next cycle (``cycle_count`` + 1).  Visible rides pin the controller in
ACTIVE_SEARCH and abandon the pause.  Once ``max_seconds`` have elapsed since
the first search began, the controller drops to IDLE and stays there until
``restart()`` (or a full stop).

The controller does no I/O: it only calls ``on_poll``.  Every timer it
starts is owned by it and cancelled on state exit or ``stop()``.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from medride.config import Settings
from medride.domain.enums import SearchState
from medride.infrastructure.scheduler import Scheduler, TimerHandle, cancel

logger = logging.getLogger(__name__)


class SearchCycleController:
    def __init__(
        self,
        scheduler: Scheduler,
        *,
        active_seconds: float = 30.0,
        pause_seconds: float = 270.0,
        max_seconds: float = 900.0,
        poll_interval: float = 10.0,
        on_poll: Optional[Callable[[], None]] = None,
    ):
        self.scheduler = scheduler
        self.active_seconds = active_seconds
        self.pause_seconds = pause_seconds
        self.max_seconds = max_seconds
        self.poll_interval = poll_interval
        self.on_poll = on_poll

        self.state = SearchState.IDLE
        self.cycle_count = 0
        self.max_search_time_reached = False
        self.last_search_time: Optional[float] = None

        self._rides_present = False
        self._search_started_at: Optional[float] = None
        self._pause_ends_at: Optional[float] = None
        self._phase_timer: Optional[TimerHandle] = None
        self._poll_timer: Optional[TimerHandle] = None
        self._ceiling_timer: Optional[TimerHandle] = None

    @classmethod
    def from_settings(
        cls,
        scheduler: Scheduler,
        settings: Settings,
        on_poll: Optional[Callable[[], None]] = None,
    ) -> "SearchCycleController":
        return cls(
            scheduler,
            active_seconds=settings.search_active_seconds,
            pause_seconds=settings.search_pause_seconds,
            max_seconds=settings.search_max_seconds,
            poll_interval=settings.search_poll_interval_seconds,
            on_poll=on_poll,
        )

    # ── Derived values ────────────────────────────────────────────

    @property
    def is_searching(self) -> bool:
        return self.state is SearchState.ACTIVE_SEARCH

    @property
    def time_until_next_search(self) -> float:
        """Seconds until the next burst; 0 unless paused."""
        if self.state is not SearchState.PAUSED or self._pause_ends_at is None:
            return 0.0
        return max(0.0, self._pause_ends_at - self.scheduler.now())

    @property
    def elapsed_search_time(self) -> float:
        if self._search_started_at is None:
            return 0.0
        return self.scheduler.now() - self._search_started_at

    @property
    def has_pending_timers(self) -> bool:
        return any(
            t is not None
            for t in (self._phase_timer, self._poll_timer, self._ceiling_timer)
        )

    # ── Inputs ────────────────────────────────────────────────────

    def sync(
        self,
        *,
        online: bool,
        has_accepted_ride: bool,
        rides_available: int,
        just_polled: bool = False,
    ) -> None:
        """Re-evaluate after any change to the driver's inputs.

        ``just_polled`` means the caller has fresh results, so entering
        ACTIVE_SEARCH waits one poll interval instead of polling at once.
        """
        if not online or has_accepted_ride:
            self.stop()
            return
        if self.max_search_time_reached:
            return

        if rides_available > 0:
            self._rides_present = True
            self._cancel_phase()
            if self.state is not SearchState.ACTIVE_SEARCH:
                self._enter_active(poll_now=not just_polled)
            return

        rides_just_cleared = self._rides_present
        self._rides_present = False
        if self.state is SearchState.IDLE or rides_just_cleared:
            self._start_cycle(poll_now=not just_polled)

    def restart(self) -> None:
        """Clear the ceiling; the next ``sync`` starts a fresh search."""
        self.stop()

    def stop(self) -> None:
        if self.state is not SearchState.IDLE:
            logger.debug("Search cycle stopped after %d cycle(s)", self.cycle_count)
        self._cancel_phase()
        self._cancel_poll()
        self._ceiling_timer = cancel(self._ceiling_timer)
        self.state = SearchState.IDLE
        self.cycle_count = 0
        self.max_search_time_reached = False
        self._rides_present = False
        self._search_started_at = None

    # ── Internals ─────────────────────────────────────────────────

    def _start_cycle(self, poll_now: bool = True) -> None:
        self._cancel_phase()
        if (
            self._search_started_at is not None
            and self.scheduler.now() - self._search_started_at >= self.max_seconds
        ):
            self._hit_ceiling()
            return
        self.cycle_count += 1
        self._enter_active(poll_now)
        self._phase_timer = self.scheduler.call_later(self.active_seconds, self._pause)
        logger.debug("Search cycle %d started", self.cycle_count)

    def _enter_active(self, poll_now: bool = True) -> None:
        now = self.scheduler.now()
        if self._search_started_at is None:
            self._search_started_at = now
            self._ceiling_timer = self.scheduler.call_later(
                self.max_seconds, self._hit_ceiling
            )
        already_polling = self.state is SearchState.ACTIVE_SEARCH
        self.state = SearchState.ACTIVE_SEARCH
        self.last_search_time = now
        if already_polling:
            return
        if poll_now:
            self._poll()
        else:
            self._poll_timer = self.scheduler.call_later(self.poll_interval, self._poll)

    def _pause(self) -> None:
        self._phase_timer = None
        if self._rides_present:
            return
        self._cancel_poll()
        self.state = SearchState.PAUSED
        self._pause_ends_at = self.scheduler.now() + self.pause_seconds
        self._phase_timer = self.scheduler.call_later(self.pause_seconds, self._resume)

    def _resume(self) -> None:
        self._phase_timer = None
        self._pause_ends_at = None
        self._start_cycle()

    def _poll(self) -> None:
        self._poll_timer = None
        if self.state is not SearchState.ACTIVE_SEARCH:
            return
        self._poll_timer = self.scheduler.call_later(self.poll_interval, self._poll)
        if self.on_poll is not None:
            self.on_poll()

    def _hit_ceiling(self) -> None:
        self._ceiling_timer = None
        self._cancel_phase()
        self._cancel_poll()
        self.state = SearchState.IDLE
        self.max_search_time_reached = True
        logger.info(
            "Stopped searching after %.0fs without a match", self.elapsed_search_time
        )

    def _cancel_phase(self) -> None:
        self._phase_timer = cancel(self._phase_timer)
        self._pause_ends_at = None

    def _cancel_poll(self) -> None:
        self._poll_timer = cancel(self._poll_timer)
