"""
Cancellable timer abstraction.

Controllers never call ``asyncio`` timers directly: they receive a
``Scheduler`` and keep the returned handle so every timer they start can be
cancelled on state exit or teardown.  Tests substitute a manual clock.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now(self) -> float:
        """Monotonic time in seconds."""
        ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioScheduler:
    """Scheduler backed by the running event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def now(self) -> float:
        return self._get_loop().time()

    def call_later(
        self, delay: float, callback: Callable[[], None]
    ) -> asyncio.TimerHandle:
        return self._get_loop().call_later(delay, callback)


def cancel(handle: Optional[TimerHandle]) -> None:
    """Cancel *handle* if set."""
    if handle is not None:
        handle.cancel()
