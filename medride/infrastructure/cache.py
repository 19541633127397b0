"""
In-memory TTL cache for derived values (directions / ETA).

Expired entries are never served: a lookup past the TTL evicts the entry
and reports a miss so the caller fetches fresh data.
"""

from __future__ import annotations

import time
from typing import Callable, Generic, Optional, TypeVar

from medride.domain.entities import Coordinates

V = TypeVar("V")

COORDINATE_PRECISION = 6


def cache_key(*points: Coordinates) -> str:
    """Build a key from coordinates rounded to 6 decimals."""
    return "|".join(
        f"{p.latitude:.{COORDINATE_PRECISION}f},{p.longitude:.{COORDINATE_PRECISION}f}"
        for p in points
    )


class TTLCache(Generic[V]):
    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 256,
    ):
        self.ttl = ttl_seconds
        self._clock = clock
        self._max_entries = max_entries
        self._entries: dict[str, tuple[float, V]] = {}

    def get(self, key: str) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at > self.ttl:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: V) -> None:
        if key not in self._entries and len(self._entries) >= self._max_entries:
            self.purge_expired()
            if len(self._entries) >= self._max_entries:
                # drop the oldest insertion
                self._entries.pop(next(iter(self._entries)))
        self._entries[key] = (self._clock(), value)

    def purge_expired(self) -> int:
        now = self._clock()
        stale = [k for k, (t, _) in self._entries.items() if now - t > self.ttl]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
