"""
Persistent key-value storage for session state.

Keys written by the client
--------------------------
* ``access_token`` / ``refresh_token`` -- bearer token pair
* ``role`` / ``user_id``               -- who is logged in
* ``otp_verified_<rideId>``            -- pickup OTP confirmed for a ride
"""

from __future__ import annotations

from typing import Optional, Protocol

import redis.asyncio as aioredis

ACCESS_TOKEN = "access_token"
REFRESH_TOKEN = "refresh_token"
ROLE = "role"
USER_ID = "user_id"
PROFILE_COMPLETE = "profile_complete"


def otp_verified_key(ride_id: str) -> str:
    return f"otp_verified_{ride_id}"


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, *keys: str) -> None: ...


class MemoryStore:
    """Process-local store.  Used in tests and for throwaway sessions."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)


class RedisStore:
    """Store backed by Redis so a session survives process restarts."""

    def __init__(self, client: aioredis.Redis, prefix: str = "medride:"):
        self.redis = client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(self._key(key))

    async def set(self, key: str, value: str) -> None:
        await self.redis.set(self._key(key), value)

    async def delete(self, *keys: str) -> None:
        if keys:
            await self.redis.delete(*(self._key(k) for k in keys))
