"""
Session capability.

The bearer token pair is the only shared mutable resource in the client.
Everything that needs a token depends on a ``Session`` rather than reading
storage directly, so tests can hand in a ``MemoryStore``.

Refresh policy
--------------
A refresh posts the stored refresh token and overwrites *both* tokens on
success.  A rejected refresh is terminal for the session
(``SessionExpiredError``); it is never retried automatically.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from medride.client.auth import AuthClient
from medride.domain.entities import AuthTokens
from medride.domain.enums import UserRole
from medride.domain.exceptions import AuthError, ServerError, SessionExpiredError

from .storage import (
    ACCESS_TOKEN,
    PROFILE_COMPLETE,
    REFRESH_TOKEN,
    ROLE,
    USER_ID,
    KeyValueStore,
    otp_verified_key,
)

logger = logging.getLogger(__name__)


def profile_is_complete(user: dict) -> bool:
    """A driver may take rides once name and vehicle credentials are on file."""
    vehicle = user.get("vehicle") or {}
    return bool(
        user.get("name")
        and vehicle.get("type")
        and vehicle.get("plateNumber")
        and vehicle.get("licenseNumber")
    )


class Session:
    def __init__(self, store: KeyValueStore, auth: AuthClient):
        self.store = store
        self.auth = auth
        self._refresh_lock = asyncio.Lock()

    async def get_access_token(self) -> Optional[str]:
        return await self.store.get(ACCESS_TOKEN)

    async def require_access_token(self) -> str:
        token = await self.get_access_token()
        if not token:
            raise AuthError("Please log in first.")
        return token

    async def user_id(self) -> Optional[str]:
        return await self.store.get(USER_ID)

    async def role(self) -> Optional[str]:
        return await self.store.get(ROLE)

    async def login(self, phone: str, role: UserRole = UserRole.DRIVER) -> AuthTokens:
        tokens = await self.auth.signin(phone, role)
        await self.store_login(tokens, role)
        return tokens

    async def store_login(self, tokens: AuthTokens, role: UserRole) -> None:
        await self.store.set(ACCESS_TOKEN, tokens.access_token)
        await self.store.set(REFRESH_TOKEN, tokens.refresh_token)
        await self.store.set(ROLE, role.value)
        if tokens.user_id:
            await self.store.set(USER_ID, tokens.user_id)
        if profile_is_complete(tokens.user):
            await self.store.set(PROFILE_COMPLETE, "true")
        else:
            await self.store.delete(PROFILE_COMPLETE)

    async def profile_complete(self) -> bool:
        return await self.store.get(PROFILE_COMPLETE) == "true"

    async def refresh_if_needed(self, stale_token: Optional[str] = None) -> str:
        """Refresh the token pair and return the new access token.

        If *stale_token* is given and the stored access token already differs
        from it, another caller refreshed while we waited and the current token
        is returned without a network call.
        """
        async with self._refresh_lock:
            current = await self.get_access_token()
            if stale_token is not None and current and current != stale_token:
                return current

            refresh_token = await self.store.get(REFRESH_TOKEN)
            if not refresh_token:
                raise SessionExpiredError()

            try:
                tokens = await self.auth.refresh_token(refresh_token)
            except ServerError as exc:
                logger.warning("Token refresh rejected (HTTP %d)", exc.status_code)
                raise SessionExpiredError() from exc

            await self.store.set(ACCESS_TOKEN, tokens.access_token)
            await self.store.set(REFRESH_TOKEN, tokens.refresh_token)
            logger.info("Access token refreshed")
            return tokens.access_token

    async def clear(self) -> None:
        await self.store.delete(ACCESS_TOKEN, REFRESH_TOKEN, ROLE, USER_ID, PROFILE_COMPLETE)

    # ── Per-ride OTP confirmation ─────────────────────────────────

    async def is_otp_verified(self, ride_id: str) -> bool:
        return await self.store.get(otp_verified_key(ride_id)) == "true"

    async def mark_otp_verified(self, ride_id: str) -> None:
        await self.store.set(otp_verified_key(ride_id), "true")

    async def clear_otp_verified(self, ride_id: str) -> None:
        await self.store.delete(otp_verified_key(ride_id))
