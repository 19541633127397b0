"""Session and storage tests: login, refresh serialisation, OTP flags."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from medride.client.auth import AuthClient
from medride.domain.entities import AuthTokens
from medride.domain.enums import UserRole
from medride.domain.exceptions import AuthError, NetworkError, SessionExpiredError
from medride.infrastructure.session import Session, profile_is_complete
from medride.infrastructure.storage import (
    ACCESS_TOKEN,
    PROFILE_COMPLETE,
    REFRESH_TOKEN,
    ROLE,
    USER_ID,
    MemoryStore,
    RedisStore,
)


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_stores_tokens_and_role(self, http, backend):
        store = MemoryStore()
        session = Session(store, AuthClient(http))

        await session.login("9876543210")

        assert await session.get_access_token() == backend.access_token
        assert await store.get(REFRESH_TOKEN) == backend.refresh_token
        assert await session.role() == "driver"
        assert await session.user_id() == "driver-1"
        assert await session.profile_complete()

    @pytest.mark.asyncio
    async def test_incomplete_profile_clears_flag(self):
        store = MemoryStore({PROFILE_COMPLETE: "true"})
        session = Session(store, AsyncMock())

        await session.store_login(
            AuthTokens("a", "r", "patient-1", {"name": "Ravi"}), UserRole.PATIENT
        )

        assert not await session.profile_complete()
        assert await store.get(ROLE) == "patient"

    @pytest.mark.asyncio
    async def test_require_access_token(self):
        session = Session(MemoryStore(), AsyncMock())
        with pytest.raises(AuthError):
            await session.require_access_token()


class TestRefresh:
    @pytest.mark.asyncio
    async def test_overwrites_both_tokens(self, session, store, backend):
        new_access = await session.refresh_if_needed()

        assert new_access == backend.access_token
        assert await store.get(ACCESS_TOKEN) == backend.access_token
        assert await store.get(REFRESH_TOKEN) == backend.refresh_token

    @pytest.mark.asyncio
    async def test_missing_refresh_token_expires_session(self):
        auth = AsyncMock()
        session = Session(MemoryStore({ACCESS_TOKEN: "a"}), auth)

        with pytest.raises(SessionExpiredError):
            await session.refresh_if_needed()
        auth.refresh_token.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejected_refresh_expires_session(self, session, store, backend):
        backend.refresh_rejected = True
        with pytest.raises(SessionExpiredError):
            await session.refresh_if_needed()
        # nothing is overwritten on failure
        assert await store.get(REFRESH_TOKEN) == "refresh-1"

    @pytest.mark.asyncio
    async def test_network_failure_is_not_session_expiry(self):
        auth = AsyncMock()
        auth.refresh_token.side_effect = NetworkError()
        session = Session(MemoryStore({ACCESS_TOKEN: "a", REFRESH_TOKEN: "r"}), auth)

        with pytest.raises(NetworkError):
            await session.refresh_if_needed()

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_hit_server_once(self, session, backend):
        stale = backend.access_token
        results = await asyncio.gather(
            session.refresh_if_needed(stale_token=stale),
            session.refresh_if_needed(stale_token=stale),
            session.refresh_if_needed(stale_token=stale),
        )

        assert backend.count("POST", "/auth/refresh-token") == 1
        assert set(results) == {backend.access_token}

    @pytest.mark.asyncio
    async def test_clear(self, session, store):
        await session.clear()
        assert await session.get_access_token() is None
        assert await store.get(USER_ID) is None


class TestOtpFlag:
    @pytest.mark.asyncio
    async def test_mark_and_clear(self, session, store):
        assert not await session.is_otp_verified("ride-1")
        await session.mark_otp_verified("ride-1")
        assert await session.is_otp_verified("ride-1")
        assert store.snapshot()["otp_verified_ride-1"] == "true"

        await session.clear_otp_verified("ride-1")
        assert not await session.is_otp_verified("ride-1")


def test_profile_is_complete():
    vehicle = {"type": "bls", "plateNumber": "KA01", "licenseNumber": "DL-1"}
    assert profile_is_complete({"name": "Asha", "vehicle": vehicle})
    assert not profile_is_complete({"name": "Asha"})
    assert not profile_is_complete({"vehicle": vehicle})
    assert not profile_is_complete({"name": "Asha", "vehicle": {**vehicle, "plateNumber": ""}})


class TestRedisStore:
    """Redis-backed store with a mocked client."""

    @pytest.mark.asyncio
    async def test_keys_are_prefixed(self):
        mock_redis = AsyncMock()
        mock_redis.get = AsyncMock(return_value="tok")
        store = RedisStore(mock_redis, prefix="medride:")

        assert await store.get(ACCESS_TOKEN) == "tok"
        mock_redis.get.assert_awaited_once_with("medride:access_token")

        await store.set(ROLE, "driver")
        mock_redis.set.assert_awaited_once_with("medride:role", "driver")

    @pytest.mark.asyncio
    async def test_delete_many(self):
        mock_redis = AsyncMock()
        store = RedisStore(mock_redis, prefix="p:")

        await store.delete(ACCESS_TOKEN, REFRESH_TOKEN)
        mock_redis.delete.assert_awaited_once_with("p:access_token", "p:refresh_token")

    @pytest.mark.asyncio
    async def test_delete_nothing_skips_call(self):
        mock_redis = AsyncMock()
        await RedisStore(mock_redis).delete()
        mock_redis.delete.assert_not_awaited()
