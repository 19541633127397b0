"""Wiring and notification tests."""

from __future__ import annotations

import httpx
import pytest
from httpx import ASGITransport

from medride.app import driver_session
from medride.config import Settings
from medride.domain.enums import DriverState
from medride.domain.exceptions import (
    AuthError,
    InvalidStateTransition,
    NetworkError,
    ServerError,
    SessionExpiredError,
    ValidationError,
)
from medride.infrastructure.storage import MemoryStore
from medride.services.notifications import info, notification_for


class TestDriverSession:
    @pytest.mark.asyncio
    async def test_full_session(self, backend, scheduler, notifier):
        settings = Settings(_env_file=None, session_store="memory")
        maps = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500)))

        async with driver_session(
            settings,
            notifier=notifier,
            scheduler=scheduler,
            transport=ASGITransport(app=backend.app),
            maps_http=maps,
        ) as app:
            assert isinstance(app.session.store, MemoryStore)
            await app.session.login("9876543210")
            await app.lifecycle.load_driver_data()
            result = await app.lifecycle.toggle_online()
            await app.lifecycle.wait_for_background()

            assert result.success
            assert app.lifecycle.state is DriverState.ONLINE_SEARCHING
            assert backend.count("GET", "/ride/driverrides") >= 1
            lifecycle = app.lifecycle

        assert scheduler.pending == []
        assert lifecycle.search.has_pending_timers is False
        await maps.aclose()


class TestNotifications:
    @pytest.mark.parametrize(
        "exc, title, kind",
        [
            (SessionExpiredError(), "Session Expired", "session_expired"),
            (AuthError(), "Authentication Error", "auth"),
            (NetworkError(), "Connection Error", "network"),
            (ServerError(500), "Server Error", "server"),
            (ValidationError("Bad input"), "Validation Error", "validation"),
            (InvalidStateTransition("nope"), "Validation Error", "invalid_transition"),
        ],
    )
    def test_error_classes_are_distinguishable(self, exc, title, kind):
        notification = notification_for(exc)
        assert notification.title == title
        assert notification.kind == kind
        assert notification.is_error

    def test_context_prefixes_server_errors_only(self):
        assert notification_for(ServerError(409, "Taken"), "Failed to accept ride").message == (
            "Failed to accept ride: Taken"
        )
        assert notification_for(NetworkError(), "Failed to accept ride").message == (
            NetworkError.default_message
        )

    def test_info_is_not_an_error(self):
        assert not info("Ride Accepted", "Ride accepted!").is_error

    def test_server_error_default_message(self):
        assert ServerError(404).user_message == "HTTP 404"
