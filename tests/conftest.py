"""
Shared test fixtures.

The backend is a FastAPI fake (``tests.fakes.FakeBackend``) reached through
``httpx.ASGITransport``, so tests run without a server, Redis or network.
Timers run on a manual clock.
"""

from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from medride.client.auth import AuthClient
from medride.client.base import JSON_HEADERS
from medride.client.rides import RideServiceClient
from medride.config import Settings
from medride.infrastructure.session import Session
from medride.infrastructure.storage import (
    ACCESS_TOKEN,
    REFRESH_TOKEN,
    ROLE,
    USER_ID,
    MemoryStore,
)
from medride.services.directions import DirectionsEstimator
from medride.services.driver_lifecycle import DriverLifecycle
from medride.services.notifications import CollectingNotifier
from tests.fakes import FakeBackend, FakeScheduler


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def notifier() -> CollectingNotifier:
    return CollectingNotifier()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None)


@pytest_asyncio.fixture
async def http(backend: FakeBackend) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=backend.app)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers=JSON_HEADERS
    ) as client:
        yield client


@pytest.fixture
def store(backend: FakeBackend) -> MemoryStore:
    """A store holding a logged-in driver's tokens."""
    return MemoryStore({
        ACCESS_TOKEN: backend.access_token,
        REFRESH_TOKEN: backend.refresh_token,
        ROLE: "driver",
        USER_ID: "driver-1",
    })


@pytest.fixture
def session(store: MemoryStore, http: AsyncClient) -> Session:
    return Session(store, AuthClient(http))


@pytest.fixture
def client(http: AsyncClient, session: Session) -> RideServiceClient:
    return RideServiceClient(http, session)


@pytest_asyncio.fixture
async def directions() -> AsyncGenerator[DirectionsEstimator, None]:
    """Estimator without an API key: every ETA is the haversine fallback."""
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    async with AsyncClient(transport=transport) as maps:
        yield DirectionsEstimator(maps, api_key=None)


@pytest_asyncio.fixture
async def lifecycle(
    client, session, directions, scheduler, notifier, test_settings
) -> AsyncGenerator[DriverLifecycle, None]:
    lc = DriverLifecycle(
        client,
        session,
        directions,
        scheduler,
        notifier=notifier,
        settings=test_settings,
    )
    yield lc
    await lc.close()
