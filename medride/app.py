"""
Application wiring.

``driver_session()`` builds the object graph for one driver client and tears
it down in reverse order: background work first, then HTTP clients, then the
session store.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx

from medride.client.auth import AuthClient
from medride.client.base import build_http_client
from medride.client.rides import RideServiceClient
from medride.config import Settings, settings as default_settings
from medride.infrastructure.redis_client import close_redis, get_redis
from medride.infrastructure.scheduler import AsyncioScheduler, Scheduler
from medride.infrastructure.session import Session
from medride.infrastructure.storage import KeyValueStore, MemoryStore, RedisStore
from medride.services.booking import BookingService
from medride.services.directions import build_directions
from medride.services.driver_lifecycle import DriverLifecycle
from medride.services.notifications import Notifier

logger = logging.getLogger(__name__)


@dataclass
class DriverApp:
    session: Session
    client: RideServiceClient
    lifecycle: DriverLifecycle
    booking: BookingService


async def _open_store(settings: Settings) -> KeyValueStore:
    if settings.session_store == "redis":
        client = await get_redis(settings.redis_url)
        return RedisStore(client, prefix=settings.redis_key_prefix)
    return MemoryStore()


@asynccontextmanager
async def driver_session(
    settings: Settings = default_settings,
    *,
    notifier: Optional[Notifier] = None,
    scheduler: Optional[Scheduler] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    maps_http: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[DriverApp]:
    store = await _open_store(settings)
    http = build_http_client(settings, transport)
    maps = maps_http or httpx.AsyncClient(timeout=settings.request_timeout_seconds)

    scheduler = scheduler or AsyncioScheduler()
    session = Session(store, AuthClient(http))
    client = RideServiceClient(http, session)
    lifecycle = DriverLifecycle(
        client,
        session,
        build_directions(settings, maps),
        scheduler,
        notifier=notifier,
        settings=settings,
    )
    booking = BookingService(
        client, session, notifier, scheduler=scheduler, settings=settings
    )
    logger.info("Driver client ready (backend %s)", settings.backend_url)
    try:
        yield DriverApp(session, client, lifecycle, booking)
    finally:
        await lifecycle.close()
        await client.aclose()
        if maps_http is None:
            await maps.aclose()
        if settings.session_store == "redis":
            await close_redis()
        logger.info("Driver client closed")
