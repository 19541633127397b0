"""Redis async connection pool."""

from typing import Optional

import redis.asyncio as aioredis

from medride.config import settings

_pool: Optional[aioredis.ConnectionPool] = None


async def get_redis(redis_url: Optional[str] = None) -> aioredis.Redis:
    """Return a Redis client backed by the shared connection pool."""
    global _pool
    if _pool is None:
        _pool = aioredis.ConnectionPool.from_url(
            redis_url or settings.redis_url, decode_responses=True
        )
    return aioredis.Redis(connection_pool=_pool)


async def close_redis() -> None:
    global _pool
    if _pool is not None:
        await _pool.disconnect()
        _pool = None
