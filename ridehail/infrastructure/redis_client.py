"""Redis async connection pool shared by the dispatch worker."""

import redis.asyncio as aioredis

from ridehail.config import settings

_pool = aioredis.ConnectionPool.from_url(
    settings.redis_url, decode_responses=True
)


async def get_redis() -> aioredis.Redis:
    """Return a Redis client backed by the shared connection pool."""
    return aioredis.Redis(connection_pool=_pool)


async def ping() -> bool:
    """True when Redis answers; used by the health endpoint."""
    try:
        return bool(await (await get_redis()).ping())
    except aioredis.RedisError:
        return False
