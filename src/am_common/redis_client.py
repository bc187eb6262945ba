"""Redis client factory, used for change notifications only.

Listings, bids and purchases live in PostgreSQL; Redis never holds
authoritative auction state, so losing it only delays observers.
"""

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from config.settings import settings
from src.am_common.errors import StoreUnavailableError

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Get or create the Redis connection pool."""
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,  # pub/sub payloads arrive as str listing ids
            health_check_interval=30,
        )
    return _redis_pool


async def check_redis() -> None:
    try:
        await (await get_redis()).ping()
    except RedisError as e:
        raise StoreUnavailableError(f"Redis unavailable: {e}") from e


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None
