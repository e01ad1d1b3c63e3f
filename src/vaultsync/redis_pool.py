"""Redis connection pool — used by the rate limiter and the health check.

Learn: Redis is optional. Event fan-out is in-process (BroadcastHub), so
the app keeps streaming when Redis is down; only rate limiting is
skipped. The pool is initialized in the lifespan and closed on shutdown.
"""

from typing import Optional

import redis.asyncio as aioredis

from vaultsync.config import settings

# Connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis(url: Optional[str] = None) -> aioredis.Redis:
    """Initialize the Redis connection pool and verify it answers."""
    global _redis
    client = aioredis.from_url(
        url or settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    await client.ping()
    _redis = client
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis
