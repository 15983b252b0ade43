"""Redis connection management and small counters built on it."""

from __future__ import annotations

import redis.asyncio as redis

from app.core.config import get_settings

settings = get_settings()

_redis_pool: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Get or create the Redis connection."""
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = redis.from_url(
            settings.redis_url,
            decode_responses=True,
        )
    return _redis_pool


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis_pool
    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None


async def hit_rate_limit(key: str, limit: int, window_seconds: int = 60) -> bool:
    """Count one hit in a fixed window. Returns True once the limit is exceeded."""
    client = await get_redis()
    counter = f"ratelimit:{key}"
    hits = await client.incr(counter)
    if hits == 1:
        await client.expire(counter, window_seconds)
    return hits > limit
