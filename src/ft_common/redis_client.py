"""Redis client factory: used for rate limiting only.

NOT used for stock, order or escrow state (those go through PostgreSQL).
The pool is created and closed by the app lifespan.
"""

import redis.asyncio as aioredis


def create_redis(redis_url: str) -> aioredis.Redis:
    """Create the Redis connection pool."""
    return aioredis.from_url(
        redis_url,
        decode_responses=True,
    )


async def close_redis(pool: aioredis.Redis | None) -> None:
    """Close the Redis connection pool."""
    if pool is not None:
        await pool.aclose()
