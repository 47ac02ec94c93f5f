"""
Redis connection for the rate limiter counters and the cache.
"""

import logging
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


def create_redis(redis_url: str) -> redis.Redis:
    """Create a pooled async Redis client. Nothing connects until first use."""
    client = redis.Redis.from_url(
        redis_url,
        decode_responses=True,
        max_connections=50,
        retry_on_timeout=True,
        socket_keepalive=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )
    logger.info("Redis client configured")
    return client


async def ping_redis(client: Optional[redis.Redis]) -> bool:
    if client is None:
        return True
    try:
        return bool(await client.ping())
    except redis.RedisError as e:
        logger.error(f"Redis ping failed: {e}")
        return False


async def close_redis(client: Optional[redis.Redis]):
    if client is None:
        return
    await client.aclose()
    logger.info("Redis connections closed")
