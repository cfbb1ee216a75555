"""
Redis connection pool management

Async Redis client used by the access list cache.
"""

import logging
from typing import Optional

from redis import asyncio as aioredis
from redis.asyncio import ConnectionPool

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)

# Process-wide pool and client
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[aioredis.Redis] = None


async def init_redis(settings: Optional[Settings] = None) -> aioredis.Redis:
    """
    Initialize the Redis pool and client

    Args:
        settings: settings object (defaults to get_settings())

    Returns:
        aioredis.Redis: Redis client
    """
    global _redis_pool, _redis_client

    if _redis_client is not None:
        return _redis_client

    settings = settings or get_settings()

    _redis_pool = ConnectionPool.from_url(
        settings.REDIS_URL,
        max_connections=settings.REDIS_POOL_MAX_CONNECTIONS,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=settings.REDIS_SOCKET_CONNECT_TIMEOUT,
        decode_responses=True,
    )
    _redis_client = aioredis.Redis(connection_pool=_redis_pool)

    try:
        await _redis_client.ping()
    except Exception:
        logger.exception("Redis connection failed")
        await close_redis()
        raise

    return _redis_client


async def close_redis() -> None:
    """Close the client and disconnect the pool"""
    global _redis_pool, _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None

    if _redis_pool is not None:
        await _redis_pool.disconnect()
        _redis_pool = None
