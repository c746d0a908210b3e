"""Shared Redis connection backing the AI cache and daily refresh counters."""

import asyncio
import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError
from automatenance.config import settings

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None


async def init_redis(url: str = None) -> redis.Redis:
    """Open the pooled client and confirm the server answers a PING.

    Raises:
        ConnectionError: If the server cannot be reached
    """
    global redis_client

    client = redis.from_url(
        url or settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        socket_connect_timeout=settings.REDIS_TIMEOUT,
        socket_keepalive=True,
    )

    try:
        await asyncio.wait_for(client.ping(), timeout=settings.REDIS_TIMEOUT)
    except (asyncio.TimeoutError, RedisError, OSError) as e:
        logger.error(f"Redis unavailable at startup: {e}")
        await client.aclose()
        raise ConnectionError(f"Redis connection initialization failed: {e}") from e

    redis_client = client
    logger.info("Redis connected for AI cache and refresh counters")
    return redis_client


async def close_redis():
    """Close the pooled client."""
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
        logger.info("Redis connection closed")


def get_redis() -> Optional[redis.Redis]:
    """Current client, or None before ``init_redis``."""
    return redis_client


async def check_redis_health() -> bool:
    """PING with the configured timeout; False on any failure."""
    if redis_client is None:
        logger.error("Redis client not initialized")
        return False

    try:
        await asyncio.wait_for(redis_client.ping(), timeout=settings.REDIS_TIMEOUT)
    except asyncio.TimeoutError:
        logger.error("Redis health check timed out")
        return False
    except (RedisError, OSError) as e:
        logger.error(f"Redis health check failed: {e}")
        return False

    return True
