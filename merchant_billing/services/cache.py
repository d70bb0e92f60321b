"""
Redis Cache Service
===================

Redis connection management. Used for webhook delivery idempotency.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis

from merchant_billing.config import settings

logger = logging.getLogger(__name__)

# Global Redis client instance
_redis_client: Optional[Redis] = None


class CacheKeys:
    """
    Key naming convention:
        {module}:{provider}:{resource}:{identifier}
    """

    POLAR_DELIVERY = "webhook:polar:delivery:{delivery_id}"

    @classmethod
    def polar_delivery(cls, delivery_id: str) -> str:
        return cls.POLAR_DELIVERY.format(delivery_id=delivery_id)


async def init_redis() -> Redis:
    """
    Initialize Redis connection pool and pre-warm a connection.

    Returns:
        Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            max_connections=20,
            socket_keepalive=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        # Pre-warm: force a real connection so the first webhook
        # doesn't pay the TCP + TLS handshake cost.
        await _redis_client.ping()
        logger.info("Redis connection established")

    return _redis_client


async def get_redis() -> Redis:
    """Get Redis client, initializing if necessary."""
    if _redis_client is None:
        return await init_redis()

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")
