"""Redis client backing the shared scheduling lock."""

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.config import settings

logger = structlog.get_logger(__name__)

# Global Redis client instance
_redis_client: Redis | None = None


def get_redis_client() -> Redis:
    """
    Get or create Redis client instance.

    Returns:
        Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            username=settings.redis_username,
            password=settings.redis_password,
            decode_responses=settings.redis_decode_responses,
            socket_connect_timeout=settings.store_timeout_seconds,
            socket_keepalive=True,
            health_check_interval=30,
        )

    return _redis_client


async def check_redis_connection() -> bool:
    """
    Check if Redis connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        client = get_redis_client()
        await client.ping()
        return True
    except RedisError as e:
        logger.warning("redis_health_check_failed", error=str(e))
        return False


async def close_redis_connection() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
