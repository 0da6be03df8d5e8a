"""Redis connection used by the shared rate-limit store."""

import redis
from starlette.concurrency import run_in_threadpool
from structlog import get_logger

from app.config import Settings, settings

logger = get_logger(__name__)

_redis_client: redis.Redis | None = None


def build_redis_client(config: Settings) -> redis.Redis:
    """Create a client from settings without connecting."""
    return redis.Redis(
        host=config.redis_host,
        port=config.redis_port,
        username=config.redis_username,
        password=config.redis_password or None,
        decode_responses=config.redis_decode_responses,
        socket_connect_timeout=5,
        socket_timeout=2,
        socket_keepalive=True,
        health_check_interval=30,
    )


def get_redis_client() -> redis.Redis:
    """Get or create the process-wide Redis client."""
    global _redis_client

    if _redis_client is None:
        _redis_client = build_redis_client(settings)

    return _redis_client


async def check_redis_connection() -> bool:
    """
    Check if Redis answers a ping.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        return bool(await run_in_threadpool(get_redis_client().ping))
    except redis.RedisError as e:
        logger.warning("redis_ping_failed", error=str(e))
        return False


def close_redis_connection() -> None:
    """Close the Redis connection, if one was opened."""
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None
