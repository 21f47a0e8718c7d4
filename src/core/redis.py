# ruff: noqa: PLW0603
"""Redis client for distributed progress locks.

Redis is optional: when it is unreachable at startup the application keeps
running and ``KeyedLock`` serializes transitions inside this process only.
"""

import redis.asyncio as redis

from src.config import get_settings
from src.core.logging import get_logger


logger = get_logger(__name__)

_redis_client: redis.Redis | None = None


async def init_redis() -> redis.Redis:
    """Create the client and verify it with a ping.

    Raises:
        redis.ConnectionError: If the server cannot be reached
    """
    global _redis_client

    settings = get_settings()
    client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=settings.redis_retry_on_timeout,
        health_check_interval=settings.redis_health_check_interval,
        decode_responses=True,
    )

    try:
        await client.ping()
    except redis.ConnectionError as e:
        logger.warning("redis_connection_failed", url=settings.redis_url, error=str(e))
        await client.aclose()
        raise

    _redis_client = client
    logger.info("redis_connected", url=settings.redis_url)
    return client


async def shutdown_redis() -> None:
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("redis_disconnected")


async def redis_reachable() -> bool:
    """Ping the lock backend; False when absent or failing."""
    if _redis_client is None:
        return False
    try:
        return bool(await _redis_client.ping())
    except redis.RedisError as e:
        logger.warning("redis_ping_failed", error=str(e))
        return False


def progress_lock_name(learner_id: str, course_id: str) -> str:
    """Lock key serializing transitions of one learner/course pair."""
    return f"locks:progress:{learner_id}:{course_id}"
