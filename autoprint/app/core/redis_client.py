"""
Redis client initialization and connection management.

Backs the shared operator session store when `session_backend=redis`.
"""

import logging
import redis.asyncio as redis
from redis.exceptions import RedisError
from autoprint.app.core.config import settings

logger = logging.getLogger("autoprint")


# Create async Redis client
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def ping_redis() -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return await redis_client.ping()
    except (RedisError, OSError) as exc:
        logger.warning("Redis ping failed: %s", exc)
        return False
