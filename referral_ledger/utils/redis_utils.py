"""Redis connection utilities.

Helpers for creating Redis connections with configuration from settings.
"""

import redis.asyncio as redis

from referral_ledger.config.settings import settings


def get_redis_client() -> redis.Redis:
    """
    Create a Redis client with settings from config.

    Returns:
        redis.Redis: Configured client with decode_responses=True
    """
    return redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        password=settings.redis_password,
        db=settings.redis_db,
        decode_responses=True,
    )


def get_redis_url_masked() -> str:
    """
    Build Redis URL with masked password for safe logging.

    Returns:
        str: Redis connection URL with masked password

    Example:
        >>> url = get_redis_url_masked()
        >>> # Returns: "redis://:****@localhost:6379/0"
    """
    if settings.redis_password:
        return f"redis://:****@{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
    return f"redis://{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
