"""
Redis client utilities for basecore.

Provides lazy-initialized Redis client to avoid import-time connections.
"""

import functools

import redis

from basecore.settings import get_settings


def get_redis_url() -> str | None:
    """Get Redis URL from settings (None when Redis is not configured)."""
    return get_settings().REDIS_URL


@functools.lru_cache()
def get_redis_client() -> redis.Redis | None:
    """
    Get Redis client (cached).

    Returns None when REDIS_URL is not set; callers treat Redis as optional.
    """
    url = get_redis_url()
    if not url:
        return None
    return redis.from_url(url, decode_responses=True)
