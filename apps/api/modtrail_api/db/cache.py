"""Redis client for the integrity report cache."""

from functools import lru_cache

import redis

from modtrail_api.settings import get_settings


@lru_cache()
def get_redis_client() -> redis.Redis:
    """Get shared Redis client (connections are opened lazily)."""
    return redis.from_url(get_settings().redis_url, decode_responses=True)
