"""
Redis connection used by the trending counters.
"""
import logging
from typing import Optional

import redis

from storecompare.config import settings

logger = logging.getLogger(__name__)

_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """
    Returns a shared Redis client, or None when REDIS_URL is not configured
    or the client could not be created.
    """
    global _client
    if _client is not None:
        return _client

    if not settings.REDIS_URL:
        logger.warning("Redis URL not provided, trending counters will be kept in process")
        return None

    try:
        _client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        logger.info("Redis client initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize Redis client: {e}")
        _client = None
    return _client


def ping_redis() -> bool:
    client = get_redis_client()
    if client is None:
        return False
    try:
        return bool(client.ping())
    except redis.RedisError as e:
        logger.error(f"Redis ping failed: {e}")
        return False
