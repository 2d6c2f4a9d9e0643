"""Redis cache utility functions."""

from __future__ import annotations

import json
import logging
import os
import time
from typing import Any

import redis

logger = logging.getLogger(__name__)

# Redis connection
_redis_client: redis.Redis | None = None
_last_failure_at: float | None = None

# Seconds to wait before retrying a failed connection
RECONNECT_INTERVAL = 30


def get_redis_client() -> redis.Redis | None:
    """
    Get or create Redis client instance.

    Returns None if the connection fails; callers then behave as on a cache miss.
    """
    global _redis_client, _last_failure_at

    if _redis_client is not None:
        return _redis_client

    if _last_failure_at is not None and time.monotonic() - _last_failure_at < RECONNECT_INTERVAL:
        return None

    try:
        redis_url = os.getenv("REDIS_URL") or os.getenv("CELERY_BROKER_URL", "redis://cache:6379/0")
        client = redis.from_url(redis_url, decode_responses=True, socket_connect_timeout=2)
        # Test connection
        client.ping()
        _redis_client = client
        _last_failure_at = None
        logger.info("Redis cache connected successfully")
        return _redis_client
    except Exception as e:
        _last_failure_at = time.monotonic()
        logger.warning(f"Redis cache unavailable: {e}. Continuing without cache.")
        return None


def cache_get(key: str) -> Any | None:
    """
    Retrieve a cached value by key.

    Args:
        key: Cache key

    Returns:
        Cached value if found, None otherwise
    """
    client = get_redis_client()
    if not client:
        return None

    try:
        value = client.get(key)
        if value is None:
            return None

        # Try to deserialize JSON
        try:
            return json.loads(value)
        except (json.JSONDecodeError, TypeError):
            # Return as-is if not JSON
            return value
    except Exception as e:
        logger.warning(f"Cache get error for key '{key}': {e}")
        return None


def cache_set(key: str, value: Any, ttl: int = 300) -> bool:
    """
    Set a cached value with TTL.

    Args:
        key: Cache key
        value: Value to cache (JSON-serialized)
        ttl: Time to live in seconds (default: 300 = 5 minutes)

    Returns:
        True if successful, False otherwise
    """
    client = get_redis_client()
    if not client:
        return False

    try:
        client.setex(key, ttl, json.dumps(value, default=str))
        return True
    except Exception as e:
        logger.warning(f"Cache set error for key '{key}': {e}")
        return False


def cache_delete(*keys: str) -> int:
    """
    Delete specific cache keys.

    Returns:
        Number of keys deleted
    """
    client = get_redis_client()
    if not client or not keys:
        return 0

    try:
        return int(client.delete(*keys))
    except Exception as e:
        logger.warning(f"Cache delete error for keys {keys}: {e}")
        return 0


def cache_incr(key: str) -> int | None:
    """
    Atomically increment an integer counter.

    Returns:
        The new value, or None when Redis is unavailable
    """
    client = get_redis_client()
    if not client:
        return None

    try:
        return int(client.incr(key))
    except Exception as e:
        logger.warning(f"Cache incr error for key '{key}': {e}")
        return None
