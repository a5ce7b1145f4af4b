"""
Redis Cache Client for the preference engine.

Caches preference snapshots read on every recommendation query. The client
is created lazily and the cache degrades to a no-op when Redis is not
reachable.
"""

import json
import logging
from typing import Any, Optional

import redis
from redis.exceptions import RedisError

from .config import settings

logger = logging.getLogger(__name__)

PREFERENCE_KEY_PREFIX = "vectorkb:prefs"
GLOBAL_PREFERENCE_KEY = f"{PREFERENCE_KEY_PREFIX}:global"

_redis_client = None
_connection_failed = False


# =============================================================================
# Redis Connection
# =============================================================================

def get_redis_client():
    """
    Get or create the Redis client.

    Returns:
        Redis client instance or None if Redis is unavailable
    """
    global _redis_client, _connection_failed

    if _redis_client is not None:
        return _redis_client
    if _connection_failed:
        return None

    try:
        client = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
            health_check_interval=30
        )
        client.ping()
        _redis_client = client
        logger.info(f"Redis connected: {settings.redis_url}")
        return _redis_client
    except RedisError as e:
        _connection_failed = True
        logger.warning(f"Redis connection failed: {e}. Preference caching disabled.")
        return None


# =============================================================================
# Cache Functions
# =============================================================================

def get_cache(key: str) -> Optional[Any]:
    """
    Get value from cache.

    Returns:
        Cached value (parsed from JSON) or None if not found
    """
    client = get_redis_client()
    if not client:
        return None

    try:
        value = client.get(key)
        if value:
            return json.loads(value)
        return None
    except (RedisError, json.JSONDecodeError) as e:
        logger.warning(f"Cache get error for key '{key}': {e}")
        return None


def set_cache(key: str, value: Any, ttl: int = 300) -> bool:
    """Set value in cache with TTL. Returns True if successful."""
    client = get_redis_client()
    if not client:
        return False

    try:
        client.setex(key, ttl, json.dumps(value, default=str))
        return True
    except (RedisError, TypeError) as e:
        logger.warning(f"Cache set error for key '{key}': {e}")
        return False


def delete_cache(key: str) -> bool:
    """Delete value from cache. Returns True if successful."""
    client = get_redis_client()
    if not client:
        return False

    try:
        client.delete(key)
        return True
    except RedisError as e:
        logger.warning(f"Cache delete error for key '{key}': {e}")
        return False


# =============================================================================
# Preference Keys
# =============================================================================

def user_preference_key(user_id: str) -> str:
    return f"{PREFERENCE_KEY_PREFIX}:user:{user_id}"
