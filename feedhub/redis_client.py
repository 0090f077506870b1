"""
Redis Cache Client for FeedHub.

Provides generic JSON cache helpers and the per-user ranked feed cache.

Uses Redis with TTL (time-to-live) expiration. When Redis is unavailable
caching is disabled and every read is a miss, which always forces a
recomputation rather than serving stale data.
"""

import json
import logging
from typing import Optional, Any, List

import redis
from redis.exceptions import RedisError, ConnectionError

from .config import settings
from .constants import FEED_CACHE_PREFIX
from .models import FeedItem

# Initialize logger
logger = logging.getLogger(__name__)

# =============================================================================
# Redis Connection
# =============================================================================

_redis_client: Optional[redis.Redis] = None
_redis_checked = False


def get_redis_client() -> Optional[redis.Redis]:
    """
    Get or create the shared Redis client.

    Connection is attempted once; on failure None is returned and caching
    stays disabled for the life of the process.
    """
    global _redis_client, _redis_checked

    if _redis_checked:
        return _redis_client

    _redis_checked = True
    try:
        client = redis.from_url(
            settings.redis_url,
            decode_responses=True,  # Auto-decode bytes to strings
            socket_connect_timeout=5,
            socket_keepalive=True,
            health_check_interval=30
        )
        client.ping()
        _redis_client = client
        logger.info(f"Redis connected: {settings.redis_url.split('@')[-1]}")
    except (RedisError, ConnectionError) as e:
        logger.warning(f"Redis connection failed: {e}. Caching disabled.")
        _redis_client = None

    return _redis_client


def check_cache_health() -> dict:
    """Report whether the cache backend is reachable."""
    client = get_redis_client()
    if client is None:
        return {"cache_connected": False}
    try:
        client.ping()
        return {"cache_connected": True}
    except RedisError as e:
        return {"cache_connected": False, "cache_error": str(e)}


# =============================================================================
# Cache Functions
# =============================================================================

def get_cache(key: str, client=None) -> Optional[Any]:
    """
    Get value from cache.

    Args:
        key: Cache key
        client: Redis client (defaults to the shared client)

    Returns:
        Cached value (parsed from JSON) or None if not found
    """
    client = client if client is not None else get_redis_client()
    if client is None:
        return None

    try:
        value = client.get(key)
        if value:
            return json.loads(value)
        return None
    except (RedisError, json.JSONDecodeError) as e:
        logger.warning(f"Cache get error for key '{key}': {e}")
        return None


def set_cache(key: str, value: Any, ttl: int = 300, client=None) -> bool:
    """
    Set value in cache with TTL.

    Args:
        key: Cache key
        value: Value to cache (will be JSON-serialized)
        ttl: Time-to-live in seconds (default: 5 minutes)
        client: Redis client (defaults to the shared client)

    Returns:
        True if successful, False otherwise
    """
    client = client if client is not None else get_redis_client()
    if client is None:
        return False

    try:
        serialized = json.dumps(value)
        client.setex(key, ttl, serialized)
        return True
    except (RedisError, TypeError) as e:
        logger.warning(f"Cache set error for key '{key}': {e}")
        return False


def delete_cache(*keys: str, client=None) -> int:
    """
    Delete one or more keys from cache.

    Returns:
        Number of keys removed (0 when caching is disabled)
    """
    client = client if client is not None else get_redis_client()
    if client is None or not keys:
        return 0

    try:
        return int(client.delete(*keys) or 0)
    except RedisError as e:
        logger.warning(f"Cache delete error for keys {keys}: {e}")
        return 0


def user_cache_key(prefix: str, user_id: str) -> str:
    return f"{prefix}:{user_id}"


# =============================================================================
# Feed Cache
# =============================================================================

class FeedCache:
    """
    Narrow get/set/invalidate interface over the per-user feed entry.

    Every service that mutates feed-relevant state calls invalidate()
    explicitly; nothing expires implicitly except by TTL.
    """

    def __init__(self, client=None, ttl_seconds: Optional[int] = None):
        self.client = client
        self.ttl_seconds = ttl_seconds or settings.feed_cache_ttl_seconds

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def get_feed(self, user_id: str) -> Optional[List[FeedItem]]:
        if not self.enabled:
            return None

        key = user_cache_key(FEED_CACHE_PREFIX, user_id)
        cached = get_cache(key, client=self.client)
        if cached is None:
            logger.debug(f"Feed cache miss: {key}")
            return None

        logger.debug(f"Feed cache hit: {key}")
        return [FeedItem.model_validate(item) for item in cached]

    def set_feed(self, user_id: str, items: List[FeedItem], ttl: Optional[int] = None) -> bool:
        if not self.enabled:
            return False

        payload = [item.model_dump(mode="json") for item in items]
        return set_cache(
            user_cache_key(FEED_CACHE_PREFIX, user_id),
            payload,
            ttl=ttl or self.ttl_seconds,
            client=self.client,
        )

    def invalidate(self, user_id: str) -> int:
        """Drop the user's cached feed; the next read recomputes it."""
        if not self.enabled:
            return 0

        removed = delete_cache(user_cache_key(FEED_CACHE_PREFIX, user_id), client=self.client)
        logger.debug(f"Invalidated feed cache for user {user_id} ({removed} keys)")
        return removed
