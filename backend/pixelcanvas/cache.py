"""
Redis cache for leaderboard reads.

Leaderboard buckets change on every placement, so entries are short-lived
and dropped after each successful commit. When Redis is unreachable (or no
URL is configured) every operation degrades to a cache miss.
"""
import json
import logging
import redis
from typing import Optional, Any
from pixelcanvas.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

TOP_KEY_PREFIX = "leaderboard:top"


def top_key(period: str, period_id: str, limit: int) -> str:
    return f"{TOP_KEY_PREFIX}:{period}:{period_id}:{limit}"


class CacheManager:
    """
    Redis cache manager with connection pooling and JSON values.
    """

    def __init__(self, url: Optional[str] = None):
        url = settings.redis_url if url is None else url
        self.redis_client = None
        if not url:
            logger.info("Redis URL not configured; caching disabled")
            return
        try:
            client = redis.from_url(
                url,
                decode_responses=True,
                max_connections=50,
                socket_connect_timeout=2,
                socket_timeout=2,
                retry_on_timeout=True
            )
            client.ping()
            self.redis_client = client
            logger.info(f"Redis cache initialized: {url}")
        except redis.RedisError as e:
            logger.error(f"Failed to initialize Redis cache: {str(e)}")

    def get(self, key: str) -> Optional[Any]:
        """Deserialized value for key, or None on miss or error."""
        if not self.redis_client:
            return None

        try:
            value = self.redis_client.get(key)
            return json.loads(value) if value else None
        except redis.RedisError as e:
            logger.warning(f"Cache get error for key '{key}': {str(e)}")
            return None
        except json.JSONDecodeError as e:
            logger.error(f"Cache deserialization error for key '{key}': {str(e)}")
            return None

    def set(self, key: str, value: Any, ttl: int) -> bool:
        if not self.redis_client:
            return False

        try:
            return bool(self.redis_client.setex(key, ttl, json.dumps(value, default=str)))
        except redis.RedisError as e:
            logger.warning(f"Cache set error for key '{key}': {str(e)}")
            return False
        except (TypeError, ValueError) as e:
            logger.error(f"Cache serialization error for key '{key}': {str(e)}")
            return False

    def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching pattern, scanning incrementally."""
        if not self.redis_client:
            return 0

        try:
            keys = list(self.redis_client.scan_iter(match=pattern, count=500))
            if not keys:
                return 0
            deleted = self.redis_client.delete(*keys)
            logger.debug(f"Deleted {deleted} keys matching pattern '{pattern}'")
            return deleted
        except redis.RedisError as e:
            logger.warning(f"Cache delete_pattern error for '{pattern}': {str(e)}")
            return 0

    def invalidate_top_cache(self) -> None:
        """Drop every cached leaderboard after a placement commits."""
        deleted = self.delete_pattern(f"{TOP_KEY_PREFIX}:*")
        logger.debug(f"Invalidated leaderboard cache ({deleted} keys)")

    @property
    def enabled(self) -> bool:
        return self.redis_client is not None

    def ping(self) -> bool:
        if not self.redis_client:
            return False

        try:
            return bool(self.redis_client.ping())
        except redis.RedisError:
            return False


# Global cache instance
cache = CacheManager()
