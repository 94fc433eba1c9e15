"""Redis cache management with connection pooling and graceful degradation."""

import json
from typing import Any, Optional

from redis import asyncio as aioredis

from .config import settings
from .logger import logger

# ==================== Cache Key Utilities ====================

ACCOUNT_BY_ID_PREFIX = "account:id"


def make_cache_key(prefix: str, identifier: Any) -> str:
    """Generate consistent cache key with namespace (e.g. "account:id:123")."""
    return f"{prefix}:{identifier}"

# ==================== Cache Manager ====================


class CacheManager:
    """Manages Redis connections and cache operations with graceful degradation.

    If Redis is unavailable, operations fail silently and return None/False,
    allowing the application to continue without caching.
    """

    def __init__(self):
        self._redis: Optional[aioredis.Redis] = None

    @property
    def connected(self) -> bool:
        return self._redis is not None

    async def connect(self):
        """Establish connection to Redis, leaving the cache disabled if it is unreachable."""
        if self._redis is None:
            try:
                self._redis = aioredis.from_url(
                    settings.REDIS_URL,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=5,
                )
                await self._redis.ping()
                logger.info("[cache] Connected to Redis")
            except Exception as e:
                logger.error(f"[cache] Failed to connect to Redis: {e}")
                self._redis = None

    async def disconnect(self):
        """Close Redis connection during application shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("[cache] Disconnected from Redis")

    async def get(self, key: str) -> Optional[dict]:
        """Return the cached dict for key, or None on miss or error."""
        if not self._redis:
            return None

        try:
            value = await self._redis.get(key)
            if value:
                logger.debug(f"[cache] HIT: {key}")
                return json.loads(value)
            logger.debug(f"[cache] MISS: {key}")
            return None
        except Exception as e:
            logger.error(f"[cache] Error getting key {key}: {e}")
            return None

    async def set(self, key: str, value: dict, ttl: Optional[int] = None) -> bool:
        """
        Set value in cache with optional TTL.

        Args:
            key: Cache key
            value: Value to cache (must be JSON-serializable)
            ttl: Time-to-live in seconds (None = use default)

        Returns:
            True if successful, False otherwise
        """
        if not self._redis:
            return False

        try:
            ttl = ttl or settings.CACHE_TTL
            serialized = json.dumps(value, default=str)
            await self._redis.setex(key, ttl, serialized)
            logger.debug(f"[cache] SET: {key} (TTL={ttl}s)")
            return True
        except Exception as e:
            logger.error(f"[cache] Error setting key {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        if not self._redis:
            return False

        try:
            await self._redis.delete(key)
            logger.debug(f"[cache] DELETE: {key}")
            return True
        except Exception as e:
            logger.error(f"[cache] Error deleting key {key}: {e}")
            return False

    async def health_check(self) -> bool:
        """True if Redis responds to ping."""
        if not self._redis:
            return False

        try:
            await self._redis.ping()
            return True
        except Exception:
            return False

# ==================== Global Instance ====================

cache_manager = CacheManager()
