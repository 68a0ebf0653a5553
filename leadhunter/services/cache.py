"""Hot cache tier with Redis backend and in-memory fallback.

Fronts the persistent ``cached_searches`` table so repeated previews and
searches for the same parameters skip the database round trip. Entries
carry their own ``expires_at``; the hot TTL only bounds staleness.

Graceful degradation: if Redis is unavailable, uses cachetools.TTLCache in-memory.
"""

import json
import logging

from cachetools import TTLCache

from leadhunter.config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "lh:"


class CacheService:
    """Async cache with Redis primary and in-memory fallback."""

    def __init__(self, default_ttl: int | None = None):
        self.default_ttl = default_ttl or settings.cache_hot_ttl_seconds
        self._redis = None
        self._fallback = TTLCache(maxsize=512, ttl=self.default_ttl)
        self._available = False

    @property
    def available(self) -> bool:
        return self._available

    async def connect(self) -> bool:
        """Connect to Redis. Returns True on success."""
        try:
            import redis.asyncio as aioredis

            self._redis = aioredis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
            )
            await self._redis.ping()
            self._available = True
            return True
        except Exception as e:
            logger.warning("Redis connection failed, using in-memory fallback: %s", str(e)[:100])
            self._redis = None
            self._available = False
            return False

    async def disconnect(self):
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            self._available = False

    async def get(self, key: str) -> dict | None:
        """Read from cache. Returns None on miss."""
        full_key = KEY_PREFIX + key
        if self._available and self._redis:
            try:
                data = await self._redis.get(full_key)
                if data:
                    logger.debug("Hot cache HIT (Redis) | key=%s", key[:40])
                    return json.loads(data)
            except Exception as e:
                logger.debug("Redis GET error: %s", str(e)[:100])

        data = self._fallback.get(full_key)
        if data:
            logger.debug("Hot cache HIT (memory) | key=%s", key[:40])
            return data
        return None

    async def set(self, key: str, data: dict, ttl: int | None = None):
        """Write to cache. TTL is capped at the service default."""
        ttl = max(1, min(ttl or self.default_ttl, self.default_ttl))
        full_key = KEY_PREFIX + key

        if self._available and self._redis:
            try:
                await self._redis.setex(full_key, ttl, json.dumps(data, ensure_ascii=False))
            except Exception as e:
                logger.debug("Redis SET error: %s", str(e)[:100])

        # Always write to in-memory fallback too
        self._fallback[full_key] = data

    async def delete(self, key: str):
        full_key = KEY_PREFIX + key
        if self._available and self._redis:
            try:
                await self._redis.delete(full_key)
            except Exception as e:
                logger.debug("Redis DELETE error: %s", str(e)[:100])
        self._fallback.pop(full_key, None)


# Singleton instance
cache_service = CacheService()
