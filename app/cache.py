import json
import logging
from typing import Awaitable, Callable

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.config import settings

logger = logging.getLogger(__name__)

# Key namespaces.  Only public reads that look the same to every viewer are
# cached; engagement counters and a viewer's liked/bookmarked state never are.
ARTICLES_PREFIX = "articles"
STAFF_PICKS_PREFIX = "feed:staff_picks"
TAGS_PREFIX = "tags"


def trending_key(limit: int) -> str:
    return f"{ARTICLES_PREFIX}:trending:{limit}"


def recent_key(limit: int) -> str:
    return f"{ARTICLES_PREFIX}:recent:{limit}"


def staff_picks_key(page: int, per_page: int, sort: str) -> str:
    return f"{STAFF_PICKS_PREFIX}:{page}:{per_page}:{sort}"


def popular_tags_key(limit: int) -> str:
    return f"{TAGS_PREFIX}:popular:{limit}"


class CacheManager:
    """
    Cache-aside store for public listings, backed by Redis.

    Redis is optional.  With no connection every read is a miss and every
    write or invalidation is skipped, and a Redis error mid-request is
    logged and treated the same way, so callers never see cache failures.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None
        self._hits = 0
        self._misses = 0

    async def connect(self) -> None:
        """Open the pool and ping it once; on failure run without a cache."""
        client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await client.ping()
        except (RedisError, OSError) as exc:
            logger.warning("Redis unavailable at %s, caching disabled: %s", settings.REDIS_URL, exc)
            await client.aclose()
            return
        self._redis = client
        logger.info("Redis connected: %s", settings.REDIS_URL)

    async def disconnect(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Reads / writes
    # ------------------------------------------------------------------

    async def get(self, key: str) -> dict | list | None:
        if self._redis is None:
            self._misses += 1
            return None
        try:
            raw = await self._redis.get(key)
        except RedisError as exc:
            logger.debug("Cache GET failed for %r: %s", key, exc)
            raw = None
        if raw is None:
            self._misses += 1
            return None
        self._hits += 1
        return json.loads(raw)

    async def set(self, key: str, value: dict | list, ttl: int | None = None) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl)
        except RedisError as exc:
            logger.debug("Cache SET failed for %r: %s", key, exc)

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[dict | list]],
        ttl: int | None = None,
    ) -> dict | list:
        """
        Return the cached value for *key*, calling *loader* and storing its
        result on a miss.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached
        value = await loader()
        await self.set(key, value, ttl=ttl)
        return value

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    async def delete_pattern(self, pattern: str) -> None:
        """Delete every key matching *pattern*, walking the keyspace with SCAN."""
        if self._redis is None:
            return
        try:
            keys = [key async for key in self._redis.scan_iter(match=pattern)]
            if keys:
                await self._redis.delete(*keys)
                logger.debug("Cache dropped %d key(s) matching %r", len(keys), pattern)
        except RedisError as exc:
            logger.debug("Cache invalidation failed for %r: %s", pattern, exc)

    async def invalidate_articles(self) -> None:
        """
        Drop trending, recent and staff-pick pages.

        Any article write (create, update, delete, publish, unpublish,
        staff-pick toggle) can change which articles those pages hold.
        """
        await self.delete_pattern(f"{ARTICLES_PREFIX}:*")
        await self.delete_pattern(f"{STAFF_PICKS_PREFIX}:*")

    async def invalidate_tags(self) -> None:
        await self.delete_pattern(f"{TAGS_PREFIX}:*")

    @property
    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "available": self._redis is not None,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total else 0.0,
        }


# Module-level singleton shared across all request handlers.
cache = CacheManager()
