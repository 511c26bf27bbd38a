"""Short-TTL result cache backed by Redis.

Values are JSON documents stored with SET EX and read with GET, so no
locking is needed. Entries may be up to one TTL stale. The cache is
best-effort: a Redis problem is logged and treated as a miss.
"""

import hashlib
import json
import logging
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from price_intel import metrics
from price_intel.config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "price_intel"


class ResultCache:
    """JSON result cache keyed by namespace and query parameters."""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
        enabled: Optional[bool] = None,
    ):
        self.redis_url = redis_url or settings.redis_url
        self.ttl = ttl_seconds or settings.result_cache_ttl_seconds
        self.enabled = settings.result_cache_enabled if enabled is None else enabled
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = await redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    async def close(self):
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    def _get_cache_key(self, namespace: str, params: dict[str, Any]) -> str:
        """Stable key from namespace and parameters."""
        encoded = json.dumps(params, sort_keys=True, default=str)
        digest = hashlib.sha1(encoded.encode()).hexdigest()
        return f"{KEY_PREFIX}:{namespace}:{digest}"

    async def get(self, namespace: str, params: dict[str, Any]) -> Optional[dict]:
        """
        Look up a cached result.

        Returns:
            Decoded document, or None on miss, when disabled, or on error
        """
        if not self.enabled:
            return None

        key = self._get_cache_key(namespace, params)
        try:
            redis_client = await self._get_redis()
            raw = await redis_client.get(key)
        except (RedisError, OSError) as e:
            logger.warning(f"Result cache read failed for {namespace}: {e}")
            return None

        if raw is None:
            metrics.record_cache_lookup(namespace, hit=False)
            return None

        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding undecodable cache entry {key}")
            return None

        metrics.record_cache_lookup(namespace, hit=True)
        return value

    async def set(self, namespace: str, params: dict[str, Any], value: dict) -> None:
        """Store a result with the configured TTL."""
        if not self.enabled:
            return

        key = self._get_cache_key(namespace, params)
        try:
            redis_client = await self._get_redis()
            await redis_client.set(key, json.dumps(value), ex=self.ttl)
            logger.debug(f"Cached {namespace} result for {self.ttl}s")
        except (RedisError, OSError) as e:
            logger.warning(f"Result cache write failed for {namespace}: {e}")
