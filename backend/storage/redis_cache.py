"""
Distributed result cache backed by Redis
"""

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from core.config import settings
from core.exceptions import CacheUnavailableError
from storage.base import BaseDistributedCache

logger = logging.getLogger(__name__)


class RedisDistributedCache(BaseDistributedCache):
    """JSON values in Redis with a per-key expiry"""

    mode = "redis"

    def __init__(self, redis_url: Optional[str] = None, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url or settings.redis_url
        self.client = client or redis.from_url(
            self.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        logger.info("Redis distributed cache initialized")

    async def get_json(self, key: str) -> Optional[Any]:
        try:
            raw = await self.client.get(key)
        except RedisError as e:
            raise CacheUnavailableError(f"Redis GET failed: {e}")
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise CacheUnavailableError(f"Corrupt cache entry for {key}: {e}")

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            await self.client.set(key, json.dumps(value), ex=max(1, int(ttl_seconds)))
        except RedisError as e:
            raise CacheUnavailableError(f"Redis SET failed: {e}")

    async def close(self) -> None:
        try:
            await self.client.aclose()
        except RedisError as e:
            logger.error(f"Error closing Redis client: {e}")


class DisabledDistributedCache(BaseDistributedCache):
    """Stand-in used when no Redis is configured: every read misses, writes are dropped"""

    mode = "disabled"

    @property
    def enabled(self) -> bool:
        return False

    async def get_json(self, key: str) -> Optional[Any]:
        return None

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        return None


def create_distributed_cache() -> BaseDistributedCache:
    """Redis when ENABLE_REDIS_CACHE is set and REDIS_URL is present, otherwise disabled"""
    if settings.enable_redis_cache and settings.redis_url:
        return RedisDistributedCache(settings.redis_url)
    if settings.enable_redis_cache:
        logger.warning("ENABLE_REDIS_CACHE is set but REDIS_URL is empty; L2 cache disabled")
    return DisabledDistributedCache()
