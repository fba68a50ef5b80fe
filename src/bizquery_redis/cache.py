"""Redis implementation of the engine's cache collaborator."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from bson import json_util
from redis.exceptions import RedisError

from bizquery_core.ports.cache import ICacheService

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger("bizquery.redis_cache")


class RedisCacheService(ICacheService):
    """
    Redis implementation of ICacheService.

    Payloads are serialized with ``bson.json_util`` so ObjectIds and
    datetimes in query results survive the round trip. Redis failures
    are logged and reported as a miss.
    """

    def __init__(self, redis_client: Redis[bytes]) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> Any | None:
        try:
            val = await self._redis.get(key)
            if not val:
                return None
            return json_util.loads(val)
        except (RedisError, ValueError) as e:
            logger.warning("Redis get failed for key %s: %s", key, e)
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            val = json_util.dumps(value)
            if ttl:
                await self._redis.setex(key, ttl, val)
            else:
                await self._redis.set(key, val)
        except (RedisError, TypeError, ValueError) as e:
            logger.warning("Redis set failed for key %s: %s", key, e)

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as e:
            logger.warning("Redis delete failed for key %s: %s", key, e)

    async def clear_namespace(self, prefix: str) -> None:
        """Drop every key under ``prefix``. Caution: This is expensive (SCAN)."""
        try:
            cursor: int = 0
            while True:
                cursor, keys = await self._redis.scan(cursor, match=f"{prefix}*")
                if keys:
                    await self._redis.delete(*keys)
                if cursor == 0:
                    break
        except RedisError as e:
            logger.warning("Redis clear_namespace failed: %s", e)
