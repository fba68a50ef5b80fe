"""Read-through cache for compiled list queries.

Keys hash every input that changes the result: normalized QuerySpec,
base filter, entity, requesting user, tenant and pagination strategy.
There is no invalidation on write; entries live until their TTL runs
out. Two concurrent misses on one key both execute and both store.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from bizquery_core.primitives.exceptions import CacheError

if TYPE_CHECKING:
    from bizquery_core.ports.cache import ICacheService

logger = logging.getLogger("bizquery.cache")


@dataclass(frozen=True)
class CacheEntry:
    """What is stored under one cache key."""

    key: str
    payload: dict[str, Any]
    cached_at: str
    ttl: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "payload": self.payload,
            "cachedAt": self.cached_at,
            "ttl": self.ttl,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CacheEntry:
        return cls(
            key=data["key"],
            payload=dict(data["payload"]),
            cached_at=data["cachedAt"],
            ttl=int(data["ttl"]),
        )


def normalize_query_spec(query_spec: Mapping[str, Any]) -> dict[str, Any]:
    """Stringify values and sort keys; repeated values keep their order."""
    out: dict[str, Any] = {}
    for key in sorted(query_spec):
        value = query_spec[key]
        if isinstance(value, (list, tuple)):
            out[key] = [str(v) for v in value]
        else:
            out[key] = "" if value is None else str(value)
    return out


def build_cache_key(
    *,
    entity: str,
    query_spec: Mapping[str, Any],
    base_filter: Mapping[str, Any] | None = None,
    user_id: str | None = None,
    tenant_id: str | None = None,
    strategy: str = "offset",
    prefix: str = "bizquery",
    extra: Mapping[str, Any] | None = None,
) -> str:
    """``"{prefix}:{entity}:{sha256}"``; parameter order never matters."""
    material = {
        "entity": entity,
        "query": normalize_query_spec(query_spec),
        "base": dict(base_filter or {}),
        "user": user_id,
        "tenant": tenant_id,
        "strategy": strategy,
        "extra": dict(extra or {}),
    }
    digest = hashlib.sha256(
        json.dumps(material, sort_keys=True, default=str).encode("utf-8")
    ).hexdigest()
    return f"{prefix}:{entity}:{digest}"


class QueryCache:
    """Thin read-through wrapper over an :class:`ICacheService`.

    Cache failures surfaced as ``CacheError`` are logged and treated as a
    miss; a read is never failed because the cache is unavailable.
    """

    def __init__(self, service: ICacheService, ttl: int) -> None:
        self._service = service
        self._ttl = ttl

    async def lookup(self, key: str) -> CacheEntry | None:
        try:
            raw = await self._service.get(key)
        except CacheError as e:
            logger.warning("Cache lookup failed for key %s: %s", key, e)
            return None
        if not raw:
            logger.debug("Cache miss: %s", key)
            return None
        try:
            entry = CacheEntry.from_dict(raw)
        except (KeyError, TypeError, ValueError):
            logger.warning("Discarding malformed cache entry %s", key)
            return None
        logger.debug("Cache hit: %s", key)
        return entry

    async def store(self, key: str, payload: dict[str, Any]) -> CacheEntry:
        entry = CacheEntry(
            key=key,
            payload=payload,
            cached_at=datetime.now(timezone.utc).isoformat(),
            ttl=self._ttl,
        )
        try:
            await self._service.set(key, entry.to_dict(), ttl=self._ttl)
        except CacheError as e:
            logger.warning("Cache store failed for key %s: %s", key, e)
        return entry
