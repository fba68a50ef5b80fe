"""In-memory TTL cache implementing ICacheService."""

from __future__ import annotations

import copy
import time
from typing import TYPE_CHECKING, Any

from bizquery_core.ports.cache import ICacheService

if TYPE_CHECKING:
    from collections.abc import Callable


class InMemoryCacheService(ICacheService):
    """
    Process-local cache for tests and single-process deployments.

    Values are deep-copied on the way in and out so callers can never
    mutate a cached payload. Expired entries are reclaimed lazily on read.
    """

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.monotonic
        self._data: dict[str, tuple[Any, float | None]] = {}

    async def get(self, key: str) -> Any | None:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        self._data[key] = (copy.deepcopy(value), expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        """Drop every entry."""
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
