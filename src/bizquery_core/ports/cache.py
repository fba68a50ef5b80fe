"""ICacheService - Protocol for cache operations."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ICacheService(Protocol):
    """
    Abstract interface for the shared key-value cache.

    Keys are opaque strings. Implementations own serialization.
    """

    async def get(self, key: str) -> Any | None:
        """Retrieve a value by key. Returns None if missing or expired."""
        ...

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Set a value with optional TTL (in seconds)."""
        ...

    async def delete(self, key: str) -> None:
        """Delete a value by key."""
        ...
