"""Redis cache collaborator for the list-query engine."""

from __future__ import annotations

from .cache import RedisCacheService

__all__ = [
    "RedisCacheService",
]
