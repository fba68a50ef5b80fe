"""EngineConfig — recognised engine options and their defaults."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .compiled import CLIENT_OPERATORS, QueryOperator

DEFAULT_RESERVED_KEYS: tuple[str, ...] = (
    "page",
    "limit",
    "sort",
    "fields",
    "select",
    "search",
    "populate",
    "cursor",
    "cursorField",
    "lastId",
    "lastDate",
    "include",
    "exclude",
    "group",
    "distinct",
)

DEFAULT_FORBIDDEN_TOKENS: tuple[str, ...] = ("$where", "$function", "$expr", "$accumulator")

# Public option names (as documented for API callers) -> dataclass fields.
_OPTION_ALIASES: dict[str, str] = {
    "maxLimit": "max_limit",
    "defaultLimit": "default_limit",
    "maxOrClauses": "max_or_clauses",
    "enableCache": "enable_cache",
    "cacheTtlSeconds": "cache_ttl_seconds",
    "timeoutMs": "timeout_ms",
    "allowedOperators": "allowed_operators",
    "allowedSortFields": "allowed_sort_fields",
}


@dataclass(frozen=True)
class EngineConfig:
    """
    Engine options.

    Attributes:
        max_limit: Largest page size a client may request. Larger requests
            are rejected with ``PageLimitError`` (never silently truncated).
        default_limit: Page size when the client sends none.
        max_or_clauses: Cap on values in one ``field[or]`` group and on the
            number of OR groups.
        enable_cache: Read-through caching on/off.
        cache_ttl_seconds: Lifetime of cached results. There is no
            invalidation on write; results may be this stale.
        timeout_ms: Budget for the storage reads; ``0`` disables the race.
        allowed_operators: Operators accepted in ``field[op]`` keys.
        allowed_sort_fields: Sort allow-list; empty means unrestricted.
        reserved_keys: Control parameters never treated as data filters.
        forbidden_tokens: Substrings stripped from every value.
        safe_projection_fields: Always projectable, whatever the allow-list.
        id_field: Primary identifier (sort tie-breaker, default cursor field).
        default_sort: Sort used when neither client nor entity supplies one.
        cache_key_prefix: Namespace for cache keys.
    """

    max_limit: int = 1000
    default_limit: int = 50
    max_or_clauses: int = 20
    enable_cache: bool = True
    cache_ttl_seconds: int = 300
    timeout_ms: int = 30_000
    allowed_operators: frozenset[QueryOperator] = CLIENT_OPERATORS
    allowed_sort_fields: tuple[str, ...] = ()
    reserved_keys: tuple[str, ...] = DEFAULT_RESERVED_KEYS
    forbidden_tokens: tuple[str, ...] = DEFAULT_FORBIDDEN_TOKENS
    safe_projection_fields: tuple[str, ...] = ("_id", "createdAt", "updatedAt")
    id_field: str = "_id"
    default_sort: str = "-createdAt"
    cache_key_prefix: str = "bizquery"

    def __post_init__(self) -> None:
        if self.max_limit < 1:
            raise ValueError("max_limit must be >= 1")
        if not 1 <= self.default_limit <= self.max_limit:
            raise ValueError("default_limit must be between 1 and max_limit")
        if self.max_or_clauses < 1:
            raise ValueError("max_or_clauses must be >= 1")
        if self.cache_ttl_seconds < 0 or self.timeout_ms < 0:
            raise ValueError("cache_ttl_seconds and timeout_ms must be >= 0")
        operators = frozenset(QueryOperator(op) for op in self.allowed_operators)
        unsupported = operators - CLIENT_OPERATORS
        if unsupported:
            names = ", ".join(sorted(op.value for op in unsupported))
            raise ValueError(f"Unsupported operators in allowed_operators: {names}")
        object.__setattr__(self, "allowed_operators", operators)
        for name in (
            "allowed_sort_fields",
            "reserved_keys",
            "forbidden_tokens",
            "safe_projection_fields",
        ):
            object.__setattr__(self, name, tuple(getattr(self, name)))

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> EngineConfig:
        """Build from documented option names (``maxLimit``) or field names."""
        known = {f.name for f in dataclasses.fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in options.items():
            name = _OPTION_ALIASES.get(key, key)
            if name not in known:
                raise ValueError(f"Unknown engine option: {key!r}")
            kwargs[name] = value
        return cls(**kwargs)

    def with_overrides(self, **overrides: Any) -> EngineConfig:
        """Return a copy with some options replaced (per-endpoint tuning)."""
        return dataclasses.replace(self, **overrides)
