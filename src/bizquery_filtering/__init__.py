"""List-query engine — filter, search, sort, projection, pagination, expansion,
read-through caching and tenant isolation for untrusted query strings."""

from __future__ import annotations

from .cache import CacheEntry, QueryCache, build_cache_key, normalize_query_spec
from .coercion import coerce
from .compiled import (
    CLIENT_OPERATORS,
    Clause,
    CompiledFilter,
    CompiledQuery,
    CursorPagination,
    Expansion,
    OffsetPagination,
    PaginationState,
    QueryOperator,
    SortKey,
)
from .config import EngineConfig
from .context import SecurityContext
from .engine import QueryEngine
from .envelope import PaginationMeta, ResultEnvelope, ResultMetadata
from .exceptions import (
    FieldNotAllowedError,
    FilterParseError,
    OperatorNotAllowedError,
    OrGroupLimitError,
    PageLimitError,
    RelationNotAllowedError,
)
from .expansion import compile_expansions
from .pagination import compile_pagination, cursor_sort
from .parser import FilterCompiler, compile_filter
from .projection import compile_projection
from .query_string import (
    decode_cursor,
    decode_cursor_position,
    encode_cursor,
    parse_query_string,
    query_spec_from_pairs,
)
from .schema import EntityDefinition, FieldSchema, FieldType, RelationSpec
from .search import SearchStrategy, compile_search
from .sorting import compile_sort
from .telemetry import PerformanceRecorder

__all__ = [
    "CLIENT_OPERATORS",
    "CacheEntry",
    "Clause",
    "CompiledFilter",
    "CompiledQuery",
    "CursorPagination",
    "EngineConfig",
    "EntityDefinition",
    "Expansion",
    "FieldNotAllowedError",
    "FieldSchema",
    "FieldType",
    "FilterCompiler",
    "FilterParseError",
    "OffsetPagination",
    "OperatorNotAllowedError",
    "OrGroupLimitError",
    "PageLimitError",
    "PaginationMeta",
    "PaginationState",
    "PerformanceRecorder",
    "QueryCache",
    "QueryEngine",
    "QueryOperator",
    "RelationNotAllowedError",
    "RelationSpec",
    "ResultEnvelope",
    "ResultMetadata",
    "SearchStrategy",
    "SecurityContext",
    "SortKey",
    "build_cache_key",
    "coerce",
    "compile_expansions",
    "compile_filter",
    "compile_pagination",
    "compile_projection",
    "compile_search",
    "compile_sort",
    "cursor_sort",
    "decode_cursor",
    "decode_cursor_position",
    "encode_cursor",
    "normalize_query_spec",
    "parse_query_string",
    "query_spec_from_pairs",
]
