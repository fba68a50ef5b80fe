"""bizquery-core — exception taxonomy, ports and correlation helpers.

Zero infrastructure dependencies.
"""

from __future__ import annotations

from .adapters.memory import InMemoryCacheService
from .correlation import (
    generate_correlation_id,
    get_correlation_id,
    resolve_request_id,
    set_correlation_id,
)
from .ports import ICacheService, IQueryExecutor
from .primitives.exceptions import (
    BizQueryError,
    CacheError,
    InfrastructureError,
    PersistenceError,
    QueryTimeoutError,
    QueryValidationError,
    StorageError,
    ValidationError,
)

__all__ = [
    "BizQueryError",
    "CacheError",
    "ICacheService",
    "IQueryExecutor",
    "InMemoryCacheService",
    "InfrastructureError",
    "PersistenceError",
    "QueryTimeoutError",
    "QueryValidationError",
    "StorageError",
    "ValidationError",
    "generate_correlation_id",
    "get_correlation_id",
    "resolve_request_id",
    "set_correlation_id",
]
