from .exceptions import (
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
    "InfrastructureError",
    "PersistenceError",
    "QueryTimeoutError",
    "QueryValidationError",
    "StorageError",
    "ValidationError",
]
