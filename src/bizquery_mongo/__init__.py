"""MongoDB storage collaborator for the list-query engine."""

from __future__ import annotations

from .connection import MongoConnectionManager
from .exceptions import MongoConnectionError, MongoPersistenceError, MongoQueryError
from .executor import MongoAggregateExecutor, MongoFindExecutor
from .query_builder import MongoQueryBuilder

__all__ = [
    "MongoAggregateExecutor",
    "MongoConnectionError",
    "MongoConnectionManager",
    "MongoFindExecutor",
    "MongoPersistenceError",
    "MongoQueryBuilder",
    "MongoQueryError",
]
