"""MongoDB storage exceptions."""

from __future__ import annotations

from bizquery_core.primitives.exceptions import StorageError


class MongoPersistenceError(StorageError):
    """Base for MongoDB storage errors; the engine sees a ``StorageError``."""


class MongoConnectionError(MongoPersistenceError):
    """Raised when connection to MongoDB fails."""


class MongoQueryError(MongoPersistenceError):
    """Raised when a compiled query cannot be translated or is rejected."""
