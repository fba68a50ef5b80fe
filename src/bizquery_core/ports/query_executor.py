"""IQueryExecutor - Protocol for the storage collaborator."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class IQueryExecutor(Protocol):
    """
    Executes one compiled, security-enforced query against an entity's
    underlying collection.

    ``query`` is a compiled query object produced by the engine; the port
    stays untyped here so the core package does not depend on the engine.
    Implementations raise ``StorageError`` when the store rejects the read.
    """

    async def fetch(self, query: Any) -> list[dict[str, Any]]:
        """Run the primary read and return raw documents."""
        ...

    async def count(self, query: Any) -> int:
        """Count all documents matching the query filter (ignores paging)."""
        ...

    async def explain(self, query: Any) -> dict[str, Any]:
        """Return the store's plan for the primary read."""
        ...
