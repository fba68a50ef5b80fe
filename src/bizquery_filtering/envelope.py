"""ResultEnvelope — the uniform ``{data, pagination, metadata}`` response."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class PaginationMeta(_CamelModel):
    """Paging facts for one result page.

    Offset pages carry ``page``, ``total`` and ``pages``; cursor pages
    carry ``cursor`` and ``next_cursor`` and never a total.
    """

    strategy: str
    limit: int
    has_next: bool
    has_prev: bool
    page: int | None = None
    total: int | None = None
    pages: int | None = None
    cursor: str | None = None
    next_cursor: str | None = None


class ResultMetadata(_CamelModel):
    execution_time_ms: float
    cache_hit: bool = False
    request_id: str
    query_count: int = 0
    cached_at: str | None = None
    performance: list[dict[str, Any]] = Field(default_factory=list)


class ResultEnvelope(_CamelModel):
    data: list[Any] = Field(default_factory=list)
    pagination: PaginationMeta | None = None
    metadata: ResultMetadata

    def to_dict(self) -> dict[str, Any]:
        """Serialise with camelCase keys; ``pagination`` is ``None`` when absent."""
        return {
            "data": list(self.data),
            "pagination": self.pagination.to_dict() if self.pagination else None,
            "metadata": self.metadata.to_dict(),
        }
