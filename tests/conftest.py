"""Shared fixtures: a sample entity definition and a recording executor."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from bizquery_filtering import (
    EntityDefinition,
    FieldSchema,
    RelationSpec,
    SecurityContext,
)


class RecordingExecutor:
    """In-process IQueryExecutor that records every call it receives."""

    def __init__(self) -> None:
        self.rows: list[dict[str, Any]] = []
        self.total: int | None = None
        self.delay = 0.0
        self.error: Exception | None = None
        self.calls: list[tuple[str, Any]] = []

    async def fetch(self, query: Any) -> list[dict[str, Any]]:
        self.calls.append(("fetch", query))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return [dict(row) for row in self.rows]

    async def count(self, query: Any) -> int:
        self.calls.append(("count", query))
        if self.error is not None:
            raise self.error
        return len(self.rows) if self.total is None else self.total

    async def explain(self, query: Any) -> dict[str, Any]:
        self.calls.append(("explain", query))
        return {"queryPlanner": {"collection": query.collection}}

    @property
    def fetch_calls(self) -> int:
        return sum(1 for name, _ in self.calls if name == "fetch")


@pytest.fixture
def executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def invoice_schema() -> FieldSchema:
    return FieldSchema(
        {
            "amount": "Number",
            "paid": "Boolean",
            "createdAt": "Date",
            "customer": "Identifier",
            "status": "String",
            "tenantId": "String",
        }
    )


@pytest.fixture
def invoices(invoice_schema: FieldSchema) -> EntityDefinition:
    return EntityDefinition(
        name="invoices",
        collection="invoices",
        schema=invoice_schema,
        soft_delete_field="deleted",
        search_fields=("number", "customerName"),
        relations={
            "customer": RelationSpec(
                path="customer",
                collection="customers",
                fields=("name", "email"),
                target_schema=FieldSchema({"tenantId": "String", "name": "String"}),
            ),
            "tags": RelationSpec(path="tags", collection="tags", many=True),
        },
    )


@pytest.fixture
def tenant() -> SecurityContext:
    return SecurityContext(tenant_id="T", user_id="u1")
