"""Tests for QueryEngine orchestration: validation, caching, timeout, envelope."""

from __future__ import annotations

import json
import logging

import pytest

from bizquery_core.adapters.memory import InMemoryCacheService
from bizquery_core.correlation import set_correlation_id
from bizquery_core.primitives.exceptions import QueryTimeoutError, StorageError
from bizquery_filtering import (
    CompiledQuery,
    CursorPagination,
    EngineConfig,
    FieldNotAllowedError,
    OffsetPagination,
    OperatorNotAllowedError,
    OrGroupLimitError,
    PageLimitError,
    QueryEngine,
    QueryOperator,
    RelationNotAllowedError,
    SecurityContext,
    SortKey,
    decode_cursor,
    decode_cursor_position,
    encode_cursor,
)


def test_compile_end_to_end_scenario(executor, invoices, tenant) -> None:
    engine = QueryEngine(executor)
    compiled = engine.compile(
        {
            "status": "active",
            "amount[gte]": "100",
            "amount[lte]": "500",
            "sort": "-createdAt",
            "page": "2",
            "limit": "20",
        },
        tenant,
        invoices,
    )
    assert isinstance(compiled, CompiledQuery)
    assert compiled.filter.as_mapping() == {
        "tenantId": "T",
        "status": "active",
        "amount": {"gte": 100, "lte": 500},
        "deleted": {"ne": True},
    }
    assert compiled.sort == (SortKey("createdAt", True), SortKey("_id", True))
    assert compiled.pagination == OffsetPagination(page=2, limit=20, skip=20)
    assert compiled.skip == 20
    assert compiled.fetch_limit == 20
    assert compiled.to_dict()["sort"] == ["-createdAt", "-_id"]


def test_compile_uses_entity_then_config_default_sort(executor, invoices, tenant) -> None:
    engine = QueryEngine(executor, config=EngineConfig(default_sort="-updatedAt"))
    assert engine.compile({}, tenant, invoices).sort[0] == SortKey("updatedAt", True)


def test_compile_cursor_forces_sort(executor, invoices, tenant) -> None:
    engine = QueryEngine(executor)
    compiled = engine.compile(
        {"cursor": encode_cursor(7), "cursorField": "seq", "sort": "name"},
        tenant,
        invoices,
        strategy="cursor",
    )
    assert isinstance(compiled.pagination, CursorPagination)
    assert compiled.sort == (SortKey("seq", True), SortKey("_id", True))
    assert compiled.cursor_predicate.op is QueryOperator.LT


def test_search_term_is_sanitized(executor, invoices, tenant) -> None:
    engine = QueryEngine(executor)
    compiled = engine.compile(
        {"search": "$whereacme"}, tenant, invoices, search_strategies=["substring"]
    )
    assert [c.field for c in compiled.search] == ["number", "customerName"]
    assert {c.value for c in compiled.search} == {"acme"}


def test_entity_sort_allow_list(executor, invoices, tenant) -> None:
    engine = QueryEngine(executor, config=EngineConfig(allowed_sort_fields=("createdAt",)))
    with pytest.raises(FieldNotAllowedError):
        engine.compile({"sort": "secret"}, tenant, invoices)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("params", "error"),
    [
        ({"amount[foo]": "1"}, OperatorNotAllowedError),
        ({"limit": "999999"}, PageLimitError),
        ({"status[or]": ",".join(str(i) for i in range(21))}, OrGroupLimitError),
        ({"populate": "password"}, RelationNotAllowedError),
    ],
)
async def test_validation_errors_make_no_storage_calls(
    executor, invoices, tenant, params, error
) -> None:
    cache = InMemoryCacheService()
    engine = QueryEngine(executor, cache)
    with pytest.raises(error):
        await engine.execute(params, tenant, invoices)
    assert executor.calls == []
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_offset_envelope(executor, invoices, tenant) -> None:
    executor.rows = [{"_id": 21}, {"_id": 22}]
    executor.total = 45
    engine = QueryEngine(executor)
    envelope = await engine.execute(
        {"page": "2", "limit": "20"}, tenant, invoices, request_id="req-1"
    )
    body = envelope.to_dict()
    assert body["data"] == [{"_id": 21}, {"_id": 22}]
    assert body["pagination"] == {
        "strategy": "offset",
        "limit": 20,
        "page": 2,
        "total": 45,
        "pages": 3,
        "hasNext": True,
        "hasPrev": True,
    }
    metadata = body["metadata"]
    assert metadata["requestId"] == "req-1"
    assert metadata["cacheHit"] is False
    assert metadata["queryCount"] == 2
    assert metadata["executionTimeMs"] >= 0
    stages = [s["name"] for s in metadata["performance"]]
    assert stages[:6] == ["filter", "search", "sort", "pagination", "projection", "populate"]
    assert "execute" in stages


@pytest.mark.asyncio
async def test_last_page_has_no_next(executor, invoices, tenant) -> None:
    executor.rows = [{"_id": 1}]
    executor.total = 41
    engine = QueryEngine(executor)
    envelope = await engine.execute({"page": "3", "limit": "20"}, tenant, invoices)
    assert envelope.pagination.has_next is False
    assert envelope.pagination.pages == 3


@pytest.mark.asyncio
async def test_empty_result_is_a_result(executor, invoices, tenant) -> None:
    engine = QueryEngine(executor)
    envelope = await engine.execute({}, tenant, invoices)
    assert envelope.data == []
    assert envelope.pagination.total == 0
    assert envelope.pagination.has_next is False
    assert envelope.pagination.has_prev is False


@pytest.mark.asyncio
async def test_cursor_envelope(executor, invoices, tenant) -> None:
    executor.rows = [{"_id": 9}, {"_id": 8}, {"_id": 7}]
    engine = QueryEngine(executor)
    envelope = await engine.execute(
        {"cursor": encode_cursor(10), "limit": "2"}, tenant, invoices, strategy="cursor"
    )
    assert [row["_id"] for row in envelope.data] == [9, 8]
    pagination = envelope.pagination
    assert pagination.has_next is True
    assert decode_cursor(pagination.next_cursor) == 8
    assert pagination.total is None
    assert "total" not in pagination.to_dict()
    assert envelope.metadata.query_count == 1
    assert [name for name, _ in executor.calls] == ["fetch"]
    (_, query) = executor.calls[0]
    assert query.fetch_limit == 3


@pytest.mark.asyncio
async def test_cursor_last_page(executor, invoices, tenant) -> None:
    executor.rows = [{"_id": 2}]
    engine = QueryEngine(executor)
    envelope = await engine.execute(
        {"cursor": encode_cursor(3), "limit": "2"}, tenant, invoices, strategy="cursor"
    )
    assert envelope.pagination.has_next is False
    assert envelope.pagination.next_cursor is None


@pytest.mark.asyncio
async def test_cache_idempotence(executor, invoices, tenant) -> None:
    executor.rows = [{"_id": 1, "status": "open"}]
    engine = QueryEngine(executor, InMemoryCacheService())

    first = await engine.execute({"status": "open", "limit": "10"}, tenant, invoices)
    second = await engine.execute({"limit": "10", "status": "open"}, tenant, invoices)

    assert first.metadata.cache_hit is False
    assert second.metadata.cache_hit is True
    assert second.metadata.query_count == 0
    assert second.metadata.cached_at is not None
    assert second.data == first.data
    assert second.pagination == first.pagination
    assert executor.fetch_calls == 1


@pytest.mark.asyncio
async def test_cache_is_per_user(executor, invoices) -> None:
    engine = QueryEngine(executor, InMemoryCacheService())
    await engine.execute({}, SecurityContext(tenant_id="T", user_id="u1"), invoices)
    other = await engine.execute({}, SecurityContext(tenant_id="T", user_id="u2"), invoices)
    assert other.metadata.cache_hit is False
    assert executor.fetch_calls == 2


@pytest.mark.asyncio
async def test_cache_bypass(executor, invoices, tenant) -> None:
    engine = QueryEngine(executor, InMemoryCacheService())
    await engine.execute({}, tenant, invoices)
    bypassed = await engine.execute({}, tenant, invoices, use_cache=False)
    assert bypassed.metadata.cache_hit is False

    disabled = engine.with_config(enable_cache=False)
    assert (await disabled.execute({}, tenant, invoices)).metadata.cache_hit is False
    assert executor.fetch_calls == 3


@pytest.mark.asyncio
async def test_transform_applied_before_caching(executor, invoices, tenant) -> None:
    executor.rows = [{"_id": 1, "secret": "x"}]
    engine = QueryEngine(executor, InMemoryCacheService())

    def strip(rows):
        return [{"_id": row["_id"]} for row in rows]

    first = await engine.execute({}, tenant, invoices, transform=strip)
    second = await engine.execute({}, tenant, invoices)
    assert first.data == [{"_id": 1}]
    assert second.data == [{"_id": 1}]


@pytest.mark.asyncio
async def test_timeout(executor, invoices, tenant) -> None:
    executor.delay = 1.0
    engine = QueryEngine(executor, config=EngineConfig(timeout_ms=20))
    with pytest.raises(QueryTimeoutError) as excinfo:
        await engine.execute({}, tenant, invoices, request_id="slow-1")
    assert excinfo.value.retryable is True
    assert excinfo.value.timeout_ms == 20
    assert excinfo.value.request_id == "slow-1"


@pytest.mark.asyncio
async def test_timeout_disabled(executor, invoices, tenant) -> None:
    executor.delay = 0.01
    engine = QueryEngine(executor, config=EngineConfig(timeout_ms=0))
    envelope = await engine.execute({}, tenant, invoices)
    assert envelope.data == []


@pytest.mark.asyncio
async def test_storage_error_propagates_unchanged(executor, invoices, tenant, caplog) -> None:
    failure = StorageError("connection refused")
    executor.error = failure
    cache = InMemoryCacheService()
    engine = QueryEngine(executor, cache)
    with caplog.at_level(logging.ERROR, logger="bizquery.engine"):
        with pytest.raises(StorageError) as excinfo:
            await engine.execute({}, tenant, invoices, request_id="req-9")
    assert excinfo.value is failure
    assert len(cache) == 0
    assert any("req-9" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_structured_log_entry(executor, invoices, tenant, caplog) -> None:
    set_correlation_id("corr-1")
    try:
        with caplog.at_level(logging.INFO, logger="bizquery.engine"):
            await QueryEngine(executor).execute({}, tenant, invoices)
    finally:
        set_correlation_id(None)
    entries = [
        json.loads(r.getMessage())
        for r in caplog.records
        if r.getMessage().startswith("{")
    ]
    assert len(entries) == 1
    entry = entries[0]
    assert entry["entity"] == "invoices"
    assert entry["outcome"] == "success"
    assert entry["cache_hit"] is False
    assert entry["request_id"] == "corr-1"
    assert entry["correlation_id"] == "corr-1"


@pytest.mark.asyncio
async def test_rejected_outcome_logged(executor, invoices, tenant, caplog) -> None:
    with caplog.at_level(logging.INFO, logger="bizquery.engine"):
        with pytest.raises(OperatorNotAllowedError):
            await QueryEngine(executor).execute({"a[foo]": "1"}, tenant, invoices)
    entries = [
        json.loads(r.getMessage())
        for r in caplog.records
        if r.getMessage().startswith("{")
    ]
    assert entries[-1]["outcome"] == "rejected"


@pytest.mark.asyncio
async def test_cache_scope_separates_transformed_results(executor, invoices, tenant) -> None:
    executor.rows = [{"_id": 1, "secret": "x"}]
    engine = QueryEngine(executor, InMemoryCacheService())

    def strip(rows):
        return [{"_id": row["_id"]} for row in rows]

    public = await engine.execute({}, tenant, invoices, transform=strip, cache_scope="public")
    admin = await engine.execute({}, tenant, invoices, cache_scope="admin")
    assert public.data == [{"_id": 1}]
    assert admin.metadata.cache_hit is False
    assert admin.data == [{"_id": 1, "secret": "x"}]


@pytest.mark.asyncio
async def test_caller_stages_reach_executor_and_cache_key(executor, invoices, tenant) -> None:
    engine = QueryEngine(executor, InMemoryCacheService())
    group = {"$group": {"_id": "$status"}}
    await engine.execute({}, tenant, invoices, stages=[group])
    other = await engine.execute({}, tenant, invoices)
    assert other.metadata.cache_hit is False
    (_, query) = executor.calls[0]
    assert query.stages == (group,)
    assert query.to_dict()["stages"] == ["$group"]


@pytest.mark.asyncio
async def test_explain_compiles_then_delegates(executor, invoices, tenant) -> None:
    plan = await QueryEngine(executor).explain({"status": "open"}, tenant, invoices)
    assert plan == {"queryPlanner": {"collection": "invoices"}}
    with pytest.raises(OperatorNotAllowedError):
        await QueryEngine(executor).explain({"a[foo]": "1"}, tenant, invoices)
    assert [name for name, _ in executor.calls] == ["explain"]


@pytest.mark.asyncio
async def test_next_cursor_carries_identifier_for_non_id_field(
    executor, invoices, tenant
) -> None:
    executor.rows = [{"_id": 9, "seq": 5}, {"_id": 8, "seq": 5}, {"_id": 7, "seq": 4}]
    envelope = await QueryEngine(executor).execute(
        {"cursor": encode_cursor(6), "cursorField": "seq", "limit": "2"},
        tenant,
        invoices,
        strategy="cursor",
    )
    assert decode_cursor_position(envelope.pagination.next_cursor) == (5, 8)
