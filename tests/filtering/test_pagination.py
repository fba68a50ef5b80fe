"""Tests for offset and cursor pagination."""

from __future__ import annotations

import pytest
from bson import ObjectId

from bizquery_filtering.compiled import (
    Clause,
    CursorPagination,
    OffsetPagination,
    QueryOperator,
    SortKey,
)
from bizquery_filtering.config import EngineConfig
from bizquery_filtering.exceptions import (
    FieldNotAllowedError,
    FilterParseError,
    PageLimitError,
)
from bizquery_filtering.pagination import compile_pagination, cursor_sort
from bizquery_filtering.query_string import encode_cursor
from bizquery_filtering.schema import FieldSchema


def test_defaults() -> None:
    assert compile_pagination({}) == OffsetPagination(page=1, limit=50, skip=0)


def test_skip_from_page_and_limit() -> None:
    state = compile_pagination({"page": "2", "limit": "20"})
    assert state == OffsetPagination(page=2, limit=20, skip=20)
    assert state.fetch_limit == 20


def test_limit_over_maximum_is_rejected() -> None:
    config = EngineConfig(max_limit=1000)
    with pytest.raises(PageLimitError) as excinfo:
        compile_pagination({"limit": "999999"}, config)
    err = excinfo.value
    assert err.parameter == "limit"
    assert err.constraint == "max_limit"
    assert err.details == {"requested": 999999, "allowed": 1000}


def test_limit_at_maximum_is_accepted() -> None:
    config = EngineConfig(max_limit=100, default_limit=10)
    assert compile_pagination({"limit": "100"}, config).limit == 100


@pytest.mark.parametrize(
    ("params", "page", "limit"),
    [
        ({"limit": "0"}, 1, 1),
        ({"limit": "-5"}, 1, 1),
        ({"limit": "abc"}, 1, 50),
        ({"limit": "2.5"}, 1, 50),
        ({"page": "0"}, 1, 50),
        ({"page": "-3"}, 1, 50),
        ({"page": "x"}, 1, 50),
        ({"limit": ["10", "20"]}, 1, 20),
    ],
)
def test_bounds_and_fallbacks(params, page, limit) -> None:
    state = compile_pagination(params)
    assert (state.page, state.limit) == (page, limit)


def test_cursor_strategy_without_cursor_falls_back_to_offset() -> None:
    state = compile_pagination({"page": "3", "limit": "5"}, strategy="cursor")
    assert state == OffsetPagination(page=3, limit=5, skip=10)


def test_offset_strategy_ignores_cursor() -> None:
    state = compile_pagination({"cursor": encode_cursor(5)})
    assert isinstance(state, OffsetPagination)


def test_raw_identifier_cursor() -> None:
    raw = "507f1f77bcf86cd799439011"
    state = compile_pagination({"lastId": raw, "limit": "20"}, strategy="cursor")
    assert isinstance(state, CursorPagination)
    assert state.cursor_field == "_id"
    assert state.cursor_value == ObjectId(raw)
    assert state.fetch_limit == 21
    assert state.predicate == Clause("_id", QueryOperator.LT, ObjectId(raw))


def test_opaque_cursor_token() -> None:
    state = compile_pagination(
        {"cursor": encode_cursor(42), "cursorField": "seq"}, strategy="cursor"
    )
    assert state.cursor_field == "seq"
    assert state.cursor_value == 42
    assert state.descending is True


def test_raw_cursor_coerced_by_schema() -> None:
    state = compile_pagination(
        {"cursor": "150", "cursorField": "amount"},
        strategy="cursor",
        schema=FieldSchema({"amount": "Number"}),
    )
    assert state.cursor_value == 150


def test_ascending_primary_sort_flips_the_bound() -> None:
    state = compile_pagination(
        {"cursor": encode_cursor(10), "cursorField": "seq"},
        strategy="cursor",
        sort=(SortKey("seq"), SortKey("_id")),
    )
    assert state.descending is False
    assert state.predicate.op is QueryOperator.GT


def test_invalid_cursor_field() -> None:
    with pytest.raises(FilterParseError):
        compile_pagination({"cursor": "1", "cursorField": "$where"}, strategy="cursor")


def test_cursor_field_must_be_sortable() -> None:
    with pytest.raises(FieldNotAllowedError) as excinfo:
        compile_pagination(
            {"cursor": "1", "cursorField": "salary"},
            strategy="cursor",
            allowed_fields=["createdAt"],
        )
    assert excinfo.value.parameter == "cursorField"


def test_limit_checked_for_cursor_pages_too() -> None:
    with pytest.raises(PageLimitError):
        compile_pagination({"cursor": "1", "limit": "5000"}, strategy="cursor")


def test_unknown_strategy() -> None:
    with pytest.raises(ValueError):
        compile_pagination({}, strategy="keyset")


def test_cursor_sort() -> None:
    state = CursorPagination(cursor_field="createdAt", cursor_value=1, limit=5)
    assert cursor_sort(state, "_id") == (
        SortKey("createdAt", True),
        SortKey("_id", True),
    )
    by_id = CursorPagination(cursor_field="_id", cursor_value=1, limit=5)
    assert cursor_sort(by_id, "_id") == (SortKey("_id", True),)


def test_token_identifier_becomes_tie_break() -> None:
    state = compile_pagination(
        {"cursor": encode_cursor(40, 7), "cursorField": "amount"}, strategy="cursor"
    )
    assert state.last_id == 7
    assert state.tie_break == (
        Clause("amount", QueryOperator.EQ, 40),
        Clause("_id", QueryOperator.LT, 7),
    )


def test_no_tie_break_for_identifier_or_legacy_cursor() -> None:
    by_id = compile_pagination({"cursor": encode_cursor(40, 7)}, strategy="cursor")
    assert by_id.tie_break is None
    legacy = compile_pagination(
        {"cursor": "40", "cursorField": "amount"}, strategy="cursor"
    )
    assert legacy.tie_break is None


def test_page_beyond_addressable_range_is_rejected() -> None:
    with pytest.raises(PageLimitError) as excinfo:
        compile_pagination({"page": "10000000000000000000", "limit": "50"})
    err = excinfo.value
    assert err.parameter == "page"
    assert err.constraint == "max_page"


def test_last_addressable_page_fits_int64() -> None:
    max_page = (2**63 - 1) // 50 + 1
    state = compile_pagination({"page": str(max_page), "limit": "50"})
    assert state.skip <= 2**63 - 1
