"""Tests for the sort compiler and its identifier tie-breaker."""

from __future__ import annotations

import pytest

from bizquery_filtering.compiled import SortKey
from bizquery_filtering.exceptions import FieldNotAllowedError, FilterParseError
from bizquery_filtering.sorting import compile_sort, parse_sort


def test_tie_breaker_follows_first_key_direction() -> None:
    assert compile_sort("-createdAt") == (
        SortKey("createdAt", True),
        SortKey("_id", True),
    )
    assert compile_sort("name,-amount") == (
        SortKey("name"),
        SortKey("amount", True),
        SortKey("_id"),
    )


def test_identifier_already_present_is_not_duplicated() -> None:
    assert compile_sort("-_id") == (SortKey("_id", True),)
    assert compile_sort("status,_id") == (SortKey("status"), SortKey("_id"))


def test_custom_id_field() -> None:
    assert compile_sort("name", id_field="id") == (SortKey("name"), SortKey("id"))


def test_allow_list_names_every_offender() -> None:
    with pytest.raises(FieldNotAllowedError) as excinfo:
        compile_sort("secret,name,-salary", ["name", "createdAt"])
    err = excinfo.value
    assert err.parameter == "sort"
    assert err.details["fields"] == ["secret", "salary"]
    assert "secret" in err.message and "salary" in err.message


def test_identifier_is_always_sortable() -> None:
    assert compile_sort("-_id", ["name"]) == (SortKey("_id", True),)


def test_default_sort_used_when_none_requested() -> None:
    assert compile_sort(None, default="-createdAt") == (
        SortKey("createdAt", True),
        SortKey("_id", True),
    )
    assert compile_sort("", default="name")[0] == SortKey("name")


def test_no_sort_at_all_is_identifier_ascending() -> None:
    assert compile_sort(None) == (SortKey("_id"),)


def test_parse_sort_dedupes_and_accepts_plus() -> None:
    assert parse_sort("name,+name, -amount") == [
        SortKey("name"),
        SortKey("amount", True),
    ]
    assert parse_sort(["a", "-b"]) == [SortKey("a"), SortKey("b", True)]


@pytest.mark.parametrize("raw", ["$natural", "a..b", "-"])
def test_invalid_sort_field(raw) -> None:
    with pytest.raises(FilterParseError):
        compile_sort(raw)


def test_sort_key_str() -> None:
    assert str(SortKey("createdAt", True)) == "-createdAt"
    assert str(SortKey("name")) == "name"
