"""Pagination compiler — offset (page/limit) and cursor strategies."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, Literal

from .coercion import INT64_MAX, coerce
from .compiled import CursorPagination, OffsetPagination, PaginationState, SortKey
from .config import EngineConfig
from .exceptions import FieldNotAllowedError, FilterParseError, PageLimitError
from .query_string import decode_cursor_position
from .schema import FieldSchema, FieldType
from .syntax import is_field_path, last_value

logger = logging.getLogger("bizquery.pagination")

PaginationStrategy = Literal["offset", "cursor"]


def parse_limit(raw: Any, config: EngineConfig) -> int:
    """Page size from the ``limit`` parameter.

    Unparseable values fall back to ``default_limit``; values below 1
    become 1; values above ``max_limit`` are rejected.
    """
    limit = _parse_int(raw, config.default_limit)
    if limit > config.max_limit:
        raise PageLimitError(
            f"Limit {limit} exceeds maximum of {config.max_limit}",
            parameter="limit",
            constraint="max_limit",
            details={"requested": limit, "allowed": config.max_limit},
        )
    return max(1, limit)


def parse_page(raw: Any) -> int:
    return max(1, _parse_int(raw, 1))


def compile_pagination(
    params: Mapping[str, Any],
    config: EngineConfig | None = None,
    *,
    strategy: PaginationStrategy = "offset",
    sort: Iterable[SortKey] = (),
    schema: FieldSchema | None = None,
    id_field: str | None = None,
    allowed_fields: Iterable[str] = (),
) -> PaginationState:
    """Build the pagination state for one request.

    Cursor pagination needs a ``cursor`` (or legacy ``lastId``) value;
    without one the request is served as offset page 1..n. The cursor
    field defaults to the identifier and must pass the sort allow-list,
    because paging forces a sort on it.

    Tokens issued by the engine carry the last row's identifier as well,
    so rows that tie on a non-unique cursor field are not skipped. A raw
    legacy value has no identifier and bounds on the cursor field alone.
    """
    config = config or EngineConfig()
    id_field = id_field or config.id_field
    limit = parse_limit(last_value(params.get("limit")), config)

    if strategy not in ("offset", "cursor"):
        raise ValueError(f"Unknown pagination strategy: {strategy!r}")

    if strategy == "cursor":
        token = last_value(params.get("cursor")) or last_value(params.get("lastId"))
        if token:
            cursor_field = _cursor_field(params, id_field, allowed_fields)
            keys = tuple(sort)
            ascending = bool(keys) and keys[0].field == cursor_field and not keys[0].descending
            value, last_id = _cursor_position(str(token), cursor_field, id_field, schema)
            return CursorPagination(
                cursor_field=cursor_field,
                cursor_value=value,
                limit=limit,
                descending=not ascending,
                cursor=str(token),
                id_field=id_field,
                last_id=last_id,
            )
        logger.debug("No cursor supplied; falling back to offset pagination")

    page = parse_page(last_value(params.get("page")))
    max_page = INT64_MAX // limit + 1
    if page > max_page:
        raise PageLimitError(
            f"Page {page} is beyond the last addressable page",
            parameter="page",
            constraint="max_page",
            details={"requested": page, "allowed": max_page},
        )
    return OffsetPagination(page=page, limit=limit, skip=(page - 1) * limit)


def cursor_sort(pagination: CursorPagination, id_field: str) -> tuple[SortKey, ...]:
    """Forced order for cursor paging: cursor field, then the identifier."""
    keys = [SortKey(pagination.cursor_field, pagination.descending)]
    if pagination.cursor_field != id_field:
        keys.append(SortKey(id_field, pagination.descending))
    return tuple(keys)


def _cursor_field(
    params: Mapping[str, Any], id_field: str, allowed_fields: Iterable[str]
) -> str:
    raw = last_value(params.get("cursorField"))
    name = str(raw).strip() if raw else id_field
    if not is_field_path(name):
        raise FilterParseError(
            f"Invalid cursor field {name!r}",
            parameter="cursorField",
            constraint="field_grammar",
        )
    allowed = set(allowed_fields)
    if allowed and name != id_field and name not in allowed:
        raise FieldNotAllowedError(
            f"Invalid cursor field: {name}",
            parameter="cursorField",
            constraint="allowed_sort_fields",
            details={"fields": [name], "allowed": sorted(allowed)},
        )
    return name


def _cursor_position(
    token: str, cursor_field: str, id_field: str, schema: FieldSchema | None
) -> tuple[Any, Any]:
    try:
        return decode_cursor_position(token)
    except ValueError:
        # Legacy clients send the last seen value itself (``lastId=...``).
        field_type = schema.type_of(cursor_field) if schema else None
        if field_type is None and cursor_field == id_field:
            field_type = FieldType.IDENTIFIER
        return coerce(token, field_type), None


def _parse_int(raw: Any, default: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        return default
