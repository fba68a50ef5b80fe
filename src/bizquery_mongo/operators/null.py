"""Existence checks -> ``$exists``."""

from __future__ import annotations

from typing import Any

from bizquery_filtering.compiled import QueryOperator


def compile_null(op: QueryOperator, val: Any) -> dict[str, Any] | None:
    if op is not QueryOperator.EXISTS:
        return None
    # Unparseable flags were left as strings; anything but False means "exists".
    return {"$exists": val is not False}
