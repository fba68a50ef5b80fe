"""Pattern operators -> ``$regex`` / ``$options``."""

from __future__ import annotations

from typing import Any

from bizquery_filtering.compiled import QueryOperator

from ..exceptions import MongoQueryError


def compile_string(op: QueryOperator, val: Any) -> dict[str, Any] | None:
    """Compile ``regex`` (case-sensitive) and ``iregex`` (case-insensitive)."""
    if op not in (QueryOperator.REGEX, QueryOperator.IREGEX):
        return None
    if not isinstance(val, str):
        raise MongoQueryError(f"String operator {op.value} requires string value")
    if op is QueryOperator.IREGEX:
        return {"$regex": val, "$options": "i"}
    return {"$regex": val}
