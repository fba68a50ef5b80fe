"""Comparison and membership operators -> ``$eq``, ``$gte``, ``$in`` ..."""

from __future__ import annotations

from typing import Any

from bizquery_filtering.compiled import LIST_OPERATORS, QueryOperator

_MONGO_OP_MAP: dict[QueryOperator, str] = {
    QueryOperator.EQ: "$eq",
    QueryOperator.NE: "$ne",
    QueryOperator.GT: "$gt",
    QueryOperator.GTE: "$gte",
    QueryOperator.LT: "$lt",
    QueryOperator.LTE: "$lte",
    QueryOperator.IN: "$in",
    QueryOperator.NIN: "$nin",
}


def compile_standard(op: QueryOperator, val: Any) -> dict[str, Any] | None:
    """Operator document for one comparison, or None if ``op`` is not one."""
    mongo_op = _MONGO_OP_MAP.get(op)
    if mongo_op is None:
        return None
    if op in LIST_OPERATORS:
        return {mongo_op: list(val) if isinstance(val, (list, tuple)) else [val]}
    return {mongo_op: val}
