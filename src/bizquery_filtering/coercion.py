"""Type coercion for query-string values.

Coercion is fail-open: a value that cannot be parsed as the requested type
is returned unchanged (as a string) and validation is left to the store.
Nothing in this module raises for bad input.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from bson import ObjectId

from .schema import FieldType

_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")
_INT_RE = re.compile(r"^[+-]?\d+$")
_OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")

# BSON integers are signed 64-bit.
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def coerce(value: Any, field_type: FieldType | None = None) -> Any:
    """Convert a query-string value to a typed value.

    Order: ``None`` passes through; lists are coerced element-wise; dicts
    (operator objects) per key; with ``field_type`` coercion is exact;
    without it, boolean literals, then numbers, then ISO dates are tried.
    """
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return [coerce(v, field_type) for v in value]
    if isinstance(value, dict):
        return {k: coerce(v, field_type) for k, v in value.items()}
    if not isinstance(value, str):
        return value
    if field_type is not None:
        return _coerce_exact(value, field_type)
    return _coerce_auto(value)


def _coerce_exact(value: str, field_type: FieldType) -> Any:
    if field_type is FieldType.NUMBER:
        number = parse_number(value)
        return value if number is None else number
    if field_type is FieldType.BOOLEAN:
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
        return value
    if field_type is FieldType.DATE:
        parsed = parse_date(value)
        return value if parsed is None else parsed
    if field_type is FieldType.IDENTIFIER:
        return parse_identifier(value) or value
    return value


def _coerce_auto(value: str) -> Any:
    if value == "true":
        return True
    if value == "false":
        return False
    number = parse_number(value)
    if number is not None:
        return number
    parsed = parse_date(value)
    if parsed is not None:
        return parsed
    return value


def parse_number(value: str) -> int | float | None:
    text = value.strip()
    if not _NUMBER_RE.match(text):
        return None
    if _INT_RE.match(text):
        number = int(text)
        return number if fits_int64(number) else None
    return float(text)


def fits_int64(value: int) -> bool:
    return INT64_MIN <= value <= INT64_MAX


def parse_date(value: str) -> datetime | None:
    """Parse an ISO-8601 date or datetime; ``Z`` is accepted for UTC."""
    text = value.strip()
    if len(text) < 8 or not text[:4].isdigit():
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def parse_identifier(value: str) -> ObjectId | None:
    """Return an ObjectId for a 24-hex-digit string, else None."""
    text = value.strip()
    if not _OBJECT_ID_RE.match(text):
        return None
    return ObjectId(text)
