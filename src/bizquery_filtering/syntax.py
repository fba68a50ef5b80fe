"""Query-string filter grammar: ``field``, ``field.path``, ``field[op]``.

Keys are parsed with one pattern; no key is ever used for dynamic
attribute access. Values are sanitized before anything else looks at them.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any, NamedTuple

from .compiled import QueryOperator
from .exceptions import FilterParseError

FIELD_PATH_PATTERN = r"[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)*"

_FIELD_RE = re.compile(rf"^{FIELD_PATH_PATTERN}$")
_KEY_RE = re.compile(
    rf"^(?P<field>{FIELD_PATH_PATTERN})(?:\[(?P<op>[A-Za-z_]+)\])?$"
)

# Group suffixes, handled by the filter compiler rather than as operators.
OR_SUFFIX = "or"
AND_SUFFIX = "and"

# Accepted spellings for operator suffixes.
_OP_ALIASES: dict[str, QueryOperator] = {
    "eq": QueryOperator.EQ,
    "ne": QueryOperator.NE,
    "gt": QueryOperator.GT,
    "gte": QueryOperator.GTE,
    "lt": QueryOperator.LT,
    "lte": QueryOperator.LTE,
    "in": QueryOperator.IN,
    "nin": QueryOperator.NIN,
    "not_in": QueryOperator.NIN,
    "exists": QueryOperator.EXISTS,
    "regex": QueryOperator.REGEX,
}


class ParsedKey(NamedTuple):
    field: str
    suffix: str | None

    @property
    def is_nested(self) -> bool:
        return "." in self.field


def is_field_path(name: str) -> bool:
    return bool(_FIELD_RE.match(name))


def parse_key(key: str) -> ParsedKey:
    """Split ``amount[gte]`` into ``("amount", "gte")``; reject anything else."""
    match = _KEY_RE.match(key)
    if match is None:
        raise FilterParseError(
            f"Invalid filter parameter {key!r}",
            parameter=key,
            constraint="key_grammar",
        )
    suffix = match.group("op")
    return ParsedKey(match.group("field"), suffix.lower() if suffix else None)


def resolve_operator(suffix: str) -> QueryOperator | None:
    """Map an operator suffix to a client operator; None if unknown."""
    return _OP_ALIASES.get(suffix)


def sanitize(value: Any, forbidden_tokens: Iterable[str]) -> Any:
    """Strip every forbidden token from string values (recursively for lists)."""
    if isinstance(value, str):
        tokens = tuple(t for t in forbidden_tokens if t)
        # Repeat until stable so "$wh$whereere" cannot reassemble a token.
        while any(t in value for t in tokens):
            for token in tokens:
                value = value.replace(token, "")
        return value
    if isinstance(value, (list, tuple)):
        return [sanitize(v, forbidden_tokens) for v in value]
    return value


def split_values(value: Any) -> list[str]:
    """Comma-separated string or repeated parameter -> list of trimmed values."""
    items = value if isinstance(value, (list, tuple)) else [value]
    out: list[str] = []
    for item in items:
        if item is None:
            continue
        out.extend(part.strip() for part in str(item).split(",") if part.strip())
    return out


def last_value(value: Any) -> Any:
    """Scalar view of a possibly repeated parameter (last occurrence wins)."""
    if isinstance(value, (list, tuple)):
        return value[-1] if value else None
    return value
