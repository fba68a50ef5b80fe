"""Sort compiler — ``-createdAt,name`` -> ordered SortKey tuple."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .compiled import SortKey
from .exceptions import FieldNotAllowedError, FilterParseError
from .syntax import is_field_path


def parse_sort(raw: Any, *, parameter: str = "sort") -> list[SortKey]:
    """Parse comma-separated fields; ``-`` prefix means descending."""
    if not raw:
        return []
    parts = raw if isinstance(raw, (list, tuple)) else [raw]
    out: list[SortKey] = []
    seen: set[str] = set()
    for part in ",".join(str(p) for p in parts).split(","):
        stripped = part.strip()
        if not stripped:
            continue
        descending = stripped.startswith("-")
        name = stripped.lstrip("+-").strip()
        if not is_field_path(name):
            raise FilterParseError(
                f"Invalid sort field {stripped!r}",
                parameter=parameter,
                constraint="sort_grammar",
            )
        if name in seen:
            continue
        seen.add(name)
        out.append(SortKey(name, descending))
    return out


def compile_sort(
    sort_spec: Any,
    allowed_fields: Iterable[str] = (),
    *,
    id_field: str = "_id",
    default: str | None = None,
) -> tuple[SortKey, ...]:
    """Validate against the allow-list and append the identifier tie-breaker.

    The tie-breaker takes the direction of the first sort key so that
    equal primary values keep a deterministic order across pages.
    """
    keys = parse_sort(sort_spec) or parse_sort(default, parameter="default_sort")
    allowed = set(allowed_fields)
    if allowed:
        invalid = [k.field for k in keys if k.field not in allowed and k.field != id_field]
        if invalid:
            raise FieldNotAllowedError(
                f"Invalid sort fields: {', '.join(invalid)}",
                parameter="sort",
                constraint="allowed_sort_fields",
                details={"fields": invalid, "allowed": sorted(allowed)},
            )
    if not any(k.field == id_field for k in keys):
        descending = keys[0].descending if keys else False
        keys.append(SortKey(id_field, descending))
    return tuple(keys)
