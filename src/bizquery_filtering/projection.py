"""Projection compiler — requested fields intersected with the allow-list."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .syntax import is_field_path, split_values


def compile_projection(
    field_spec: Any,
    allowed_fields: Iterable[str] = (),
    *,
    safe_fields: Iterable[str] = ("_id", "createdAt", "updatedAt"),
) -> tuple[str, ...] | None:
    """Return the fields to include, or ``None`` for the default projection.

    With an allow-list, only allowed or always-safe fields survive. An
    empty result falls back to the default projection rather than
    projecting to nothing.
    """
    requested = list(dict.fromkeys(split_values(field_spec))) if field_spec else []
    requested = [f for f in requested if is_field_path(f)]
    if not requested:
        return None
    allowed = set(allowed_fields)
    if allowed:
        permitted = allowed | set(safe_fields)
        requested = [f for f in requested if f in permitted]
    return tuple(requested) or None
