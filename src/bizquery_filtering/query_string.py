"""Query-string intake and opaque cursor tokens."""

from __future__ import annotations

import base64
from collections.abc import Iterable
from typing import Any
from urllib.parse import parse_qsl

from bson import json_util
from bson.errors import BSONError

from .coercion import fits_int64


def query_spec_from_pairs(pairs: Iterable[tuple[str, str]]) -> dict[str, Any]:
    """Fold ``(key, value)`` pairs into a QuerySpec; repeated keys become lists."""
    spec: dict[str, Any] = {}
    for key, value in pairs:
        if key not in spec:
            spec[key] = value
        elif isinstance(spec[key], list):
            spec[key].append(value)
        else:
            spec[key] = [spec[key], value]
    return spec


def parse_query_string(raw: str) -> dict[str, Any]:
    """``"status=a&amount[gte]=5"`` -> ``{"status": "a", "amount[gte]": "5"}``."""
    return query_spec_from_pairs(parse_qsl(raw.lstrip("?"), keep_blank_values=True))


def encode_cursor(value: Any, last_id: Any = None) -> str:
    """Encode a cursor position as an opaque URL-safe token.

    ``last_id`` is the identifier of the last row, used to break ties when
    the cursor field is not unique. ``bson.json_util`` keeps ObjectIds and
    datetimes typed across the round trip.
    """
    data: dict[str, Any] = {"v": value}
    if last_id is not None:
        data["id"] = last_id
    payload = json_util.dumps(data)
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def decode_cursor_position(token: str) -> tuple[Any, Any]:
    """Decode a token into ``(value, last_id)``; ``last_id`` may be None.

    Raises:
        ValueError: ``token`` is not a cursor token.
    """
    try:
        raw = base64.urlsafe_b64decode(token.encode("ascii"))
        data = json_util.loads(raw.decode("utf-8"))
    except (BSONError, TypeError, ValueError) as e:
        raise ValueError(f"Invalid cursor token: {token!r}") from e
    if not isinstance(data, dict) or "v" not in data or not set(data) <= {"v", "id"}:
        raise ValueError(f"Invalid cursor token: {token!r}")
    value, last_id = data["v"], data.get("id")
    if not (_storable(value) and _storable(last_id)):
        raise ValueError(f"Invalid cursor token: {token!r}")
    return value, last_id


def decode_cursor(token: str) -> Any:
    """Decode the cursor value of a token produced by :func:`encode_cursor`.

    Raises:
        ValueError: ``token`` is not a cursor token.
    """
    return decode_cursor_position(token)[0]


def _storable(value: Any) -> bool:
    if isinstance(value, int) and not isinstance(value, bool):
        return fits_int64(value)
    return True
