"""Correlation ID management — ties log lines of one request together."""

from __future__ import annotations

import uuid
from contextvars import ContextVar

# ContextVar for correlation tracking across async boundaries.
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    """Get current correlation ID from context."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Set correlation ID in context."""
    _correlation_id.set(correlation_id)


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return str(uuid.uuid4())


def resolve_request_id(request_id: str | None = None) -> str:
    """Return the explicit request id, else the context correlation id, else a new one."""
    return request_id or get_correlation_id() or generate_correlation_id()
