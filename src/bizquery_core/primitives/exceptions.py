"""Exception taxonomy shared by every bizquery package."""

from __future__ import annotations

from typing import Any


class BizQueryError(Exception):
    """Root exception for the entire bizquery toolkit."""


class ValidationError(BizQueryError):
    """Raised when caller input fails validation.

    Carries structured errors: ``{field: [messages]}``.
    """

    def __init__(self, errors: dict[str, list[str]] | str | None = None) -> None:
        if isinstance(errors, str):
            self.errors: dict[str, list[str]] = {"__root__": [errors]}
        elif errors is None:
            self.errors = {}
        else:
            self.errors = errors
        super().__init__(str(self.errors))


class QueryValidationError(ValidationError):
    """A query parameter violated a constraint; raised before any storage call.

    Attributes:
        parameter: The offending query parameter (e.g. ``amount[foo]``).
        constraint: Short machine-readable name of the violated rule.
        details: Extra context (requested vs. allowed values, ...).
    """

    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        parameter: str,
        constraint: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.parameter = parameter
        self.constraint = constraint
        self.details = details or {}
        super().__init__({parameter: [message]})

    def to_dict(self) -> dict[str, Any]:
        """Serialise for an HTTP error body."""
        return {
            "message": self.message,
            "parameter": self.parameter,
            "constraint": self.constraint,
            "details": self.details,
        }


class InfrastructureError(BizQueryError):
    """Base class for all infrastructure-related errors."""


class PersistenceError(InfrastructureError):
    """Base class for all persistence-related errors."""


class StorageError(PersistenceError):
    """The underlying read failed (connectivity, query shape rejected by the store)."""


class QueryTimeoutError(InfrastructureError):
    """Execution exceeded the configured timeout.

    Retryable from the caller's point of view; the engine never retries.
    """

    status_code = 504
    retryable = True

    def __init__(self, timeout_ms: int, *, request_id: str | None = None) -> None:
        self.timeout_ms = timeout_ms
        self.request_id = request_id
        super().__init__(f"Query timeout exceeded ({timeout_ms} ms)")


class CacheError(InfrastructureError):
    """Raised by cache adapters that choose to surface failures."""
