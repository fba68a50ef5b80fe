"""Filtering package exceptions."""

from __future__ import annotations

from bizquery_core.primitives.exceptions import QueryValidationError


class FilterParseError(QueryValidationError):
    """Raised when a filter key or value does not follow the query grammar."""


class OperatorNotAllowedError(QueryValidationError):
    """Raised when ``field[op]`` names an operator outside the allow-list."""


class OrGroupLimitError(QueryValidationError):
    """Raised when an OR-group holds more values than ``max_or_clauses``."""


class PageLimitError(QueryValidationError):
    """Raised when ``limit`` exceeds ``max_limit`` or ``page`` is out of range."""


class FieldNotAllowedError(QueryValidationError):
    """Raised when a sort field is not in the allow-list."""


class RelationNotAllowedError(QueryValidationError):
    """Raised when an expansion path is not in the relation map."""
