"""
Compiled query representation.

Every compiler in this package produces a piece of a :class:`CompiledQuery`;
storage adapters consume the whole thing. There is exactly one
representation, whether the adapter issues a simple filtered read or a
multi-stage aggregation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal


class QueryOperator(str, Enum):
    """Supported predicate operators."""

    # Client-facing (``field[op]=value``)
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NIN = "nin"
    EXISTS = "exists"
    REGEX = "regex"

    # Internal, produced by the search compiler
    IREGEX = "iregex"
    TEXT = "text"

    # Logical
    AND = "and"
    OR = "or"


CLIENT_OPERATORS: frozenset[QueryOperator] = frozenset(
    {
        QueryOperator.EQ,
        QueryOperator.NE,
        QueryOperator.GT,
        QueryOperator.GTE,
        QueryOperator.LT,
        QueryOperator.LTE,
        QueryOperator.IN,
        QueryOperator.NIN,
        QueryOperator.EXISTS,
        QueryOperator.REGEX,
    }
)

LIST_OPERATORS: frozenset[QueryOperator] = frozenset(
    {QueryOperator.IN, QueryOperator.NIN}
)


@dataclass(frozen=True)
class Clause:
    """A single ``field <op> value`` predicate."""

    field: str
    op: QueryOperator
    value: Any

    def to_dict(self) -> dict[str, Any]:
        return {"attr": self.field, "op": self.op.value, "val": self.value}


@dataclass
class CompiledFilter:
    """
    Validated, coerced, security-enforced predicate tree.

    Attributes:
        clauses: Conjunctive per-field operator map,
            ``{"amount": {GTE: 100, LTE: 500}, "status": {EQ: "active"}}``.
        any_of: Top-level OR list (from ``field[or]=a,b`` groups).
        all_of: Top-level AND list (from ``field[and]=a,b`` groups).
    """

    clauses: dict[str, dict[QueryOperator, Any]] = field(default_factory=dict)
    any_of: list[Clause] = field(default_factory=list)
    all_of: list[Clause] = field(default_factory=list)

    def add(self, clause: Clause) -> None:
        self.clauses.setdefault(clause.field, {})[clause.op] = clause.value

    def set_only(self, clause: Clause) -> None:
        """Replace every existing predicate on ``clause.field`` with ``clause``."""
        self.clauses[clause.field] = {clause.op: clause.value}

    def drop_field(self, name: str) -> None:
        """Remove every predicate on ``name``, including grouped ones."""
        self.clauses.pop(name, None)
        self.any_of = [c for c in self.any_of if c.field != name]
        self.all_of = [c for c in self.all_of if c.field != name]

    def constrains(self, name: str) -> bool:
        if name in self.clauses:
            return True
        return any(c.field == name for c in (*self.any_of, *self.all_of))

    def iter_clauses(self) -> list[Clause]:
        return [
            Clause(name, op, value)
            for name, ops in self.clauses.items()
            for op, value in ops.items()
        ]

    def as_mapping(self) -> dict[str, Any]:
        """Readable form: equality is a bare value, other operators ``{op: value}``."""
        out: dict[str, Any] = {}
        for name, ops in self.clauses.items():
            if set(ops) == {QueryOperator.EQ}:
                out[name] = ops[QueryOperator.EQ]
            else:
                out[name] = {op.value: value for op, value in ops.items()}
        if self.any_of:
            out[QueryOperator.OR.value] = [
                {c.field: {c.op.value: c.value}} for c in self.any_of
            ]
        if self.all_of:
            out[QueryOperator.AND.value] = [{c.field: c.value} for c in self.all_of]
        return out

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the ``{op, attr, val}`` / ``{op, conditions}`` AST."""
        conditions: list[dict[str, Any]] = [c.to_dict() for c in self.iter_clauses()]
        if self.any_of:
            conditions.append(
                {
                    "op": QueryOperator.OR.value,
                    "conditions": [c.to_dict() for c in self.any_of],
                }
            )
        conditions.extend(c.to_dict() for c in self.all_of)
        return {"op": QueryOperator.AND.value, "conditions": conditions}


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = False

    def __str__(self) -> str:
        return f"-{self.field}" if self.descending else self.field


@dataclass(frozen=True)
class OffsetPagination:
    page: int
    limit: int
    skip: int
    strategy: Literal["offset"] = "offset"

    @property
    def fetch_limit(self) -> int:
        return self.limit


@dataclass(frozen=True)
class CursorPagination:
    cursor_field: str
    cursor_value: Any
    limit: int
    descending: bool = True
    cursor: str | None = None
    id_field: str = "_id"
    last_id: Any = None
    strategy: Literal["cursor"] = "cursor"

    @property
    def fetch_limit(self) -> int:
        # One extra row tells us whether another page exists.
        return self.limit + 1

    @property
    def predicate(self) -> Clause:
        op = QueryOperator.LT if self.descending else QueryOperator.GT
        return Clause(self.cursor_field, op, self.cursor_value)

    @property
    def tie_break(self) -> tuple[Clause, Clause] | None:
        """Rows equal to the bound on the cursor field, past the last identifier.

        None when the cursor field is the identifier or the token carries no
        identifier (legacy ``lastId`` values).
        """
        if self.last_id is None or self.cursor_field == self.id_field:
            return None
        op = QueryOperator.LT if self.descending else QueryOperator.GT
        return (
            Clause(self.cursor_field, QueryOperator.EQ, self.cursor_value),
            Clause(self.id_field, op, self.last_id),
        )


PaginationState = OffsetPagination | CursorPagination


@dataclass(frozen=True)
class Expansion:
    """One planned related-entity fetch."""

    path: str
    collection: str
    local_field: str
    foreign_field: str
    fields: tuple[str, ...] | None
    match: dict[str, Any]
    many: bool = False


@dataclass
class CompiledQuery:
    """Everything a storage adapter needs to run one list read.

    ``stages`` are caller-supplied aggregation stages (``$group``,
    ``$addFields`` ...) run after the filter and before paging. They come
    from server code, never from the query string.
    """

    entity: str
    collection: str
    filter: CompiledFilter
    sort: tuple[SortKey, ...]
    pagination: PaginationState
    projection: tuple[str, ...] | None = None
    search: tuple[Clause, ...] = ()
    expansions: tuple[Expansion, ...] = ()
    stages: tuple[dict[str, Any], ...] = ()

    @property
    def cursor_predicate(self) -> Clause | None:
        if isinstance(self.pagination, CursorPagination):
            return self.pagination.predicate
        return None

    @property
    def cursor_tie_break(self) -> tuple[Clause, Clause] | None:
        if isinstance(self.pagination, CursorPagination):
            return self.pagination.tie_break
        return None

    @property
    def skip(self) -> int:
        if isinstance(self.pagination, OffsetPagination):
            return self.pagination.skip
        return 0

    @property
    def fetch_limit(self) -> int:
        return self.pagination.fetch_limit

    def to_dict(self) -> dict[str, Any]:
        """Serialise for logging and audit."""
        result: dict[str, Any] = {
            "entity": self.entity,
            "filter": self.filter.as_mapping(),
            "sort": [str(k) for k in self.sort],
            "pagination": {
                "strategy": self.pagination.strategy,
                "limit": self.pagination.limit,
            },
        }
        if isinstance(self.pagination, OffsetPagination):
            result["pagination"].update(
                page=self.pagination.page, skip=self.pagination.skip
            )
        else:
            result["pagination"].update(
                cursorField=self.pagination.cursor_field,
                cursor=self.pagination.cursor,
            )
        if self.projection:
            result["projection"] = list(self.projection)
        if self.search:
            result["search"] = [c.to_dict() for c in self.search]
        if self.expansions:
            result["expansions"] = [e.path for e in self.expansions]
        if self.stages:
            result["stages"] = [next(iter(stage), None) for stage in self.stages]
        return result
