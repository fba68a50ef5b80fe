"""Mongo query builder from a compiled list query."""

from __future__ import annotations

from typing import Any

from bizquery_filtering.compiled import (
    Clause,
    CompiledFilter,
    CompiledQuery,
    CursorPagination,
    Expansion,
    QueryOperator,
    SortKey,
)

from .exceptions import MongoQueryError
from .operators import compile_null, compile_standard, compile_string

_COMPILERS = [
    compile_standard,
    compile_string,
    compile_null,
]


def _compile_operator(op: QueryOperator, val: Any) -> dict[str, Any]:
    for compiler in _COMPILERS:
        result = compiler(op, val)
        if result is not None:
            return result
    raise MongoQueryError(f"Operator {op.value} has no MongoDB translation")


def _compile_field(ops: dict[QueryOperator, Any]) -> Any:
    """``{EQ: "a"}`` -> ``"a"``; ``{GTE: 1, LTE: 5}`` -> ``{"$gte": 1, "$lte": 5}``."""
    if set(ops) == {QueryOperator.EQ}:
        value = ops[QueryOperator.EQ]
        # A literal dict would be read as an embedded-document match.
        return {"$eq": value} if isinstance(value, dict) else value
    doc: dict[str, Any] = {}
    for op, val in ops.items():
        doc.update(_compile_operator(op, val))
    return doc


def _compile_clause(clause: Clause) -> dict[str, Any]:
    if clause.op is QueryOperator.TEXT:
        return {"$text": {"$search": clause.value}}
    return {clause.field: _compile_operator(clause.op, clause.value)}


class MongoQueryBuilder:
    """Translates :class:`CompiledQuery` into MongoDB filter, sort, projection
    and aggregation stages. Used by both executors."""

    def build_filter(self, compiled: CompiledFilter) -> dict[str, Any]:
        doc: dict[str, Any] = {
            name: _compile_field(ops) for name, ops in compiled.clauses.items()
        }
        if compiled.any_of:
            doc["$or"] = [_compile_clause(c) for c in compiled.any_of]
        if compiled.all_of:
            doc["$and"] = [_compile_clause(c) for c in compiled.all_of]
        return doc

    def build_match(
        self, query: CompiledQuery, *, include_cursor: bool = True
    ) -> dict[str, Any]:
        """Filter, search alternatives and cursor bound, ANDed together."""
        doc = self.build_filter(query.filter)
        extra: list[dict[str, Any]] = []
        if query.search:
            extra.append({"$or": [_compile_clause(c) for c in query.search]})
        bound = self.build_cursor_bound(query) if include_cursor else None
        if bound is not None:
            extra.append(bound)
        if not extra:
            return doc
        if not doc:
            return extra[0] if len(extra) == 1 else {"$and": extra}
        return {"$and": [doc, *extra]}

    def build_cursor_bound(self, query: CompiledQuery) -> dict[str, Any] | None:
        """``{f: {$lt: v}}``, or with a tie-breaker
        ``{$or: [{f: {$lt: v}}, {f: v, _id: {$lt: id}}]}``."""
        predicate = query.cursor_predicate
        if predicate is None:
            return None
        tie_break = query.cursor_tie_break
        if tie_break is None:
            return _compile_clause(predicate)
        equal, past = tie_break
        return {
            "$or": [
                _compile_clause(predicate),
                {**_compile_clause(equal), **_compile_clause(past)},
            ]
        }

    def build_sort(self, keys: tuple[SortKey, ...] | list[SortKey]) -> list[tuple[str, int]]:
        return [(k.field, -1 if k.descending else 1) for k in keys]

    def build_project(self, query: CompiledQuery) -> dict[str, int] | None:
        """``{field: 1, ...}``; expansion sources and cursor fields are always kept.

        None means no projection.
        """
        if not query.projection:
            return None
        fields = list(query.projection)
        for expansion in query.expansions:
            fields.extend((expansion.local_field, expansion.path))
        if isinstance(query.pagination, CursorPagination):
            # The next cursor is read from the last returned row.
            fields.extend((query.pagination.cursor_field, query.pagination.id_field))
        return dict.fromkeys(fields, 1)

    def build_lookup_stages(self, expansions: tuple[Expansion, ...]) -> list[dict[str, Any]]:
        stages: list[dict[str, Any]] = []
        for expansion in expansions:
            lookup: dict[str, Any] = {
                "from": expansion.collection,
                "localField": expansion.local_field,
                "foreignField": expansion.foreign_field,
                "as": expansion.path,
            }
            sub_pipeline: list[dict[str, Any]] = []
            if expansion.match:
                sub_pipeline.append({"$match": dict(expansion.match)})
            if expansion.fields:
                sub_pipeline.append({"$project": dict.fromkeys(expansion.fields, 1)})
            if sub_pipeline:
                lookup["pipeline"] = sub_pipeline
            stages.append({"$lookup": lookup})
            if not expansion.many:
                stages.append(
                    {
                        "$unwind": {
                            "path": f"${expansion.path}",
                            "preserveNullAndEmptyArrays": True,
                        }
                    }
                )
        return stages

    def build_pipeline(self, query: CompiledQuery) -> list[dict[str, Any]]:
        """``$match``, ``$sort``, ``$skip``, ``$limit``, ``$lookup``, ``$project``.

        Caller stages run between the filter and paging; the cursor bound
        then applies to their output. Lookups run after paging so only the
        returned page is joined.
        """
        pipeline = self._filter_stages(query, include_cursor=not query.stages)
        if query.stages:
            bound = self.build_cursor_bound(query)
            if bound is not None:
                pipeline.append({"$match": bound})
        sort_list = self.build_sort(query.sort)
        if sort_list:
            pipeline.append({"$sort": dict(sort_list)})
        if query.skip:
            pipeline.append({"$skip": query.skip})
        pipeline.append({"$limit": query.fetch_limit})
        pipeline.extend(self.build_lookup_stages(query.expansions))
        proj = self.build_project(query)
        if proj:
            pipeline.append({"$project": proj})
        return pipeline

    def build_count_pipeline(self, query: CompiledQuery) -> list[dict[str, Any]]:
        stages = self._filter_stages(query, include_cursor=False)
        stages.append({"$count": "total"})
        return stages

    def _filter_stages(
        self, query: CompiledQuery, *, include_cursor: bool
    ) -> list[dict[str, Any]]:
        match = self.build_match(query, include_cursor=include_cursor)
        stages: list[dict[str, Any]] = [{"$match": match}] if match else []
        stages.extend(dict(stage) for stage in query.stages)
        return stages

