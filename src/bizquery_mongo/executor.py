"""Storage executors: a simple filtered read and a multi-stage aggregation.

Both consume the same :class:`CompiledQuery` and differ only in how they
talk to MongoDB. Driver failures surface as ``StorageError`` subclasses.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from bson.errors import InvalidDocument
from pymongo.errors import PyMongoError

from bizquery_core.ports.query_executor import IQueryExecutor

from .exceptions import MongoPersistenceError, MongoQueryError
from .query_builder import MongoQueryBuilder

if TYPE_CHECKING:
    from bizquery_filtering.compiled import CompiledQuery, Expansion

    from .connection import MongoConnectionManager

logger = logging.getLogger("bizquery.mongo")


@contextmanager
def _storage_errors(operation: str, collection: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as e:
        raise MongoPersistenceError(f"{operation} on {collection!r} failed: {e}") from e
    except (InvalidDocument, OverflowError) as e:
        # The driver could not encode the query document.
        raise MongoQueryError(f"{operation} on {collection!r} failed: {e}") from e


class _MongoExecutor(IQueryExecutor):
    def __init__(
        self,
        connection: MongoConnectionManager,
        *,
        query_builder: MongoQueryBuilder | None = None,
    ) -> None:
        self._connection = connection
        self._query_builder = query_builder or MongoQueryBuilder()

    def _collection(self, name: str) -> Any:
        return self._connection.database.get_collection(name)

    async def _explain(
        self, command: dict[str, Any], collection: str, verbosity: str
    ) -> dict[str, Any]:
        with _storage_errors("explain", collection):
            return dict(
                await self._connection.database.command(
                    {"explain": command, "verbosity": verbosity}
                )
            )


class MongoFindExecutor(_MongoExecutor):
    """``find()`` with filter, sort, skip, limit and projection.

    Relations are expanded with one follow-up ``$in`` read per relation,
    filtered by the relation's match (which carries the tenant constraint).
    """

    async def fetch(self, query: CompiledQuery) -> list[dict[str, Any]]:
        _reject_stages(query)
        coll = self._collection(query.collection)
        match = self._query_builder.build_match(query)
        sort_list = self._query_builder.build_sort(query.sort)
        with _storage_errors("find", query.collection):
            cursor = coll.find(
                match,
                self._query_builder.build_project(query),
                sort=sort_list or None,
                skip=query.skip,
                limit=query.fetch_limit,
            )
            docs = [doc async for doc in cursor]
            for expansion in query.expansions:
                await self._expand(docs, expansion)
        return docs

    async def count(self, query: CompiledQuery) -> int:
        _reject_stages(query)
        coll = self._collection(query.collection)
        match = self._query_builder.build_match(query, include_cursor=False)
        with _storage_errors("count", query.collection):
            return int(await coll.count_documents(match))

    async def explain(self, query: CompiledQuery) -> dict[str, Any]:
        """Plan and execution statistics of the primary read."""
        _reject_stages(query)
        command: dict[str, Any] = {
            "find": query.collection,
            "filter": self._query_builder.build_match(query),
            "limit": query.fetch_limit,
        }
        sort_list = self._query_builder.build_sort(query.sort)
        if sort_list:
            command["sort"] = dict(sort_list)
        if query.skip:
            command["skip"] = query.skip
        projection = self._query_builder.build_project(query)
        if projection:
            command["projection"] = projection
        return await self._explain(command, query.collection, "executionStats")

    async def _expand(self, docs: list[dict[str, Any]], expansion: Expansion) -> None:
        refs: list[Any] = []
        for doc in docs:
            value = _get_path(doc, expansion.local_field)
            if isinstance(value, list):
                refs.extend(value)
            elif value is not None:
                refs.append(value)
        if not refs:
            return
        criteria = {**expansion.match, expansion.foreign_field: {"$in": refs}}
        projection = None
        if expansion.fields:
            projection = dict.fromkeys((*expansion.fields, expansion.foreign_field), 1)
        coll = self._collection(expansion.collection)
        related: dict[Any, dict[str, Any]] = {}
        async for target in coll.find(criteria, projection):
            related[_get_path(target, expansion.foreign_field)] = target
        logger.debug(
            "Expanded %s: %d references, %d found", expansion.path, len(refs), len(related)
        )
        for doc in docs:
            value = _get_path(doc, expansion.local_field)
            if expansion.many:
                items = value if isinstance(value, list) else [value]
                expanded: Any = [related[v] for v in items if v in related]
            else:
                expanded = related.get(value) if value is not None else None
            _set_path(doc, expansion.path, expanded)


class MongoAggregateExecutor(_MongoExecutor):
    """Single ``aggregate()`` pipeline; relations become ``$lookup`` stages."""

    async def fetch(self, query: CompiledQuery) -> list[dict[str, Any]]:
        coll = self._collection(query.collection)
        pipeline = self._query_builder.build_pipeline(query)
        with _storage_errors("aggregate", query.collection):
            cursor = coll.aggregate(pipeline)
            return [doc async for doc in cursor]

    async def count(self, query: CompiledQuery) -> int:
        coll = self._collection(query.collection)
        pipeline = self._query_builder.build_count_pipeline(query)
        with _storage_errors("count", query.collection):
            result = [doc async for doc in coll.aggregate(pipeline)]
        return int(result[0]["total"]) if result else 0

    async def explain(self, query: CompiledQuery) -> dict[str, Any]:
        """Query plan of the aggregation pipeline."""
        command = {
            "aggregate": query.collection,
            "pipeline": self._query_builder.build_pipeline(query),
            "cursor": {},
        }
        return await self._explain(command, query.collection, "queryPlanner")


def _reject_stages(query: CompiledQuery) -> None:
    if query.stages:
        raise MongoQueryError(
            f"Aggregation stages on {query.collection!r} need MongoAggregateExecutor"
        )


def _get_path(doc: dict[str, Any], path: str) -> Any:
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _set_path(doc: dict[str, Any], path: str, value: Any) -> None:
    *parents, leaf = path.split(".")
    target = doc
    for part in parents:
        child = target.get(part)
        if not isinstance(child, dict):
            child = {}
            target[part] = child
        target = child
    target[leaf] = value
