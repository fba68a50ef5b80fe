"""QueryEngine — compile, cache-check, execute under a timeout, respond.

Flow for one request::

    validate/compile -> cache lookup -> execute (fetch [+ count]) under
    timeout -> transform -> cache store -> ResultEnvelope

Every validation error is raised by ``compile`` before the cache or the
storage collaborator is touched.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from bizquery_core.correlation import resolve_request_id
from bizquery_core.primitives.exceptions import (
    QueryTimeoutError,
    QueryValidationError,
    StorageError,
)

from .cache import QueryCache, build_cache_key
from .compiled import CompiledQuery, CursorPagination, OffsetPagination
from .config import EngineConfig
from .envelope import PaginationMeta, ResultEnvelope, ResultMetadata
from .expansion import compile_expansions
from .pagination import PaginationStrategy, compile_pagination, cursor_sort
from .parser import FilterCompiler
from .projection import compile_projection
from .query_string import encode_cursor
from .search import (
    DEFAULT_STRATEGIES,
    SearchStrategy,
    compile_search,
    resolve_strategy,
)
from .sorting import compile_sort
from .syntax import last_value, sanitize
from .telemetry import PerformanceRecorder, log_execution

if TYPE_CHECKING:
    from bizquery_core.ports.cache import ICacheService
    from bizquery_core.ports.query_executor import IQueryExecutor

    from .context import SecurityContext
    from .schema import EntityDefinition

logger = logging.getLogger("bizquery.engine")

Rows = list[Any]
Transform = Callable[[Rows], Rows]


class QueryEngine:
    """
    Generic list-query engine shared by every list/report endpoint.

    One engine is built per process with its storage executor and
    (optionally) a cache service; entity definitions are passed per call.

    Usage::

        engine = QueryEngine(MongoFindExecutor(db), InMemoryCacheService())
        envelope = await engine.execute(
            {"status": "active", "sort": "-createdAt"},
            SecurityContext(tenant_id="t1", user_id="u1"),
            invoices,
        )
    """

    def __init__(
        self,
        executor: IQueryExecutor,
        cache: ICacheService | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self._executor = executor
        self._cache_service = cache
        self._config = config or EngineConfig()
        self._filters = FilterCompiler(self._config)
        self._cache = (
            QueryCache(cache, self._config.cache_ttl_seconds) if cache is not None else None
        )

    @property
    def config(self) -> EngineConfig:
        return self._config

    def with_config(self, **overrides: Any) -> QueryEngine:
        """Engine sharing executor and cache but with some options replaced."""
        return QueryEngine(
            self._executor,
            self._cache_service,
            self._config.with_overrides(**overrides),
        )

    # -- compilation ---------------------------------------------------------

    def compile(
        self,
        query_spec: Mapping[str, Any],
        security_context: SecurityContext | None,
        entity: EntityDefinition,
        *,
        base_filter: Mapping[str, Any] | None = None,
        strategy: PaginationStrategy = "offset",
        search_strategies: Iterable[SearchStrategy | str] | None = None,
        stages: Sequence[Mapping[str, Any]] = (),
        performance: PerformanceRecorder | None = None,
    ) -> CompiledQuery:
        """Build the :class:`CompiledQuery` without executing it.

        ``stages`` are aggregation stages supplied by the calling endpoint
        (report grouping and the like); only the aggregate executor runs them.
        """
        config = self._config
        recorder = performance or PerformanceRecorder()
        allowed_sort = entity.allowed_sort_fields or config.allowed_sort_fields

        with recorder.stage("filter") as stage:
            compiled_filter = self._filters.compile(
                query_spec,
                security_context,
                schema=entity.schema,
                base_filter=base_filter,
                soft_delete_field=entity.soft_delete_field,
            )
            stage["conditions"] = {
                "match": len(compiled_filter.clauses),
                "or": len(compiled_filter.any_of),
                "and": len(compiled_filter.all_of),
            }

        with recorder.stage("search") as stage:
            term = sanitize(last_value(query_spec.get("search")), config.forbidden_tokens)
            search = compile_search(
                term if isinstance(term, str) else None,
                search_strategies or DEFAULT_STRATEGIES,
                entity.search_fields,
                text_index=entity.text_index,
            )
            stage["alternatives"] = len(search)

        with recorder.stage("sort") as stage:
            sort = compile_sort(
                query_spec.get("sort"),
                allowed_sort,
                id_field=entity.id_field,
                default=entity.default_sort or config.default_sort,
            )
            stage["keys"] = len(sort)

        with recorder.stage("pagination") as stage:
            pagination = compile_pagination(
                query_spec,
                config,
                strategy=strategy,
                sort=sort,
                schema=entity.schema,
                id_field=entity.id_field,
                allowed_fields=allowed_sort,
            )
            if isinstance(pagination, CursorPagination):
                sort = cursor_sort(pagination, entity.id_field)
            stage["strategy"] = pagination.strategy
            stage["limit"] = pagination.limit

        with recorder.stage("projection") as stage:
            projection = compile_projection(
                query_spec.get("fields") or query_spec.get("select"),
                entity.allowed_fields,
                safe_fields=config.safe_projection_fields,
            )
            stage["fields"] = len(projection or ())

        with recorder.stage("populate") as stage:
            expansions = compile_expansions(
                query_spec.get("populate"), entity.relations, security_context
            )
            stage["populations"] = len(expansions)

        return CompiledQuery(
            entity=entity.name,
            collection=entity.collection,
            filter=compiled_filter,
            sort=sort,
            pagination=pagination,
            projection=projection,
            search=search,
            expansions=expansions,
            stages=tuple(dict(step) for step in stages),
        )

    async def explain(
        self,
        query_spec: Mapping[str, Any],
        security_context: SecurityContext | None,
        entity: EntityDefinition,
        *,
        base_filter: Mapping[str, Any] | None = None,
        strategy: PaginationStrategy = "offset",
        search_strategies: Iterable[SearchStrategy | str] | None = None,
        stages: Sequence[Mapping[str, Any]] = (),
    ) -> dict[str, Any]:
        """Compile the query and return the storage collaborator's plan for it."""
        compiled = self.compile(
            query_spec,
            security_context,
            entity,
            base_filter=base_filter,
            strategy=strategy,
            search_strategies=search_strategies,
            stages=stages,
        )
        return await self._executor.explain(compiled)

    # -- execution -----------------------------------------------------------

    async def execute(
        self,
        query_spec: Mapping[str, Any],
        security_context: SecurityContext | None,
        entity: EntityDefinition,
        *,
        base_filter: Mapping[str, Any] | None = None,
        strategy: PaginationStrategy = "offset",
        search_strategies: Iterable[SearchStrategy | str] | None = None,
        stages: Sequence[Mapping[str, Any]] = (),
        request_id: str | None = None,
        use_cache: bool = True,
        cache_scope: str | None = None,
        transform: Transform | None = None,
    ) -> ResultEnvelope:
        """Run one list query and wrap the rows in a :class:`ResultEnvelope`.

        Cached rows are stored after ``transform`` ran, and the key does not
        see the callable. Endpoints sharing an entity name but applying
        different transforms must pass distinct ``cache_scope`` values.

        Raises:
            QueryValidationError: a parameter broke a rule (no I/O happened).
            QueryTimeoutError: storage did not answer within ``timeout_ms``.
            StorageError: the storage collaborator failed; re-raised as is.
        """
        request_id = resolve_request_id(request_id)
        if search_strategies is not None:
            search_strategies = tuple(search_strategies)
        recorder = PerformanceRecorder()
        outcome = "success"
        cache_hit = False
        try:
            compiled = self.compile(
                query_spec,
                security_context,
                entity,
                base_filter=base_filter,
                strategy=strategy,
                search_strategies=search_strategies,
                stages=stages,
                performance=recorder,
            )

            key: str | None = None
            if self._cache is not None and use_cache and self._config.enable_cache:
                key = build_cache_key(
                    entity=entity.name,
                    query_spec=query_spec,
                    base_filter=base_filter,
                    user_id=security_context.user_id if security_context else None,
                    tenant_id=security_context.tenant_id if security_context else None,
                    strategy=strategy,
                    prefix=self._config.cache_key_prefix,
                    extra={
                        "search": [
                            resolve_strategy(s).value for s in search_strategies or ()
                        ],
                        "stages": list(compiled.stages),
                        "scope": cache_scope,
                    },
                )
                with recorder.stage("cache") as stage:
                    entry = await self._cache.lookup(key)
                    stage["hit"] = entry is not None
                if entry is not None:
                    cache_hit = True
                    return self._envelope(
                        entry.payload["data"],
                        PaginationMeta.model_validate(entry.payload["pagination"]),
                        recorder,
                        request_id,
                        cache_hit=True,
                        query_count=0,
                        cached_at=entry.cached_at,
                    )

            with recorder.stage("execute") as stage:
                rows, total = await self._run_with_timeout(compiled, request_id)
                stage["rows"] = len(rows)
            rows, pagination = self._paginate(compiled, rows, total)
            if transform is not None:
                rows = transform(rows)

            if key is not None and self._cache is not None:
                await self._cache.store(
                    key, {"data": rows, "pagination": pagination.to_dict()}
                )
            return self._envelope(
                rows,
                pagination,
                recorder,
                request_id,
                query_count=2 if total is not None else 1,
            )
        except QueryValidationError as e:
            outcome = "rejected"
            logger.info(
                "Rejected query for %s (request_id=%s): %s", entity.name, request_id, e.message
            )
            raise
        except QueryTimeoutError:
            outcome = "timeout"
            logger.warning(
                "Query on %s exceeded %d ms (request_id=%s)",
                entity.name,
                self._config.timeout_ms,
                request_id,
            )
            raise
        except StorageError:
            outcome = "error"
            logger.error(
                "Storage read failed for %s (request_id=%s)",
                entity.name,
                request_id,
                exc_info=True,
            )
            raise
        except Exception:
            outcome = "error"
            raise
        finally:
            log_execution(
                entity=entity.name,
                outcome=outcome,
                duration_ms=recorder.elapsed_ms,
                cache_hit=cache_hit,
                request_id=request_id,
            )

    async def _run_with_timeout(
        self, compiled: CompiledQuery, request_id: str
    ) -> tuple[Rows, int | None]:
        task = asyncio.ensure_future(self._run(compiled))
        timeout_ms = self._config.timeout_ms
        if not timeout_ms:
            return await task
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task not in done:
            # Abandon the read; its eventual outcome is consumed and dropped.
            task.cancel()
            task.add_done_callback(_consume_result)
            raise QueryTimeoutError(timeout_ms, request_id=request_id)
        return task.result()

    async def _run(self, compiled: CompiledQuery) -> tuple[Rows, int | None]:
        if isinstance(compiled.pagination, OffsetPagination):
            rows, total = await asyncio.gather(
                self._executor.fetch(compiled), self._executor.count(compiled)
            )
            return rows, total
        return await self._executor.fetch(compiled), None

    def _paginate(
        self, compiled: CompiledQuery, rows: Rows, total: int | None
    ) -> tuple[Rows, PaginationMeta]:
        state = compiled.pagination
        if isinstance(state, CursorPagination):
            has_next = len(rows) > state.limit
            rows = rows[: state.limit]
            next_cursor = None
            if has_next and rows:
                last = rows[-1]
                last_id = None
                if state.cursor_field != state.id_field:
                    last_id = _field_value(last, state.id_field)
                next_cursor = encode_cursor(_field_value(last, state.cursor_field), last_id)
            return rows, PaginationMeta(
                strategy=state.strategy,
                limit=state.limit,
                cursor=state.cursor,
                next_cursor=next_cursor,
                has_next=has_next,
                has_prev=True,
            )
        total = total or 0
        pages = math.ceil(total / state.limit)
        return rows, PaginationMeta(
            strategy=state.strategy,
            limit=state.limit,
            page=state.page,
            total=total,
            pages=pages,
            has_next=state.page < pages,
            has_prev=state.page > 1,
        )

    def _envelope(
        self,
        rows: Rows,
        pagination: PaginationMeta,
        recorder: PerformanceRecorder,
        request_id: str,
        *,
        cache_hit: bool = False,
        query_count: int,
        cached_at: str | None = None,
    ) -> ResultEnvelope:
        return ResultEnvelope(
            data=rows,
            pagination=pagination,
            metadata=ResultMetadata(
                execution_time_ms=recorder.elapsed_ms,
                cache_hit=cache_hit,
                request_id=request_id,
                query_count=query_count,
                cached_at=cached_at,
                performance=recorder.stages,
            ),
        )


def _field_value(row: Any, path: str) -> Any:
    value = row
    for part in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def _consume_result(task: asyncio.Future[Any]) -> None:
    if not task.cancelled():
        task.exception()
