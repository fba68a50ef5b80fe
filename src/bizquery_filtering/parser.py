"""FilterCompiler — query params -> security-enforced CompiledFilter."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from .coercion import coerce
from .compiled import LIST_OPERATORS, Clause, CompiledFilter, QueryOperator
from .config import EngineConfig
from .exceptions import FilterParseError, OperatorNotAllowedError, OrGroupLimitError
from .schema import FieldSchema, FieldType
from .syntax import (
    AND_SUFFIX,
    OR_SUFFIX,
    last_value,
    parse_key,
    resolve_operator,
    sanitize,
    split_values,
)

if TYPE_CHECKING:
    from .context import SecurityContext

logger = logging.getLogger("bizquery.filter")

# Accepted operator keys inside caller-supplied base filters.
_BASE_OPERATORS: dict[str, QueryOperator] = {
    **{op.value: op for op in QueryOperator},
    **{f"${op.value}": op for op in QueryOperator},
}


class FilterCompiler:
    """Compile a QuerySpec into a :class:`CompiledFilter`.

    Processing order: strip reserved keys, sanitize values, parse keys,
    merge base filter (base wins), default soft-delete, tenant isolation.
    Tenant isolation is applied last and cannot be influenced by the query.
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        self._config = config or EngineConfig()

    def compile(
        self,
        query_spec: Mapping[str, Any],
        security_context: SecurityContext | None = None,
        *,
        schema: FieldSchema | None = None,
        base_filter: Mapping[str, Any] | None = None,
        soft_delete_field: str | None = None,
    ) -> CompiledFilter:
        schema = schema or FieldSchema()
        client = self._compile_client(self._data_params(query_spec), schema)
        compiled = self._merge_base(client, base_filter or {})
        if soft_delete_field and not compiled.constrains(soft_delete_field):
            compiled.add(Clause(soft_delete_field, QueryOperator.NE, True))
        if security_context is not None and security_context.is_tenant_scoped:
            self._enforce_tenant(compiled, security_context, schema)
        return compiled

    # -- steps ---------------------------------------------------------------

    def _data_params(self, query_spec: Mapping[str, Any]) -> dict[str, Any]:
        reserved = set(self._config.reserved_keys)
        tokens = self._config.forbidden_tokens
        return {
            key: sanitize(value, tokens)
            for key, value in query_spec.items()
            if key not in reserved
        }

    def _compile_client(
        self, params: Mapping[str, Any], schema: FieldSchema
    ) -> CompiledFilter:
        compiled = CompiledFilter()
        for key, value in params.items():
            field, suffix = parse_key(key)
            field_type = schema.type_of(field)
            if suffix == OR_SUFFIX:
                self._add_or_group(compiled, key, field, value, field_type)
            elif suffix == AND_SUFFIX:
                for item in split_values(value):
                    compiled.all_of.append(
                        Clause(field, QueryOperator.EQ, coerce(item, field_type))
                    )
            elif suffix is not None:
                op = self._operator(key, suffix)
                compiled.add(Clause(field, op, self._operand(key, op, value, field_type)))
            elif isinstance(value, (list, tuple)) and len(value) > 1:
                compiled.add(Clause(field, QueryOperator.IN, coerce(list(value), field_type)))
            else:
                compiled.add(
                    Clause(field, QueryOperator.EQ, coerce(last_value(value), field_type))
                )
        return compiled

    def _add_or_group(
        self,
        compiled: CompiledFilter,
        key: str,
        field: str,
        value: Any,
        field_type: FieldType | None,
    ) -> None:
        values = split_values(value)
        limit = self._config.max_or_clauses
        if len(values) > limit:
            raise OrGroupLimitError(
                f"Too many OR values for {field!r}. Max: {limit}",
                parameter=key,
                constraint="max_or_clauses",
                details={"provided": len(values), "allowed": limit},
            )
        if len(compiled.any_of) >= limit:
            raise OrGroupLimitError(
                f"Too many OR conditions. Max: {limit}",
                parameter=key,
                constraint="max_or_clauses",
                details={"provided": len(compiled.any_of) + 1, "allowed": limit},
            )
        if values:
            compiled.any_of.append(
                Clause(field, QueryOperator.IN, coerce(values, field_type))
            )

    def _operator(self, key: str, suffix: str) -> QueryOperator:
        op = resolve_operator(suffix)
        if op is None or op not in self._config.allowed_operators:
            raise OperatorNotAllowedError(
                f"Operator {suffix} not allowed",
                parameter=key,
                constraint="allowed_operators",
                details={
                    "operator": suffix,
                    "allowed": sorted(o.value for o in self._config.allowed_operators),
                },
            )
        return op

    def _operand(
        self, key: str, op: QueryOperator, value: Any, field_type: FieldType | None
    ) -> Any:
        if op in LIST_OPERATORS:
            return coerce(split_values(value), field_type)
        scalar = last_value(value)
        if op is QueryOperator.EXISTS:
            return coerce(scalar, FieldType.BOOLEAN)
        if op is QueryOperator.REGEX:
            pattern = "" if scalar is None else str(scalar)
            try:
                re.compile(pattern)
            except re.error as e:
                raise FilterParseError(
                    f"Invalid regular expression: {e}",
                    parameter=key,
                    constraint="regex_syntax",
                ) from e
            return pattern
        return coerce(scalar, field_type)

    def _merge_base(
        self, client: CompiledFilter, base_filter: Mapping[str, Any]
    ) -> CompiledFilter:
        if not base_filter:
            return client
        merged = CompiledFilter()
        for field, spec in base_filter.items():
            for clause in _base_clauses(field, spec):
                merged.add(clause)
        for clause in client.iter_clauses():
            if clause.field in base_filter:
                logger.debug("Base filter wins over client key %r", clause.field)
                continue
            merged.add(clause)
        merged.any_of = [c for c in client.any_of if c.field not in base_filter]
        merged.all_of = [c for c in client.all_of if c.field not in base_filter]
        return merged

    def _enforce_tenant(
        self,
        compiled: CompiledFilter,
        security_context: SecurityContext,
        schema: FieldSchema,
    ) -> None:
        tenant_field = security_context.organization_scope_field
        if compiled.constrains(tenant_field):
            logger.info(
                "Replacing caller-supplied constraint on tenant field %r", tenant_field
            )
        compiled.drop_field(tenant_field)
        tenant_value: Any = security_context.tenant_id
        field_type = schema.type_of(tenant_field)
        if field_type is not None:
            tenant_value = coerce(tenant_value, field_type)
        compiled.clauses = {
            tenant_field: {QueryOperator.EQ: tenant_value},
            **compiled.clauses,
        }


def _base_clauses(field: str, spec: Any) -> list[Clause]:
    """``{"status": "open"}`` or ``{"amount": {"$gte": 5}}`` -> clauses."""
    if isinstance(spec, Mapping) and spec and all(k in _BASE_OPERATORS for k in spec):
        return [Clause(field, _BASE_OPERATORS[k], v) for k, v in spec.items()]
    return [Clause(field, QueryOperator.EQ, spec)]


def compile_filter(
    query_spec: Mapping[str, Any],
    security_context: SecurityContext | None = None,
    schema: FieldSchema | None = None,
    *,
    base_filter: Mapping[str, Any] | None = None,
    soft_delete_field: str | None = None,
    config: EngineConfig | None = None,
) -> CompiledFilter:
    """Functional shortcut for :meth:`FilterCompiler.compile`."""
    return FilterCompiler(config).compile(
        query_spec,
        security_context,
        schema=schema,
        base_filter=base_filter,
        soft_delete_field=soft_delete_field,
    )
