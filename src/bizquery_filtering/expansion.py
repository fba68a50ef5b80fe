"""Relation expansion — ``populate=customer,items.product`` -> expansion plan."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from .coercion import coerce
from .compiled import Expansion
from .exceptions import RelationNotAllowedError
from .syntax import split_values

if TYPE_CHECKING:
    from .context import SecurityContext
    from .schema import RelationSpec


def compile_expansions(
    requested: Any,
    relations: Mapping[str, RelationSpec],
    security_context: SecurityContext | None = None,
) -> tuple[Expansion, ...]:
    """Resolve requested paths against the entity's relation map.

    A relation whose target schema declares the tenant field gets the
    tenant constraint in its match filter, overriding whatever the
    relation definition put there.
    """
    paths = list(dict.fromkeys(split_values(requested))) if requested else []
    unknown = [p for p in paths if p not in relations]
    if unknown:
        raise RelationNotAllowedError(
            f"Cannot populate: {', '.join(unknown)}",
            parameter="populate",
            constraint="allowed_relations",
            details={"paths": unknown, "allowed": sorted(relations)},
        )
    return tuple(_plan(relations[p], security_context) for p in paths)


def _plan(spec: RelationSpec, security_context: SecurityContext | None) -> Expansion:
    match: dict[str, Any] = dict(spec.match)
    target = spec.target_schema
    if (
        security_context is not None
        and security_context.is_tenant_scoped
        and target is not None
        and security_context.organization_scope_field in target
    ):
        field = security_context.organization_scope_field
        match[field] = coerce(security_context.tenant_id, target.type_of(field))
    return Expansion(
        path=spec.path,
        collection=spec.collection,
        local_field=spec.source_field,
        foreign_field=spec.foreign_field,
        fields=tuple(spec.fields) if spec.fields is not None else None,
        match=match,
        many=spec.many,
    )
