"""SecurityContext — trusted, server-derived identity that scopes every query."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class SecurityContext(BaseModel):
    """Immutable tenant/user identity injected by the authentication layer.

    Never built from the query string. When ``tenant_id`` is set, every
    compiled filter carries ``{organization_scope_field: tenant_id}``.

    Attributes:
        tenant_id: Tenant (organization) the caller acts for.
        user_id: Authenticated user; part of the cache key.
        organization_scope_field: Document field holding the tenant id.
    """

    model_config = ConfigDict(frozen=True)

    tenant_id: str | None = None
    user_id: str | None = None
    organization_scope_field: str = "tenantId"

    @property
    def is_tenant_scoped(self) -> bool:
        return bool(self.tenant_id)
