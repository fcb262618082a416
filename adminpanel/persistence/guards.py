from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import true

from adminpanel.core.config import get_settings
from adminpanel.core.context import RequestContext


@dataclass(frozen=True)
class TenantPredicateError(RuntimeError):
    # Surface missing tenant predicates when guard enforcement is enabled.
    message: str


def require_tenant_id(ctx: RequestContext) -> None:
    # Only trusted system contexts may run tenant-scoped queries without a tenant in strict mode.
    settings = get_settings()
    if not settings.authz_require_tenant_predicate:
        return
    if ctx.tenant_id is None and not ctx.system:
        raise TenantPredicateError("Tenant predicate required but tenant_id is missing")


def tenant_predicate(model, ctx: RequestContext) -> object:
    # A null tenant context sees every tenant's rows; otherwise rows must match.
    require_tenant_id(ctx)
    if ctx.tenant_id is None:
        return true()
    return model.tenant_id == ctx.tenant_id


def not_deleted(model) -> object:
    # Soft-deleted rows are hidden from every default query.
    return model.is_deleted.is_(False)
