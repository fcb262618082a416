from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.core.context import RequestContext
from adminpanel.domain.models import AuditLog
from adminpanel.persistence.guards import tenant_predicate


async def list_audit_logs(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    entity_name: str | None = None,
    entity_id: str | None = None,
    user_id: int | None = None,
    action: str | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[AuditLog]:
    # Scope all audit queries to the caller's tenant to prevent cross-tenant leakage.
    stmt = select(AuditLog).where(tenant_predicate(AuditLog, ctx))
    if entity_name:
        stmt = stmt.where(AuditLog.entity_name == entity_name)
    if entity_id:
        stmt = stmt.where(AuditLog.entity_id == entity_id)
    if user_id is not None:
        stmt = stmt.where(AuditLog.user_id == user_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if created_from:
        stmt = stmt.where(AuditLog.created_at >= created_from)
    if created_to:
        stmt = stmt.where(AuditLog.created_at <= created_to)

    stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    stmt = stmt.offset(offset).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_audit_log(session: AsyncSession, *, ctx: RequestContext, audit_log_id: int) -> AuditLog | None:
    result = await session.execute(
        select(AuditLog).where(AuditLog.id == audit_log_id, tenant_predicate(AuditLog, ctx))
    )
    return result.scalar_one_or_none()
