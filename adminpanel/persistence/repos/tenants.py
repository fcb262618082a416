from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.domain.models import Tenant
from adminpanel.persistence.guards import not_deleted


async def get_tenant(session: AsyncSession, *, tenant_id: int, active_only: bool = False) -> Tenant | None:
    stmt = select(Tenant).where(not_deleted(Tenant), Tenant.id == tenant_id)
    if active_only:
        stmt = stmt.where(Tenant.is_active.is_(True))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_tenant_by_name(session: AsyncSession, *, name: str) -> Tenant | None:
    result = await session.execute(select(Tenant).where(not_deleted(Tenant), Tenant.name == name))
    return result.scalar_one_or_none()
