from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.domain.models import Permission
from adminpanel.persistence.guards import not_deleted


async def list_permissions(session: AsyncSession, *, active_only: bool = False) -> list[Permission]:
    stmt = select(Permission).where(not_deleted(Permission))
    if active_only:
        stmt = stmt.where(Permission.is_active.is_(True))
    result = await session.execute(stmt.order_by(Permission.module, Permission.display_order, Permission.id))
    return list(result.scalars().all())


async def get_permission(session: AsyncSession, *, permission_id: int) -> Permission | None:
    result = await session.execute(
        select(Permission).where(not_deleted(Permission), Permission.id == permission_id)
    )
    return result.scalar_one_or_none()


async def get_permission_by_code(session: AsyncSession, *, code: str) -> Permission | None:
    result = await session.execute(select(Permission).where(not_deleted(Permission), Permission.code == code))
    return result.scalar_one_or_none()


async def existing_permission_ids(session: AsyncSession, *, permission_ids: list[int]) -> set[int]:
    if not permission_ids:
        return set()
    result = await session.execute(
        select(Permission.id).where(not_deleted(Permission), Permission.id.in_(set(permission_ids)))
    )
    return set(result.scalars().all())
