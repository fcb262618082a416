from __future__ import annotations

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.domain.models import Permission, Role, RolePageAction, RolePermission, User, UserRole
from adminpanel.persistence.guards import not_deleted


async def get_role(session: AsyncSession, *, role_id: int) -> Role | None:
    result = await session.execute(select(Role).where(not_deleted(Role), Role.id == role_id))
    return result.scalar_one_or_none()


async def get_role_by_name(session: AsyncSession, *, name: str) -> Role | None:
    result = await session.execute(select(Role).where(not_deleted(Role), Role.name == name))
    return result.scalar_one_or_none()


async def name_exists(session: AsyncSession, *, name: str, exclude_role_id: int | None = None) -> bool:
    stmt = select(Role.id).where(not_deleted(Role), func.lower(Role.name) == name.strip().lower())
    if exclude_role_id is not None:
        stmt = stmt.where(Role.id != exclude_role_id)
    result = await session.execute(stmt.limit(1))
    return result.scalar_one_or_none() is not None


async def list_roles(
    session: AsyncSession,
    *,
    search: str | None = None,
    is_active: bool | None = None,
) -> list[Role]:
    stmt = select(Role).where(not_deleted(Role))
    if search:
        pattern = f"%{search.strip().lower()}%"
        stmt = stmt.where(or_(func.lower(Role.name).like(pattern), func.lower(Role.description).like(pattern)))
    if is_active is not None:
        stmt = stmt.where(Role.is_active.is_(is_active))
    result = await session.execute(stmt.order_by(Role.name, Role.id))
    return list(result.scalars().all())


async def existing_role_ids(session: AsyncSession, *, role_ids: list[int]) -> set[int]:
    if not role_ids:
        return set()
    result = await session.execute(select(Role.id).where(not_deleted(Role), Role.id.in_(set(role_ids))))
    return set(result.scalars().all())


async def count_role_users(session: AsyncSession, *, role_id: int) -> int:
    # Soft-deleted users no longer block deleting their roles.
    result = await session.execute(
        select(func.count())
        .select_from(UserRole)
        .join(User, User.id == UserRole.user_id)
        .where(UserRole.role_id == role_id, not_deleted(User))
    )
    return int(result.scalar_one())


async def count_role_permissions(session: AsyncSession, *, role_id: int) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(RolePermission)
        .where(RolePermission.role_id == role_id, RolePermission.is_granted.is_(True))
    )
    return int(result.scalar_one())


async def list_role_permissions(session: AsyncSession, *, role_id: int) -> list[RolePermission]:
    result = await session.execute(
        select(RolePermission)
        .join(Permission, Permission.id == RolePermission.permission_id)
        .where(RolePermission.role_id == role_id, not_deleted(Permission))
        .order_by(Permission.module, Permission.display_order, Permission.id)
    )
    return list(result.scalars().all())


async def replace_role_permissions(
    session: AsyncSession,
    *,
    role_id: int,
    grants: dict[int, bool],
) -> None:
    # Set-replace; grants maps permission id to its is_granted flag.
    await session.execute(delete(RolePermission).where(RolePermission.role_id == role_id))
    for permission_id in sorted(grants):
        session.add(RolePermission(role_id=role_id, permission_id=permission_id, is_granted=grants[permission_id]))
    await session.flush()


async def list_role_page_actions(session: AsyncSession, *, role_id: int) -> list[RolePageAction]:
    result = await session.execute(
        select(RolePageAction).where(RolePageAction.role_id == role_id).order_by(RolePageAction.page_action_id)
    )
    return list(result.scalars().all())


async def replace_role_page_actions(
    session: AsyncSession,
    *,
    role_id: int,
    grants: dict[int, bool],
) -> None:
    # Set-replace; grants maps page action id to its is_granted flag.
    await session.execute(delete(RolePageAction).where(RolePageAction.role_id == role_id))
    for page_action_id in sorted(grants):
        session.add(RolePageAction(role_id=role_id, page_action_id=page_action_id, is_granted=grants[page_action_id]))
    await session.flush()
