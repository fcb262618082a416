from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.domain.models import Action, PageAction
from adminpanel.persistence.guards import not_deleted


async def get_action(session: AsyncSession, *, action_id: int) -> Action | None:
    result = await session.execute(select(Action).where(not_deleted(Action), Action.id == action_id))
    return result.scalar_one_or_none()


async def code_exists(session: AsyncSession, *, code: str, exclude_action_id: int | None = None) -> bool:
    stmt = select(Action.id).where(not_deleted(Action), func.lower(Action.code) == code.lower())
    if exclude_action_id is not None:
        stmt = stmt.where(Action.id != exclude_action_id)
    result = await session.execute(stmt.limit(1))
    return result.scalar_one_or_none() is not None


async def list_actions(session: AsyncSession, *, is_active: bool | None = None) -> list[Action]:
    stmt = select(Action).where(not_deleted(Action))
    if is_active is not None:
        stmt = stmt.where(Action.is_active.is_(is_active))
    result = await session.execute(stmt.order_by(Action.display_order, Action.id))
    return list(result.scalars().all())


async def existing_action_ids(session: AsyncSession, *, action_ids: list[int]) -> set[int]:
    if not action_ids:
        return set()
    result = await session.execute(select(Action.id).where(not_deleted(Action), Action.id.in_(set(action_ids))))
    return set(result.scalars().all())


async def count_page_actions(session: AsyncSession, *, action_id: int) -> int:
    # Any page still offering the action keeps it from being deleted.
    result = await session.execute(
        select(func.count()).select_from(PageAction).where(PageAction.action_id == action_id)
    )
    return int(result.scalar_one())
