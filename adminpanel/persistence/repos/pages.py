from __future__ import annotations

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.domain.models import Action, Page, PageAction, RolePageAction
from adminpanel.persistence.guards import not_deleted


async def get_page(session: AsyncSession, *, page_id: int) -> Page | None:
    result = await session.execute(select(Page).where(not_deleted(Page), Page.id == page_id))
    return result.scalar_one_or_none()


async def url_exists(session: AsyncSession, *, url: str, exclude_page_id: int | None = None) -> bool:
    stmt = select(Page.id).where(not_deleted(Page), func.lower(Page.url) == url.lower())
    if exclude_page_id is not None:
        stmt = stmt.where(Page.id != exclude_page_id)
    result = await session.execute(stmt.limit(1))
    return result.scalar_one_or_none() is not None


async def list_pages(session: AsyncSession, *, is_active: bool | None = None) -> list[Page]:
    stmt = select(Page).where(not_deleted(Page))
    if is_active is not None:
        stmt = stmt.where(Page.is_active.is_(is_active))
    result = await session.execute(stmt.order_by(Page.display_order, Page.id))
    return list(result.scalars().all())


async def list_menu_pages(session: AsyncSession) -> list[Page]:
    # Candidate menu entries: live, active and flagged for navigation.
    result = await session.execute(
        select(Page)
        .where(not_deleted(Page), Page.is_active.is_(True), Page.is_in_menu.is_(True))
        .order_by(Page.display_order, Page.id)
    )
    return list(result.scalars().all())


async def list_parent_links(session: AsyncSession) -> dict[int, int | None]:
    # page id -> parent id for every live page, used for descendant walks.
    result = await session.execute(select(Page.id, Page.parent_id).where(not_deleted(Page)))
    return {row.id: row.parent_id for row in result}


async def count_children(session: AsyncSession, *, page_id: int) -> int:
    result = await session.execute(
        select(func.count()).select_from(Page).where(not_deleted(Page), Page.parent_id == page_id)
    )
    return int(result.scalar_one())


async def list_page_actions(session: AsyncSession, *, page_ids: list[int] | None = None) -> list[tuple[PageAction, Action]]:
    # Page actions joined to their live action verbs, ordered for display.
    stmt = (
        select(PageAction, Action)
        .join(Action, Action.id == PageAction.action_id)
        .where(not_deleted(Action))
    )
    if page_ids is not None:
        if not page_ids:
            return []
        stmt = stmt.where(PageAction.page_id.in_(set(page_ids)))
    result = await session.execute(stmt.order_by(PageAction.page_id, Action.display_order, Action.id))
    return [(row[0], row[1]) for row in result.all()]


async def existing_page_action_ids(session: AsyncSession, *, page_action_ids: list[int]) -> set[int]:
    if not page_action_ids:
        return set()
    result = await session.execute(select(PageAction.id).where(PageAction.id.in_(set(page_action_ids))))
    return set(result.scalars().all())


async def delete_page_actions(session: AsyncSession, *, page_id: int) -> None:
    # Role grants reference page actions, so they go first.
    page_action_ids = select(PageAction.id).where(PageAction.page_id == page_id)
    await session.execute(delete(RolePageAction).where(RolePageAction.page_action_id.in_(page_action_ids)))
    await session.execute(delete(PageAction).where(PageAction.page_id == page_id))


async def replace_page_actions(session: AsyncSession, *, page_id: int, action_ids: list[int]) -> list[PageAction]:
    # Set-replace; role grants on the old rows are dropped with them.
    await delete_page_actions(session, page_id=page_id)
    rows = [PageAction(page_id=page_id, action_id=action_id, is_active=True) for action_id in sorted(set(action_ids))]
    session.add_all(rows)
    await session.flush()
    return rows
