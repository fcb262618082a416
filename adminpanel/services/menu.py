from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.core.config import VIEW_ACTION_CODE
from adminpanel.core.context import RequestContext
from adminpanel.domain.models import Action, Page, PageAction, RolePageAction
from adminpanel.domain.schemas import MenuNode
from adminpanel.persistence.guards import not_deleted
from adminpanel.persistence.repos import pages as pages_repo
from adminpanel.services.authz.grants import list_active_role_ids


logger = logging.getLogger(__name__)


def close_over_ancestors(seed: Iterable[int], parents: Mapping[int, int | None]) -> set[int]:
    """Add every ancestor of the seed pages until the set stops growing.

    ``parents`` maps each known page id to its parent id. Seeds and ancestors
    missing from ``parents`` are ignored, so a chain stops at the first page
    that is not loaded.
    """

    included = {page_id for page_id in seed if page_id in parents}
    while True:
        added = {
            parents[page_id]
            for page_id in included
            if parents[page_id] is not None and parents[page_id] in parents
        } - included
        if not added:
            return included
        included |= added


def descendant_ids(parents: Mapping[int, int | None], root_id: int) -> set[int]:
    # Every page below root_id; the visited set keeps corrupt cycles finite.
    children: dict[int, list[int]] = defaultdict(list)
    for page_id, parent_id in parents.items():
        if parent_id is not None:
            children[parent_id].append(page_id)
    found: set[int] = set()
    stack = list(children.get(root_id, []))
    while stack:
        page_id = stack.pop()
        if page_id in found or page_id == root_id:
            continue
        found.add(page_id)
        stack.extend(children.get(page_id, []))
    return found


def build_menu_tree(pages: Sequence[Page], included: set[int]) -> list[MenuNode]:
    """Arrange the included pages into an ordered tree.

    Siblings sort by ``(display_order, id)``. Only pages without a parent
    become roots, so a page whose parent was filtered out is dropped along
    with its subtree.
    """

    by_parent: dict[int | None, list[Page]] = defaultdict(list)
    for page in pages:
        if page.id in included:
            by_parent[page.parent_id].append(page)
    for siblings in by_parent.values():
        siblings.sort(key=lambda item: (item.display_order, item.id))

    visited: set[int] = set()

    def _build(parent_id: int | None) -> list[MenuNode]:
        nodes: list[MenuNode] = []
        for page in by_parent.get(parent_id, []):
            if page.id in visited:
                logger.warning("menu_cycle_detected page_id=%s", page.id)
                continue
            visited.add(page.id)
            nodes.append(
                MenuNode(
                    id=page.id,
                    name_ar=page.name_ar,
                    name_en=page.name_en,
                    url=page.url,
                    icon=page.icon,
                    display_order=page.display_order,
                    children=_build(page.id),
                )
            )
        return nodes

    return _build(None)


async def viewable_page_ids(session: AsyncSession, *, role_ids: list[int]) -> set[int]:
    # Pages where any role holds a granted, active "view" page action.
    if not role_ids:
        return set()
    result = await session.execute(
        select(PageAction.page_id)
        .join(RolePageAction, RolePageAction.page_action_id == PageAction.id)
        .join(Action, Action.id == PageAction.action_id)
        .where(
            RolePageAction.role_id.in_(role_ids),
            RolePageAction.is_granted.is_(True),
            PageAction.is_active.is_(True),
            not_deleted(Action),
            func.lower(Action.code) == VIEW_ACTION_CODE,
        )
        .distinct()
    )
    return set(result.scalars().all())


async def build_user_menu(session: AsyncSession, *, ctx: RequestContext, user_id: int) -> list[MenuNode]:
    """Build the navigation tree a user may see from their persisted grants."""
    role_ids = await list_active_role_ids(session, ctx=ctx, user_id=user_id)
    if not role_ids:
        return []
    granted = await viewable_page_ids(session, role_ids=role_ids)
    if not granted:
        return []
    pages = await pages_repo.list_menu_pages(session)
    included = close_over_ancestors(granted, {page.id: page.parent_id for page in pages})
    return build_menu_tree(pages, included)
