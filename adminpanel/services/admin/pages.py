from __future__ import annotations

from collections import defaultdict
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.core.clock import utc_now
from adminpanel.core.context import RequestContext
from adminpanel.domain import messages
from adminpanel.domain.models import Page
from adminpanel.domain.results import ErrorKind, Result
from adminpanel.domain.schemas import ActionItem, CreatePageRequest, PageItem, PageOption, UpdatePageRequest
from adminpanel.persistence.repos import actions as actions_repo
from adminpanel.persistence.repos import pages as pages_repo
from adminpanel.services.audit import AuditAction, record_audit, snapshot
from adminpanel.services.menu import descendant_ids


logger = logging.getLogger(__name__)

_ENTITY = "Page"


def normalize_url(url: str) -> str:
    # Stored page URLs always start with a single slash.
    cleaned = url.strip()
    return cleaned if cleaned.startswith("/") else f"/{cleaned}"


def _project(page: Page, actions: list[ActionItem]) -> PageItem:
    return PageItem(
        id=page.id,
        name_ar=page.name_ar,
        name_en=page.name_en,
        url=page.url,
        icon=page.icon,
        parent_id=page.parent_id,
        display_order=page.display_order,
        is_active=page.is_active,
        is_in_menu=page.is_in_menu,
        available_actions=actions,
    )


async def _actions_by_page(session: AsyncSession, page_ids: list[int]) -> dict[int, list[ActionItem]]:
    grouped: dict[int, list[ActionItem]] = defaultdict(list)
    for page_action, action in await pages_repo.list_page_actions(session, page_ids=page_ids):
        if page_action.is_active:
            grouped[page_action.page_id].append(ActionItem.model_validate(action))
    return grouped


async def _check_parent(session: AsyncSession, *, page_id: int | None, parent_id: int | None) -> Result[None] | None:
    """Reject parents that are missing, the page itself, or one of its descendants."""
    if parent_id is None:
        return None
    if page_id is not None and parent_id == page_id:
        return Result.failure(ErrorKind.VALIDATION_ERROR, messages.PAGE_PARENT_IS_SELF)
    if await pages_repo.get_page(session, page_id=parent_id) is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.PARENT_PAGE_NOT_FOUND)
    if page_id is not None:
        links = await pages_repo.list_parent_links(session)
        if parent_id in descendant_ids(links, page_id):
            return Result.failure(ErrorKind.VALIDATION_ERROR, messages.PAGE_PARENT_IS_DESCENDANT)
    return None


async def get_page(session: AsyncSession, *, page_id: int) -> Result[PageItem]:
    page = await pages_repo.get_page(session, page_id=page_id)
    if page is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.PAGE_NOT_FOUND)
    actions = await _actions_by_page(session, [page.id])
    return Result.success(_project(page, actions.get(page.id, [])))


async def list_pages(session: AsyncSession, *, is_active: bool | None = None) -> Result[list[PageItem]]:
    pages = await pages_repo.list_pages(session, is_active=is_active)
    actions = await _actions_by_page(session, [page.id for page in pages])
    return Result.success([_project(page, actions.get(page.id, [])) for page in pages])


async def create_page(session: AsyncSession, *, ctx: RequestContext, request: CreatePageRequest) -> Result[PageItem]:
    url = normalize_url(request.url)
    if await pages_repo.url_exists(session, url=url):
        return Result.failure(ErrorKind.CONFLICT, messages.PAGE_URL_EXISTS)
    parent_error = await _check_parent(session, page_id=None, parent_id=request.parent_id)
    if parent_error is not None:
        return parent_error

    page = Page(
        name_ar=request.name_ar.strip(),
        name_en=request.name_en.strip(),
        url=url,
        icon=request.icon,
        parent_id=request.parent_id,
        display_order=request.display_order,
        is_active=True,
        is_in_menu=request.is_in_menu,
        created_by=ctx.user_id,
    )
    try:
        session.add(page)
        await session.flush()
        record_audit(
            session,
            ctx=ctx,
            entity_name=_ENTITY,
            entity_id=page.id,
            action=AuditAction.CREATE,
            new_values=snapshot(page),
        )
        await session.commit()
    except IntegrityError:
        await session.rollback()
        return Result.failure(ErrorKind.CONFLICT, messages.PAGE_URL_EXISTS)
    logger.info("page_created page_id=%s url=%s", page.id, page.url)
    return Result.success(_project(page, []), messages.PAGE_CREATED)


async def update_page(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    page_id: int,
    request: UpdatePageRequest,
) -> Result[PageItem]:
    page = await pages_repo.get_page(session, page_id=page_id)
    if page is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.PAGE_NOT_FOUND)
    url = normalize_url(request.url)
    if await pages_repo.url_exists(session, url=url, exclude_page_id=page.id):
        return Result.failure(ErrorKind.CONFLICT, messages.PAGE_URL_EXISTS)
    parent_error = await _check_parent(session, page_id=page.id, parent_id=request.parent_id)
    if parent_error is not None:
        return parent_error

    old_values = snapshot(page)
    page.name_ar = request.name_ar.strip()
    page.name_en = request.name_en.strip()
    page.url = url
    page.icon = request.icon
    page.parent_id = request.parent_id
    page.display_order = request.display_order
    page.is_active = request.is_active
    page.is_in_menu = request.is_in_menu
    page.updated_at = utc_now()
    page.updated_by = ctx.user_id
    record_audit(
        session,
        ctx=ctx,
        entity_name=_ENTITY,
        entity_id=page.id,
        action=AuditAction.UPDATE,
        old_values=old_values,
        new_values=snapshot(page),
    )
    try:
        actions = await _actions_by_page(session, [page.id])
        await session.commit()
    except IntegrityError:
        await session.rollback()
        return Result.failure(ErrorKind.CONFLICT, messages.PAGE_URL_EXISTS)
    return Result.success(_project(page, actions.get(page.id, [])), messages.PAGE_UPDATED)


async def delete_page(session: AsyncSession, *, ctx: RequestContext, page_id: int) -> Result[None]:
    page = await pages_repo.get_page(session, page_id=page_id)
    if page is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.PAGE_NOT_FOUND)
    if await pages_repo.count_children(session, page_id=page.id) > 0:
        return Result.failure(ErrorKind.FORBIDDEN, messages.PAGE_HAS_CHILDREN)

    old_values = snapshot(page)
    await pages_repo.delete_page_actions(session, page_id=page.id)
    page.is_deleted = True
    page.deleted_at = utc_now()
    page.deleted_by = ctx.user_id
    record_audit(
        session,
        ctx=ctx,
        entity_name=_ENTITY,
        entity_id=page.id,
        action=AuditAction.DELETE,
        old_values=old_values,
    )
    await session.commit()
    logger.info("page_deleted page_id=%s actor=%s", page.id, ctx.user_id)
    return Result.success(None, messages.PAGE_DELETED)


async def toggle_page_status(session: AsyncSession, *, ctx: RequestContext, page_id: int) -> Result[bool]:
    page = await pages_repo.get_page(session, page_id=page_id)
    if page is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.PAGE_NOT_FOUND)
    old_values = {"is_active": page.is_active}
    page.is_active = not page.is_active
    page.updated_at = utc_now()
    page.updated_by = ctx.user_id
    record_audit(
        session,
        ctx=ctx,
        entity_name=_ENTITY,
        entity_id=page.id,
        action=AuditAction.UPDATE,
        old_values=old_values,
        new_values={"is_active": page.is_active},
    )
    await session.commit()
    message = messages.PAGE_ACTIVATED if page.is_active else messages.PAGE_DEACTIVATED
    return Result.success(page.is_active, message)


async def assign_actions(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    page_id: int,
    action_ids: list[int],
) -> Result[None]:
    """Replace the actions a page offers.

    The old page-action rows are removed together with every role grant that
    pointed at them; roles must be granted the new rows again.
    """

    page = await pages_repo.get_page(session, page_id=page_id)
    if page is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.PAGE_NOT_FOUND)
    found = await actions_repo.existing_action_ids(session, action_ids=action_ids)
    if set(action_ids) - found:
        return Result.failure(ErrorKind.NOT_FOUND, messages.UNKNOWN_ACTIONS)

    old_rows = await pages_repo.list_page_actions(session, page_ids=[page.id])
    await pages_repo.replace_page_actions(session, page_id=page.id, action_ids=action_ids)
    record_audit(
        session,
        ctx=ctx,
        entity_name="PageAction",
        entity_id=page.id,
        action=AuditAction.UPDATE,
        old_values={"action_ids": sorted(action.id for _, action in old_rows)},
        new_values={"action_ids": sorted(set(action_ids))},
    )
    await session.commit()
    logger.info("page_actions_assigned page_id=%s count=%s", page.id, len(set(action_ids)))
    return Result.success(None, messages.PAGE_ACTIONS_ASSIGNED)


async def get_parent_options(session: AsyncSession, *, exclude_page_id: int | None = None) -> Result[list[PageOption]]:
    # Candidate parents for a page: everything except the page and its subtree.
    pages = await pages_repo.list_pages(session)
    excluded: set[int] = set()
    if exclude_page_id is not None:
        excluded = {exclude_page_id} | descendant_ids({page.id: page.parent_id for page in pages}, exclude_page_id)
    return Result.success(
        [
            PageOption(id=page.id, name_ar=page.name_ar, name_en=page.name_en, parent_id=page.parent_id)
            for page in pages
            if page.id not in excluded
        ]
    )
