from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.core.clock import utc_now
from adminpanel.core.context import RequestContext
from adminpanel.domain import messages
from adminpanel.domain.models import Action
from adminpanel.domain.results import ErrorKind, Result
from adminpanel.domain.schemas import ActionItem, CreateActionRequest, UpdateActionRequest
from adminpanel.persistence.repos import actions as actions_repo
from adminpanel.services.audit import AuditAction, record_audit, snapshot


logger = logging.getLogger(__name__)

_ENTITY = "Action"


async def get_action(session: AsyncSession, *, action_id: int) -> Result[ActionItem]:
    action = await actions_repo.get_action(session, action_id=action_id)
    if action is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.ACTION_NOT_FOUND)
    return Result.success(ActionItem.model_validate(action))


async def list_actions(session: AsyncSession, *, is_active: bool | None = None) -> Result[list[ActionItem]]:
    actions = await actions_repo.list_actions(session, is_active=is_active)
    return Result.success([ActionItem.model_validate(action) for action in actions])


async def create_action(session: AsyncSession, *, ctx: RequestContext, request: CreateActionRequest) -> Result[ActionItem]:
    code = request.code.strip().lower()
    if await actions_repo.code_exists(session, code=code):
        return Result.failure(ErrorKind.CONFLICT, messages.ACTION_CODE_EXISTS)
    action = Action(
        name_ar=request.name_ar.strip(),
        name_en=request.name_en.strip(),
        code=code,
        icon=request.icon,
        display_order=request.display_order,
        is_active=True,
        created_by=ctx.user_id,
    )
    try:
        session.add(action)
        await session.flush()
        record_audit(
            session,
            ctx=ctx,
            entity_name=_ENTITY,
            entity_id=action.id,
            action=AuditAction.CREATE,
            new_values=snapshot(action),
        )
        await session.commit()
    except IntegrityError:
        await session.rollback()
        return Result.failure(ErrorKind.CONFLICT, messages.ACTION_CODE_EXISTS)
    logger.info("action_created action_id=%s code=%s", action.id, action.code)
    return Result.success(ActionItem.model_validate(action), messages.ACTION_CREATED)


async def update_action(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    action_id: int,
    request: UpdateActionRequest,
) -> Result[ActionItem]:
    action = await actions_repo.get_action(session, action_id=action_id)
    if action is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.ACTION_NOT_FOUND)
    code = request.code.strip().lower()
    if await actions_repo.code_exists(session, code=code, exclude_action_id=action.id):
        return Result.failure(ErrorKind.CONFLICT, messages.ACTION_CODE_EXISTS)

    old_values = snapshot(action)
    action.name_ar = request.name_ar.strip()
    action.name_en = request.name_en.strip()
    action.code = code
    action.icon = request.icon
    action.display_order = request.display_order
    action.is_active = request.is_active
    action.updated_at = utc_now()
    action.updated_by = ctx.user_id
    record_audit(
        session,
        ctx=ctx,
        entity_name=_ENTITY,
        entity_id=action.id,
        action=AuditAction.UPDATE,
        old_values=old_values,
        new_values=snapshot(action),
    )
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        return Result.failure(ErrorKind.CONFLICT, messages.ACTION_CODE_EXISTS)
    return Result.success(ActionItem.model_validate(action), messages.ACTION_UPDATED)


async def delete_action(session: AsyncSession, *, ctx: RequestContext, action_id: int) -> Result[None]:
    action = await actions_repo.get_action(session, action_id=action_id)
    if action is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.ACTION_NOT_FOUND)
    if await actions_repo.count_page_actions(session, action_id=action.id) > 0:
        return Result.failure(ErrorKind.FORBIDDEN, messages.ACTION_HAS_PAGE_ACTIONS)

    old_values = snapshot(action)
    action.is_deleted = True
    action.deleted_at = utc_now()
    action.deleted_by = ctx.user_id
    record_audit(
        session,
        ctx=ctx,
        entity_name=_ENTITY,
        entity_id=action.id,
        action=AuditAction.DELETE,
        old_values=old_values,
    )
    await session.commit()
    logger.info("action_deleted action_id=%s actor=%s", action.id, ctx.user_id)
    return Result.success(None, messages.ACTION_DELETED)


async def toggle_action_status(session: AsyncSession, *, ctx: RequestContext, action_id: int) -> Result[bool]:
    action = await actions_repo.get_action(session, action_id=action_id)
    if action is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.ACTION_NOT_FOUND)
    old_values = {"is_active": action.is_active}
    action.is_active = not action.is_active
    action.updated_at = utc_now()
    action.updated_by = ctx.user_id
    record_audit(
        session,
        ctx=ctx,
        entity_name=_ENTITY,
        entity_id=action.id,
        action=AuditAction.UPDATE,
        old_values=old_values,
        new_values={"is_active": action.is_active},
    )
    await session.commit()
    message = messages.ACTION_ACTIVATED if action.is_active else messages.ACTION_DEACTIVATED
    return Result.success(action.is_active, message)
