from __future__ import annotations

from collections import defaultdict
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.core.clock import utc_now
from adminpanel.core.context import RequestContext
from adminpanel.domain import messages
from adminpanel.domain.models import Role
from adminpanel.domain.results import ErrorKind, Result
from adminpanel.domain.schemas import (
    CreateRoleRequest,
    MatrixAction,
    MatrixCell,
    MatrixPage,
    PageActionAssignment,
    PermissionAssignment,
    PermissionGroup,
    PermissionItem,
    RoleItem,
    RolePermissionMatrix,
    UpdateRoleRequest,
)
from adminpanel.persistence.repos import actions as actions_repo
from adminpanel.persistence.repos import pages as pages_repo
from adminpanel.persistence.repos import permissions as permissions_repo
from adminpanel.persistence.repos import roles as roles_repo
from adminpanel.services.audit import AuditAction, record_audit, snapshot


logger = logging.getLogger(__name__)

_ENTITY = "Role"


async def _item(session: AsyncSession, role: Role) -> RoleItem:
    return RoleItem(
        id=role.id,
        name=role.name,
        description=role.description,
        is_system_role=role.is_system_role,
        is_active=role.is_active,
        users_count=await roles_repo.count_role_users(session, role_id=role.id),
        permissions_count=await roles_repo.count_role_permissions(session, role_id=role.id),
        created_at=role.created_at,
    )


async def get_role(session: AsyncSession, *, role_id: int) -> Result[RoleItem]:
    role = await roles_repo.get_role(session, role_id=role_id)
    if role is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.ROLE_NOT_FOUND)
    return Result.success(await _item(session, role))


async def list_roles(
    session: AsyncSession,
    *,
    search: str | None = None,
    is_active: bool | None = None,
) -> Result[list[RoleItem]]:
    roles = await roles_repo.list_roles(session, search=search, is_active=is_active)
    return Result.success([await _item(session, role) for role in roles])


async def create_role(session: AsyncSession, *, ctx: RequestContext, request: CreateRoleRequest) -> Result[RoleItem]:
    name = request.name.strip()
    if await roles_repo.name_exists(session, name=name):
        return Result.failure(ErrorKind.CONFLICT, messages.ROLE_NAME_EXISTS)
    permission_ids = sorted(set(request.permission_ids or []))
    found = await permissions_repo.existing_permission_ids(session, permission_ids=permission_ids)
    if set(permission_ids) - found:
        return Result.failure(ErrorKind.NOT_FOUND, messages.UNKNOWN_PERMISSIONS)

    role = Role(
        name=name,
        description=request.description,
        is_system_role=False,
        is_active=True,
        created_by=ctx.user_id,
    )
    try:
        session.add(role)
        await session.flush()
        if permission_ids:
            await roles_repo.replace_role_permissions(
                session, role_id=role.id, grants={permission_id: True for permission_id in permission_ids}
            )
        record_audit(
            session,
            ctx=ctx,
            entity_name=_ENTITY,
            entity_id=role.id,
            action=AuditAction.CREATE,
            new_values={**snapshot(role), "permission_ids": permission_ids},
        )
        item = await _item(session, role)
        await session.commit()
    except IntegrityError:
        await session.rollback()
        return Result.failure(ErrorKind.CONFLICT, messages.ROLE_NAME_EXISTS)
    logger.info("role_created role_id=%s actor=%s", role.id, ctx.user_id)
    return Result.success(item, messages.ROLE_CREATED)


async def update_role(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    role_id: int,
    request: UpdateRoleRequest,
) -> Result[RoleItem]:
    role = await roles_repo.get_role(session, role_id=role_id)
    if role is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.ROLE_NOT_FOUND)
    if role.is_system_role:
        return Result.failure(ErrorKind.FORBIDDEN, messages.SYSTEM_ROLE_CANNOT_BE_MODIFIED)
    if request.name is not None and await roles_repo.name_exists(
        session, name=request.name, exclude_role_id=role.id
    ):
        return Result.failure(ErrorKind.CONFLICT, messages.ROLE_NAME_EXISTS)

    old_values = snapshot(role)
    if request.name is not None:
        role.name = request.name.strip()
    role.description = request.description
    role.is_active = request.is_active
    role.updated_at = utc_now()
    role.updated_by = ctx.user_id
    record_audit(
        session,
        ctx=ctx,
        entity_name=_ENTITY,
        entity_id=role.id,
        action=AuditAction.UPDATE,
        old_values=old_values,
        new_values=snapshot(role),
    )
    try:
        item = await _item(session, role)
        await session.commit()
    except IntegrityError:
        await session.rollback()
        return Result.failure(ErrorKind.CONFLICT, messages.ROLE_NAME_EXISTS)
    return Result.success(item, messages.ROLE_UPDATED)


async def delete_role(session: AsyncSession, *, ctx: RequestContext, role_id: int) -> Result[None]:
    role = await roles_repo.get_role(session, role_id=role_id)
    if role is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.ROLE_NOT_FOUND)
    if role.is_system_role:
        return Result.failure(ErrorKind.FORBIDDEN, messages.SYSTEM_ROLE_CANNOT_BE_DELETED)
    if await roles_repo.count_role_users(session, role_id=role.id) > 0:
        return Result.failure(ErrorKind.FORBIDDEN, messages.ROLE_HAS_USERS)

    old_values = snapshot(role)
    role.is_deleted = True
    role.deleted_at = utc_now()
    role.deleted_by = ctx.user_id
    record_audit(
        session,
        ctx=ctx,
        entity_name=_ENTITY,
        entity_id=role.id,
        action=AuditAction.DELETE,
        old_values=old_values,
    )
    await session.commit()
    logger.info("role_deleted role_id=%s actor=%s", role.id, ctx.user_id)
    return Result.success(None, messages.ROLE_DELETED)


async def toggle_role_status(session: AsyncSession, *, ctx: RequestContext, role_id: int) -> Result[bool]:
    role = await roles_repo.get_role(session, role_id=role_id)
    if role is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.ROLE_NOT_FOUND)
    if role.is_system_role:
        return Result.failure(ErrorKind.FORBIDDEN, messages.SYSTEM_ROLE_CANNOT_BE_MODIFIED)
    old_values = {"is_active": role.is_active}
    role.is_active = not role.is_active
    role.updated_at = utc_now()
    role.updated_by = ctx.user_id
    record_audit(
        session,
        ctx=ctx,
        entity_name=_ENTITY,
        entity_id=role.id,
        action=AuditAction.UPDATE,
        old_values=old_values,
        new_values={"is_active": role.is_active},
    )
    await session.commit()
    message = messages.ROLE_ACTIVATED if role.is_active else messages.ROLE_DEACTIVATED
    return Result.success(role.is_active, message)


async def assign_permissions(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    role_id: int,
    assignments: list[PermissionAssignment],
) -> Result[None]:
    """Replace a role's permission grants with exactly ``assignments``.

    Rows stored with ``is_granted = False`` are kept but grant nothing; they
    never cancel the same permission granted through another role.
    """

    role = await roles_repo.get_role(session, role_id=role_id)
    if role is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.ROLE_NOT_FOUND)
    if role.is_system_role:
        return Result.failure(ErrorKind.FORBIDDEN, messages.SYSTEM_ROLE_CANNOT_BE_MODIFIED)
    grants = {item.permission_id: item.is_granted for item in assignments}
    found = await permissions_repo.existing_permission_ids(session, permission_ids=list(grants))
    if set(grants) - found:
        return Result.failure(ErrorKind.NOT_FOUND, messages.UNKNOWN_PERMISSIONS)

    old_rows = await roles_repo.list_role_permissions(session, role_id=role.id)
    await roles_repo.replace_role_permissions(session, role_id=role.id, grants=grants)
    record_audit(
        session,
        ctx=ctx,
        entity_name="RolePermission",
        entity_id=role.id,
        action=AuditAction.UPDATE,
        old_values={"granted": sorted(row.permission_id for row in old_rows if row.is_granted)},
        new_values={"granted": sorted(key for key, granted in grants.items() if granted)},
    )
    await session.commit()
    logger.info("role_permissions_assigned role_id=%s count=%s", role.id, len(grants))
    return Result.success(None, messages.PERMISSIONS_ASSIGNED)


async def assign_page_actions(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    role_id: int,
    assignments: list[PageActionAssignment],
) -> Result[None]:
    # System roles accept page-action grants; only their identity is protected.
    role = await roles_repo.get_role(session, role_id=role_id)
    if role is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.ROLE_NOT_FOUND)
    grants = {item.page_action_id: item.is_granted for item in assignments}
    found = await pages_repo.existing_page_action_ids(session, page_action_ids=list(grants))
    if set(grants) - found:
        return Result.failure(ErrorKind.NOT_FOUND, messages.UNKNOWN_PAGE_ACTIONS)

    old_rows = await roles_repo.list_role_page_actions(session, role_id=role.id)
    await roles_repo.replace_role_page_actions(session, role_id=role.id, grants=grants)
    record_audit(
        session,
        ctx=ctx,
        entity_name="RolePageAction",
        entity_id=role.id,
        action=AuditAction.UPDATE,
        old_values={"granted": sorted(row.page_action_id for row in old_rows if row.is_granted)},
        new_values={"granted": sorted(key for key, granted in grants.items() if granted)},
    )
    await session.commit()
    logger.info("role_page_actions_assigned role_id=%s count=%s", role.id, len(grants))
    return Result.success(None, messages.PAGE_ACTIONS_ASSIGNED)


async def get_role_permissions(session: AsyncSession, *, role_id: int) -> Result[list[PermissionGroup]]:
    # The whole active catalog grouped by module, flagged with this role's grants.
    role = await roles_repo.get_role(session, role_id=role_id)
    if role is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.ROLE_NOT_FOUND)
    granted = {
        row.permission_id
        for row in await roles_repo.list_role_permissions(session, role_id=role.id)
        if row.is_granted
    }
    grouped: dict[str, list[PermissionItem]] = defaultdict(list)
    for permission in await permissions_repo.list_permissions(session, active_only=True):
        item = PermissionItem.model_validate(permission)
        grouped[permission.module].append(item.model_copy(update={"is_granted": permission.id in granted}))
    return Result.success([PermissionGroup(module=module, permissions=items) for module, items in grouped.items()])


async def get_role_permission_matrix(session: AsyncSession, *, role_id: int) -> Result[RolePermissionMatrix]:
    """Pages x actions grid for one role.

    Each page lists a cell for every action it offers, flagged with whether
    this role holds a granted page action for it.
    """

    role = await roles_repo.get_role(session, role_id=role_id)
    if role is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.ROLE_NOT_FOUND)

    actions = await actions_repo.list_actions(session, is_active=True)
    pages = await pages_repo.list_pages(session, is_active=True)
    granted = {
        row.page_action_id: row.is_granted
        for row in await roles_repo.list_role_page_actions(session, role_id=role.id)
    }
    cells: dict[int, list[MatrixCell]] = defaultdict(list)
    active_action_ids = {action.id for action in actions}
    for page_action, action in await pages_repo.list_page_actions(session, page_ids=[page.id for page in pages]):
        if action.id not in active_action_ids or not page_action.is_active:
            continue
        cells[page_action.page_id].append(
            MatrixCell(
                action_id=action.id,
                page_action_id=page_action.id,
                is_granted=granted.get(page_action.id, False),
            )
        )
    return Result.success(
        RolePermissionMatrix(
            role_id=role.id,
            role_name=role.name,
            is_system_role=role.is_system_role,
            actions=[
                MatrixAction(
                    action_id=action.id,
                    code=action.code,
                    name_ar=action.name_ar,
                    name_en=action.name_en,
                    display_order=action.display_order,
                )
                for action in actions
            ],
            pages=[
                MatrixPage(
                    page_id=page.id,
                    name_ar=page.name_ar,
                    name_en=page.name_en,
                    url=page.url,
                    icon=page.icon,
                    display_order=page.display_order,
                    cells=cells.get(page.id, []),
                )
                for page in pages
            ],
        )
    )
