from __future__ import annotations

from collections import defaultdict

from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.core.clock import utc_now
from adminpanel.core.context import RequestContext
from adminpanel.domain import messages
from adminpanel.domain.results import ErrorKind, Result
from adminpanel.domain.schemas import PermissionGroup, PermissionItem, UpdatePermissionRequest
from adminpanel.persistence.repos import permissions as permissions_repo
from adminpanel.services.audit import AuditAction, record_audit


# The permission catalog is seeded; administrators only adjust how it is displayed.


async def list_permissions(session: AsyncSession, *, active_only: bool = False) -> Result[list[PermissionItem]]:
    permissions = await permissions_repo.list_permissions(session, active_only=active_only)
    return Result.success([PermissionItem.model_validate(permission) for permission in permissions])


async def list_permissions_grouped(session: AsyncSession) -> Result[list[PermissionGroup]]:
    grouped: dict[str, list[PermissionItem]] = defaultdict(list)
    for permission in await permissions_repo.list_permissions(session, active_only=True):
        grouped[permission.module].append(PermissionItem.model_validate(permission))
    return Result.success([PermissionGroup(module=module, permissions=items) for module, items in grouped.items()])


async def get_permission(session: AsyncSession, *, permission_id: int) -> Result[PermissionItem]:
    permission = await permissions_repo.get_permission(session, permission_id=permission_id)
    if permission is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.PERMISSION_NOT_FOUND)
    return Result.success(PermissionItem.model_validate(permission))


async def get_permission_by_code(session: AsyncSession, *, code: str) -> Result[PermissionItem]:
    permission = await permissions_repo.get_permission_by_code(session, code=code)
    if permission is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.PERMISSION_NOT_FOUND)
    return Result.success(PermissionItem.model_validate(permission))


async def update_permission(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    permission_id: int,
    request: UpdatePermissionRequest,
) -> Result[PermissionItem]:
    permission = await permissions_repo.get_permission(session, permission_id=permission_id)
    if permission is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.PERMISSION_NOT_FOUND)
    old_values = {
        "display_name_ar": permission.display_name_ar,
        "display_name_en": permission.display_name_en,
        "display_order": permission.display_order,
    }
    if request.display_name_ar is not None:
        permission.display_name_ar = request.display_name_ar
    if request.display_name_en is not None:
        permission.display_name_en = request.display_name_en
    if request.display_order is not None:
        permission.display_order = request.display_order
    permission.updated_at = utc_now()
    permission.updated_by = ctx.user_id
    record_audit(
        session,
        ctx=ctx,
        entity_name="Permission",
        entity_id=permission.id,
        action=AuditAction.UPDATE,
        old_values=old_values,
        new_values={
            "display_name_ar": permission.display_name_ar,
            "display_name_en": permission.display_name_en,
            "display_order": permission.display_order,
        },
    )
    await session.commit()
    return Result.success(PermissionItem.model_validate(permission), messages.UPDATED)
