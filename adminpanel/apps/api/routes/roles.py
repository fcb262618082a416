from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.apps.api.deps import get_db, require_permission
from adminpanel.apps.api.errors import result_error
from adminpanel.apps.api.response import success_response
from adminpanel.core.context import RequestContext
from adminpanel.domain.schemas import PageActionAssignment, PermissionAssignment
from adminpanel.services.admin import roles as roles_service


router = APIRouter(prefix="/roles", tags=["roles"])


@router.get("")
async def list_roles(
    request: Request,
    search: str | None = None,
    is_active: bool | None = None,
    ctx: RequestContext = Depends(require_permission("Roles.View")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await roles_service.list_roles(db, search=search, is_active=is_active)
    return success_response(request=request, data=result.data)


@router.get("/{role_id}/matrix")
async def role_matrix(
    role_id: int,
    request: Request,
    ctx: RequestContext = Depends(require_permission("Roles.View")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await roles_service.get_role_permission_matrix(db, role_id=role_id)
    if not result.ok:
        raise result_error(result)
    return success_response(request=request, data=result.data)


@router.put("/{role_id}/permissions")
async def assign_permissions(
    role_id: int,
    payload: list[PermissionAssignment],
    request: Request,
    ctx: RequestContext = Depends(require_permission("Roles.ManagePermissions")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await roles_service.assign_permissions(db, ctx=ctx, role_id=role_id, assignments=payload)
    if not result.ok:
        raise result_error(result)
    return success_response(request=request, data=None, messages=result.messages)


@router.put("/{role_id}/page-actions")
async def assign_page_actions(
    role_id: int,
    payload: list[PageActionAssignment],
    request: Request,
    ctx: RequestContext = Depends(require_permission("Roles.ManagePermissions")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await roles_service.assign_page_actions(db, ctx=ctx, role_id=role_id, assignments=payload)
    if not result.ok:
        raise result_error(result)
    return success_response(request=request, data=None, messages=result.messages)
