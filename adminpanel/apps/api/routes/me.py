from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.apps.api.deps import get_db, get_request_context
from adminpanel.apps.api.response import success_response
from adminpanel.core.context import RequestContext
from adminpanel.services.authz import grants
from adminpanel.services.menu import build_user_menu


router = APIRouter(prefix="/me", tags=["me"])


@router.get("/menu")
async def my_menu(
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Rebuilt from persisted grants on every call, never from token claims.
    menu = await build_user_menu(db, ctx=ctx, user_id=ctx.user_id)
    return success_response(request=request, data=menu)


@router.get("/permissions")
async def my_permissions(
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> dict:
    codes = await grants.resolve_permission_codes(db, ctx=ctx, user_id=ctx.user_id)
    page_actions = await grants.resolve_granted_page_actions(db, ctx=ctx, user_id=ctx.user_id)
    return success_response(
        request=request,
        data={
            "permissions": sorted(codes),
            "page_actions": [
                {"page_id": page_id, "action": action} for page_id, action in sorted(page_actions)
            ],
        },
    )


@router.get("/pages/{page_id}/actions/{action_code}")
async def check_page_action(
    page_id: int,
    action_code: str,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> dict:
    allowed = await grants.has_page_action(db, ctx=ctx, user_id=ctx.user_id, page_id=page_id, action_code=action_code)
    return success_response(request=request, data={"page_id": page_id, "action": action_code, "allowed": allowed})
