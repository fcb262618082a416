from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.apps.api.deps import get_db, require_permission
from adminpanel.apps.api.response import success_response
from adminpanel.core.context import RequestContext
from adminpanel.domain.schemas import AuditLogItem
from adminpanel.persistence.repos import audit as audit_repo


router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/logs")
async def list_audit_logs(
    request: Request,
    entity_name: str | None = None,
    entity_id: str | None = None,
    user_id: int | None = None,
    action: str | None = None,
    created_from: datetime | None = Query(default=None, alias="from"),
    created_to: datetime | None = Query(default=None, alias="to"),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    ctx: RequestContext = Depends(require_permission("AuditLogs.View")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Scoped to the caller's tenant by the repository predicate.
    try:
        logs = await audit_repo.list_audit_logs(
            db,
            ctx=ctx,
            entity_name=entity_name,
            entity_id=entity_id,
            user_id=user_id,
            action=action,
            created_from=created_from,
            created_to=created_to,
            offset=offset,
            limit=limit + 1,
        )
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while fetching audit logs") from exc

    next_offset = None
    if len(logs) > limit:
        logs = logs[:limit]
        next_offset = offset + limit
    return success_response(
        request=request,
        data={"items": [AuditLogItem.model_validate(log) for log in logs], "next_offset": next_offset},
    )
