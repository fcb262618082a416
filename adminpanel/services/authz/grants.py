from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.core.context import RequestContext
from adminpanel.domain.models import (
    Action,
    Page,
    PageAction,
    Permission,
    Role,
    RolePageAction,
    RolePermission,
    User,
    UserRole,
)
from adminpanel.persistence.guards import not_deleted, tenant_predicate
from adminpanel.services.auth.tokens import SessionGrants


logger = logging.getLogger(__name__)


def _active_role_ids(ctx: RequestContext, user_id: int):
    # Only live, active roles of a live, active user carry grants.
    return (
        select(UserRole.role_id)
        .join(User, User.id == UserRole.user_id)
        .join(Role, Role.id == UserRole.role_id)
        .where(
            UserRole.user_id == user_id,
            not_deleted(User),
            User.is_active.is_(True),
            tenant_predicate(User, ctx),
            not_deleted(Role),
            Role.is_active.is_(True),
        )
    )


def _granted_permission_codes(ctx: RequestContext, user_id: int):
    return (
        select(Permission.code)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .where(
            RolePermission.role_id.in_(_active_role_ids(ctx, user_id)),
            RolePermission.is_granted.is_(True),
            not_deleted(Permission),
            Permission.is_active.is_(True),
        )
    )


def _granted_page_actions(ctx: RequestContext, user_id: int):
    return (
        select(PageAction.page_id, Action.code)
        .join(RolePageAction, RolePageAction.page_action_id == PageAction.id)
        .join(Action, Action.id == PageAction.action_id)
        .join(Page, Page.id == PageAction.page_id)
        .where(
            RolePageAction.role_id.in_(_active_role_ids(ctx, user_id)),
            RolePageAction.is_granted.is_(True),
            PageAction.is_active.is_(True),
            not_deleted(Action),
            not_deleted(Page),
        )
    )


async def list_active_role_ids(session: AsyncSession, *, ctx: RequestContext, user_id: int) -> list[int]:
    result = await session.execute(_active_role_ids(ctx, user_id).order_by(UserRole.role_id))
    return list(result.scalars().all())


async def resolve_permission_codes(session: AsyncSession, *, ctx: RequestContext, user_id: int) -> set[str]:
    """Union of granted permission codes across every active role of the user.

    Roles only ever add codes. A stored ``is_granted = false`` row grants
    nothing and does not cancel the same code granted by another role. Users
    with no qualifying roles resolve to an empty set.
    """

    result = await session.execute(_granted_permission_codes(ctx, user_id).distinct())
    return set(result.scalars().all())


async def resolve_granted_page_actions(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    user_id: int,
) -> set[tuple[int, str]]:
    # Same additive union as permission codes, on the page x action axis.
    result = await session.execute(_granted_page_actions(ctx, user_id).distinct())
    return {(int(page_id), str(code)) for page_id, code in result.all()}


async def has_permission(session: AsyncSession, *, ctx: RequestContext, user_id: int, code: str) -> bool:
    # Single EXISTS query for hot-path checks; always reads current grants.
    stmt = select(_granted_permission_codes(ctx, user_id).where(Permission.code == code).exists())
    result = await session.execute(stmt)
    allowed = bool(result.scalar())
    if not allowed:
        logger.debug("permission_denied user_id=%s code=%s", user_id, code)
    return allowed


async def has_page_action(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    user_id: int,
    page_id: int,
    action_code: str,
) -> bool:
    stmt = select(
        _granted_page_actions(ctx, user_id)
        .where(
            PageAction.page_id == page_id,
            func.lower(Action.code) == action_code.strip().lower(),
        )
        .exists()
    )
    result = await session.execute(stmt)
    allowed = bool(result.scalar())
    if not allowed:
        logger.debug("page_action_denied user_id=%s page_id=%s action=%s", user_id, page_id, action_code)
    return allowed


async def load_session_grants(session: AsyncSession, *, ctx: RequestContext, user_id: int) -> SessionGrants:
    """Aggregate the role names and permission codes embedded in issued tokens."""
    role_result = await session.execute(
        select(Role.name).where(Role.id.in_(_active_role_ids(ctx, user_id))).order_by(Role.name)
    )
    codes = await resolve_permission_codes(session, ctx=ctx, user_id=user_id)
    return SessionGrants(role_names=list(role_result.scalars().all()), permission_codes=sorted(codes))
