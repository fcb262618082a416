from __future__ import annotations

import asyncio
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.core.clock import utc_now
from adminpanel.core.config import get_settings
from adminpanel.core.context import RequestContext
from adminpanel.domain import messages
from adminpanel.domain.models import User
from adminpanel.domain.results import ErrorKind, Result
from adminpanel.domain.schemas import CreateUserRequest, UpdateUserRequest, UserItem
from adminpanel.persistence.repos import roles as roles_repo
from adminpanel.persistence.repos import tenants as tenants_repo
from adminpanel.persistence.repos import users as users_repo
from adminpanel.services.audit import AuditAction, record_audit, snapshot
from adminpanel.services.auth.passwords import PasswordHasher, Pbkdf2PasswordHasher


logger = logging.getLogger(__name__)

_ENTITY = "User"


def _project(user: User, role_names: list[str]) -> UserItem:
    return UserItem(
        id=user.id,
        tenant_id=user.tenant_id,
        username=user.username,
        email=user.email,
        full_name=user.full_name,
        phone_number=user.phone_number,
        is_active=user.is_active,
        email_confirmed=user.email_confirmed,
        last_login_at=user.last_login_at,
        roles=role_names,
    )


async def _item(session: AsyncSession, user: User) -> UserItem:
    names = await users_repo.list_role_names_by_user(session, user_ids=[user.id])
    return _project(user, names.get(user.id, []))


async def _unknown_roles(session: AsyncSession, role_ids: list[int]) -> bool:
    found = await roles_repo.existing_role_ids(session, role_ids=role_ids)
    return bool(set(role_ids) - found)


async def get_user(session: AsyncSession, *, ctx: RequestContext, user_id: int) -> Result[UserItem]:
    user = await users_repo.get_user(session, ctx=ctx, user_id=user_id)
    if user is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.USER_NOT_FOUND)
    return Result.success(await _item(session, user))


async def list_users(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    search: str | None = None,
    is_active: bool | None = None,
    role_id: int | None = None,
    offset: int = 0,
    limit: int = 50,
) -> Result[list[UserItem]]:
    users = await users_repo.list_users(
        session,
        ctx=ctx,
        search=search,
        is_active=is_active,
        role_id=role_id,
        offset=offset,
        limit=limit,
    )
    names = await users_repo.list_role_names_by_user(session, user_ids=[user.id for user in users])
    return Result.success([_project(user, names.get(user.id, [])) for user in users])


async def create_user(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    request: CreateUserRequest,
    hasher: PasswordHasher | None = None,
) -> Result[UserItem]:
    """Create a user in the caller's tenant; roles default to the configured default role."""
    settings = get_settings()
    hasher = hasher or Pbkdf2PasswordHasher()
    if await users_repo.username_exists(session, username=request.username):
        return Result.failure(ErrorKind.CONFLICT, messages.USERNAME_EXISTS)
    if await users_repo.email_exists(session, email=request.email):
        return Result.failure(ErrorKind.CONFLICT, messages.EMAIL_EXISTS)
    role_ids = request.role_ids if request.role_ids else [settings.default_role_id]
    if await _unknown_roles(session, role_ids):
        return Result.failure(ErrorKind.NOT_FOUND, messages.ROLE_NOT_FOUND)
    tenant_id = ctx.tenant_id if ctx.tenant_id is not None else settings.default_tenant_id
    if await tenants_repo.get_tenant(session, tenant_id=tenant_id) is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.TENANT_NOT_FOUND)

    user = User(
        tenant_id=tenant_id,
        username=request.username.strip(),
        email=request.email.strip(),
        password_hash=await asyncio.to_thread(hasher.hash, request.password),
        full_name=request.full_name.strip(),
        phone_number=request.phone_number,
        is_active=request.is_active,
        # Accounts created by an administrator skip the confirmation round trip.
        email_confirmed=True,
        failed_login_attempts=0,
        created_by=ctx.user_id,
    )
    try:
        session.add(user)
        await session.flush()
        await users_repo.replace_user_roles(session, user_id=user.id, role_ids=role_ids)
        record_audit(
            session,
            ctx=ctx,
            entity_name=_ENTITY,
            entity_id=user.id,
            action=AuditAction.CREATE,
            new_values={**snapshot(user), "role_ids": sorted(set(role_ids))},
        )
        item = await _item(session, user)
        await session.commit()
    except IntegrityError:
        await session.rollback()
        return Result.failure(ErrorKind.CONFLICT, messages.USERNAME_EXISTS)
    logger.info("user_created user_id=%s tenant_id=%s actor=%s", user.id, user.tenant_id, ctx.user_id)
    return Result.success(item, messages.USER_CREATED)


async def update_user(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    user_id: int,
    request: UpdateUserRequest,
) -> Result[UserItem]:
    user = await users_repo.get_user(session, ctx=ctx, user_id=user_id)
    if user is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.USER_NOT_FOUND)
    if request.email is not None and await users_repo.email_exists(
        session, email=request.email, exclude_user_id=user.id
    ):
        return Result.failure(ErrorKind.CONFLICT, messages.EMAIL_EXISTS)
    if request.role_ids is not None and await _unknown_roles(session, request.role_ids):
        return Result.failure(ErrorKind.NOT_FOUND, messages.ROLE_NOT_FOUND)

    old_values = snapshot(user)
    if request.email is not None:
        user.email = request.email.strip()
    if request.full_name is not None:
        user.full_name = request.full_name.strip()
    if request.phone_number is not None:
        user.phone_number = request.phone_number
    if request.is_active is not None:
        user.is_active = request.is_active
    user.updated_at = utc_now()
    user.updated_by = ctx.user_id
    if request.role_ids is not None:
        await users_repo.replace_user_roles(session, user_id=user.id, role_ids=request.role_ids)
    record_audit(
        session,
        ctx=ctx,
        entity_name=_ENTITY,
        entity_id=user.id,
        action=AuditAction.UPDATE,
        old_values=old_values,
        new_values=snapshot(user),
    )
    item = await _item(session, user)
    await session.commit()
    return Result.success(item, messages.USER_UPDATED)


async def delete_user(session: AsyncSession, *, ctx: RequestContext, user_id: int) -> Result[None]:
    user = await users_repo.get_user(session, ctx=ctx, user_id=user_id)
    if user is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.USER_NOT_FOUND)
    old_values = snapshot(user)
    now = utc_now()
    user.is_deleted = True
    user.deleted_at = now
    user.deleted_by = ctx.user_id
    # A deleted account must not be able to refresh its way back in.
    user.refresh_token_hash = None
    user.refresh_token_expiry = None
    record_audit(
        session,
        ctx=ctx,
        entity_name=_ENTITY,
        entity_id=user.id,
        action=AuditAction.DELETE,
        old_values=old_values,
    )
    await session.commit()
    logger.info("user_deleted user_id=%s actor=%s", user.id, ctx.user_id)
    return Result.success(None, messages.USER_DELETED)


async def toggle_user_status(session: AsyncSession, *, ctx: RequestContext, user_id: int) -> Result[bool]:
    user = await users_repo.get_user(session, ctx=ctx, user_id=user_id)
    if user is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.USER_NOT_FOUND)
    old_values = {"is_active": user.is_active}
    user.is_active = not user.is_active
    user.updated_at = utc_now()
    user.updated_by = ctx.user_id
    record_audit(
        session,
        ctx=ctx,
        entity_name=_ENTITY,
        entity_id=user.id,
        action=AuditAction.UPDATE,
        old_values=old_values,
        new_values={"is_active": user.is_active},
    )
    await session.commit()
    message = messages.USER_ACTIVATED if user.is_active else messages.USER_DEACTIVATED
    return Result.success(user.is_active, message)


async def assign_roles(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    user_id: int,
    role_ids: list[int],
) -> Result[None]:
    # Set-replace: the user ends up holding exactly role_ids.
    user = await users_repo.get_user(session, ctx=ctx, user_id=user_id)
    if user is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.USER_NOT_FOUND)
    if await _unknown_roles(session, role_ids):
        return Result.failure(ErrorKind.NOT_FOUND, messages.ROLE_NOT_FOUND)
    old_role_ids = await users_repo.list_role_ids_for_user(session, user_id=user.id)
    await users_repo.replace_user_roles(session, user_id=user.id, role_ids=role_ids)
    record_audit(
        session,
        ctx=ctx,
        entity_name="UserRole",
        entity_id=user.id,
        action=AuditAction.UPDATE,
        old_values={"role_ids": old_role_ids},
        new_values={"role_ids": sorted(set(role_ids))},
    )
    await session.commit()
    logger.info("user_roles_assigned user_id=%s roles=%s", user.id, sorted(set(role_ids)))
    return Result.success(None, messages.ROLES_ASSIGNED)


async def admin_reset_password(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    user_id: int,
    new_password: str,
    hasher: PasswordHasher | None = None,
) -> Result[None]:
    hasher = hasher or Pbkdf2PasswordHasher()
    user = await users_repo.get_user(session, ctx=ctx, user_id=user_id, for_update=True)
    if user is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.USER_NOT_FOUND)
    user.password_hash = await asyncio.to_thread(hasher.hash, new_password)
    user.refresh_token_hash = None
    user.refresh_token_expiry = None
    # An administrator reset also lifts any lockout in progress.
    user.failed_login_attempts = 0
    user.lockout_end = None
    user.updated_at = utc_now()
    user.updated_by = ctx.user_id
    record_audit(
        session,
        ctx=ctx,
        entity_name=_ENTITY,
        entity_id=user.id,
        action=AuditAction.UPDATE,
        additional_info="admin_password_reset",
    )
    await session.commit()
    logger.info("user_password_reset user_id=%s actor=%s", user.id, ctx.user_id)
    return Result.success(None, messages.PASSWORD_RESET)
