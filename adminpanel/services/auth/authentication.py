from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
import hmac
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from adminpanel.core.clock import ensure_utc, is_past, utc_now
from adminpanel.core.config import get_settings
from adminpanel.core.context import RequestContext
from adminpanel.core.errors import MailDeliveryError
from adminpanel.domain import messages
from adminpanel.domain.models import User
from adminpanel.domain.results import ErrorKind, Result
from adminpanel.domain.schemas import LoginResponse, UserInfo
from adminpanel.persistence.repos import tenants as tenants_repo
from adminpanel.persistence.repos import users as users_repo
from adminpanel.services.audit import AuditAction, record_audit, record_login, record_logout, snapshot
from adminpanel.services.auth.passwords import PasswordHasher, Pbkdf2PasswordHasher
from adminpanel.services.auth.tokens import (
    build_session_claims,
    encode_access_token,
    generate_one_time_token,
    generate_refresh_token,
    hash_token,
)
from adminpanel.services.authz.grants import load_session_grants
from adminpanel.services.mail import (
    LoggingMailSender,
    MailMessage,
    MailSender,
    email_confirmation_message,
    password_reset_message,
    welcome_message,
)


logger = logging.getLogger(__name__)


def _digest_matches(stored: str | None, raw_token: str) -> bool:
    # Compare digests in constant time; an unset column never matches.
    if not stored or not raw_token:
        return False
    return hmac.compare_digest(stored, hash_token(raw_token))


async def _verify_password(hasher: PasswordHasher, password: str, hashed: str) -> bool:
    # PBKDF2 is CPU-bound; keep it off the event loop.
    return await asyncio.to_thread(hasher.verify, password, hashed)


async def _hash_password(hasher: PasswordHasher, password: str) -> str:
    return await asyncio.to_thread(hasher.hash, password)


async def _send_mail(mailer: MailSender, to: str, message: MailMessage) -> None:
    # Mail failures never change the outcome of an already committed operation.
    try:
        await mailer.send(to, message.subject, message.html_body)
    except MailDeliveryError as exc:
        logger.warning("mail_delivery_failed subject=%s", message.subject, exc_info=exc)


async def _issue_session(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    user: User,
    now: datetime,
) -> LoginResponse:
    """Mint an access token and rotate the refresh token for ``user``.

    Shared by login and refresh so both flows issue identical claims. The new
    refresh token digest overwrites the previous one on the row; the caller
    commits before handing the tokens out.
    """

    settings = get_settings()
    grants = await load_session_grants(session, ctx=ctx, user_id=user.id)
    access = encode_access_token(build_session_claims(user, grants), now=now)
    raw_refresh, refresh_digest = generate_refresh_token()
    refresh_expiry = now + timedelta(days=settings.refresh_token_expiration_days)
    user.refresh_token_hash = refresh_digest
    user.refresh_token_expiry = refresh_expiry
    return LoginResponse(
        access_token=access.token,
        refresh_token=raw_refresh,
        access_token_expiry=access.expires_at,
        refresh_token_expiry=refresh_expiry,
        user=UserInfo(
            id=user.id,
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            profile_image_url=user.profile_image_url,
            tenant_id=user.tenant_id,
            roles=list(grants.role_names),
            permissions=list(grants.permission_codes),
        ),
    )


async def login(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    username: str,
    password: str,
    hasher: PasswordHasher | None = None,
) -> Result[LoginResponse]:
    """Authenticate by username and password.

    Unknown usernames and wrong passwords fail with the same message. A locked
    account is rejected before the password is checked and does not consume an
    attempt. Wrong passwords are counted by one atomic update on the locked
    row; reaching the limit opens the lockout window and restarts the count.
    """

    settings = get_settings()
    hasher = hasher or Pbkdf2PasswordHasher()
    user = await users_repo.get_user_by_username(session, ctx=ctx, username=username.strip(), for_update=True)
    if user is None:
        logger.info("login_failed reason=unknown_user request_id=%s", ctx.request_id)
        return Result.failure(ErrorKind.INVALID_CREDENTIALS, messages.INVALID_CREDENTIALS)
    if not user.is_active:
        # Log before rolling back; the rollback expires the loaded row.
        logger.info("login_failed reason=disabled user_id=%s", user.id)
        await session.rollback()
        return Result.failure(ErrorKind.ACCOUNT_DISABLED, messages.ACCOUNT_DISABLED)

    now = utc_now()
    lockout_end = ensure_utc(user.lockout_end)
    if lockout_end is not None and lockout_end > now:
        logger.info("login_failed reason=locked user_id=%s lockout_end=%s", user.id, lockout_end.isoformat())
        await session.rollback()
        return Result.failure(ErrorKind.ACCOUNT_LOCKED, messages.ACCOUNT_LOCKED)

    if not await _verify_password(hasher, password, user.password_hash):
        attempts, new_lockout_end = await users_repo.register_failed_login(
            session,
            user_id=user.id,
            max_attempts=settings.max_login_attempts,
            lockout_until=now + timedelta(minutes=settings.lockout_duration_minutes),
        )
        # Keep the loaded row in step with the database after the bulk update.
        set_committed_value(user, "failed_login_attempts", attempts)
        set_committed_value(user, "lockout_end", new_lockout_end)
        await session.commit()
        if new_lockout_end is not None and ensure_utc(new_lockout_end) > now:
            logger.warning("account_locked user_id=%s minutes=%s", user.id, settings.lockout_duration_minutes)
        else:
            logger.info("login_failed reason=bad_password user_id=%s attempts=%s", user.id, attempts)
        return Result.failure(ErrorKind.INVALID_CREDENTIALS, messages.INVALID_CREDENTIALS)

    user.failed_login_attempts = 0
    user.lockout_end = None
    user.last_login_at = now
    response = await _issue_session(session, ctx=ctx, user=user, now=now)
    record_login(session, ctx=ctx, user_id=user.id, username=user.username, tenant_id=user.tenant_id)
    await session.commit()
    logger.info("login_succeeded user_id=%s tenant_id=%s", user.id, user.tenant_id)
    return Result.success(response, messages.LOGIN_SUCCESS)


async def refresh_token(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    refresh_token: str,
) -> Result[LoginResponse]:
    # Rotation: the presented token is replaced and can never be used again.
    user = await users_repo.get_user_by_refresh_token_hash(session, ctx=ctx, token_hash=hash_token(refresh_token))
    if user is None or user.refresh_token_expiry is None or is_past(user.refresh_token_expiry):
        await session.rollback()
        logger.info("refresh_failed reason=invalid_token request_id=%s", ctx.request_id)
        return Result.failure(ErrorKind.INVALID_TOKEN, messages.INVALID_TOKEN)
    if not user.is_active:
        logger.info("refresh_failed reason=disabled user_id=%s", user.id)
        await session.rollback()
        return Result.failure(ErrorKind.ACCOUNT_DISABLED, messages.ACCOUNT_DISABLED)

    response = await _issue_session(session, ctx=ctx, user=user, now=utc_now())
    await session.commit()
    logger.info("refresh_succeeded user_id=%s", user.id)
    return Result.success(response)


async def logout(session: AsyncSession, *, ctx: RequestContext, user_id: int) -> Result[None]:
    user = await users_repo.get_user(session, ctx=ctx, user_id=user_id, for_update=True)
    if user is None:
        # Nothing to revoke; logging out stays a success.
        return Result.success(None, messages.LOGOUT_SUCCESS)
    user.refresh_token_hash = None
    user.refresh_token_expiry = None
    record_logout(session, ctx=ctx, user_id=user.id, username=user.username, tenant_id=user.tenant_id)
    await session.commit()
    logger.info("logout user_id=%s", user.id)
    return Result.success(None, messages.LOGOUT_SUCCESS)


async def forgot_password(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    email: str,
    mailer: MailSender | None = None,
) -> Result[None]:
    """Start a password reset; the response never reveals whether the email exists."""
    settings = get_settings()
    mailer = mailer or LoggingMailSender()
    user = await users_repo.get_user_by_email(session, ctx=ctx, email=email, for_update=True)
    if user is None:
        logger.info("password_reset_requested known=false request_id=%s", ctx.request_id)
        return Result.success(None, messages.PASSWORD_RESET_EMAIL_SENT)

    raw_token, digest = generate_one_time_token()
    user.password_reset_token_hash = digest
    user.password_reset_token_expiry = utc_now() + timedelta(hours=settings.password_reset_token_expiry_hours)
    await session.commit()
    logger.info("password_reset_requested known=true user_id=%s", user.id)
    await _send_mail(
        mailer,
        user.email,
        password_reset_message(
            full_name=user.full_name,
            email=user.email,
            token=raw_token,
            expiry_hours=settings.password_reset_token_expiry_hours,
        ),
    )
    return Result.success(None, messages.PASSWORD_RESET_EMAIL_SENT)


async def reset_password(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    email: str,
    token: str,
    new_password: str,
    confirm_password: str,
    hasher: PasswordHasher | None = None,
) -> Result[None]:
    hasher = hasher or Pbkdf2PasswordHasher()
    user = await users_repo.get_user_by_email(session, ctx=ctx, email=email, for_update=True)
    if user is None or not _digest_matches(user.password_reset_token_hash, token):
        await session.rollback()
        return Result.failure(ErrorKind.INVALID_TOKEN, messages.INVALID_TOKEN)
    if user.password_reset_token_expiry is None or is_past(user.password_reset_token_expiry):
        await session.rollback()
        return Result.failure(ErrorKind.TOKEN_EXPIRED, messages.TOKEN_EXPIRED)
    if new_password != confirm_password:
        await session.rollback()
        return Result.failure(ErrorKind.PASSWORD_MISMATCH, messages.PASSWORD_MISMATCH)

    user.password_hash = await _hash_password(hasher, new_password)
    user.password_reset_token_hash = None
    user.password_reset_token_expiry = None
    # A new password ends every outstanding session.
    user.refresh_token_hash = None
    user.refresh_token_expiry = None
    user.updated_at = utc_now()
    user.updated_by = user.id
    record_audit(
        session,
        ctx=ctx,
        entity_name="User",
        entity_id=user.id,
        action=AuditAction.UPDATE,
        additional_info="password_reset",
        user_id=user.id,
        username=user.username,
        tenant_id=user.tenant_id,
    )
    await session.commit()
    logger.info("password_reset_completed user_id=%s", user.id)
    return Result.success(None, messages.PASSWORD_RESET)


async def register(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    username: str,
    email: str,
    password: str,
    confirm_password: str,
    full_name: str,
    phone_number: str | None = None,
    hasher: PasswordHasher | None = None,
    mailer: MailSender | None = None,
) -> Result[int]:
    """Create a self-service account in the default tenant with the default role.

    Returns the new user id. Welcome and confirmation mail go out after the
    commit; delivery problems are logged only.
    """

    settings = get_settings()
    hasher = hasher or Pbkdf2PasswordHasher()
    mailer = mailer or LoggingMailSender()
    username = username.strip()
    email = email.strip()

    if password != confirm_password:
        return Result.failure(ErrorKind.PASSWORD_MISMATCH, messages.PASSWORD_MISMATCH)
    if await users_repo.username_exists(session, username=username):
        return Result.failure(ErrorKind.CONFLICT, messages.USERNAME_EXISTS)
    if await users_repo.email_exists(session, email=email):
        return Result.failure(ErrorKind.CONFLICT, messages.EMAIL_EXISTS)
    tenant = await tenants_repo.get_tenant(session, tenant_id=settings.default_tenant_id)
    if tenant is None:
        logger.error("register_failed reason=default_tenant_missing tenant_id=%s", settings.default_tenant_id)
        return Result.failure(ErrorKind.NOT_FOUND, messages.TENANT_NOT_FOUND)

    raw_token, digest = generate_one_time_token()
    user = User(
        tenant_id=tenant.id,
        username=username,
        email=email,
        password_hash=await _hash_password(hasher, password),
        full_name=full_name.strip(),
        phone_number=phone_number,
        is_active=True,
        email_confirmed=False,
        email_confirmation_token_hash=digest,
        failed_login_attempts=0,
        created_by=ctx.user_id,
    )
    try:
        session.add(user)
        await session.flush()
        await users_repo.replace_user_roles(session, user_id=user.id, role_ids=[settings.default_role_id])
        record_audit(
            session,
            ctx=ctx,
            entity_name="User",
            entity_id=user.id,
            action=AuditAction.CREATE,
            new_values=snapshot(user),
            tenant_id=user.tenant_id,
        )
        await session.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration of the same username or email.
        await session.rollback()
        logger.info("register_conflict username=%s", username)
        return Result.failure(ErrorKind.CONFLICT, messages.USERNAME_EXISTS)

    logger.info("user_registered user_id=%s tenant_id=%s", user.id, user.tenant_id)
    await _send_mail(mailer, user.email, welcome_message(full_name=user.full_name, username=user.username))
    await _send_mail(
        mailer,
        user.email,
        email_confirmation_message(full_name=user.full_name, email=user.email, token=raw_token),
    )
    return Result.success(user.id, messages.USER_CREATED)


async def confirm_email(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    email: str,
    token: str,
) -> Result[None]:
    user = await users_repo.get_user_by_email(session, ctx=ctx, email=email, for_update=True)
    if user is None or not _digest_matches(user.email_confirmation_token_hash, token):
        await session.rollback()
        return Result.failure(ErrorKind.INVALID_TOKEN, messages.INVALID_TOKEN)
    user.email_confirmed = True
    user.email_confirmation_token_hash = None
    user.updated_at = utc_now()
    await session.commit()
    logger.info("email_confirmed user_id=%s", user.id)
    return Result.success(None, messages.EMAIL_CONFIRMED)


async def change_password(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    user_id: int,
    current_password: str,
    new_password: str,
    confirm_password: str,
    hasher: PasswordHasher | None = None,
) -> Result[None]:
    hasher = hasher or Pbkdf2PasswordHasher()
    user = await users_repo.get_user(session, ctx=ctx, user_id=user_id, for_update=True)
    if user is None:
        return Result.failure(ErrorKind.NOT_FOUND, messages.USER_NOT_FOUND)
    if not await _verify_password(hasher, current_password, user.password_hash):
        await session.rollback()
        return Result.failure(ErrorKind.INVALID_CREDENTIALS, messages.CURRENT_PASSWORD_WRONG)
    if new_password != confirm_password:
        await session.rollback()
        return Result.failure(ErrorKind.PASSWORD_MISMATCH, messages.PASSWORD_MISMATCH)

    user.password_hash = await _hash_password(hasher, new_password)
    user.updated_at = utc_now()
    user.updated_by = ctx.user_id
    record_audit(
        session,
        ctx=ctx,
        entity_name="User",
        entity_id=user.id,
        action=AuditAction.UPDATE,
        additional_info="password_changed",
    )
    await session.commit()
    logger.info("password_changed user_id=%s", user.id)
    return Result.success(None, messages.PASSWORD_CHANGED)
