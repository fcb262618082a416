from __future__ import annotations

from datetime import datetime

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.core.context import RequestContext
from adminpanel.domain.models import Role, User, UserRole
from adminpanel.persistence.guards import not_deleted, tenant_predicate


def _live_users(ctx: RequestContext):
    # Every user read composes the soft-delete and tenant predicates explicitly.
    return select(User).where(not_deleted(User), tenant_predicate(User, ctx))


async def get_user(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    user_id: int,
    for_update: bool = False,
) -> User | None:
    stmt = _live_users(ctx).where(User.id == user_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_user_by_username(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    username: str,
    for_update: bool = False,
) -> User | None:
    # Lock the row during login so lockout bookkeeping serializes per user.
    stmt = _live_users(ctx).where(User.username == username)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_user_by_email(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    email: str,
    for_update: bool = False,
) -> User | None:
    stmt = _live_users(ctx).where(func.lower(User.email) == email.strip().lower())
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_user_by_refresh_token_hash(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    token_hash: str,
) -> User | None:
    # Row lock makes concurrent refreshes of the same token race-free.
    result = await session.execute(
        _live_users(ctx).where(User.refresh_token_hash == token_hash).with_for_update()
    )
    return result.scalar_one_or_none()


async def username_exists(
    session: AsyncSession,
    *,
    username: str,
    exclude_user_id: int | None = None,
) -> bool:
    # Uniqueness is global across tenants, so no tenant predicate here.
    stmt = select(User.id).where(not_deleted(User), User.username == username)
    if exclude_user_id is not None:
        stmt = stmt.where(User.id != exclude_user_id)
    result = await session.execute(stmt.limit(1))
    return result.scalar_one_or_none() is not None


async def email_exists(
    session: AsyncSession,
    *,
    email: str,
    exclude_user_id: int | None = None,
) -> bool:
    stmt = select(User.id).where(not_deleted(User), func.lower(User.email) == email.strip().lower())
    if exclude_user_id is not None:
        stmt = stmt.where(User.id != exclude_user_id)
    result = await session.execute(stmt.limit(1))
    return result.scalar_one_or_none() is not None


async def list_users(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    search: str | None = None,
    is_active: bool | None = None,
    role_id: int | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[User]:
    stmt = _live_users(ctx)
    if search:
        pattern = f"%{search.strip().lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(User.username).like(pattern),
                func.lower(User.email).like(pattern),
                func.lower(User.full_name).like(pattern),
            )
        )
    if is_active is not None:
        stmt = stmt.where(User.is_active.is_(is_active))
    if role_id is not None:
        stmt = stmt.where(User.id.in_(select(UserRole.user_id).where(UserRole.role_id == role_id)))
    stmt = stmt.order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def register_failed_login(
    session: AsyncSession,
    *,
    user_id: int,
    max_attempts: int,
    lockout_until: datetime,
) -> tuple[int, datetime | None]:
    """Count one failed password attempt in a single statement.

    The increment and the threshold comparison happen inside the database, so
    two concurrent failures can never both read the same old counter. When the
    threshold is reached the lockout window opens and the counter restarts at
    zero. Returns the stored counter and lockout end after the update.
    """

    reached = User.failed_login_attempts + 1 >= max_attempts
    stmt = (
        update(User)
        .where(User.id == user_id)
        .values(
            failed_login_attempts=case((reached, 0), else_=User.failed_login_attempts + 1),
            lockout_end=case((reached, lockout_until), else_=User.lockout_end),
        )
        .returning(User.failed_login_attempts, User.lockout_end)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    attempts, lockout_end = result.one()
    return int(attempts), lockout_end


async def list_role_ids_for_user(session: AsyncSession, *, user_id: int) -> list[int]:
    # Raw assignments, including roles that are inactive or deleted.
    result = await session.execute(
        select(UserRole.role_id).where(UserRole.user_id == user_id).order_by(UserRole.role_id)
    )
    return list(result.scalars().all())


async def replace_user_roles(session: AsyncSession, *, user_id: int, role_ids: list[int]) -> None:
    # Set-replace: drop every assignment, then insert the new set once each.
    await session.execute(delete(UserRole).where(UserRole.user_id == user_id))
    for role_id in sorted(set(role_ids)):
        session.add(UserRole(user_id=user_id, role_id=role_id))
    await session.flush()


async def list_role_names_by_user(session: AsyncSession, *, user_ids: list[int]) -> dict[int, list[str]]:
    # Batch role-name lookup for list projections; deleted roles are skipped.
    if not user_ids:
        return {}
    result = await session.execute(
        select(UserRole.user_id, Role.name)
        .join(Role, Role.id == UserRole.role_id)
        .where(UserRole.user_id.in_(set(user_ids)), not_deleted(Role))
        .order_by(UserRole.user_id, Role.name)
    )
    names: dict[int, list[str]] = {user_id: [] for user_id in user_ids}
    for user_id, role_name in result.all():
        names[user_id].append(role_name)
    return names
