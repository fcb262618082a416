from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from adminpanel.core.clock import utc_now
from adminpanel.domain.models import AuditLog, User
from adminpanel.domain.results import ErrorKind
from adminpanel.domain.schemas import CreateUserRequest, UpdateUserRequest
from adminpanel.persistence.db import SessionLocal
from adminpanel.services.admin import users as users_service
from adminpanel.services.auth import authentication
from adminpanel.tests.utils.accounts import (
    anonymous_context,
    create_test_user,
    load_user,
    seed_catalog,
    test_hasher,
    user_context,
)


ADMIN_CTX = user_context(user_id=1, username="admin")


def _create_request(**overrides: object) -> CreateUserRequest:
    payload: dict[str, object] = {
        "username": "staff",
        "email": "staff@example.com",
        "password": "Staff@123",
        "full_name": "Staff Member",
    }
    payload.update(overrides)
    return CreateUserRequest(**payload)


@pytest.mark.asyncio
async def test_create_user_defaults_role_and_confirms_email() -> None:
    await seed_catalog()
    async with SessionLocal() as session:
        result = await users_service.create_user(session, ctx=ADMIN_CTX, request=_create_request(), hasher=test_hasher)
    assert result.ok
    assert result.data.roles == ["User"]
    assert result.data.email_confirmed
    assert result.data.tenant_id == 1

    async with SessionLocal() as session:
        duplicate = await users_service.create_user(
            session, ctx=ADMIN_CTX, request=_create_request(email="other@example.com"), hasher=test_hasher
        )
        bad_role = await users_service.create_user(
            session,
            ctx=ADMIN_CTX,
            request=_create_request(username="staff2", email="staff2@example.com", role_ids=[9999]),
            hasher=test_hasher,
        )
    assert duplicate.error == ErrorKind.CONFLICT
    assert bad_role.error == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_update_and_assign_roles_replace_set() -> None:
    await seed_catalog()
    user_id = await create_test_user(username="staff", role_ids=(2,))
    async with SessionLocal() as session:
        updated = await users_service.update_user(
            session,
            ctx=ADMIN_CTX,
            user_id=user_id,
            request=UpdateUserRequest(full_name="Renamed Staff", role_ids=[1, 2]),
        )
    assert updated.data.full_name == "Renamed Staff"
    assert updated.data.roles == ["Admin", "User"]

    async with SessionLocal() as session:
        assigned = await users_service.assign_roles(session, ctx=ADMIN_CTX, user_id=user_id, role_ids=[1, 1])
    assert assigned.ok
    async with SessionLocal() as session:
        assert (await users_service.get_user(session, ctx=ADMIN_CTX, user_id=user_id)).data.roles == ["Admin"]
        audit = (
            await session.execute(select(AuditLog).where(AuditLog.entity_name == "UserRole"))
        ).scalar_one()
    assert audit.old_values == {"role_ids": [1, 2]}
    assert audit.new_values == {"role_ids": [1]}


@pytest.mark.asyncio
async def test_users_in_other_tenants_are_invisible() -> None:
    await seed_catalog()
    user_id = await create_test_user(username="staff")
    foreign_ctx = user_context(user_id=1, tenant_id=42)
    async with SessionLocal() as session:
        missing = await users_service.get_user(session, ctx=foreign_ctx, user_id=user_id)
        listed = await users_service.list_users(session, ctx=foreign_ctx)
        home = await users_service.list_users(session, ctx=ADMIN_CTX, search="STAFF")
    assert missing.error == ErrorKind.NOT_FOUND
    assert listed.data == []
    assert [item.username for item in home.data] == ["staff"]


@pytest.mark.asyncio
async def test_delete_user_soft_deletes_and_frees_username() -> None:
    await seed_catalog()
    user_id = await create_test_user(username="staff")
    async with SessionLocal() as session:
        assert (await users_service.delete_user(session, ctx=ADMIN_CTX, user_id=user_id)).ok
    deleted = await load_user(user_id)
    assert deleted.is_deleted
    assert deleted.deleted_by == 1
    async with SessionLocal() as session:
        login = await authentication.login(
            session, ctx=anonymous_context(), username="staff", password="Secret@123", hasher=test_hasher
        )
        recreated = await users_service.create_user(session, ctx=ADMIN_CTX, request=_create_request(), hasher=test_hasher)
    assert login.error == ErrorKind.INVALID_CREDENTIALS
    assert recreated.ok


@pytest.mark.asyncio
async def test_toggle_and_admin_reset_lift_lockout() -> None:
    await seed_catalog()
    user_id = await create_test_user(username="staff", lockout_end=utc_now(), failed_login_attempts=4)
    async with SessionLocal() as session:
        toggled = await users_service.toggle_user_status(session, ctx=ADMIN_CTX, user_id=user_id)
    assert toggled.data is False

    async with SessionLocal() as session:
        reset = await users_service.admin_reset_password(
            session, ctx=ADMIN_CTX, user_id=user_id, new_password="Reset@123", hasher=test_hasher
        )
    assert reset.ok
    async with SessionLocal() as session:
        user = (await session.execute(select(User).where(User.id == user_id))).scalar_one()
    assert user.failed_login_attempts == 0
    assert user.lockout_end is None
    assert test_hasher.verify("Reset@123", user.password_hash)


@pytest.mark.asyncio
async def test_email_uniqueness_ignores_case_among_live_users() -> None:
    # The database constraint holds even when the service-level check is bypassed.
    await seed_catalog()
    first_id = await create_test_user(username="carol", email="carol@example.com")
    with pytest.raises(IntegrityError):
        await create_test_user(username="carol2", email="Carol@Example.COM")

    async with SessionLocal() as session:
        assert (await users_service.delete_user(session, ctx=ADMIN_CTX, user_id=first_id)).ok
    # Once the first account is soft-deleted the address is free again.
    reused_id = await create_test_user(username="carol3", email="CAROL@example.com")
    assert (await load_user(reused_id)).email == "CAROL@example.com"
