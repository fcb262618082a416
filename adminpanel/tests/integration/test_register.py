from __future__ import annotations

import pytest
from sqlalchemy import select

from adminpanel.domain.models import AuditLog, UserRole
from adminpanel.domain.results import ErrorKind
from adminpanel.persistence.db import SessionLocal
from adminpanel.services.auth import authentication
from adminpanel.tests.utils.accounts import anonymous_context, create_test_user, load_user, seed_catalog, test_hasher
from adminpanel.tests.utils.mail import FailingMailSender, RecordingMailSender


async def _register(mailer=None, **overrides: str):
    payload = {
        "username": "newbie",
        "email": "newbie@example.com",
        "password": "Secret@123",
        "confirm_password": "Secret@123",
        "full_name": "New Bie",
    }
    payload.update(overrides)
    async with SessionLocal() as session:
        return await authentication.register(
            session,
            ctx=anonymous_context(),
            hasher=test_hasher,
            mailer=mailer or RecordingMailSender(),
            **payload,
        )


@pytest.mark.asyncio
async def test_register_creates_unconfirmed_user_with_default_role() -> None:
    await seed_catalog()
    mailer = RecordingMailSender()
    result = await _register(mailer)
    assert result.ok
    user = await load_user(result.data)
    assert user.tenant_id == 1
    assert user.is_active
    assert not user.email_confirmed
    assert user.email_confirmation_token_hash is not None
    assert test_hasher.verify("Secret@123", user.password_hash)

    async with SessionLocal() as session:
        role_ids = (await session.execute(select(UserRole.role_id).where(UserRole.user_id == user.id))).scalars().all()
        created = (
            await session.execute(select(AuditLog).where(AuditLog.action == "Create", AuditLog.entity_id == str(user.id)))
        ).scalar_one()
    assert role_ids == [2]
    assert created.new_values["password_hash"] == "[REDACTED]"
    assert mailer.subjects() == ["Welcome", "Confirm your email"]


@pytest.mark.asyncio
async def test_register_conflicts_and_mismatch() -> None:
    await seed_catalog()
    await create_test_user(username="taken", email="taken@example.com")
    assert (await _register(username="taken")).error == ErrorKind.CONFLICT
    assert (await _register(email="TAKEN@example.com")).error == ErrorKind.CONFLICT
    assert (await _register(confirm_password="Other@123")).error == ErrorKind.PASSWORD_MISMATCH


@pytest.mark.asyncio
async def test_register_without_default_tenant_fails_cleanly() -> None:
    result = await _register()
    assert result.error == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_register_survives_mail_failure() -> None:
    await seed_catalog()
    result = await _register(FailingMailSender())
    assert result.ok


@pytest.mark.asyncio
async def test_confirm_email_with_mailed_token() -> None:
    await seed_catalog()
    mailer = RecordingMailSender()
    user_id = (await _register(mailer)).data
    token = mailer.sent[1].link_token()

    async with SessionLocal() as session:
        wrong = await authentication.confirm_email(session, ctx=anonymous_context(), email="newbie@example.com", token="nope")
    assert wrong.error == ErrorKind.INVALID_TOKEN

    async with SessionLocal() as session:
        confirmed = await authentication.confirm_email(
            session, ctx=anonymous_context(), email="newbie@example.com", token=token
        )
    assert confirmed.ok
    user = await load_user(user_id)
    assert user.email_confirmed
    assert user.email_confirmation_token_hash is None
