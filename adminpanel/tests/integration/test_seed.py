from __future__ import annotations

import pytest
from sqlalchemy import func, select

from adminpanel.domain.models import Page, Permission, Role, User
from adminpanel.persistence.db import SessionLocal
from adminpanel.services.seed import PAGES, PERMISSIONS
from adminpanel.tests.utils.accounts import ADMIN_PASSWORD, seed_catalog, test_hasher


@pytest.mark.asyncio
async def test_seed_is_idempotent() -> None:
    first = await seed_catalog()
    second = await seed_catalog()
    assert first.created["permissions"] == len(PERMISSIONS)
    assert first.created["pages"] == len(PAGES)
    assert first.created["users"] == 1
    assert second.created == {}

    async with SessionLocal() as session:
        assert (await session.execute(select(func.count()).select_from(Permission))).scalar_one() == len(PERMISSIONS)
        roles = (await session.execute(select(Role).order_by(Role.id))).scalars().all()
        users_page = (await session.execute(select(Page).where(Page.url == "/Users"))).scalar_one()
        admin = (await session.execute(select(User).where(User.username == "admin"))).scalar_one()
    assert [(role.id, role.name, role.is_system_role) for role in roles] == [(1, "Admin", True), (2, "User", True)]
    assert users_page.id == 2
    assert test_hasher.verify(ADMIN_PASSWORD, admin.password_hash)
