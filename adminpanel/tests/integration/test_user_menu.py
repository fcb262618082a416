from __future__ import annotations

import pytest
from sqlalchemy import select

from adminpanel.domain.models import Action
from adminpanel.domain.schemas import CreatePageRequest
from adminpanel.persistence.db import SessionLocal
from adminpanel.services.admin import pages as pages_service
from adminpanel.services.menu import build_user_menu
from adminpanel.tests.utils.accounts import (
    create_test_role,
    create_test_user,
    role_id_by_name,
    seed_catalog,
    user_context,
)


async def _create_page(name: str, url: str, parent_id: int | None = None, order: int = 0) -> int:
    async with SessionLocal() as session:
        result = await pages_service.create_page(
            session,
            ctx=user_context(user_id=1),
            request=CreatePageRequest(name_ar=name, name_en=name, url=url, parent_id=parent_id, display_order=order),
        )
    assert result.ok, result.messages
    return result.data.id


async def _offer_view(page_id: int) -> None:
    async with SessionLocal() as session:
        view_id = (await session.execute(select(Action.id).where(Action.code == "view"))).scalar_one()
        result = await pages_service.assign_actions(session, ctx=user_context(user_id=1), page_id=page_id, action_ids=[view_id])
    assert result.ok


async def _menu(user_id: int):
    async with SessionLocal() as session:
        return await build_user_menu(session, ctx=user_context(user_id=user_id), user_id=user_id)


@pytest.mark.asyncio
async def test_leaf_grant_shows_full_ancestor_chain() -> None:
    await seed_catalog()
    a_id = await _create_page("Reports", "/Reports", order=10)
    b_id = await _create_page("Finance", "/Reports/Finance", parent_id=a_id)
    c_id = await _create_page("Ledger", "Reports/Finance/Ledger", parent_id=b_id)
    await _offer_view(c_id)
    role_id = await create_test_role(name="LedgerViewers", page_actions=(("/Reports/Finance/Ledger", "view"),))
    user_id = await create_test_user(username="ledger", role_ids=(role_id,))

    menu = await _menu(user_id)
    assert [node.id for node in menu] == [a_id]
    assert [node.id for node in menu[0].children] == [b_id]
    leaf = menu[0].children[0].children
    assert [node.id for node in leaf] == [c_id]
    assert leaf[0].url == "/Reports/Finance/Ledger"


@pytest.mark.asyncio
async def test_default_user_menu_hides_pages_outside_navigation() -> None:
    await seed_catalog()
    user_id = await create_test_user(username="reader", role_ids=(await role_id_by_name("User"),))
    menu = await _menu(user_id)
    assert [node.url for node in menu] == ["/", "/Users", "/Roles", "/Calendar"]


@pytest.mark.asyncio
async def test_user_without_view_grants_gets_empty_menu() -> None:
    await seed_catalog()
    role_id = await create_test_role(name="DeleteOnly", page_actions=(("/Users", "delete"),))
    user_id = await create_test_user(username="deleter", role_ids=(role_id,))
    assert await _menu(user_id) == []
    assert await _menu(await create_test_user(username="roleless")) == []


@pytest.mark.asyncio
async def test_inactive_parent_hides_granted_child() -> None:
    await seed_catalog()
    parent_id = await _create_page("Archive", "/Archive")
    child_id = await _create_page("Old", "/Archive/Old", parent_id=parent_id)
    await _offer_view(child_id)
    role_id = await create_test_role(name="Archivists", page_actions=(("/Archive/Old", "view"),))
    user_id = await create_test_user(username="archivist", role_ids=(role_id,))
    assert [node.id for node in await _menu(user_id)] == [parent_id]

    async with SessionLocal() as session:
        toggled = await pages_service.toggle_page_status(session, ctx=user_context(user_id=1), page_id=parent_id)
    assert toggled.ok and toggled.data is False
    assert await _menu(user_id) == []
