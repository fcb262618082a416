from __future__ import annotations

import pytest
from sqlalchemy import select

from adminpanel.domain.models import AuditLog, Permission, RolePermission
from adminpanel.domain.results import ErrorKind
from adminpanel.domain.schemas import (
    CreateRoleRequest,
    PageActionAssignment,
    PermissionAssignment,
    UpdateRoleRequest,
)
from adminpanel.persistence.db import SessionLocal
from adminpanel.services.admin import roles as roles_service
from adminpanel.services.admin import users as users_service
from adminpanel.services.authz import grants
from adminpanel.tests.utils.accounts import create_test_user, page_id_by_url, seed_catalog, user_context


ADMIN_CTX = user_context(user_id=1, username="admin")


async def _permission_ids(*codes: str) -> list[int]:
    async with SessionLocal() as session:
        result = await session.execute(select(Permission.id).where(Permission.code.in_(codes)).order_by(Permission.id))
        return list(result.scalars().all())


async def _create_role(name: str, *codes: str):
    async with SessionLocal() as session:
        return await roles_service.create_role(
            session,
            ctx=ADMIN_CTX,
            request=CreateRoleRequest(name=name, description="test", permission_ids=await _permission_ids(*codes)),
        )


@pytest.mark.asyncio
async def test_create_role_rejects_duplicate_names_case_insensitively() -> None:
    await seed_catalog()
    created = await _create_role("Editors", "Users.View", "Users.Edit")
    assert created.ok
    assert created.data.permissions_count == 2
    assert not created.data.is_system_role
    duplicate = await _create_role("editors")
    assert duplicate.error == ErrorKind.CONFLICT


@pytest.mark.asyncio
async def test_create_role_rejects_unknown_permissions() -> None:
    await seed_catalog()
    async with SessionLocal() as session:
        result = await roles_service.create_role(
            session, ctx=ADMIN_CTX, request=CreateRoleRequest(name="Ghosts", permission_ids=[9999])
        )
    assert result.error == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_system_roles_are_protected() -> None:
    await seed_catalog()
    async with SessionLocal() as session:
        renamed = await roles_service.update_role(
            session, ctx=ADMIN_CTX, role_id=1, request=UpdateRoleRequest(name="Root")
        )
        toggled = await roles_service.toggle_role_status(session, ctx=ADMIN_CTX, role_id=2)
        deleted = await roles_service.delete_role(session, ctx=ADMIN_CTX, role_id=1)
        permissions = await roles_service.assign_permissions(
            session, ctx=ADMIN_CTX, role_id=1, assignments=[]
        )
    assert renamed.error == ErrorKind.FORBIDDEN
    assert toggled.error == ErrorKind.FORBIDDEN
    assert deleted.error == ErrorKind.FORBIDDEN
    assert permissions.error == ErrorKind.FORBIDDEN


@pytest.mark.asyncio
async def test_delete_role_blocked_while_assigned() -> None:
    await seed_catalog()
    role_id = (await _create_role("Temps", "Users.View")).data.id
    user_id = await create_test_user(username="temp", role_ids=(role_id,))
    async with SessionLocal() as session:
        blocked = await roles_service.delete_role(session, ctx=ADMIN_CTX, role_id=role_id)
    assert blocked.error == ErrorKind.FORBIDDEN

    async with SessionLocal() as session:
        assert (await users_service.delete_user(session, ctx=ADMIN_CTX, user_id=user_id)).ok
    async with SessionLocal() as session:
        deleted = await roles_service.delete_role(session, ctx=ADMIN_CTX, role_id=role_id)
    assert deleted.ok
    async with SessionLocal() as session:
        assert (await roles_service.get_role(session, role_id=role_id)).error == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_assign_permissions_replaces_set_and_keeps_denied_rows_inert() -> None:
    await seed_catalog()
    role_id = (await _create_role("Support", "Users.View", "Users.Edit")).data.id
    user_id = await create_test_user(username="support", role_ids=(role_id,))
    view_id, export_id = await _permission_ids("Users.View", "Users.Export")

    async with SessionLocal() as session:
        result = await roles_service.assign_permissions(
            session,
            ctx=ADMIN_CTX,
            role_id=role_id,
            assignments=[
                PermissionAssignment(permission_id=view_id, is_granted=False),
                PermissionAssignment(permission_id=export_id),
            ],
        )
    assert result.ok

    async with SessionLocal() as session:
        rows = (
            await session.execute(select(RolePermission).where(RolePermission.role_id == role_id))
        ).scalars().all()
        codes = await grants.resolve_permission_codes(session, ctx=user_context(user_id=user_id), user_id=user_id)
        audit = (
            await session.execute(select(AuditLog).where(AuditLog.entity_name == "RolePermission"))
        ).scalar_one()
    assert {(row.permission_id, row.is_granted) for row in rows} == {(view_id, False), (export_id, True)}
    assert codes == {"Users.Export"}
    assert audit.new_values == {"granted": [export_id]}


@pytest.mark.asyncio
async def test_permission_groups_and_matrix_reflect_grants() -> None:
    await seed_catalog()
    async with SessionLocal() as session:
        groups = (await roles_service.get_role_permissions(session, role_id=2)).data
        matrix = (await roles_service.get_role_permission_matrix(session, role_id=2)).data
    by_module = {group.module: group for group in groups}
    granted = {item.code for item in by_module["Users"].permissions if item.is_granted}
    assert granted == {"Users.View"}

    users_page = await page_id_by_url("/Users")
    page = next(item for item in matrix.pages if item.page_id == users_page)
    codes = {action.action_id: action.code for action in matrix.actions}
    assert {codes[cell.action_id]: cell.is_granted for cell in page.cells} == {
        "view": True,
        "create": False,
        "edit": False,
        "delete": False,
    }


@pytest.mark.asyncio
async def test_assign_page_actions_allowed_on_system_role() -> None:
    await seed_catalog()
    users_page = await page_id_by_url("/Users")
    async with SessionLocal() as session:
        matrix = (await roles_service.get_role_permission_matrix(session, role_id=2)).data
    cells = next(item for item in matrix.pages if item.page_id == users_page).cells
    assignments = [PageActionAssignment(page_action_id=cell.page_action_id) for cell in cells]

    async with SessionLocal() as session:
        result = await roles_service.assign_page_actions(session, ctx=ADMIN_CTX, role_id=2, assignments=assignments)
    assert result.ok
    user_id = await create_test_user(username="reader", role_ids=(2,))
    async with SessionLocal() as session:
        pairs = await grants.resolve_granted_page_actions(session, ctx=user_context(user_id=user_id), user_id=user_id)
    assert pairs == {(users_page, "view"), (users_page, "create"), (users_page, "edit"), (users_page, "delete")}

    async with SessionLocal() as session:
        unknown = await roles_service.assign_page_actions(
            session, ctx=ADMIN_CTX, role_id=2, assignments=[PageActionAssignment(page_action_id=9999)]
        )
    assert unknown.error == ErrorKind.NOT_FOUND
