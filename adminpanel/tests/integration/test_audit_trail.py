from __future__ import annotations

import pytest
from sqlalchemy import func, select

from adminpanel.domain.models import AuditLog, Role
from adminpanel.domain.schemas import CreateRoleRequest
from adminpanel.persistence.db import SessionLocal
from adminpanel.persistence.repos import audit as audit_repo
from adminpanel.services.admin import roles as roles_service
from adminpanel.services.audit import AuditAction, record_audit
from adminpanel.tests.utils.accounts import seed_catalog, user_context


@pytest.mark.asyncio
async def test_rolled_back_operation_leaves_no_audit_row() -> None:
    await seed_catalog()
    ctx = user_context(user_id=1)
    async with SessionLocal() as session:
        session.add(Role(name="Doomed", is_system_role=False, is_active=True))
        await session.flush()
        record_audit(session, ctx=ctx, entity_name="Role", entity_id=99, action=AuditAction.CREATE)
        await session.rollback()
    async with SessionLocal() as session:
        count = (await session.execute(select(func.count()).select_from(AuditLog))).scalar_one()
    assert count == 0


@pytest.mark.asyncio
async def test_audit_rows_are_scoped_to_tenant() -> None:
    await seed_catalog()
    async with SessionLocal() as session:
        await roles_service.create_role(session, ctx=user_context(user_id=1, tenant_id=1), request=CreateRoleRequest(name="One"))
    async with SessionLocal() as session:
        await roles_service.create_role(session, ctx=user_context(user_id=1, tenant_id=2), request=CreateRoleRequest(name="Two"))

    async with SessionLocal() as session:
        first = await audit_repo.list_audit_logs(session, ctx=user_context(user_id=1, tenant_id=1))
        second = await audit_repo.list_audit_logs(session, ctx=user_context(user_id=1, tenant_id=2), action="Create")
        other = await audit_repo.get_audit_log(session, ctx=user_context(user_id=1, tenant_id=1), audit_log_id=second[0].id)
    assert [row.new_values["name"] for row in first] == ["One"]
    assert [row.new_values["name"] for row in second] == ["Two"]
    assert first[0].request_id == "test-request"
    assert other is None
