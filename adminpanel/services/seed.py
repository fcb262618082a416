from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.core.config import VIEW_ACTION_CODE, get_settings
from adminpanel.core.errors import SeedError
from adminpanel.domain.models import (
    Action,
    Page,
    PageAction,
    Permission,
    Role,
    RolePageAction,
    RolePermission,
    Tenant,
    User,
    UserRole,
)
from adminpanel.persistence.guards import not_deleted
from adminpanel.persistence.repos import roles as roles_repo
from adminpanel.persistence.repos import tenants as tenants_repo
from adminpanel.services.auth.passwords import PasswordHasher, Pbkdf2PasswordHasher


logger = logging.getLogger(__name__)

ADMIN_ROLE_NAME = "Admin"
USER_ROLE_NAME = "User"
ADMIN_USERNAME = "admin"
ADMIN_EMAIL = "admin@system.com"
ADMIN_DEFAULT_PASSWORD = "Admin@123"
DEFAULT_TENANT_NAME = "Default Tenant"


@dataclass(frozen=True)
class PermissionSeed:
    module: str
    action: str
    name_ar: str
    name_en: str
    display_order: int

    @property
    def code(self) -> str:
        return f"{self.module}.{self.action}"


@dataclass(frozen=True)
class ActionSeed:
    code: str
    name_ar: str
    name_en: str
    icon: str
    display_order: int


@dataclass(frozen=True)
class PageSeed:
    url: str
    name_ar: str
    name_en: str
    icon: str
    display_order: int
    action_codes: tuple[str, ...]
    is_in_menu: bool = True


@dataclass
class SeedReport:
    # Rows inserted per table; zero everywhere on a re-run.
    created: dict[str, int] = field(default_factory=dict)

    def bump(self, table: str, count: int = 1) -> None:
        self.created[table] = self.created.get(table, 0) + count


PERMISSIONS: tuple[PermissionSeed, ...] = (
    PermissionSeed("Users", "View", "عرض المستخدمين", "View Users", 1),
    PermissionSeed("Users", "Create", "إضافة مستخدم", "Create User", 2),
    PermissionSeed("Users", "Edit", "تعديل مستخدم", "Edit User", 3),
    PermissionSeed("Users", "Delete", "حذف مستخدم", "Delete User", 4),
    PermissionSeed("Users", "ManageRoles", "إدارة أدوار المستخدم", "Manage User Roles", 5),
    PermissionSeed("Users", "ResetPassword", "إعادة تعيين كلمة المرور", "Reset User Password", 6),
    PermissionSeed("Users", "Export", "تصدير المستخدمين", "Export Users", 7),
    PermissionSeed("Roles", "View", "عرض الأدوار", "View Roles", 1),
    PermissionSeed("Roles", "Create", "إضافة دور", "Create Role", 2),
    PermissionSeed("Roles", "Edit", "تعديل دور", "Edit Role", 3),
    PermissionSeed("Roles", "Delete", "حذف دور", "Delete Role", 4),
    PermissionSeed("Roles", "ManagePermissions", "إدارة الصلاحيات", "Manage Permissions", 5),
    PermissionSeed("AuditLogs", "View", "عرض سجل التدقيق", "View Audit Logs", 1),
    PermissionSeed("AuditLogs", "Export", "تصدير سجل التدقيق", "Export Audit Logs", 2),
    PermissionSeed("Settings", "View", "عرض الإعدادات", "View Settings", 1),
    PermissionSeed("Settings", "Edit", "تعديل الإعدادات", "Edit Settings", 2),
    PermissionSeed("Tenants", "View", "عرض المستأجرين", "View Tenants", 1),
    PermissionSeed("Tenants", "Create", "إضافة مستأجر", "Create Tenant", 2),
    PermissionSeed("Tenants", "Edit", "تعديل مستأجر", "Edit Tenant", 3),
    PermissionSeed("Tenants", "Delete", "حذف مستأجر", "Delete Tenant", 4),
)

ACTIONS: tuple[ActionSeed, ...] = (
    ActionSeed("view", "عرض", "View", "bi-eye", 1),
    ActionSeed("create", "إضافة", "Create", "bi-plus-circle", 2),
    ActionSeed("edit", "تعديل", "Edit", "bi-pencil", 3),
    ActionSeed("delete", "حذف", "Delete", "bi-trash", 4),
    ActionSeed("export", "تصدير", "Export", "bi-download", 5),
    ActionSeed("print", "طباعة", "Print", "bi-printer", 6),
)

_CRUD = ("view", "create", "edit", "delete")

PAGES: tuple[PageSeed, ...] = (
    PageSeed("/", "لوحة التحكم", "Dashboard", "bi-speedometer2", 1, ("view",)),
    PageSeed("/Users", "المستخدمين", "Users", "bi-people", 2, _CRUD),
    PageSeed("/Roles", "الأدوار", "Roles", "bi-shield-lock", 3, _CRUD),
    PageSeed("/Calendar", "التقويم", "Calendar", "bi-calendar3", 4, _CRUD),
    PageSeed("/Profile", "الملف الشخصي", "Profile", "bi-person-circle", 5, ("view", "edit"), is_in_menu=False),
)


async def _ensure_tenant(session: AsyncSession, report: SeedReport) -> Tenant:
    settings = get_settings()
    tenant = await tenants_repo.get_tenant(session, tenant_id=settings.default_tenant_id)
    if tenant is None:
        tenant = await tenants_repo.get_tenant_by_name(session, name=DEFAULT_TENANT_NAME)
    if tenant is None:
        tenant = Tenant(name=DEFAULT_TENANT_NAME, is_active=True)
        session.add(tenant)
        await session.flush()
        report.bump("tenants")
    return tenant


async def _ensure_permissions(session: AsyncSession, report: SeedReport) -> dict[str, Permission]:
    result = await session.execute(select(Permission).where(not_deleted(Permission)))
    by_code = {permission.code: permission for permission in result.scalars().all()}
    for item in PERMISSIONS:
        if item.code in by_code:
            continue
        permission = Permission(
            module=item.module,
            action=item.action,
            code=item.code,
            display_name_ar=item.name_ar,
            display_name_en=item.name_en,
            display_order=item.display_order,
            is_active=True,
        )
        session.add(permission)
        by_code[item.code] = permission
        report.bump("permissions")
    await session.flush()
    return by_code


async def _ensure_role(session: AsyncSession, report: SeedReport, *, name: str, description: str) -> Role:
    role = await roles_repo.get_role_by_name(session, name=name)
    if role is None:
        role = Role(name=name, description=description, is_system_role=True, is_active=True)
        session.add(role)
        await session.flush()
        report.bump("roles")
    return role


async def _ensure_actions(session: AsyncSession, report: SeedReport) -> dict[str, Action]:
    result = await session.execute(select(Action).where(not_deleted(Action)))
    by_code = {action.code.lower(): action for action in result.scalars().all()}
    for item in ACTIONS:
        if item.code in by_code:
            continue
        action = Action(
            code=item.code,
            name_ar=item.name_ar,
            name_en=item.name_en,
            icon=item.icon,
            display_order=item.display_order,
            is_active=True,
        )
        session.add(action)
        by_code[item.code] = action
        report.bump("actions")
    await session.flush()
    return by_code


async def _ensure_pages(session: AsyncSession, report: SeedReport) -> dict[str, Page]:
    result = await session.execute(select(Page).where(not_deleted(Page)))
    by_url = {page.url: page for page in result.scalars().all()}
    for item in PAGES:
        if item.url in by_url:
            continue
        page = Page(
            url=item.url,
            name_ar=item.name_ar,
            name_en=item.name_en,
            icon=item.icon,
            display_order=item.display_order,
            is_active=True,
            is_in_menu=item.is_in_menu,
        )
        session.add(page)
        # Flush one at a time so page ids follow the display order on a fresh database.
        await session.flush()
        by_url[item.url] = page
        report.bump("pages")
    return by_url


async def _ensure_page_actions(
    session: AsyncSession,
    report: SeedReport,
    *,
    pages: dict[str, Page],
    actions: dict[str, Action],
) -> list[tuple[PageAction, str]]:
    result = await session.execute(select(PageAction))
    existing = {(row.page_id, row.action_id): row for row in result.scalars().all()}
    seeded: list[tuple[PageAction, str]] = []
    for item in PAGES:
        page = pages[item.url]
        for code in item.action_codes:
            action = actions[code]
            row = existing.get((page.id, action.id))
            if row is None:
                row = PageAction(page_id=page.id, action_id=action.id, is_active=True)
                session.add(row)
                existing[(page.id, action.id)] = row
                report.bump("page_actions")
            seeded.append((row, code))
    await session.flush()
    return seeded


async def _grant_permissions(session: AsyncSession, report: SeedReport, *, role: Role, permissions: list[Permission]) -> None:
    result = await session.execute(select(RolePermission.permission_id).where(RolePermission.role_id == role.id))
    held = set(result.scalars().all())
    for permission in permissions:
        if permission.id not in held:
            session.add(RolePermission(role_id=role.id, permission_id=permission.id, is_granted=True))
            report.bump("role_permissions")


async def _grant_page_actions(session: AsyncSession, report: SeedReport, *, role: Role, page_actions: list[PageAction]) -> None:
    result = await session.execute(select(RolePageAction.page_action_id).where(RolePageAction.role_id == role.id))
    held = set(result.scalars().all())
    for page_action in page_actions:
        if page_action.id not in held:
            session.add(RolePageAction(role_id=role.id, page_action_id=page_action.id, is_granted=True))
            held.add(page_action.id)
            report.bump("role_page_actions")


async def _ensure_admin(
    session: AsyncSession,
    report: SeedReport,
    *,
    tenant: Tenant,
    admin_role: Role,
    password: str,
    hasher: PasswordHasher,
) -> None:
    result = await session.execute(select(User).where(not_deleted(User), User.username == ADMIN_USERNAME))
    admin = result.scalar_one_or_none()
    if admin is None:
        admin = User(
            tenant_id=tenant.id,
            username=ADMIN_USERNAME,
            email=ADMIN_EMAIL,
            password_hash=await asyncio.to_thread(hasher.hash, password),
            full_name="System Administrator",
            is_active=True,
            email_confirmed=True,
            failed_login_attempts=0,
        )
        session.add(admin)
        await session.flush()
        report.bump("users")
    held = await session.execute(
        select(UserRole).where(UserRole.user_id == admin.id, UserRole.role_id == admin_role.id)
    )
    if held.scalar_one_or_none() is None:
        session.add(UserRole(user_id=admin.id, role_id=admin_role.id))
        report.bump("user_roles")


async def seed_defaults(
    session: AsyncSession,
    *,
    admin_password: str = ADMIN_DEFAULT_PASSWORD,
    hasher: PasswordHasher | None = None,
) -> SeedReport:
    """Insert the catalog, system roles, default tenant and admin account.

    Only missing rows are inserted, so running it again is harmless. Admin
    receives every permission and page action; User receives every ``View``
    permission and every ``view`` page action.
    """

    settings = get_settings()
    hasher = hasher or Pbkdf2PasswordHasher()
    report = SeedReport()

    tenant = await _ensure_tenant(session, report)
    permissions = await _ensure_permissions(session, report)
    admin_role = await _ensure_role(session, report, name=ADMIN_ROLE_NAME, description="Full system access")
    user_role = await _ensure_role(session, report, name=USER_ROLE_NAME, description="Read-only access")
    actions = await _ensure_actions(session, report)
    pages = await _ensure_pages(session, report)
    page_actions = await _ensure_page_actions(session, report, pages=pages, actions=actions)

    seeded_codes = {item.code for item in PERMISSIONS}
    catalog = [permissions[code] for code in sorted(seeded_codes)]
    await _grant_permissions(session, report, role=admin_role, permissions=catalog)
    await _grant_permissions(
        session,
        report,
        role=user_role,
        permissions=[permission for permission in catalog if permission.action == "View"],
    )
    await _grant_page_actions(session, report, role=admin_role, page_actions=[row for row, _ in page_actions])
    await _grant_page_actions(
        session,
        report,
        role=user_role,
        page_actions=[row for row, code in page_actions if code == VIEW_ACTION_CODE],
    )
    await _ensure_admin(session, report, tenant=tenant, admin_role=admin_role, password=admin_password, hasher=hasher)
    await session.flush()

    # Registration and user creation rely on these configured ids resolving.
    if await tenants_repo.get_tenant(session, tenant_id=settings.default_tenant_id) is None:
        await session.rollback()
        raise SeedError(f"default_tenant_id={settings.default_tenant_id} does not exist after seeding")
    if await roles_repo.get_role(session, role_id=settings.default_role_id) is None:
        await session.rollback()
        raise SeedError(f"default_role_id={settings.default_role_id} does not exist after seeding")

    await session.commit()
    logger.info("seed_completed created=%s", report.created)
    return report
