from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from adminpanel.core.clock import utc_now

# JSONB on Postgres, plain JSON elsewhere (SQLite test databases).
JsonType = JSON().with_variant(JSONB(), "postgresql")

# Partial-index predicate shared by every "unique among live rows" constraint.
_LIVE_ROWS = text("NOT is_deleted")


class Base(DeclarativeBase):
    pass


class AuditedMixin:
    # Creation/update stamps carry the acting user id when one is known.
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, server_default=func.now())
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_by: Mapped[int | None] = mapped_column(Integer, nullable=True)


class SoftDeleteMixin:
    # Rows are never physically removed; repos filter on is_deleted explicitly.
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by: Mapped[int | None] = mapped_column(Integer, nullable=True)


class Tenant(AuditedMixin, SoftDeleteMixin, Base):
    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200))
    domain: Mapped[str | None] = mapped_column(String(200), nullable=True)
    logo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    subscription_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    settings_json: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)


class User(AuditedMixin, SoftDeleteMixin, Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("uq_users_username_live", "username", unique=True, postgresql_where=_LIVE_ROWS, sqlite_where=_LIVE_ROWS),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), index=True)
    username: Mapped[str] = mapped_column(String(50))
    email: Mapped[str] = mapped_column(String(256))
    password_hash: Mapped[str] = mapped_column(String(256))
    full_name: Mapped[str] = mapped_column(String(100))
    phone_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    profile_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    email_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Token columns hold SHA-256 digests; raw tokens only leave via responses and mail.
    email_confirmation_token_hash: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    password_reset_token_hash: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    password_reset_token_expiry: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refresh_token_hash: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True, index=True)
    refresh_token_expiry: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_login_attempts: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"), nullable=False)
    lockout_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# Email lookups are case-insensitive, so live-row uniqueness is on the lowered value.
Index(
    "uq_users_email_live",
    func.lower(User.email),
    unique=True,
    postgresql_where=_LIVE_ROWS,
    sqlite_where=_LIVE_ROWS,
)


class Role(AuditedMixin, SoftDeleteMixin, Base):
    __tablename__ = "roles"
    __table_args__ = (
        Index("uq_roles_name_live", "name", unique=True, postgresql_where=_LIVE_ROWS, sqlite_where=_LIVE_ROWS),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50))
    description: Mapped[str | None] = mapped_column(String(200), nullable=True)
    # System roles are seeded and protected from rename, toggle, and delete.
    is_system_role: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Permission(AuditedMixin, SoftDeleteMixin, Base):
    __tablename__ = "permissions"
    __table_args__ = (
        Index("uq_permissions_code_live", "code", unique=True, postgresql_where=_LIVE_ROWS, sqlite_where=_LIVE_ROWS),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    module: Mapped[str] = mapped_column(String(50))
    action: Mapped[str] = mapped_column(String(50))
    # Stable "Module.Action" identifier used by API-level checks.
    code: Mapped[str] = mapped_column(String(100))
    display_name_ar: Mapped[str | None] = mapped_column(String(200), nullable=True)
    display_name_en: Mapped[str | None] = mapped_column(String(200), nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class UserRole(Base):
    __tablename__ = "user_roles"

    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), primary_key=True)
    role_id: Mapped[int] = mapped_column(Integer, ForeignKey("roles.id"), primary_key=True, index=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, server_default=func.now())


class RolePermission(Base):
    __tablename__ = "role_permissions"

    role_id: Mapped[int] = mapped_column(Integer, ForeignKey("roles.id"), primary_key=True)
    permission_id: Mapped[int] = mapped_column(Integer, ForeignKey("permissions.id"), primary_key=True)
    # False rows are stored but inert: roles only ever add grants.
    is_granted: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Action(AuditedMixin, SoftDeleteMixin, Base):
    __tablename__ = "actions"
    __table_args__ = (
        Index("uq_actions_code_live", "code", unique=True, postgresql_where=_LIVE_ROWS, sqlite_where=_LIVE_ROWS),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name_ar: Mapped[str] = mapped_column(String(100))
    name_en: Mapped[str] = mapped_column(String(100))
    code: Mapped[str] = mapped_column(String(50))
    icon: Mapped[str | None] = mapped_column(String(100), nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Page(AuditedMixin, SoftDeleteMixin, Base):
    __tablename__ = "pages"
    __table_args__ = (
        Index("uq_pages_url_live", "url", unique=True, postgresql_where=_LIVE_ROWS, sqlite_where=_LIVE_ROWS),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name_ar: Mapped[str] = mapped_column(String(100))
    name_en: Mapped[str] = mapped_column(String(100))
    url: Mapped[str] = mapped_column(String(300))
    icon: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # Unbounded nesting; acyclicity is enforced when a parent is assigned.
    parent_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("pages.id"), nullable=True, index=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_in_menu: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class PageAction(Base):
    __tablename__ = "page_actions"
    __table_args__ = (
        UniqueConstraint("page_id", "action_id", name="uq_page_actions_page_action"),
    )

    # Declares that an action is available on a page, independent of any role.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    page_id: Mapped[int] = mapped_column(Integer, ForeignKey("pages.id"), index=True)
    action_id: Mapped[int] = mapped_column(Integer, ForeignKey("actions.id"), index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class RolePageAction(Base):
    __tablename__ = "role_page_actions"
    __table_args__ = (
        UniqueConstraint("role_id", "page_action_id", name="uq_role_page_actions_role_page_action"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    role_id: Mapped[int] = mapped_column(Integer, ForeignKey("roles.id"), index=True)
    page_action_id: Mapped[int] = mapped_column(Integer, ForeignKey("page_actions.id"), index=True)
    is_granted: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_name", "entity_id"),
    )

    # Append-only; rows are never updated after insert.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    username: Mapped[str | None] = mapped_column(String(50), nullable=True)
    # Null tenant for pre-auth or system events.
    tenant_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    entity_name: Mapped[str] = mapped_column(String(100))
    entity_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    action: Mapped[str] = mapped_column(String(20), index=True)
    old_values: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)
    new_values: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)
    affected_columns: Mapped[list[str] | None] = mapped_column(JsonType, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    additional_info: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, server_default=func.now(), index=True)
