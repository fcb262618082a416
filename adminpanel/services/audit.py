from __future__ import annotations

from datetime import date, datetime
from enum import Enum
import json
import logging
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.core.context import RequestContext
from adminpanel.domain.models import AuditLog


logger = logging.getLogger(__name__)

_SENSITIVE_KEY_PATTERNS = ["api_key", "authorization", "token", "secret", "password"]
_REDACTED_VALUE = "[REDACTED]"


class AuditAction(str, Enum):
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"
    LOGIN = "Login"
    LOGOUT = "Logout"
    VIEW = "View"
    EXPORT = "Export"
    IMPORT = "Import"


def _is_sensitive_key(key: str) -> bool:
    # Match sensitive key fragments case-insensitively to enforce redaction policy.
    lowered = key.lower()
    return any(pattern in lowered for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_metadata(value: Any) -> Any:
    # Recursively scrub sensitive fields while preserving safe structure.
    if isinstance(value, dict):
        sanitized: dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            key = str(raw_key)
            if _is_sensitive_key(key):
                sanitized[key] = _REDACTED_VALUE
            else:
                sanitized[key] = sanitize_metadata(raw_value)
        return sanitized
    if isinstance(value, list):
        return [sanitize_metadata(item) for item in value]
    return value


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _to_json_payload(values: dict[str, Any] | None) -> dict[str, Any] | None:
    # Round-trip through json so stored payloads only hold JSON primitives.
    if values is None:
        return None
    return json.loads(json.dumps(sanitize_metadata(values), default=_json_default))


def snapshot(entity: Any, *, exclude: tuple[str, ...] = ()) -> dict[str, Any]:
    """Capture an ORM row's loaded column values for an audit payload."""
    state = inspect(entity)
    # Reading an unloaded attribute would trigger lazy IO outside the event loop.
    unloaded = state.unloaded
    return {
        column.key: getattr(entity, column.key)
        for column in state.mapper.column_attrs
        if column.key not in exclude and column.key not in unloaded
    }


def changed_columns(old_values: dict[str, Any] | None, new_values: dict[str, Any] | None) -> list[str] | None:
    if old_values is None or new_values is None:
        return None
    keys = set(old_values) | set(new_values)
    return sorted(key for key in keys if old_values.get(key) != new_values.get(key))


def record_audit(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    entity_name: str,
    entity_id: Any,
    action: AuditAction,
    old_values: dict[str, Any] | None = None,
    new_values: dict[str, Any] | None = None,
    additional_info: str | None = None,
    user_id: int | None = None,
    username: str | None = None,
    tenant_id: int | None = None,
) -> AuditLog:
    """Stage an audit row in the caller's unit of work.

    Nothing is committed here: the row is flushed and committed together with
    the operation it describes, so a rolled-back or cancelled operation leaves
    no audit trail and a committed one always has its row. Actor fields come
    from ``ctx`` unless the caller overrides them (login happens before the
    request context carries an identity).
    """

    entry = AuditLog(
        user_id=user_id if user_id is not None else ctx.user_id,
        username=username if username is not None else ctx.username,
        tenant_id=tenant_id if tenant_id is not None else ctx.tenant_id,
        entity_name=entity_name,
        entity_id=str(entity_id) if entity_id is not None else None,
        action=action.value,
        old_values=_to_json_payload(old_values),
        new_values=_to_json_payload(new_values),
        affected_columns=changed_columns(old_values, new_values),
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
        request_id=ctx.request_id,
        additional_info=additional_info,
    )
    session.add(entry)
    logger.debug(
        "audit_log_staged entity=%s entity_id=%s action=%s request_id=%s",
        entity_name,
        entry.entity_id,
        action.value,
        ctx.request_id,
    )
    return entry


def record_login(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    user_id: int,
    username: str,
    tenant_id: int | None,
) -> AuditLog:
    return record_audit(
        session,
        ctx=ctx,
        entity_name="User",
        entity_id=user_id,
        action=AuditAction.LOGIN,
        user_id=user_id,
        username=username,
        tenant_id=tenant_id,
    )


def record_logout(
    session: AsyncSession,
    *,
    ctx: RequestContext,
    user_id: int,
    username: str | None = None,
    tenant_id: int | None = None,
) -> AuditLog:
    return record_audit(
        session,
        ctx=ctx,
        entity_name="User",
        entity_id=user_id,
        action=AuditAction.LOGOUT,
        user_id=user_id,
        username=username,
        tenant_id=tenant_id,
    )
