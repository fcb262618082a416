from __future__ import annotations

from datetime import datetime, timezone

from adminpanel.core.context import RequestContext
from adminpanel.domain.models import Role
from adminpanel.services.audit import AuditAction, changed_columns, record_audit, sanitize_metadata, snapshot


class _StubSession:
    def __init__(self) -> None:
        self.added: list[object] = []

    def add(self, instance: object) -> None:
        self.added.append(instance)


def test_audit_redacts_tokens_and_secrets() -> None:
    payload = {
        "password_hash": "abc",
        "refresh_token_hash": "def",
        "client_secret": "super-secret",
        "nested": {"authorization": "Bearer abc"},
        "safe": "value",
    }
    sanitized = sanitize_metadata(payload)
    assert sanitized["password_hash"] == "[REDACTED]"
    assert sanitized["refresh_token_hash"] == "[REDACTED]"
    assert sanitized["client_secret"] == "[REDACTED]"
    assert sanitized["nested"]["authorization"] == "[REDACTED]"
    assert sanitized["safe"] == "value"


def test_changed_columns_lists_only_differences() -> None:
    assert changed_columns({"a": 1, "b": 2}, {"a": 1, "b": 3, "c": 4}) == ["b", "c"]
    assert changed_columns(None, {"a": 1}) is None


def test_record_audit_stages_row_with_context_actor() -> None:
    session = _StubSession()
    ctx = RequestContext(user_id=5, username="bob", tenant_id=2, request_id="req-1", ip_address="10.0.0.1")
    role = Role(id=9, name="Editors", is_system_role=False, is_active=True)
    old_values = snapshot(role)
    role.name = "Writers"
    entry = record_audit(
        session,  # type: ignore[arg-type]
        ctx=ctx,
        entity_name="Role",
        entity_id=role.id,
        action=AuditAction.UPDATE,
        old_values=old_values,
        new_values={**snapshot(role), "at": datetime(2026, 1, 1, tzinfo=timezone.utc)},
    )
    assert session.added == [entry]
    assert entry.user_id == 5
    assert entry.tenant_id == 2
    assert entry.entity_id == "9"
    assert entry.action == "Update"
    assert entry.request_id == "req-1"
    assert entry.new_values["at"] == "2026-01-01T00:00:00+00:00"
    assert "name" in entry.affected_columns


def test_record_audit_explicit_actor_overrides_anonymous_context() -> None:
    session = _StubSession()
    entry = record_audit(
        session,  # type: ignore[arg-type]
        ctx=RequestContext.anonymous(),
        entity_name="User",
        entity_id=3,
        action=AuditAction.LOGIN,
        user_id=3,
        username="carol",
        tenant_id=1,
    )
    assert (entry.user_id, entry.username, entry.tenant_id) == (3, "carol", 1)
