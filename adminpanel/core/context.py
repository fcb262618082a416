from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    """Acting identity for one request, passed explicitly to every operation.

    ``tenant_id`` of ``None`` means no tenant restriction (anonymous pre-auth
    flows and background jobs). ``system`` marks trusted background callers so
    the strict tenant guard can tell them apart from a missing tenant.
    """

    user_id: int | None = None
    username: str | None = None
    tenant_id: int | None = None
    request_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    system: bool = False

    @classmethod
    def anonymous(
        cls,
        *,
        request_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> "RequestContext":
        return cls(request_id=request_id, ip_address=ip_address, user_agent=user_agent)

    @classmethod
    def system_context(cls, *, actor: str = "system") -> "RequestContext":
        return cls(username=actor, system=True)
