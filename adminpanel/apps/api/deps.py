from __future__ import annotations

import logging
from typing import AsyncGenerator, Callable

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from adminpanel.apps.api.response import get_request_id
from adminpanel.core.context import RequestContext
from adminpanel.core.errors import TokenDecodeError
from adminpanel.persistence.db import get_session
from adminpanel.services.auth.tokens import decode_access_token
from adminpanel.services.authz.grants import has_permission


logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; closing it rolls back anything left uncommitted.
    async with get_session() as session:
        yield session


def _auth_error(message: str) -> HTTPException:
    # Normalize auth errors for clients without leaking internal details.
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "AUTH_UNAUTHORIZED", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _forbidden_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"code": "AUTH_FORBIDDEN", "message": message},
    )


def _parse_bearer_token(header_value: str | None) -> str:
    if not header_value:
        raise _auth_error("Missing bearer token")
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise _auth_error("Missing or invalid bearer token")
    return parts[1]


def _client_hints(request: Request) -> dict[str, str | None]:
    return {
        "request_id": get_request_id(request),
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


def get_anonymous_context(request: Request) -> RequestContext:
    # Pre-auth flows run without a tenant restriction.
    return RequestContext.anonymous(**_client_hints(request))


def get_request_context(
    request: Request,
    authorization: str | None = Header(default=None),
) -> RequestContext:
    """Build the immutable per-request context from the bearer access token.

    Only identity (user, tenant) is taken from the token. Permission claims
    in it are never trusted for authorization.
    """

    token = _parse_bearer_token(authorization)
    try:
        claims = decode_access_token(token)
    except TokenDecodeError as exc:
        logger.info("access_token_rejected reason=%s", exc)
        raise _auth_error("Invalid or expired access token") from exc
    try:
        user_id = int(claims["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise _auth_error("Invalid or expired access token") from exc
    tenant_id = claims.get("tenant_id")
    return RequestContext(
        user_id=user_id,
        username=claims.get("name"),
        tenant_id=int(tenant_id) if tenant_id is not None else None,
        **_client_hints(request),
    )


def require_permission(code: str) -> Callable[..., object]:
    # Re-query current grants on every call so revocations apply immediately.
    async def _dependency(
        ctx: RequestContext = Depends(get_request_context),
        db: AsyncSession = Depends(get_db),
    ) -> RequestContext:
        if ctx.user_id is None or not await has_permission(db, ctx=ctx, user_id=ctx.user_id, code=code):
            raise _forbidden_error(f"Missing permission {code}")
        return ctx

    return _dependency
