from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import hashlib
import secrets
from typing import Any
from uuid import uuid4

import jwt

from adminpanel.core.clock import utc_now
from adminpanel.core.config import get_settings
from adminpanel.core.errors import TokenDecodeError
from adminpanel.domain.models import User


@dataclass(frozen=True)
class SessionGrants:
    # Role names and permission codes aggregated for one user at issuance time.
    role_names: list[str] = field(default_factory=list)
    permission_codes: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class IssuedAccessToken:
    token: str
    expires_at: datetime
    jti: str


def hash_token(raw_token: str) -> str:
    # Use SHA-256 for deterministic, non-reversible token storage.
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def generate_refresh_token() -> tuple[str, str]:
    # Opaque random refresh token plus the digest persisted on the user row.
    raw_token = secrets.token_urlsafe(48)
    return raw_token, hash_token(raw_token)


def generate_one_time_token() -> tuple[str, str]:
    # Reset and email-confirmation tokens travel by mail only; the row keeps the digest.
    raw_token = secrets.token_urlsafe(32)
    return raw_token, hash_token(raw_token)


def build_session_claims(user: User, grants: SessionGrants) -> dict[str, Any]:
    """Project a user and their aggregated grants into access-token claims.

    Login and refresh both call this, so the two flows always issue the same
    claim shape. ``permissions`` is one comma-joined string; ``roles`` keeps
    one entry per role name.
    """

    return {
        "sub": str(user.id),
        "name": user.username,
        "email": user.email,
        "full_name": user.full_name,
        "tenant_id": user.tenant_id,
        "roles": list(grants.role_names),
        "permissions": ",".join(grants.permission_codes),
    }


def encode_access_token(claims: dict[str, Any], *, now: datetime | None = None) -> IssuedAccessToken:
    settings = get_settings()
    issued_at = now or utc_now()
    expires_at = issued_at + timedelta(minutes=settings.access_token_expiration_minutes)
    jti = uuid4().hex
    payload = {
        **claims,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
        "jti": jti,
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return IssuedAccessToken(token=token, expires_at=expires_at, jti=jti)


def decode_access_token(token: str) -> dict[str, Any]:
    # Signature, expiry, issuer and audience are all verified by PyJWT.
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.PyJWTError as exc:
        raise TokenDecodeError(str(exc)) from exc


def permission_codes_from_claims(claims: dict[str, Any]) -> list[str]:
    # The comma-joined claim is advisory for UI rendering only.
    raw = claims.get("permissions") or ""
    return [code for code in raw.split(",") if code]
