from __future__ import annotations

from datetime import timedelta

import jwt
import pytest

from adminpanel.core.clock import utc_now
from adminpanel.core.config import get_settings
from adminpanel.core.errors import TokenDecodeError
from adminpanel.domain.models import User
from adminpanel.services.auth.tokens import (
    SessionGrants,
    build_session_claims,
    decode_access_token,
    encode_access_token,
    generate_one_time_token,
    generate_refresh_token,
    hash_token,
    permission_codes_from_claims,
)


def _user() -> User:
    return User(id=7, tenant_id=3, username="alice", email="alice@example.com", full_name="Alice Doe")


def test_session_claims_carry_identity_and_joined_permissions() -> None:
    grants = SessionGrants(role_names=["Admin", "User"], permission_codes=["Roles.View", "Users.View"])
    claims = build_session_claims(_user(), grants)
    assert claims["sub"] == "7"
    assert claims["name"] == "alice"
    assert claims["tenant_id"] == 3
    assert claims["roles"] == ["Admin", "User"]
    assert claims["permissions"] == "Roles.View,Users.View"


def test_access_token_round_trip() -> None:
    issued = encode_access_token(build_session_claims(_user(), SessionGrants(permission_codes=["Users.View"])))
    claims = decode_access_token(issued.token)
    settings = get_settings()
    assert claims["iss"] == settings.jwt_issuer
    assert claims["aud"] == settings.jwt_audience
    assert claims["jti"] == issued.jti
    assert claims["exp"] - claims["iat"] == settings.access_token_expiration_minutes * 60
    assert permission_codes_from_claims(claims) == ["Users.View"]


def test_expired_access_token_is_rejected() -> None:
    issued_at = utc_now() - timedelta(minutes=get_settings().access_token_expiration_minutes + 5)
    issued = encode_access_token({"sub": "7"}, now=issued_at)
    with pytest.raises(TokenDecodeError):
        decode_access_token(issued.token)


def test_foreign_signature_is_rejected() -> None:
    settings = get_settings()
    now = utc_now()
    token = jwt.encode(
        {
            "sub": "7",
            "iss": settings.jwt_issuer,
            "aud": settings.jwt_audience,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=5)).timestamp()),
        },
        "some-other-secret-that-is-long-enough-0123456789",
        algorithm="HS256",
    )
    with pytest.raises(TokenDecodeError):
        decode_access_token(token)


def test_empty_permissions_claim_yields_no_codes() -> None:
    assert permission_codes_from_claims({"permissions": ""}) == []
    assert permission_codes_from_claims({}) == []


def test_refresh_and_one_time_tokens_store_digests_only() -> None:
    raw_refresh, refresh_digest = generate_refresh_token()
    raw_once, once_digest = generate_one_time_token()
    assert refresh_digest == hash_token(raw_refresh)
    assert once_digest == hash_token(raw_once)
    assert len(refresh_digest) == 64
    assert raw_refresh != refresh_digest
    assert generate_refresh_token()[0] != raw_refresh
