from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from adminpanel.apps.api.main import create_app
from adminpanel.tests.utils.accounts import (
    ADMIN_PASSWORD,
    DEFAULT_PASSWORD,
    create_test_user,
    page_id_by_url,
    role_id_by_name,
    seed_catalog,
)


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test")


async def _login(client: AsyncClient, username: str, password: str) -> dict:
    response = await client.post("/v1/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["data"]


def _bearer(tokens: dict) -> dict[str, str]:
    return {"Authorization": f"Bearer {tokens['access_token']}"}


@pytest.mark.asyncio
async def test_protected_endpoint_requires_auth() -> None:
    async with _client() as client:
        response = await client.get("/v1/me/menu")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTH_UNAUTHORIZED"


@pytest.mark.asyncio
async def test_login_envelope_and_menu() -> None:
    await seed_catalog()
    await create_test_user(username="reader", role_ids=(await role_id_by_name("User"),))
    async with _client() as client:
        response = await client.post(
            "/v1/auth/login",
            json={"username": "reader", "password": DEFAULT_PASSWORD},
            headers={"X-Request-Id": "req-login"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["meta"]["request_id"] == "req-login"
        assert body["meta"]["messages"] == ["Signed in successfully"]
        assert body["data"]["user"]["roles"] == ["User"]

        menu = await client.get("/v1/me/menu", headers=_bearer(body["data"]))
    assert menu.status_code == 200
    assert [node["url"] for node in menu.json()["data"]] == ["/", "/Users", "/Roles", "/Calendar"]


@pytest.mark.asyncio
async def test_login_failures_map_to_statuses() -> None:
    await seed_catalog()
    await create_test_user(username="frozen", is_active=False)
    async with _client() as client:
        wrong = await client.post("/v1/auth/login", json={"username": "admin", "password": "Nope@123"})
        disabled = await client.post("/v1/auth/login", json={"username": "frozen", "password": DEFAULT_PASSWORD})
        invalid = await client.post("/v1/auth/login", json={"username": "", "password": ""})
    assert wrong.status_code == 401
    assert wrong.json()["error"]["code"] == "INVALID_CREDENTIALS"
    assert disabled.status_code == 403
    assert invalid.status_code == 422


@pytest.mark.asyncio
async def test_locked_account_returns_423() -> None:
    await seed_catalog()
    await create_test_user(username="alice")
    async with _client() as client:
        for _ in range(5):
            response = await client.post("/v1/auth/login", json={"username": "alice", "password": "Wrong@123"})
            assert response.status_code == 401
        locked = await client.post("/v1/auth/login", json={"username": "alice", "password": DEFAULT_PASSWORD})
    assert locked.status_code == 423
    assert locked.json()["error"]["code"] == "ACCOUNT_LOCKED"


@pytest.mark.asyncio
async def test_permission_gated_routes_follow_live_grants() -> None:
    await seed_catalog()
    await create_test_user(username="reader", role_ids=(await role_id_by_name("User"),))
    users_page = await page_id_by_url("/Users")
    async with _client() as client:
        reader = _bearer(await _login(client, "reader", DEFAULT_PASSWORD))
        admin = _bearer(await _login(client, "admin", ADMIN_PASSWORD))

        assert (await client.get("/v1/roles", headers=reader)).status_code == 200
        assert (await client.get("/v1/audit/logs", headers=reader)).status_code == 200
        forbidden = await client.put("/v1/roles/2/permissions", headers=reader, json=[])
        assert forbidden.status_code == 403

        view = await client.get(f"/v1/me/pages/{users_page}/actions/view", headers=reader)
        delete = await client.get(f"/v1/me/pages/{users_page}/actions/delete", headers=reader)
        assert view.json()["data"]["allowed"] is True
        assert delete.json()["data"]["allowed"] is False

        # System roles keep their permission set.
        protected = await client.put("/v1/roles/2/permissions", headers=admin, json=[])
        assert protected.status_code == 403
        assert protected.json()["error"]["code"] == "FORBIDDEN"

        matrix = await client.get("/v1/roles/2/matrix", headers=admin)
        assert matrix.status_code == 200
        missing = await client.get("/v1/roles/999/matrix", headers=admin)
        assert missing.status_code == 404


@pytest.mark.asyncio
async def test_refresh_logout_and_register_routes() -> None:
    await seed_catalog()
    async with _client() as client:
        registered = await client.post(
            "/v1/auth/register",
            json={
                "username": "fresh_user",
                "email": "fresh@example.com",
                "password": "Fresh@123",
                "confirm_password": "Fresh@123",
                "full_name": "Fresh User",
            },
        )
        assert registered.status_code == 201
        assert isinstance(registered.json()["data"]["user_id"], int)
        conflict = await client.post(
            "/v1/auth/register",
            json={
                "username": "fresh_user",
                "email": "other@example.com",
                "password": "Fresh@123",
                "confirm_password": "Fresh@123",
                "full_name": "Fresh User",
            },
        )
        assert conflict.status_code == 409

        tokens = await _login(client, "fresh_user", "Fresh@123")
        rotated = await client.post("/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert rotated.status_code == 200
        replay = await client.post("/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert replay.status_code == 400

        new_tokens = rotated.json()["data"]
        logout = await client.post("/v1/auth/logout", headers=_bearer(new_tokens))
        assert logout.status_code == 200
        after = await client.post("/v1/auth/refresh", json={"refresh_token": new_tokens["refresh_token"]})
        assert after.status_code == 400

        forgot = await client.post("/v1/auth/forgot-password", json={"email": "nobody@example.com"})
        assert forgot.status_code == 200
        permissions = await client.get("/v1/me/permissions", headers=_bearer(new_tokens))
        assert "Users.View" in permissions.json()["data"]["permissions"]
