"""
tests/test_auth_api.py -- Integration tests for /api/auth/*.

Coverage:
  - Register: 201 with camelCase {user, token, refreshToken}; 409 duplicate; 422 weak password
  - Login: 200 with tokens; 401 on bad password or unknown email; no-store header
  - Refresh: refresh token -> new working access token; access token rejected
  - Me: current user
  - Logout: token revoked for its remaining lifetime, then rejected with 401

Tokens minted for the same user in the same second are byte-identical, so
tests that revoke a token always use a freshly registered account.
"""

from __future__ import annotations

import uuid

from fastapi.testclient import TestClient

PASSWORD = "s3cure-passw0rd"


def _register(client: TestClient, **extra) -> dict:
    email = f"user-{uuid.uuid4().hex[:10]}@example.com"
    resp = client.post("/api/auth/register", json={"email": email, "password": PASSWORD, **extra})
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestRegister:
    def test_register_returns_user_and_tokens(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        resp = client.post(
            "/api/auth/register",
            json={"email": "New.Person@Example.com", "password": PASSWORD, "firstName": "New", "lastName": "Person"},
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["success"] is True
        data = body["data"]
        assert data["user"]["email"] == "new.person@example.com"
        assert data["user"]["firstName"] == "New"
        assert data["user"]["role"] == "user"
        assert "hashedPassword" not in data["user"]
        assert data["token"]
        assert data["refreshToken"]

    def test_duplicate_email_conflicts(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        data = _register(client)
        resp = client.post("/api/auth/register", json={"email": data["user"]["email"], "password": PASSWORD})
        assert resp.status_code == 409
        assert resp.json()["error"] == "User already exists"

    def test_short_password_rejected(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/auth/register", json={"email": "short@example.com", "password": "123"})
        assert resp.status_code == 422
        assert resp.json()["error"] == "Validation failed"

    def test_invalid_email_rejected(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/auth/register", json={"email": "not-an-email", "password": PASSWORD})
        assert resp.status_code == 422


class TestLogin:
    def test_login_success(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        registered = _register(client)
        resp = client.post("/api/auth/login", json={"email": registered["user"]["email"], "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        data = resp.json()["data"]
        assert data["user"]["id"] == registered["user"]["id"]
        assert data["token"] and data["refreshToken"]

    def test_login_wrong_password(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        registered = _register(client)
        resp = client.post("/api/auth/login", json={"email": registered["user"]["email"], "password": "wrong-one"})
        assert resp.status_code == 401
        assert resp.json()["error"] == "Invalid credentials"

    def test_login_unknown_email_same_error(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": PASSWORD})
        assert resp.status_code == 401
        assert resp.json()["error"] == "Invalid credentials"

    def test_login_is_rate_limited(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        responses = [
            client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "x"}) for _ in range(11)
        ]
        assert [r.status_code for r in responses[:10]] == [401] * 10
        limited = responses[10]
        assert limited.status_code == 429
        assert limited.json()["error"] == "Too many requests"
        assert limited.json()["message"] == "Too many requests from this IP, please try again later."
        assert limited.headers["Retry-After"] == "60"

    def test_login_limit_does_not_block_other_routes(self, api_client: tuple[TestClient, str, str]) -> None:
        client, token, _uid = api_client
        for _ in range(11):
            client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "x"})
        assert client.get("/api/auth/me", headers=_bearer(token)).status_code == 200


class TestRefresh:
    def test_refresh_issues_working_access_token(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        registered = _register(client)
        resp = client.post("/api/auth/refresh", json={"refreshToken": registered["refreshToken"]})
        assert resp.status_code == 200
        new_token = resp.json()["data"]["token"]
        me = client.get("/api/auth/me", headers=_bearer(new_token))
        assert me.status_code == 200
        assert me.json()["data"]["user"]["id"] == registered["user"]["id"]

    def test_access_token_cannot_refresh(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        registered = _register(client)
        resp = client.post("/api/auth/refresh", json={"refreshToken": registered["token"]})
        assert resp.status_code == 403


class TestMeAndLogout:
    def test_me(self, api_client: tuple[TestClient, str, str]) -> None:
        client, token, uid = api_client
        resp = client.get("/api/auth/me", headers=_bearer(token))
        assert resp.status_code == 200
        user = resp.json()["data"]["user"]
        assert user["id"] == uid
        assert user["role"] == "admin"

    def test_logout_revokes_token(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        token = _register(client)["token"]
        resp = client.post("/api/auth/logout", headers=_bearer(token))
        assert resp.status_code == 200
        assert resp.json()["data"]["message"] == "Logged out successfully"

        cache = client.app.state.cache_provider.client
        assert cache.data[f"blacklist_{token}"] == "1"
        assert 0 < cache.ttls[f"blacklist_{token}"] <= 24 * 60 * 60

        again = client.get("/api/auth/me", headers=_bearer(token))
        assert again.status_code == 401
        assert again.json()["message"] == "This token has been revoked"

    def test_logout_requires_token(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        assert client.post("/api/auth/logout").status_code == 401

    def test_logout_with_cache_down_is_503(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        token = _register(client)["token"]
        cache = client.app.state.cache_provider.client
        cache.fail = True
        try:
            resp = client.post("/api/auth/logout", headers=_bearer(token))
        finally:
            cache.fail = False
        assert resp.status_code == 503
