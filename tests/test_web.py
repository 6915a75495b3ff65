"""
tests/test_web.py -- Integration tests for the server-rendered web UI.

These tests use the web_client fixture (follow_redirects=False) and assert on
redirect Location headers directly -- following the redirect would hide them.

Coverage:
  - Unauthenticated requests -> 302 /login?next={path}
  - Login form: bad credentials redirect with a whitelisted error; success
    sets the httpOnly access_token cookie and honors a relative next=
  - Provider pages: empty state, add, edit (blank key keeps the old one),
    delete, HTMX connectivity test fragment
  - Logout revokes the cookie's token
  - Security: next= only accepts relative paths (open-redirect prevention)
  - Pages sit outside the /api request budget

The client's cookie jar is cleared around every test so a login in one test
never authenticates the next.
"""

from __future__ import annotations

import uuid
from collections.abc import Generator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from auth.models import User
from auth.tokens import create_access_token, hash_password
from providers.cipher import KeyCipher
from providers.probe import ProbeResult, ProviderProbeError
from providers.store import _providers
from web.routes import _safe_next

PASSWORD = "web-password-1"


@pytest.fixture(autouse=True)
def _clear_cookies(web_client: tuple[TestClient, str, str]) -> Generator[None, None, None]:
    client, _token, _uid = web_client
    client.cookies.clear()
    yield
    client.cookies.clear()


def _fresh_user(client: TestClient) -> tuple[User, str]:
    """Create an account directly in the store and return (user, access token)."""
    store = client.app.state.user_store
    uid = store.create_user(
        User(email=f"web-{uuid.uuid4().hex[:10]}@example.com", hashed_password=hash_password(PASSWORD))
    )
    user = store.get_by_id(uid)
    return user, create_access_token(user)


def _login_cookie(client: TestClient) -> User:
    user, token = _fresh_user(client)
    client.cookies.set("access_token", token)
    return user


class TestAuthRedirects:
    def test_root_redirects_to_providers(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        resp = client.get("/")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/providers"

    def test_unauthenticated_redirects_to_login(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        resp = client.get("/providers")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login?next=/providers"

    def test_invalid_cookie_redirects_to_login(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        client.cookies.set("access_token", "garbage")
        resp = client.get("/providers/new")
        assert resp.status_code == 302
        assert resp.headers["location"].startswith("/login?next=/providers/new")

    def test_bearer_header_also_accepted(self, web_client: tuple[TestClient, str, str]) -> None:
        client, token, _uid = web_client
        resp = client.get("/providers", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200


class TestLogin:
    def test_login_page_renders(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        resp = client.get("/login")
        assert resp.status_code == 200
        assert 'name="email"' in resp.text

    def test_error_param_is_whitelisted(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        resp = client.get("/login?error=<script>alert(1)</script>")
        assert resp.status_code == 200
        assert "<script>alert(1)</script>" not in resp.text
        known = client.get("/login?error=bad_credentials")
        assert "Invalid email or password." in known.text

    def test_bad_credentials(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        resp = client.post("/login", data={"email": "nobody@example.com", "password": "wrong"})
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login?error=bad_credentials"

    def test_success_sets_cookie_and_follows_next(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        user, _ = _fresh_user(client)
        resp = client.post("/login", data={"email": user.email, "password": PASSWORD, "next": "/providers/new"})
        assert resp.status_code == 302
        assert resp.headers["location"] == "/providers/new"
        set_cookie = resp.headers["set-cookie"].lower()
        assert "access_token=" in set_cookie
        assert "httponly" in set_cookie

    def test_absolute_next_is_ignored(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        user, _ = _fresh_user(client)
        resp = client.post("/login", data={"email": user.email, "password": PASSWORD, "next": "https://evil.example"})
        assert resp.headers["location"] == "/providers"

    def test_logged_in_user_skips_login_page(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        _login_cookie(client)
        resp = client.get("/login")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/providers"


class TestProviderPages:
    def test_empty_state(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        _login_cookie(client)
        resp = client.get("/providers")
        assert resp.status_code == 200
        assert "No AI Providers" in resp.text

    def test_add_provider(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        user = _login_cookie(client)
        assert client.get("/providers/new").status_code == 200
        resp = client.post(
            "/providers",
            data={"name": "openai", "display_name": "Team OpenAI", "api_key": "sk-web-5678", "priority": "3"},
        )
        assert resp.status_code == 303
        assert resp.headers["location"] == "/providers"

        page = client.get("/providers").text
        assert "Team OpenAI" in page
        assert "gpt-4o" in page
        assert "$0.00" in page
        assert "sk-web-5678" not in page
        stored = client.app.state.provider_store.list_providers(user.id)
        assert stored[0].priority == 3

    def test_add_provider_validation_error(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        _login_cookie(client)
        resp = client.post("/providers", data={"name": "openai", "display_name": "X", "api_key": "k", "priority": "0"})
        assert resp.status_code == 400
        assert "Priority must be a whole number" in resp.text

    def test_edit_with_blank_key_keeps_key(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        user = _login_cookie(client)
        client.post("/providers", data={"name": "mistral", "display_name": "Mistral", "api_key": "mk-original"})
        provider = client.app.state.provider_store.list_providers(user.id)[0]

        form = client.get(f"/providers/{provider.id}/edit")
        assert form.status_code == 200
        assert "Leave blank to keep ****inal" in form.text

        resp = client.post(
            f"/providers/{provider.id}",
            data={"display_name": "Mistral EU", "api_key": "", "base_url": "", "priority": "2"},
        )
        assert resp.status_code == 303
        updated = client.app.state.provider_store.get_provider(provider.id, user.id)
        assert updated.display_name == "Mistral EU"
        assert updated.priority == 2
        assert updated.api_key == "mk-original"

    def test_delete_provider(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        user = _login_cookie(client)
        client.post("/providers", data={"name": "openai", "display_name": "Doomed", "api_key": "sk-del"})
        provider = client.app.state.provider_store.list_providers(user.id)[0]
        resp = client.post(f"/providers/{provider.id}/delete")
        assert resp.status_code == 303
        assert client.app.state.provider_store.list_providers(user.id) == []

    def test_page_survives_unreadable_key(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        user = _login_cookie(client)
        client.post("/providers", data={"name": "openai", "display_name": "Rotated", "api_key": "sk-rot"})
        store = client.app.state.provider_store
        pid = store.list_providers(user.id)[0].id
        stale = KeyCipher(secret="retired-provider-secret").encrypt("sk-rot")
        with store.engine.connect() as conn:
            conn.execute(_providers.update().where(_providers.c.id == pid).values(api_key=stale))
            conn.commit()

        page = client.get("/providers")
        assert page.status_code == 200
        assert "The stored API key can no longer be read." in page.text
        form = client.get(f"/providers/{pid}/edit")
        assert "Stored key is unreadable; enter it again" in form.text

    def test_other_users_provider_is_not_found(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        owner = _login_cookie(client)
        client.post("/providers", data={"name": "openai", "display_name": "Private", "api_key": "sk-own"})
        pid = client.app.state.provider_store.list_providers(owner.id)[0].id

        client.cookies.clear()
        _login_cookie(client)
        assert client.get(f"/providers/{pid}/edit").status_code == 404


class TestProviderProbeFragment:
    def _provider_id(self, client: TestClient) -> str:
        user = _login_cookie(client)
        client.post("/providers", data={"name": "openai", "display_name": "Probe Me", "api_key": "sk-probe"})
        return client.app.state.provider_store.list_providers(user.id)[0].id

    def test_success_fragment(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        pid = self._provider_id(client)
        with patch("web.routes.probe_provider", return_value=ProbeResult(response_time_ms=17, status_code=200)):
            resp = client.post(f"/providers/{pid}/test")
        assert resp.status_code == 200
        assert "notification success" in resp.text
        assert "17ms" in resp.text

    def test_failure_fragment(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        pid = self._provider_id(client)
        with patch("web.routes.probe_provider", side_effect=ProviderProbeError("Could not reach Probe Me")):
            resp = client.post(f"/providers/{pid}/test")
        assert resp.status_code == 200
        assert "notification error" in resp.text
        assert "Could not reach Probe Me" in resp.text

    def test_requires_session(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        resp = client.post("/providers/anything/test")
        assert resp.status_code == 401


class TestLogout:
    def test_logout_revokes_cookie_token(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        _user, token = _fresh_user(client)
        client.cookies.set("access_token", token)
        resp = client.post("/logout")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login"
        assert client.app.state.cache_provider.client.data[f"blacklist_{token}"] == "1"

        client.cookies.set("access_token", token)
        assert client.get("/providers").status_code == 302


class TestNoApiBudget:
    def test_pages_are_not_throttled(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        statuses = {client.get("/login").status_code for _ in range(105)}
        assert statuses == {200}

    def test_pages_do_not_spend_the_api_budget(self, web_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = web_client
        for _ in range(105):
            client.get("/login")
        assert client.get("/api/status").status_code == 200


class TestSafeNext:
    def test_relative_path_kept(self) -> None:
        assert _safe_next("/providers/new") == "/providers/new"

    def test_protocol_relative_rejected(self) -> None:
        assert _safe_next("//evil.example") == "/providers"

    def test_absolute_rejected(self) -> None:
        assert _safe_next("https://evil.example") == "/providers"

    def test_none_defaults(self) -> None:
        assert _safe_next(None) == "/providers"
