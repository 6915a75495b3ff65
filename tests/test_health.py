"""
tests/test_health.py -- Integration tests for the meta endpoints and app-wide behavior.

Covers:
  - GET /api/health: 200, envelope, truthful service states, no auth required
  - GET /api/status and GET /api/docs
  - Unknown routes: 404 route catalogue
  - Security headers on every response
"""

from __future__ import annotations

from fastapi.testclient import TestClient


def test_health_returns_200_with_services(api_client: tuple[TestClient, str, str]) -> None:
    """Health endpoint returns the envelope with status, version and services."""
    client, _token, _uid = api_client
    resp = client.get("/api/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    data = body["data"]
    assert data["status"] == "OK"
    assert data["version"] == "2.0.0"
    assert data["environment"] == "test"
    assert data["uptime"] >= 0
    assert data["services"]["database"] == "connected"
    assert data["services"]["redis"] == "connected"
    assert data["memory"]["used"].endswith(" MB")


def test_health_not_rate_limited(api_client: tuple[TestClient, str, str]) -> None:
    """Health checks from monitors must never be throttled."""
    client, _token, _uid = api_client
    statuses = {client.get("/api/health").status_code for _ in range(105)}
    assert statuses == {200}


def test_status(api_client: tuple[TestClient, str, str]) -> None:
    client, _token, _uid = api_client
    data = client.get("/api/status").json()["data"]
    assert data["status"] == "operational"
    assert data["api"] == "AI Platform API"
    assert data["features"]


def test_docs_lists_mounted_endpoints(api_client: tuple[TestClient, str, str]) -> None:
    client, _token, _uid = api_client
    resp = client.get("/api/docs")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["authentication"]["type"] == "Bearer Token"
    auth_group = data["endpoints"]["auth"]
    assert "POST /auth/login" in auth_group
    assert "headers" not in auth_group["POST /auth/login"]
    assert auth_group["GET /auth/me"]["headers"] == {"Authorization": "Bearer <token>"}
    assert "DELETE /ai-providers/{provider_id}" in data["endpoints"]["ai-providers"]


def test_unknown_route_returns_catalogue(api_client: tuple[TestClient, str, str]) -> None:
    client, _token, _uid = api_client
    resp = client.get("/api/nothing-here")
    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "Route not found"
    assert body["message"] == "The requested endpoint GET /api/nothing-here does not exist"
    assert "GET /api/health" in body["availableRoutes"]
    assert body["timestamp"]


def test_security_headers_present(api_client: tuple[TestClient, str, str]) -> None:
    client, _token, _uid = api_client
    resp = client.get("/api/status")
    assert "default-src 'self'" in resp.headers["content-security-policy"]
    assert resp.headers["x-content-type-options"] == "nosniff"
    assert resp.headers["x-frame-options"] == "SAMEORIGIN"


def test_cors_allows_client_origin(api_client: tuple[TestClient, str, str]) -> None:
    client, _token, _uid = api_client
    resp = client.get("/api/status", headers={"Origin": "http://localhost:3000"})
    assert resp.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert resp.headers["access-control-allow-credentials"] == "true"


class TestApiBudget:
    """The per-IP /api budget is one counter shared by every API route."""

    def test_budget_is_shared_across_routes(self, api_client: tuple[TestClient, str, str]) -> None:
        client, token, _uid = api_client
        statuses = {client.get("/api/status").status_code for _ in range(60)}
        statuses |= {client.get("/api/docs").status_code for _ in range(40)}
        assert statuses == {200}

        resp = client.get("/api/ai-providers", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 429
        assert resp.json() == {
            "error": "Too many requests",
            "message": "Too many requests from this IP, please try again later.",
        }
        assert int(resp.headers["Retry-After"]) >= 1

    def test_budget_counts_before_authentication(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        for _ in range(100):
            assert client.get("/api/auth/me").status_code == 401
        assert client.get("/api/auth/me").status_code == 429

    def test_health_still_answers_after_budget_is_spent(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _token, _uid = api_client
        for _ in range(100):
            client.get("/api/status")
        assert client.get("/api/status").status_code == 429
        assert client.get("/api/health").status_code == 200
