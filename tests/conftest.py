"""
tests/conftest.py -- Shared test fixtures for AI Platform integration tests.

This module provides:
  - FakeCache: in-memory stand-in for Redis with a switchable failure mode
  - _make_test_stores(): creates isolated in-memory DBs for users + providers
  - _patch_lifespan(): wires test stores and a CacheProvider into app.state
  - api_client: TestClient with a user JWT for API integration tests
  - offline_api_client: same, but the cache refuses connections at startup
  - web_client: TestClient with follow_redirects=False for web route tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.

Only one client fixture may be active at a time: they all share the single
app object and each startup overwrites app.state. Use one per test module.

ENVIRONMENT and the JWT secrets must be set before any auth/core import so
get_settings() builds a test configuration.
"""

from __future__ import annotations

import os
import time
from collections.abc import Generator
from contextlib import asynccontextmanager
from typing import Optional

# CRITICAL: Set before any auth/core import -- get_settings() is cached.
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("JWT_SECRET", "test-access-secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from asgi import app
from auth.models import User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from cache.client import CacheUnavailableError
from cache.provider import CacheProvider, RetryPolicy
from providers.cipher import KeyCipher
from providers.store import ProviderStore

TEST_PASSWORD = "testpass123"


class FakeCache:
    """Dict-backed cache with the CacheClient surface.

    fail=True makes every operation raise CacheUnavailableError.
    refuse=True makes connect() fail the way an absent Redis does.
    """

    is_live = True

    def __init__(self, refuse: bool = False) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, Optional[int]] = {}
        self.fail = False
        self.refuse = refuse
        self.connects = 0
        self.disconnects = 0

    def _check(self) -> None:
        if self.fail:
            raise CacheUnavailableError("fake cache down")

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self.data.get(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> str:
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl
        return "OK"

    async def delete(self, key: str) -> int:
        self._check()
        existed = key in self.data
        self.data.pop(key, None)
        self.ttls.pop(key, None)
        return 1 if existed else 0

    async def exists(self, key: str) -> int:
        self._check()
        return 1 if key in self.data else 0

    async def expire(self, key: str, ttl: int) -> int:
        self._check()
        if key not in self.data:
            return 0
        self.ttls[key] = ttl
        return 1

    async def connect(self) -> None:
        self.connects += 1
        if self.refuse:
            raise CacheUnavailableError("Error 111 connecting to localhost:6379. Connection refused.", refused=True)
        self._check()

    async def disconnect(self) -> None:
        self.disconnects += 1


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, ProviderStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'api', 'web').
    """
    user_url = f"sqlite:///file:test_users_{db_suffix}?mode=memory&cache=shared&uri=true"
    provider_url = f"sqlite:///file:test_providers_{db_suffix}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(db_url=user_url)
    provider_store = ProviderStore(db_url=provider_url, cipher=KeyCipher(secret="test-provider-secret"))
    return user_store, provider_store


def _patch_lifespan(user_store: UserStore, provider_store: ProviderStore, cache: FakeCache):
    """Return an async context manager that replaces the real lifespan.

    The CacheProvider is real; only its factory is swapped so startup runs
    the actual connection policy against the fake.
    """

    async def _no_sleep(_delay: float) -> None:
        return None

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.started_at = time.monotonic()
        app.state.cache_provider = CacheProvider(
            "redis://fake:6379",
            policy=RetryPolicy(),
            factory=lambda url: cache,
            sleep=_no_sleep,
        )
        await app.state.cache_provider.start()
        app.state.user_store = user_store
        app.state.provider_store = provider_store
        yield
        await app.state.cache_provider.shutdown()

    return test_lifespan


def _create_user(user_store: UserStore, email: str, role: str = "user") -> User:
    uid = user_store.create_user(User(email=email, role=role, hashed_password=hash_password(TEST_PASSWORD)))
    return user_store.get_by_id(uid)


def _client(db_suffix: str, cache: FakeCache, **client_kwargs) -> Generator[tuple[TestClient, str, str], None, None]:
    user_store, provider_store = _make_test_stores(db_suffix)
    user = _create_user(user_store, f"admin-{db_suffix}@example.com", role="admin")
    token = create_access_token(user)

    app.router.lifespan_context = _patch_lifespan(user_store, provider_store, cache)

    with TestClient(app, raise_server_exceptions=True, **client_kwargs) as client:
        yield client, token, user.id

    provider_store.close()
    user_store.close()


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The cache is a live FakeCache; reach it through
    client.app.state.cache_provider.client.
    """
    yield from _client("api", FakeCache())


@pytest.fixture(scope="module")
def offline_api_client() -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, token, user_id) with Redis refusing connections at startup."""
    yield from _client("offline", FakeCache(refuse=True))


@pytest.fixture(scope="module")
def web_client() -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, token, user_id) for web route integration tests.

    follow_redirects=False is essential for web route tests: we assert on
    redirect *locations* (e.g. 302 to /login), which are invisible once
    the client follows the redirect.
    """
    yield from _client("web", FakeCache(), follow_redirects=False)


@pytest.fixture
def fake_cache() -> FakeCache:
    return FakeCache()


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> Generator[None, None, None]:
    """Start every test with empty rate-limit counters."""
    limiter.reset()
    yield
