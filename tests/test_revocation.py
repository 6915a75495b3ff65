"""
tests/test_revocation.py -- TokenBlacklist over a live fake cache and the stub.
"""

from __future__ import annotations

import pytest

from auth.revocation import TokenBlacklist, blacklist_key
from cache.client import CacheUnavailableError, NullCache


def test_blacklist_key_format() -> None:
    assert blacklist_key("abc.def.ghi") == "blacklist_abc.def.ghi"


@pytest.mark.asyncio
async def test_revoke_marks_token_with_ttl(fake_cache) -> None:
    blacklist = TokenBlacklist(fake_cache)
    assert await blacklist.revoke("tok", ttl_seconds=120) is True
    assert fake_cache.data["blacklist_tok"] == "1"
    assert fake_cache.ttls["blacklist_tok"] == 120
    assert await blacklist.is_revoked("tok") is True


@pytest.mark.asyncio
async def test_unrevoked_token(fake_cache) -> None:
    assert await TokenBlacklist(fake_cache).is_revoked("never-seen") is False


@pytest.mark.asyncio
async def test_expired_token_is_not_stored(fake_cache) -> None:
    assert await TokenBlacklist(fake_cache).revoke("tok", ttl_seconds=0) is False
    assert fake_cache.data == {}


@pytest.mark.asyncio
async def test_cache_errors_propagate(fake_cache) -> None:
    fake_cache.fail = True
    with pytest.raises(CacheUnavailableError):
        await TokenBlacklist(fake_cache).is_revoked("tok")
    with pytest.raises(CacheUnavailableError):
        await TokenBlacklist(fake_cache).revoke("tok", ttl_seconds=60)


@pytest.mark.asyncio
async def test_stub_cache_forgets_revocations() -> None:
    blacklist = TokenBlacklist(NullCache())
    assert await blacklist.revoke("tok", ttl_seconds=60) is True
    assert await blacklist.is_revoked("tok") is False
