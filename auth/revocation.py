"""
auth/revocation.py -- Token revocation list kept in the cache.

A revoked token is marked under the key "blacklist_<raw token>". The marker
expires together with the token it revokes: once the token's own exp has
passed, signature verification rejects it anyway, so keeping the marker
longer would only grow the cache without bound.

Cache errors (CacheUnavailableError) propagate. Whether an unreachable cache
means "not revoked" or "reject" is decided by the gate's policy flag, not here.
"""

from __future__ import annotations

import logging

from cache.client import CacheClient

logger = logging.getLogger("aiplatform.auth.revocation")

_KEY_PREFIX = "blacklist_"


def blacklist_key(token: str) -> str:
    return f"{_KEY_PREFIX}{token}"


class TokenBlacklist:
    """Revocation list over any CacheClient (live Redis or the no-op stub)."""

    def __init__(self, cache: CacheClient) -> None:
        self.cache = cache

    async def revoke(self, token: str, ttl_seconds: int) -> bool:
        """Mark token revoked for ttl_seconds. Returns False if already expired.

        With the stub cache this reports success but nothing is stored, so a
        logged-out token stays usable until exp. That is the documented
        degraded mode.
        """
        if ttl_seconds <= 0:
            return False
        await self.cache.set(blacklist_key(token), "1", ttl=ttl_seconds)
        if not self.cache.is_live:
            logger.warning("Token revocation not persisted -- cache unavailable")
        return True

    async def is_revoked(self, token: str) -> bool:
        return bool(await self.cache.get(blacklist_key(token)))
