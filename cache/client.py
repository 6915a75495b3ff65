"""
cache/client.py -- The cache capability: a live Redis adapter and an inert stub.

Both classes expose the same async surface so callers never branch on cache
availability:

    get(key)               -> str | None
    set(key, value, ttl)   -> "OK"
    delete(key)            -> int      (number of keys removed)
    exists(key)            -> int      (0 or 1)
    expire(key, ttl)       -> int      (1 when the TTL was applied)
    connect() / disconnect()

RedisCache translates every redis-py failure into CacheUnavailableError so the
layers above deal with exactly one exception type. NullCache never raises:
reads miss, writes report success.

Usage:
    cache = RedisCache.from_url("redis://localhost:6379")
    await cache.connect()            # raises CacheUnavailableError when down
    await cache.set("k", "v", ttl=60)
    await cache.get("k")             # "v"
    await cache.disconnect()
"""

from __future__ import annotations

import errno
from typing import Optional, Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError


class CacheUnavailableError(Exception):
    """The cache backend could not be reached or failed mid-operation."""

    def __init__(self, message: str, refused: bool = False) -> None:
        super().__init__(message)
        self.refused = refused


class CacheClient(Protocol):
    is_live: bool

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> str: ...

    async def delete(self, key: str) -> int: ...

    async def exists(self, key: str) -> int: ...

    async def expire(self, key: str, ttl: int) -> int: ...

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...


def _is_connection_refused(exc: BaseException) -> bool:
    """Walk the exception chain looking for ECONNREFUSED.

    redis-py wraps the socket OSError in its own ConnectionError and chains the
    original with `raise ... from e`, so the errno lives on __cause__.
    """
    seen: set[int] = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ConnectionRefusedError):
            return True
        if isinstance(current, OSError) and current.errno == errno.ECONNREFUSED:
            return True
        current = current.__cause__ or current.__context__
    return "connection refused" in str(exc).lower()


class NullCache:
    """Inert cache used when Redis is unavailable. Every operation succeeds."""

    is_live = False

    async def get(self, key: str) -> Optional[str]:
        return None

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> str:
        return "OK"

    async def delete(self, key: str) -> int:
        return 1

    async def exists(self, key: str) -> int:
        return 0

    async def expire(self, key: str, ttl: int) -> int:
        return 1

    async def connect(self) -> None:
        return None

    async def disconnect(self) -> None:
        return None


class RedisCache:
    """Adapter over redis.asyncio.Redis exposing the cache capability surface."""

    is_live = True

    def __init__(self, client: aioredis.Redis, url: str = "") -> None:
        self._client = client
        self.url = url

    @classmethod
    def from_url(cls, url: str, connect_timeout: float = 2.0) -> "RedisCache":
        client = aioredis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=connect_timeout,
        )
        return cls(client, url=url)

    def _wrap(self, op: str, exc: Exception) -> CacheUnavailableError:
        return CacheUnavailableError(f"Redis {op} failed: {exc}", refused=_is_connection_refused(exc))

    async def connect(self) -> None:
        """Open the connection and verify it with PING."""
        try:
            await self._client.ping()
        except (RedisError, OSError) as exc:
            raise self._wrap("connect", exc) from exc

    async def disconnect(self) -> None:
        try:
            await self._client.aclose()
        except (RedisError, OSError) as exc:
            raise self._wrap("disconnect", exc) from exc

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(key)
        except (RedisError, OSError) as exc:
            raise self._wrap("GET", exc) from exc

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> str:
        try:
            await self._client.set(key, value, ex=ttl if ttl and ttl > 0 else None)
        except (RedisError, OSError) as exc:
            raise self._wrap("SET", exc) from exc
        return "OK"

    async def delete(self, key: str) -> int:
        try:
            return int(await self._client.delete(key))
        except (RedisError, OSError) as exc:
            raise self._wrap("DEL", exc) from exc

    async def exists(self, key: str) -> int:
        try:
            return 1 if await self._client.exists(key) else 0
        except (RedisError, OSError) as exc:
            raise self._wrap("EXISTS", exc) from exc

    async def expire(self, key: str, ttl: int) -> int:
        try:
            return 1 if await self._client.expire(key, ttl) else 0
        except (RedisError, OSError) as exc:
            raise self._wrap("EXPIRE", exc) from exc
