"""
cache/provider.py -- Startup connection policy and lifecycle for the cache.

CacheProvider is the single, explicitly constructed owner of the cache
connection. api/main.py builds one in lifespan, stores it on app.state, and
hands the capability to request handlers through the get_cache() dependency.

Lifecycle:
  start()     -- once at process start. Runs the bounded retry loop and never
                 raises: on persistent failure the process continues without
                 Redis.
  client      -- every request. Returns the live RedisCache or the NullCache
                 stub. Callers never branch on availability.
  shutdown()  -- once at process exit. Closes the live connection.

Retry policy (RetryPolicy) applies to start() only. Request-time operations
are never retried.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Request

from cache.client import CacheClient, CacheUnavailableError, NullCache, RedisCache
from core.config import Settings

logger = logging.getLogger("aiplatform.cache")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded linear backoff for the initial cache connection.

    attempt counts failed connection attempts so far (1 after the first
    failure). Retrying stops on the first of:
      - connection refused (nothing is listening, waiting will not help)
      - elapsed wall-clock time beyond budget_seconds
      - attempt > max_attempts
    Otherwise the next delay is min(attempt * step_ms, cap_ms).
    """

    max_attempts: int = 3
    budget_seconds: float = 60 * 60
    step_ms: int = 100
    cap_ms: int = 3000

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.redis_max_attempts,
            budget_seconds=settings.redis_retry_budget_seconds,
            step_ms=settings.redis_backoff_step_ms,
            cap_ms=settings.redis_backoff_cap_ms,
        )

    def stop_reason(self, attempt: int, elapsed: float, error: CacheUnavailableError) -> Optional[str]:
        """Return why retrying should stop, or None to keep going."""
        if error.refused:
            return "connection refused"
        if elapsed > self.budget_seconds:
            return "retry time exhausted"
        if attempt > self.max_attempts:
            return "max retry attempts reached"
        return None

    def delay_seconds(self, attempt: int) -> float:
        return min(attempt * self.step_ms, self.cap_ms) / 1000.0


class CacheProvider:
    """Owns the cache connection for the lifetime of the process.

    Usage:
        provider = CacheProvider.from_settings(get_settings())
        await provider.start()
        cache = provider.client      # RedisCache or NullCache
        await provider.shutdown()
    """

    def __init__(
        self,
        url: str,
        policy: RetryPolicy = RetryPolicy(),
        factory: Optional[Callable[[str], CacheClient]] = None,
        sleep: Callable[[float], object] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.url = url
        self.policy = policy
        self._factory = factory or RedisCache.from_url
        self._sleep = sleep
        self._clock = clock
        self._live: Optional[CacheClient] = None
        self._stub = NullCache()
        self._stub_warned = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheProvider":
        timeout = settings.redis_connect_timeout_seconds
        return cls(
            settings.redis_url,
            policy=RetryPolicy.from_settings(settings),
            factory=lambda url: RedisCache.from_url(url, connect_timeout=timeout),
        )

    @property
    def is_live(self) -> bool:
        return self._live is not None

    @property
    def client(self) -> CacheClient:
        if self._live is not None:
            return self._live
        if not self._stub_warned:
            logger.warning("Redis client not available -- using no-op cache")
            self._stub_warned = True
        return self._stub

    async def start(self) -> None:
        """Connect with bounded retry. Falls back to the stub instead of raising."""
        started = self._clock()
        attempt = 0
        while True:
            candidate = self._factory(self.url)
            try:
                await candidate.connect()
            except CacheUnavailableError as exc:
                attempt += 1
                reason = self.policy.stop_reason(attempt, self._clock() - started, exc)
                if reason is not None:
                    logger.warning("Redis %s - continuing without Redis: %s", reason, exc)
                    await self._discard(candidate)
                    self._live = None
                    return
                delay = self.policy.delay_seconds(attempt)
                logger.info("Redis connect attempt %d failed, retrying in %.1fs", attempt, delay)
                await self._discard(candidate)
                await self._sleep(delay)
                continue
            self._live = candidate
            self._stub_warned = False
            logger.info("Redis client connected")
            return

    async def shutdown(self) -> None:
        if self._live is None:
            return
        live, self._live = self._live, None
        try:
            await live.disconnect()
        except CacheUnavailableError as exc:
            logger.warning("Redis disconnect failed: %s", exc)
        logger.warning("Redis client connection ended")

    @staticmethod
    async def _discard(candidate: CacheClient) -> None:
        try:
            await candidate.disconnect()
        except CacheUnavailableError:
            logger.debug("Ignoring disconnect failure on abandoned Redis client")


def get_cache(request: Request) -> CacheClient:
    """FastAPI dependency returning the cache capability for this request."""
    return request.app.state.cache_provider.client
