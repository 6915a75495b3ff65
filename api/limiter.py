"""
api/limiter.py -- Shared slowapi rate limiter and the /api request budget.

Two limits apply to API traffic:
  - enforce_api_budget: one counter per client IP shared by every /api route
    (100 requests per 15 minutes by default). Mounted as a router dependency
    in api/main.py, so the web UI is never counted.
  - @limiter.limit(...) on individual routes (login) adds a tighter limit on
    top of the shared budget.

Both go through the same slowapi Limiter, so they share one counter store and
limiter.reset() clears everything.
"""

import time

from fastapi import HTTPException, Request
from limits import parse
from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."

# Monitors poll health; it never counts against the budget.
BUDGET_EXEMPT_PATHS = frozenset({"/api/health"})

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

_API_BUDGET = parse(get_settings().api_rate_limit)
_BUDGET_SCOPE = "api"


def enforce_api_budget(request: Request) -> None:
    """Count the request against the caller's shared /api budget.

    Raises 429 with Retry-After once the budget for the current window is
    spent.
    """
    if not limiter.enabled or request.url.path in BUDGET_EXEMPT_PATHS:
        return
    client = get_remote_address(request)
    if limiter.limiter.hit(_API_BUDGET, _BUDGET_SCOPE, client):
        return
    reset_at, _remaining = limiter.limiter.get_window_stats(_API_BUDGET, _BUDGET_SCOPE, client)
    raise HTTPException(
        status_code=429,
        detail={"error": "Too many requests", "message": RATE_LIMIT_MESSAGE},
        headers={"Retry-After": str(max(int(reset_at - time.time()), 1))},
    )
