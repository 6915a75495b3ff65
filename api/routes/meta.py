"""
api/routes/meta.py -- Health, status and self-describing documentation.

Routes (all public; on Settings.public_paths):
  GET /api/health  -- liveness plus a truthful view of backing services
  GET /api/status  -- static service banner
  GET /api/docs    -- endpoint catalogue generated from the mounted routes

/api/health is exempt from the request budget (api.limiter.BUDGET_EXEMPT_PATHS)
-- health checks from load balancers and monitoring systems must not be
throttled.
"""

from __future__ import annotations

import os
import resource
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from api.models import HealthData, StatusData, SuccessResponse
from core.config import get_settings

router = APIRouter()

API_NAME = "AI Platform API"

FEATURES = [
    "JWT Authentication",
    "Token Revocation",
    "Multi-Provider AI Support",
    "Per-User Provider Isolation",
    "Provider Connectivity Testing",
]


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _memory_usage() -> dict[str, str]:
    # ru_maxrss is KiB on Linux.
    used_mb = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss // 1024
    try:
        total_mb = os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES") // (1024 * 1024)
    except (ValueError, OSError):
        total_mb = 0
    return {"used": f"{used_mb} MB", "total": f"{total_mb} MB"}


@router.get("/health", response_model=SuccessResponse[HealthData])
def health(request: Request) -> SuccessResponse[HealthData]:
    """Return liveness, uptime and the state of the database and cache."""
    settings = get_settings()
    state = request.app.state
    return SuccessResponse[HealthData](
        data=HealthData(
            timestamp=_utc_now(),
            uptime=round(time.monotonic() - state.started_at, 3),
            environment=settings.environment,
            version=settings.version,
            services={
                "database": "connected" if state.user_store.ping() else "unavailable",
                "redis": "connected" if state.cache_provider.is_live else "unavailable",
                "websocket": "disabled",
            },
            memory=_memory_usage(),
        )
    )


@router.get("/status", response_model=SuccessResponse[StatusData])
def status() -> SuccessResponse[StatusData]:
    settings = get_settings()
    return SuccessResponse[StatusData](
        data=StatusData(api=API_NAME, version=settings.version, timestamp=_utc_now(), features=FEATURES)
    )


_HTTP_METHODS = ("get", "post", "put", "patch", "delete")


@router.get("/docs")
def docs(request: Request) -> dict:
    """Describe every mounted /api endpoint, grouped by its first tag.

    Built from the app's OpenAPI paths so the catalogue cannot drift from
    what is actually served. Paths are shown relative to baseUrl.
    """
    settings = get_settings()
    endpoints: dict[str, dict] = {}
    for path, operations in request.app.openapi().get("paths", {}).items():
        if not path.startswith("/api/"):
            continue
        protected = path not in settings.public_paths
        for method in _HTTP_METHODS:
            operation = operations.get(method)
            if operation is None:
                continue
            tags = operation.get("tags") or ["api"]
            group = tags[0].lower().replace(" ", "-")
            summary = (operation.get("description") or operation.get("summary") or "").strip()
            entry: dict = {"description": summary.splitlines()[0] if summary else ""}
            if protected:
                entry["headers"] = {"Authorization": "Bearer <token>"}
            endpoints.setdefault(group, {})[f"{method.upper()} {path[len('/api'):]}"] = entry

    return {
        "success": True,
        "data": {
            "name": API_NAME,
            "version": settings.version,
            "description": "Advanced AI-powered development platform API",
            "baseUrl": settings.api_base_url,
            "endpoints": endpoints,
            "authentication": {
                "type": "Bearer Token",
                "description": "Include Authorization header with Bearer token for protected routes",
            },
            "rateLimiting": {"description": f"{settings.api_rate_limit} per IP"},
        },
    }
