"""
api/main.py -- FastAPI application entry point for the AI Platform API.

Run with:      uvicorn asgi:app --reload

Middleware stack, in the order a request meets it:
  1. SecurityHeadersMiddleware -- CSP and hardening headers (api/security.py)
  2. GZipMiddleware            -- compresses responses over 1 KB
  3. CORSMiddleware            -- CLIENT_URL origin with credentials
  4. log_requests              -- one log line per request with latency

Starlette wraps middleware so that the LAST add_middleware() call is the
outermost layer. The registrations below therefore run innermost-first.

Rate limiting is not a middleware: the shared per-IP /api budget is a router
dependency (api.limiter.enforce_api_budget) that runs before the auth gate,
and login carries its own @limiter.limit.

Lifespan handles startup (settings validation, cache connection policy,
stores) and shutdown (close stores, disconnect cache) symmetrically.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from http import HTTPStatus

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import RATE_LIMIT_MESSAGE, enforce_api_budget, limiter
from api.models import ErrorResponse
from api.routes.auth import router as auth_router
from api.routes.meta import router as meta_router
from api.routes.providers import router as providers_router
from api.security import SecurityHeadersMiddleware
from auth.dependencies import authenticate_request
from auth.errors import AuthError
from auth.store import UserStore
from cache.provider import CacheProvider
from core.config import get_settings
from core.logging import configure_logging
from providers.cipher import KeyCipher
from providers.store import ProviderStore

configure_logging()
logger = logging.getLogger("aiplatform.api")

# Shown in the 404 body so API clients can discover the surface.
AVAILABLE_ROUTES = [
    "GET /api/health",
    "GET /api/status",
    "GET /api/docs",
    "POST /api/auth/register",
    "POST /api/auth/login",
    "POST /api/auth/refresh",
    "GET /api/auth/me",
    "POST /api/auth/logout",
    "GET /api/ai-providers",
    "POST /api/ai-providers",
    "GET /api/ai-providers/models/all",
    "GET /api/ai-providers/:id",
    "PUT /api/ai-providers/:id",
    "DELETE /api/ai-providers/:id",
    "POST /api/ai-providers/:id/test",
]


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Settings first -- get_settings() raises on missing secrets outside
         development, so a misconfigured process dies before binding a port.
      2. Cache second -- CacheProvider.start() runs the bounded retry policy
         and always returns; afterwards the provider hands out either the
         live client or the stub.
      3. Stores last -- plain SQLAlchemy engines, no network dependency.
    """
    settings = get_settings()
    logger.info("AI Platform API v%s starting up (environment=%s)", settings.version, settings.environment)

    app.state.started_at = time.monotonic()
    app.state.cache_provider = CacheProvider.from_settings(settings)
    await app.state.cache_provider.start()

    store_kwargs = {"db_url": settings.database_url} if settings.database_url else {}
    app.state.user_store = UserStore(**store_kwargs)
    app.state.provider_store = ProviderStore(
        cipher=KeyCipher(secret=settings.provider_key_secret),
        **store_kwargs,
    )
    logger.info("Stores initialized (redis=%s)", "connected" if app.state.cache_provider.is_live else "unavailable")

    yield

    app.state.provider_store.close()
    app.state.user_store.close()
    await app.state.cache_provider.shutdown()
    logger.info("AI Platform API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="AI Platform API",
    description="Advanced AI-powered development platform API",
    version=get_settings().version,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Request logging middleware
#
# Registered first so it sits innermost: the latency it reports covers route
# handling only, not header decoration or compression.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().client_url],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(GZipMiddleware, minimum_size=1000)

app.add_middleware(SecurityHeadersMiddleware, hsts=not get_settings().is_development)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Router registration
#
# Every API router gets the shared request budget, then the gate. Paths on
# the public allow-list (Settings.public_paths) pass the gate without a token.
# ---------------------------------------------------------------------------

_gate = [Depends(enforce_api_budget), Depends(authenticate_request)]
app.include_router(meta_router, prefix="/api", tags=["Meta"], dependencies=_gate)
app.include_router(auth_router, prefix="/api", tags=["Auth"], dependencies=_gate)
app.include_router(providers_router, prefix="/api", tags=["AI Providers"], dependencies=_gate)
# Web UI router is mounted by asgi.py, not here.
# api/ and web/ are independent layers -- only the top-level asgi.py imports both.


# ---------------------------------------------------------------------------
# Exception handlers
#
# Errors share the flat {"error": ..., "message": ...} body so clients can
# parse them uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map gate failures (missing, expired, invalid, revoked) to their status codes."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 when a per-route @limiter.limit is exceeded."""
    retry_after = exc.limit.limit.get_expiry() if exc.limit else 60
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error="Too many requests",
            message=RATE_LIMIT_MESSAGE,
            detail=str(exc.detail),
        ).model_dump(exclude_none=True),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 when the request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error="Validation failed",
            message="Request validation failed.",
            detail=str(exc.errors()),
        ).model_dump(exclude_none=True),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    No matched endpoint means the router found nothing: answer with the route
    catalogue. Route handlers raise HTTPException with a dict detail
    ({"error", "message"}), which is passed through as the body.
    """
    if exc.status_code == 404 and "endpoint" not in request.scope:
        return JSONResponse(
            status_code=404,
            content={
                "success": False,
                "error": "Route not found",
                "message": f"The requested endpoint {request.method} {request.url.path} does not exist",
                "availableRoutes": AVAILABLE_ROUTES,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content=exc.detail, headers=exc.headers)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=HTTPStatus(exc.status_code).phrase,
            message=str(exc.detail),
        ).model_dump(exclude_none=True),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="Internal server error",
            message="An unexpected error occurred.",
        ).model_dump(exclude_none=True),
    )
