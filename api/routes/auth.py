"""
api/routes/auth.py -- Account and session REST endpoints.

Routes:
  POST /api/auth/register   -- create an account; returns user + token pair
  POST /api/auth/login      -- password login; returns user + token pair
  POST /api/auth/refresh    -- exchange a refresh token for a new access token
  GET  /api/auth/me         -- current user (requires auth)
  POST /api/auth/logout     -- revoke the presented access token (requires auth)

Security:
  [H2] POST /login is rate-limited per IP (Settings.login_rate_limit).
  [C1] authenticate_user() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on every response that carries a token.

No "from __future__ import annotations" here: slowapi wraps login, and
FastAPI resolves string annotations against the wrapper's module globals,
which would turn the LoginRequest body into query parameters.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import (
    AuthData,
    LoginRequest,
    MessageData,
    RefreshRequest,
    RegisterRequest,
    SuccessResponse,
    TokenData,
    UserData,
    UserOut,
)
from auth.dependencies import get_current_identity
from auth.errors import TokenInvalidError
from auth.models import Identity, User
from auth.revocation import TokenBlacklist
from auth.store import UserStore
from auth.tokens import (
    authenticate_user,
    create_access_token,
    create_refresh_token,
    decode_access_token,
    hash_password,
    token_remaining_seconds,
    verify_refresh_token,
)
from cache.client import CacheUnavailableError
from cache.provider import get_cache
from core.config import get_settings

logger = logging.getLogger("aiplatform.api.auth")

# Auth policy (enforced by the gate mounted in api/main.py):
# - POST /api/auth/register: public -- on Settings.public_paths
# - POST /api/auth/login:    public -- on Settings.public_paths
# - POST /api/auth/refresh:  public -- the access token may already be expired
# - GET  /api/auth/me:       requires auth (get_current_identity)
# - POST /api/auth/logout:   requires auth (get_current_identity)
router = APIRouter()


def _session_response(user: User, status_code: int = 200) -> JSONResponse:
    body = SuccessResponse[AuthData](
        data=AuthData(
            user=UserOut.from_user(user),
            token=create_access_token(user),
            refresh_token=create_refresh_token(user),
        )
    )
    resp = JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=SuccessResponse[AuthData], status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a user account with role "user" and sign the caller in."""
    user_store: UserStore = request.app.state.user_store
    new_user = User(
        email=body.email,
        hashed_password=hash_password(body.password),
        first_name=body.first_name,
        last_name=body.last_name,
    )
    try:
        user_id = user_store.create_user(new_user)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"error": "User already exists", "message": "An account with that email is already registered."},
        ) from exc

    created = user_store.get_by_id(user_id)
    logger.info("Registered user %s", user_id)
    return _session_response(created, status_code=201)


@router.post("/auth/login", response_model=SuccessResponse[AuthData])
@limiter.limit(get_settings().login_rate_limit)  # [H2] under @router so the registered endpoint is the limited one
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Returns the same generic error for an unknown email and a wrong password
    to avoid leaking which accounts exist.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)  # [C1]
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": "Invalid credentials", "message": "Invalid email or password."},
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp
    return _session_response(user)


@router.post("/auth/refresh", response_model=SuccessResponse[TokenData])
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Issue a new access token from a valid refresh token.

    The account is re-read so the new token carries the current email and
    role, and a deactivated account cannot keep refreshing.
    """
    payload = verify_refresh_token(body.refresh_token)
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(payload["userId"])
    if user is None or not user.is_active:
        raise TokenInvalidError()
    resp = JSONResponse(
        content=SuccessResponse[TokenData](data=TokenData(token=create_access_token(user))).model_dump(by_alias=True)
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=SuccessResponse[UserData])
def me(request: Request, identity: Identity = Depends(get_current_identity)) -> SuccessResponse[UserData]:
    """Return the account behind the presented access token."""
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(identity.user_id)
    if user is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "User not found", "message": "The account for this token no longer exists."},
        )
    return SuccessResponse[UserData](data=UserData(user=UserOut.from_user(user)))


@router.post("/auth/logout", response_model=SuccessResponse[MessageData])
async def logout(request: Request, identity: Identity = Depends(get_current_identity)) -> SuccessResponse[MessageData]:
    """Revoke the presented access token until it would have expired anyway.

    If the cache refuses the write, the token cannot be revoked and the
    caller gets 503 rather than a logout that silently did nothing.
    """
    token: str = request.state.token
    ttl = token_remaining_seconds(decode_access_token(token))
    try:
        await TokenBlacklist(get_cache(request)).revoke(token, ttl)
    except CacheUnavailableError as exc:
        logger.warning("Logout for %s not recorded: %s", identity.user_id, exc)
        raise HTTPException(
            status_code=503,
            detail={"error": "Service unavailable", "message": "Logout could not be recorded. Try again."},
        ) from exc
    logger.info("User %s logged out", identity.user_id)
    return SuccessResponse[MessageData](data=MessageData(message="Logged out successfully"))
