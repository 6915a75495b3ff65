"""
auth/tokens.py -- JWT issuance/verification and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Two token kinds, each with its own secret:
       access  -- {userId, email, role}, 24h, signed with JWT_SECRET
       refresh -- {userId, type="refresh"}, 7d, signed with JWT_REFRESH_SECRET
       Verification raises TokenExpiredError or TokenInvalidError so the gate
       can map expiry and forgery to different status codes (401 vs 403).

  Passwords: bcrypt directly (no passlib wrapper). The _DUMMY_HASH constant
       enables timing equalization in authenticate_user() so response time
       does not reveal whether an email is registered.

  Secrets: sourced from core.config.get_settings() on every call, so tests can
       swap settings with get_settings.cache_clear(). The Settings validator
       refuses to start outside development without real secrets.

Layer rule: no imports from api/, web/, cache/, or providers/. Import from
core/ is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import bcrypt
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

from auth.errors import TokenExpiredError, TokenInvalidError
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("aiplatform.auth")

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API layer caps passwords at
    128 characters via the Pydantic field.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("aiplatform_timing_dummy")


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization.

    Always runs bcrypt whether or not the account exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None or user.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    if not user.is_active:
        return None
    return user


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def _field(user: Any, *names: str) -> Any:
    """Read the first present attribute/key from a User, dict, or ORM row."""
    for name in names:
        if isinstance(user, Mapping):
            if user.get(name) is not None:
                return user[name]
        elif getattr(user, name, None) is not None:
            return getattr(user, name)
    return None


def _encode(claims: dict, secret: str, lifetime_seconds: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {**claims, "iat": now, "exp": now + timedelta(seconds=lifetime_seconds)}
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def _decode(token: str, secret: str) -> dict:
    try:
        return jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpiredError() from exc
    except JWTError as exc:
        raise TokenInvalidError() from exc


def create_access_token(user: Any) -> str:
    """Sign a 24h access token carrying {userId, email, role}.

    user may be a User dataclass, a dict such as {"_id": "u1", "email": ...},
    or anything exposing those attributes. role defaults to "user".
    """
    settings = get_settings()
    user_id = _field(user, "_id", "id", "user_id")
    if user_id is None:
        raise ValueError("Cannot issue a token for a user without an id")
    claims = {
        "userId": str(user_id),
        "email": _field(user, "email"),
        "role": _field(user, "role") or "user",
    }
    return _encode(claims, settings.jwt_secret, settings.access_token_expire_seconds)


def create_refresh_token(user: Any) -> str:
    """Sign a 7-day refresh token carrying {userId, type="refresh"}."""
    settings = get_settings()
    user_id = _field(user, "_id", "id", "user_id")
    if user_id is None:
        raise ValueError("Cannot issue a token for a user without an id")
    claims = {"userId": str(user_id), "type": "refresh"}
    return _encode(claims, settings.jwt_refresh_secret, settings.refresh_token_expire_seconds)


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry with JWT_SECRET and return the claims.

    Raises TokenExpiredError for an expired token and TokenInvalidError for
    anything else, including a refresh token presented as an access token.
    """
    payload = _decode(token, get_settings().jwt_secret)
    if "userId" not in payload or payload.get("type") == "refresh":
        raise TokenInvalidError()
    return payload


def verify_refresh_token(token: str) -> dict:
    """Verify a refresh token against JWT_REFRESH_SECRET.

    Pure signature/expiry check: it does not issue a new access token. The
    /api/auth/refresh route composes this with create_access_token().
    """
    payload = _decode(token, get_settings().jwt_refresh_secret)
    if payload.get("type") != "refresh" or "userId" not in payload:
        raise TokenInvalidError()
    return payload


def token_remaining_seconds(payload: dict) -> int:
    """Seconds until the token's exp claim, never negative."""
    exp = payload.get("exp")
    if exp is None:
        return 0
    remaining = int(exp - datetime.now(timezone.utc).timestamp())
    return max(remaining, 0)


# ---------------------------------------------------------------------------
# Cookie helper (web UI)
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str) -> None:
    """Write the access token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation.
    max_age matches the JWT expiry so both expire together.
    """
    settings = get_settings()
    response.set_cookie(
        "access_token",
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.access_token_expire_seconds,
    )
