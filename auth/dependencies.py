"""
auth/dependencies.py -- The authentication gate as FastAPI Depends() helpers.

Validation sequence for every protected request:
  1. Parse "Authorization: Bearer <token>".
  2. No token: continue anonymously if the path is on the public allow-list
     (Settings.public_paths), otherwise MissingTokenError (401).
  3. Verify signature and expiry with JWT_SECRET:
     TokenExpiredError (401) or TokenInvalidError (403).
  4. Consult the revocation list in the cache: TokenRevokedError (401).
     If the cache itself fails, Settings.revocation_fail_open decides:
     true  -> log a warning and treat the token as not revoked
     false -> RevocationUnavailableError (503)
  5. Attach the Identity to request.state.identity.

authenticate_request() is the gate; mount it as a router-level dependency.
get_current_identity() is what handlers take when they need the caller.
try_get_identity() is the soft variant for the web UI: it also reads the
access_token cookie and returns None instead of raising.

The gate holds no state of its own; the only shared resource it touches is
the cache capability from app.state.cache_provider.
"""

from __future__ import annotations

import logging

from fastapi import Request

from auth.errors import AuthError, MissingTokenError, RevocationUnavailableError, TokenRevokedError
from auth.models import Identity
from auth.revocation import TokenBlacklist
from auth.tokens import decode_access_token
from cache.client import CacheClient, CacheUnavailableError
from cache.provider import get_cache
from core.config import Settings, get_settings

logger = logging.getLogger("aiplatform.auth.gate")


def extract_bearer_token(request: Request) -> str | None:
    """Return the token from an "Authorization: Bearer <token>" header, if any."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


async def verify_token(token: str, cache: CacheClient, settings: Settings) -> Identity:
    """Run steps 3-4 of the gate on a raw token and return the caller identity."""
    payload = decode_access_token(token)
    try:
        revoked = await TokenBlacklist(cache).is_revoked(token)
    except CacheUnavailableError as exc:
        if not settings.revocation_fail_open:
            raise RevocationUnavailableError() from exc
        logger.warning("Redis not available for token blacklist check: %s", exc)
        revoked = False
    if revoked:
        raise TokenRevokedError()
    return Identity.from_claims(payload)


async def authenticate_request(request: Request) -> Identity | None:
    """The gate. Returns the Identity, or None on a public path without a token."""
    settings = get_settings()
    token = extract_bearer_token(request)
    if token is None:
        if request.url.path in settings.public_paths:
            return None
        raise MissingTokenError()
    identity = await verify_token(token, get_cache(request), settings)
    request.state.identity = identity
    request.state.token = token
    return identity


async def get_current_identity(request: Request) -> Identity:
    """Require an authenticated caller.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity: Identity = Depends(get_current_identity)): ...
    """
    identity = getattr(request.state, "identity", None)
    if identity is None:
        identity = await authenticate_request(request)
    if identity is None:
        raise MissingTokenError()
    return identity


async def try_get_identity(request: Request) -> Identity | None:
    """Soft gate for the web UI: bearer header first, then the access_token cookie.

    Never raises -- any auth failure is treated as "not logged in" and the
    web routes redirect to /login.
    """
    token = extract_bearer_token(request) or request.cookies.get("access_token")
    if not token:
        return None
    try:
        identity = await verify_token(token, get_cache(request), get_settings())
    except AuthError:
        return None
    request.state.identity = identity
    request.state.token = token
    return identity
