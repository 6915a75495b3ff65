"""
auth/errors.py -- Authentication failures raised by the gate.

Each error carries the HTTP status and the {error, message} pair the API
returns for it. api/main.py registers one exception handler for AuthError
that serializes these fields, so the gate raises and never builds responses.

  MissingTokenError          401  no bearer token on a protected path
  TokenExpiredError          401  signature fine, exp in the past
  TokenInvalidError          403  bad signature, malformed token, wrong shape
  TokenRevokedError          401  token present in the revocation list
  RevocationUnavailableError 503  cache down and REVOCATION_FAIL_OPEN=false
"""

from __future__ import annotations


class AuthError(Exception):
    status_code: int = 401
    error: str = "Unauthorized"
    message: str = "Authentication required"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message}


class MissingTokenError(AuthError):
    status_code = 401
    error = "Access token required"
    message = "Please provide a valid authentication token"


class TokenExpiredError(AuthError):
    status_code = 401
    error = "Token expired"
    message = "Please login again"


class TokenInvalidError(AuthError):
    status_code = 403
    error = "Invalid token"
    message = "Token verification failed"


class TokenRevokedError(AuthError):
    status_code = 401
    error = "Token invalid"
    message = "This token has been revoked"


class RevocationUnavailableError(AuthError):
    status_code = 503
    error = "Service unavailable"
    message = "Token revocation status could not be verified"
