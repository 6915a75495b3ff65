"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in providers/models.py -- dataclasses own domain shape; stores and routes do
the work.

Layer rule: no imports from api/, web/, cache/, or providers/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered account.

    id is a hex UUID assigned by the store on insert (None before that).
    email is the login name and is unique across the platform.
    """

    email: str
    role: str = "user"  # "admin" | "user"
    id: str | None = None
    hashed_password: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    created_at: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class Identity:
    """The caller identity decoded from a verified access token.

    This is what the authentication gate attaches to request.state.identity.
    It is built from token claims only -- no database lookup per request.
    """

    user_id: str
    email: str | None
    role: str

    @classmethod
    def from_claims(cls, claims: dict) -> "Identity":
        return cls(
            user_id=str(claims["userId"]),
            email=claims.get("email"),
            role=claims.get("role") or "user",
        )
