"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the AI Platform happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Used to implement the environment-
      conditional secret policy: development falls back to well-known
      development secrets with a warning, every other environment refuses to
      start without real ones.

Security notes:
  [S1] Outside development/test, a missing JWT_SECRET or JWT_REFRESH_SECRET
       is a hard startup failure. The development fallbacks are public strings
       and must never sign production tokens.

  [S2] In production the access and refresh secrets must differ, otherwise a
       refresh token would verify as an access token signature-wise.

  [S3] PROVIDER_KEY_SECRET (Fernet material for vendor API keys at rest) is
       required outside development/test and must differ from JWT_SECRET, so
       rotating the JWT secret after a token leak leaves stored keys readable.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
auth/, cache/, or providers/.
"""

import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("aiplatform.config")

# Development-only fallbacks. Accepted only when ENVIRONMENT is development or test.
DEV_JWT_SECRET = "your-secret-key"
DEV_JWT_REFRESH_SECRET = "your-refresh-secret-key"
DEV_PROVIDER_KEY_SECRET = "your-provider-key-secret"

_RELAXED_ENVIRONMENTS = {"development", "test"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    environment: str = "development"
    port: int = 3000
    version: str = "2.0.0"
    api_base_url: str = "http://localhost:3000/api"
    database_url: str = ""  # empty = per-store SQLite default

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The validator below
    # either substitutes the development default or raises.
    jwt_secret: str = ""
    jwt_refresh_secret: str = ""
    access_token_expire_seconds: int = 24 * 60 * 60
    refresh_token_expire_seconds: int = 7 * 24 * 60 * 60
    secure_cookies: bool = False
    public_paths: list[str] = [
        "/api/health",
        "/api/status",
        "/api/docs",
        "/api/auth/login",
        "/api/auth/register",
        "/api/auth/refresh",
    ]
    # Availability over consistency: when the cache cannot answer, treat the
    # token as not revoked. Set false to reject with 503 instead.
    revocation_fail_open: bool = True
    # Fernet key material for vendor API keys at rest. Kept apart from
    # JWT_SECRET so the two rotate independently.
    provider_key_secret: str = ""

    # ------------------------------------------------------------------
    # Cache (Redis)
    # ------------------------------------------------------------------

    redis_url: str = "redis://localhost:6379"
    redis_max_attempts: int = 3
    redis_retry_budget_seconds: float = 60 * 60
    redis_backoff_step_ms: int = 100
    redis_backoff_cap_ms: int = 3000
    redis_connect_timeout_seconds: float = 2.0

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    client_url: str = "http://localhost:3000"
    api_rate_limit: str = "100 per 15 minutes"
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in _RELAXED_ENVIRONMENTS

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the secret policy [S1] [S2] [S3].

        Development/test: missing secrets fall back to the DEV_* values with a
            warning so a fresh checkout runs.

        Any other environment: refuse to start when any secret is missing,
            refuse identical access/refresh secrets, and refuse a provider key
            secret equal to JWT_SECRET.
        """
        required = ("jwt_secret", "jwt_refresh_secret", "provider_key_secret")
        missing = [name for name in required if not getattr(self, name)]
        if missing:
            if not self.is_development:
                raise ValueError(
                    f"{', '.join(m.upper() for m in missing)} required when ENVIRONMENT={self.environment}. "
                    "Set them in your environment or .env file. "
                    "To run with development defaults, set ENVIRONMENT=development."
                )
            if not self.jwt_secret:
                self.jwt_secret = DEV_JWT_SECRET
            if not self.jwt_refresh_secret:
                self.jwt_refresh_secret = DEV_JWT_REFRESH_SECRET
            if not self.provider_key_secret:
                self.provider_key_secret = DEV_PROVIDER_KEY_SECRET
            logger.warning(
                "WARNING: Using development secrets for %s. Never deploy with these.",
                ", ".join(m.upper() for m in missing),
            )
        if not self.is_development:
            if self.jwt_secret == self.jwt_refresh_secret:
                raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must differ.")
            if self.provider_key_secret == self.jwt_secret:
                raise ValueError("PROVIDER_KEY_SECRET must differ from JWT_SECRET.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
