"""
API request and response models for the AI Platform REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py and
providers/models.py, which own the internal domain representation. Route
handlers map between the two via the from_* factory methods here.

Wire format:
  - JSON keys are camelCase (displayName, apiKey, totalRequests, ...). The
    CamelModel base generates aliases; FastAPI serializes response_model
    output by alias, and request bodies accept either spelling.
  - Success bodies are wrapped as {"success": true, "data": {...}}
    (SuccessResponse[T]).
  - Error bodies are {"error": "...", "message": "..."} (ErrorResponse).
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import User
from providers.catalog import MODEL_CATEGORIES
from providers.models import AIProvider, ProviderModel

T = TypeVar("T")

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _clean_base_url(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    if not value.startswith(("https://", "http://")):
        raise ValueError("baseUrl must start with http:// or https://")
    return value.rstrip("/")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SuccessResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T


class ErrorResponse(BaseModel):
    error: str
    message: str
    detail: Optional[str] = None


class MessageData(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class RegisterRequest(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    email: str = Field(pattern=_EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=8, max_length=128)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)


class LoginRequest(CamelModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


class UserOut(CamelModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    created_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            created_at=user.created_at,
        )


class AuthData(CamelModel):
    user: UserOut
    token: str
    refresh_token: str


class TokenData(CamelModel):
    token: str


class UserData(CamelModel):
    user: UserOut


# ---------------------------------------------------------------------------
# AI providers
# ---------------------------------------------------------------------------


class ProviderModelIn(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    category: str = "chat"

    @field_validator("category")
    @classmethod
    def check_category(cls, value: str) -> str:
        if value not in MODEL_CATEGORIES:
            raise ValueError(f"category must be one of: {', '.join(MODEL_CATEGORIES)}")
        return value


class ProviderCreate(CamelModel):
    """Request body for POST /api/ai-providers.

    name is the vendor type. When models is omitted, the vendor's catalog
    models are used (empty for unknown vendors).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=50)
    display_name: str = Field(min_length=1, max_length=100)
    api_key: str = Field(min_length=1, max_length=500)
    base_url: Optional[str] = Field(default=None, max_length=500)
    priority: int = Field(default=1, ge=1, le=100)
    models: Optional[list[ProviderModelIn]] = Field(default=None, max_length=50)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, value: str) -> str:
        return value.lower()

    @field_validator("base_url")
    @classmethod
    def check_base_url(cls, value: Optional[str]) -> Optional[str]:
        return _clean_base_url(value)


class ProviderUpdate(CamelModel):
    """Request body for PUT /api/ai-providers/{id}. Omitted fields are unchanged."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    display_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    api_key: Optional[str] = Field(default=None, max_length=500)
    base_url: Optional[str] = Field(default=None, max_length=500)
    priority: Optional[int] = Field(default=None, ge=1, le=100)
    is_active: Optional[bool] = None
    models: Optional[list[ProviderModelIn]] = Field(default=None, max_length=50)

    @field_validator("base_url")
    @classmethod
    def check_base_url(cls, value: Optional[str]) -> Optional[str]:
        return _clean_base_url(value)


class ProviderModelOut(CamelModel):
    name: str
    category: str


class UsageOut(CamelModel):
    total_requests: int
    total_tokens: int
    total_cost: float


class ProviderOut(CamelModel):
    """A provider as returned to clients. The API key is masked."""

    id: str
    name: str
    display_name: str
    api_key: str
    key_readable: bool
    base_url: Optional[str]
    priority: int
    is_active: bool
    models: list[ProviderModelOut]
    usage: UsageOut
    created_at: str
    updated_at: str

    @classmethod
    def from_provider(cls, provider: AIProvider) -> "ProviderOut":
        return cls(
            id=provider.id,
            name=provider.name,
            display_name=provider.display_name,
            api_key=provider.masked_key,
            key_readable=provider.key_readable,
            base_url=provider.base_url,
            priority=provider.priority,
            is_active=provider.is_active,
            models=[ProviderModelOut(name=m.name, category=m.category) for m in provider.models],
            usage=UsageOut(
                total_requests=provider.usage.total_requests,
                total_tokens=provider.usage.total_tokens,
                total_cost=provider.usage.total_cost,
            ),
            created_at=provider.created_at,
            updated_at=provider.updated_at,
        )


class ProviderData(CamelModel):
    provider: ProviderOut


class ProviderListData(CamelModel):
    providers: list[ProviderOut]


class AvailableModel(CamelModel):
    name: str
    category: str
    provider_id: str
    provider: str
    provider_name: str

    @classmethod
    def from_model(cls, model: ProviderModel, provider: AIProvider) -> "AvailableModel":
        return cls(
            name=model.name,
            category=model.category,
            provider_id=provider.id,
            provider=provider.name,
            provider_name=provider.display_name,
        )


class ModelsData(CamelModel):
    models: list[AvailableModel]
    models_by_category: dict[str, list[AvailableModel]]


class ProbeData(CamelModel):
    success: bool
    response_time: int
    message: str


# ---------------------------------------------------------------------------
# Meta
# ---------------------------------------------------------------------------


class HealthData(BaseModel):
    status: str = "OK"
    timestamp: str
    uptime: float
    environment: str
    version: str
    services: dict[str, str]
    memory: dict[str, str]


class StatusData(BaseModel):
    api: str
    version: str
    status: str = "operational"
    timestamp: str
    features: list[str]
