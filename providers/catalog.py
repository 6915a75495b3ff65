"""
providers/catalog.py -- Built-in knowledge about supported AI vendors.

Each entry gives the default base URL, how the vendor expects the API key to
be presented, and the models a freshly added provider starts with. Unknown
vendor names are accepted as "custom": they need an explicit base_url and
start with no models.
"""

from dataclasses import dataclass, field
from typing import Optional

from providers.models import ProviderModel

MODEL_CATEGORIES = ("chat", "code", "embedding", "image")


@dataclass(frozen=True)
class VendorSpec:
    name: str
    label: str
    base_url: str
    auth_style: str  # "bearer" | "x-api-key" | "query"
    models: tuple = field(default_factory=tuple)
    extra_headers: tuple = field(default_factory=tuple)


VENDORS: dict[str, VendorSpec] = {
    "openai": VendorSpec(
        name="openai",
        label="OpenAI",
        base_url="https://api.openai.com/v1",
        auth_style="bearer",
        models=(
            ("gpt-4o", "chat"),
            ("gpt-4o-mini", "chat"),
            ("text-embedding-3-small", "embedding"),
            ("dall-e-3", "image"),
        ),
    ),
    "anthropic": VendorSpec(
        name="anthropic",
        label="Anthropic",
        base_url="https://api.anthropic.com/v1",
        auth_style="x-api-key",
        models=(
            ("claude-3-5-sonnet-latest", "chat"),
            ("claude-3-5-haiku-latest", "chat"),
        ),
        extra_headers=(("anthropic-version", "2023-06-01"),),
    ),
    "google": VendorSpec(
        name="google",
        label="Google Gemini",
        base_url="https://generativelanguage.googleapis.com/v1beta",
        auth_style="query",
        models=(
            ("gemini-1.5-pro", "chat"),
            ("gemini-1.5-flash", "chat"),
            ("text-embedding-004", "embedding"),
        ),
    ),
    "mistral": VendorSpec(
        name="mistral",
        label="Mistral AI",
        base_url="https://api.mistral.ai/v1",
        auth_style="bearer",
        models=(
            ("mistral-large-latest", "chat"),
            ("codestral-latest", "code"),
            ("mistral-embed", "embedding"),
        ),
    ),
}


def get_vendor(name: str) -> Optional[VendorSpec]:
    return VENDORS.get(name.strip().lower())


def default_models(name: str) -> list[ProviderModel]:
    vendor = get_vendor(name)
    if vendor is None:
        return []
    return [ProviderModel(name=m, category=c) for m, c in vendor.models]


def default_base_url(name: str) -> Optional[str]:
    vendor = get_vendor(name)
    return vendor.base_url if vendor else None
