"""
providers/models.py -- Domain dataclasses for AI provider configuration records.

Pure data containers. Persistence lives in providers/store.py, the JSON
contract in api/models.py. api_key here is always the plaintext key; the store
encrypts it on the way in and decrypts it on the way out.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ProviderModel:
    name: str
    category: str  # "chat" | "code" | "embedding" | "image"


@dataclass
class ProviderUsage:
    total_requests: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0


@dataclass
class AIProvider:
    """An AI vendor account configured by one platform user.

    name is the vendor type ("openai", "anthropic", ...); display_name is the
    label the user chose. Lower priority values are tried first.

    owner_id scopes the record to its tenant. id is None before insert.

    key_readable is False when the stored key could not be decrypted (the
    provider key secret changed); api_key is then "" until the user enters
    a new key.
    """

    owner_id: str
    name: str
    display_name: str
    api_key: str
    base_url: Optional[str] = None
    priority: int = 1
    is_active: bool = True
    models: list[ProviderModel] = field(default_factory=list)
    usage: ProviderUsage = field(default_factory=ProviderUsage)
    id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    key_readable: bool = True

    @property
    def masked_key(self) -> str:
        if not self.key_readable:
            return "unreadable"
        if len(self.api_key) <= 4:
            return "****"
        return f"****{self.api_key[-4:]}"
