"""
providers/store.py -- SQLAlchemy-backed persistence for AI provider records.

Uses SQLAlchemy Core (not ORM) so the dataclasses in providers/models.py stay
the authoritative domain representation.

Pattern: Repository + Data Mapper. ProviderStore is the repository; _row_to_*
are the mappers. Route handlers never touch SQL directly.

Tenancy: every read and write takes owner_id and includes it in the WHERE
clause. A user can never read, update or delete another user's provider even
when they know its id -- the store answers "not found".

Security: all queries use bound parameters. API keys are Fernet-encrypted at
rest (providers/cipher.py); only this module sees ciphertext. A row whose key
cannot be decrypted comes back with key_readable=False instead of raising, so
one stale row never breaks a listing.

Usage:
    store = ProviderStore(cipher=KeyCipher(secret="..."))
    pid = store.create_provider(provider)
    store.list_providers(owner_id)
    store.update_provider(pid, owner_id, display_name="Work key")
    store.delete_provider(pid, owner_id)
    store.close()
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import Column, Float, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

from providers.cipher import KeyCipher, KeyDecryptionError
from providers.models import AIProvider, ProviderModel, ProviderUsage

logger = logging.getLogger("aiplatform.providers.store")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'aiplatform_providers.db'}"

# Fields update_provider() accepts. Anything else is a programming error.
_UPDATABLE = {"display_name", "api_key", "base_url", "priority", "is_active", "models"}

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_providers = Table(
    "ai_providers",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("owner_id", String(32), nullable=False, index=True),
    Column("name", String(50), nullable=False),
    Column("display_name", String(100), nullable=False),
    Column("api_key", Text, nullable=False),  # Fernet ciphertext
    Column("base_url", String(500)),
    Column("priority", Integer, nullable=False, server_default="1"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("models", Text),  # JSON array of {name, category}
    Column("total_requests", Integer, nullable=False, server_default="0"),
    Column("total_tokens", Integer, nullable=False, server_default="0"),
    Column("total_cost", Float, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dump_models(models: list[ProviderModel]) -> str:
    return json.dumps([{"name": m.name, "category": m.category} for m in models])


def _load_models(raw: Optional[str]) -> list[ProviderModel]:
    if not raw:
        return []
    return [ProviderModel(name=m["name"], category=m.get("category", "chat")) for m in json.loads(raw)]


class ProviderStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL, cipher: Optional[KeyCipher] = None) -> None:
        if cipher is None:
            raise ValueError("ProviderStore requires a KeyCipher")
        self._cipher = cipher
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_provider(self, provider: AIProvider) -> str:
        """Insert a provider and return its new id."""
        provider_id = provider.id or uuid.uuid4().hex
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _providers.insert().values(
                    id=provider_id,
                    owner_id=provider.owner_id,
                    name=provider.name,
                    display_name=provider.display_name,
                    api_key=self._cipher.encrypt(provider.api_key),
                    base_url=provider.base_url,
                    priority=provider.priority,
                    is_active=1 if provider.is_active else 0,
                    models=_dump_models(provider.models),
                    total_requests=provider.usage.total_requests,
                    total_tokens=provider.usage.total_tokens,
                    total_cost=provider.usage.total_cost,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return provider_id

    def update_provider(self, provider_id: str, owner_id: str, **fields) -> bool:
        """Update mutable fields. Returns False when the provider is missing or not owned.

        Accepted fields: display_name, api_key (plaintext), base_url, priority,
        is_active, models (list[ProviderModel]).
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown provider fields: {sorted(unknown)!r}")
        values = dict(fields)
        if "api_key" in values:
            values["api_key"] = self._cipher.encrypt(values["api_key"])
        if "is_active" in values:
            values["is_active"] = 1 if values["is_active"] else 0
        if "models" in values:
            values["models"] = _dump_models(values["models"])
        values["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _providers.update()
                .where((_providers.c.id == provider_id) & (_providers.c.owner_id == owner_id))
                .values(**values)
            )
            conn.commit()
        return result.rowcount > 0

    def delete_provider(self, provider_id: str, owner_id: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _providers.delete().where((_providers.c.id == provider_id) & (_providers.c.owner_id == owner_id))
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_provider(self, provider_id: str, owner_id: str) -> Optional[AIProvider]:
        with self.engine.connect() as conn:
            row = conn.execute(
                _providers.select().where((_providers.c.id == provider_id) & (_providers.c.owner_id == owner_id))
            ).fetchone()
        return self._row_to_provider(row) if row is not None else None

    def list_providers(self, owner_id: str, active_only: bool = False) -> list[AIProvider]:
        """Return the owner's providers ordered by priority, then display name."""
        query = _providers.select().where(_providers.c.owner_id == owner_id)
        if active_only:
            query = query.where(_providers.c.is_active == 1)
        query = query.order_by(_providers.c.priority, _providers.c.display_name)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [self._row_to_provider(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Mapper
    # ------------------------------------------------------------------

    def _row_to_provider(self, row) -> AIProvider:
        try:
            api_key, key_readable = self._cipher.decrypt(row.api_key), True
        except KeyDecryptionError:
            logger.warning("Provider %s: stored API key unreadable (PROVIDER_KEY_SECRET changed?)", row.id)
            api_key, key_readable = "", False
        return AIProvider(
            id=row.id,
            owner_id=row.owner_id,
            name=row.name,
            display_name=row.display_name,
            api_key=api_key,
            key_readable=key_readable,
            base_url=row.base_url,
            priority=row.priority,
            is_active=bool(row.is_active),
            models=_load_models(row.models),
            usage=ProviderUsage(
                total_requests=row.total_requests,
                total_tokens=row.total_tokens,
                total_cost=float(row.total_cost),
            ),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
