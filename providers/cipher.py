"""
providers/cipher.py -- Encryption at rest for vendor API keys.

The ai_providers table never holds a plaintext key. KeyCipher turns
PROVIDER_KEY_SECRET into a Fernet key (SHA-256 digest, urlsafe base64) and
ProviderStore encrypts on write and decrypts on read.

Rows written under a different secret raise KeyDecryptionError on read;
ProviderStore flags those records instead of failing the whole listing.
"""

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken


class KeyDecryptionError(ValueError):
    """A stored key was written under another secret, or is corrupt."""


def _derive_fernet_key(secret: str) -> bytes:
    return base64.urlsafe_b64encode(hashlib.sha256(secret.encode("utf-8")).digest())


class KeyCipher:
    def __init__(self, *, secret: str) -> None:
        if not secret:
            raise ValueError("PROVIDER_KEY_SECRET is empty; provider API keys cannot be stored")
        self._fernet = Fernet(_derive_fernet_key(secret))

    def encrypt(self, api_key: str) -> str:
        return self._fernet.encrypt(api_key.encode("utf-8")).decode("utf-8")

    def decrypt(self, stored: str) -> str:
        """Return the plaintext API key. Raises KeyDecryptionError."""
        try:
            return self._fernet.decrypt(stored.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise KeyDecryptionError("Stored provider API key cannot be decrypted with the current secret") from exc
