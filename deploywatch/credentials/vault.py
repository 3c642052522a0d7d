"""Credential vault: AES-256-GCM encryption of credential secrets.

Ciphertext format: base64(nonce[12] || ciphertext || tag[16]).

The key is derived with PBKDF2-HMAC-SHA256 (100k iterations) from the
configured secret and one application-wide salt. Existing stored values
were produced with that salt, so it cannot change without re-encrypting
them.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
import os
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from deploywatch.config import settings

logger = logging.getLogger(__name__)

# TODO: store a random per-value salt next to the nonce and migrate existing
# ciphertexts on read.
SALT = b"benai-cam-salt"
ITERATIONS = 100_000
KEY_LENGTH = 32  # AES-256
NONCE_LENGTH = 12  # 96 bits for GCM
TAG_LENGTH = 16


class ConfigurationError(Exception):
    """Raised when the encryption secret is not configured."""


class DecryptionError(Exception):
    """Raised when a ciphertext is malformed or fails authentication."""


def get_encryption_secret() -> str:
    secret = settings.encryption_secret
    if not secret:
        raise ConfigurationError("ENCRYPTION_SECRET is not set")
    return secret


def derive_key(secret: str) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=SALT,
        iterations=ITERATIONS,
    )
    return kdf.derive(secret.encode("utf-8"))


class CredentialVault:
    """Encrypts and decrypts credential values with one secret.

    The derived key is computed once per vault; PBKDF2 at 100k iterations is
    too slow to repeat on every call.
    """

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ConfigurationError("Encryption secret must not be empty")
        self._aead = AESGCM(derive_key(secret))

    @classmethod
    def from_settings(cls) -> "CredentialVault":
        return cls(get_encryption_secret())

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_LENGTH)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        try:
            raw = base64.b64decode(ciphertext, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError("Ciphertext is not valid base64") from e

        if len(raw) < NONCE_LENGTH + TAG_LENGTH:
            raise DecryptionError("Ciphertext is truncated")

        nonce, sealed = raw[:NONCE_LENGTH], raw[NONCE_LENGTH:]
        try:
            data = self._aead.decrypt(nonce, sealed, None)
        except InvalidTag as e:
            raise DecryptionError("Ciphertext failed authentication") from e

        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted value is not valid UTF-8") from e

    def encrypt_object(self, obj: Any) -> str:
        return self.encrypt(json.dumps(obj))

    def decrypt_object(self, ciphertext: str) -> Any:
        return json.loads(self.decrypt(ciphertext))


# ── Function API ─────────────────────────────────────────────────────────────


def encrypt(plaintext: str, secret: str) -> str:
    """Encrypt ``plaintext`` with a key derived from ``secret``."""
    return CredentialVault(secret).encrypt(plaintext)


def decrypt(ciphertext: str, secret: str) -> str:
    """Decrypt a value produced by ``encrypt``; raises DecryptionError."""
    return CredentialVault(secret).decrypt(ciphertext)


def hash_value(value: str) -> str:
    """SHA-256 hex digest, for comparing API keys without storing them."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()
