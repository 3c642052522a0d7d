"""Credential subsystem: AES-GCM vault and encrypted secret storage."""

from .store import CredentialSecretStore
from .vault import (
    ConfigurationError,
    CredentialVault,
    DecryptionError,
    decrypt,
    encrypt,
    get_encryption_secret,
    hash_value,
)
