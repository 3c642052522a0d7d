"""Encrypted credential values, keyed by (deployment, credential key).

Only ciphertext is ever written to the database. The vault is resolved
lazily from settings so a missing secret fails at first use, not at import.
"""

from __future__ import annotations

import logging

from deploywatch.credentials.vault import CredentialVault
from deploywatch.db import Database
from deploywatch.deployments.models import now_ms

logger = logging.getLogger(__name__)


class CredentialSecretStore:
    def __init__(self, db: Database, vault: CredentialVault | None = None) -> None:
        self._db = db
        self._vault = vault

    @property
    def vault(self) -> CredentialVault:
        if self._vault is None:
            self._vault = CredentialVault.from_settings()
        return self._vault

    def put(self, deployment_id: str, key: str, value: str) -> None:
        ciphertext = self.vault.encrypt(value)
        with self._db.transaction() as conn:
            conn.execute(
                "INSERT INTO credential_secrets (deployment_id, key, ciphertext, updated_at) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT (deployment_id, key) DO UPDATE SET "
                "ciphertext = excluded.ciphertext, updated_at = excluded.updated_at",
                (deployment_id, key, ciphertext, now_ms()),
            )
        logger.info("Stored credential %s for deployment %s", key, deployment_id)

    def get(self, deployment_id: str, key: str) -> str | None:
        """Decrypted value, or None if nothing is stored. Raises DecryptionError."""
        with self._db.reader() as conn:
            row = conn.execute(
                "SELECT ciphertext FROM credential_secrets WHERE deployment_id = ? AND key = ?",
                (deployment_id, key),
            ).fetchone()
        if row is None:
            return None
        return self.vault.decrypt(row["ciphertext"])

    def keys(self, deployment_id: str) -> list[str]:
        with self._db.reader() as conn:
            rows = conn.execute(
                "SELECT key FROM credential_secrets WHERE deployment_id = ? ORDER BY key",
                (deployment_id,),
            ).fetchall()
        return [r["key"] for r in rows]

    def delete(self, deployment_id: str, key: str) -> bool:
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM credential_secrets WHERE deployment_id = ? AND key = ?",
                (deployment_id, key),
            )
        return cursor.rowcount > 0
