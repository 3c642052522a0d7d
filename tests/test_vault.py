"""Tests for the credential vault and encrypted secret store."""

from __future__ import annotations

import base64

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from deploywatch.config import settings
from deploywatch.credentials.store import CredentialSecretStore
from deploywatch.credentials.vault import (
    NONCE_LENGTH,
    TAG_LENGTH,
    ConfigurationError,
    CredentialVault,
    DecryptionError,
    decrypt,
    derive_key,
    encrypt,
    get_encryption_secret,
    hash_value,
)

SECRET = "correct horse battery staple"


@pytest.fixture(scope="module")
def vault() -> CredentialVault:
    return CredentialVault(SECRET)


# ── Round trips ──────────────────────────────────────────────────────────────


class TestEncryptDecrypt:
    @pytest.mark.parametrize("plaintext", ["sk-live-123", "", "ключ 🔑 clé", "x" * 5000])
    def test_round_trip(self, vault, plaintext) -> None:
        assert vault.decrypt(vault.encrypt(plaintext)) == plaintext

    def test_function_api(self) -> None:
        assert decrypt(encrypt("api-key", SECRET), SECRET) == "api-key"

    def test_fresh_nonce_per_call(self, vault) -> None:
        a = vault.encrypt("same")
        b = vault.encrypt("same")
        assert a != b
        assert base64.b64decode(a)[:NONCE_LENGTH] != base64.b64decode(b)[:NONCE_LENGTH]
        assert vault.decrypt(a) == vault.decrypt(b) == "same"

    def test_output_layout(self, vault) -> None:
        raw = base64.b64decode(vault.encrypt("hello"))
        assert len(raw) == NONCE_LENGTH + len(b"hello") + TAG_LENGTH

    def test_reads_externally_produced_ciphertext(self, vault) -> None:
        # nonce || AES-GCM(ciphertext || tag), key from PBKDF2 with the fixed salt
        nonce = bytes(range(12))
        sealed = AESGCM(derive_key(SECRET)).encrypt(nonce, b"legacy-value", None)
        token = base64.b64encode(nonce + sealed).decode()
        assert vault.decrypt(token) == "legacy-value"

    def test_objects(self, vault) -> None:
        payload = {"apiKey": "abc", "baseId": "app123", "scopes": ["read"]}
        assert vault.decrypt_object(vault.encrypt_object(payload)) == payload


# ── Failures ─────────────────────────────────────────────────────────────────


class TestDecryptFailures:
    def test_wrong_secret(self, vault) -> None:
        token = vault.encrypt("value")
        with pytest.raises(DecryptionError):
            decrypt(token, "another secret")

    def test_tampered_ciphertext(self, vault) -> None:
        raw = bytearray(base64.b64decode(vault.encrypt("value")))
        raw[-1] ^= 0x01
        with pytest.raises(DecryptionError):
            vault.decrypt(base64.b64encode(bytes(raw)).decode())

    def test_tampered_nonce(self, vault) -> None:
        raw = bytearray(base64.b64decode(vault.encrypt("value")))
        raw[0] ^= 0x01
        with pytest.raises(DecryptionError):
            vault.decrypt(base64.b64encode(bytes(raw)).decode())

    def test_truncated(self, vault) -> None:
        raw = base64.b64decode(vault.encrypt("value"))
        with pytest.raises(DecryptionError):
            vault.decrypt(base64.b64encode(raw[:NONCE_LENGTH + 4]).decode())

    @pytest.mark.parametrize("token", ["", "not base64 at all!", "@@@@"])
    def test_malformed(self, vault, token) -> None:
        with pytest.raises(DecryptionError):
            vault.decrypt(token)


# ── Configuration ────────────────────────────────────────────────────────────


class TestConfiguration:
    def test_empty_secret(self) -> None:
        with pytest.raises(ConfigurationError):
            CredentialVault("")

    def test_missing_setting(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "encryption_secret", "")
        with pytest.raises(ConfigurationError):
            get_encryption_secret()
        with pytest.raises(ConfigurationError):
            CredentialVault.from_settings()

    def test_from_settings(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "encryption_secret", SECRET)
        token = CredentialVault.from_settings().encrypt("v")
        assert decrypt(token, SECRET) == "v"

    def test_hash_value(self) -> None:
        assert hash_value("abc") == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )


# ── Secret store ─────────────────────────────────────────────────────────────


class TestCredentialSecretStore:
    def test_put_get(self, db, deployment, vault) -> None:
        store = CredentialSecretStore(db, vault)
        store.put(deployment.id, "airtable", "key-1")
        assert store.get(deployment.id, "airtable") == "key-1"
        assert store.keys(deployment.id) == ["airtable"]

    def test_only_ciphertext_persisted(self, db, deployment, vault) -> None:
        CredentialSecretStore(db, vault).put(deployment.id, "openai", "sk-plain")
        with db.reader() as conn:
            row = conn.execute("SELECT ciphertext FROM credential_secrets").fetchone()
        assert "sk-plain" not in row["ciphertext"]
        assert vault.decrypt(row["ciphertext"]) == "sk-plain"

    def test_overwrite(self, db, deployment, vault) -> None:
        store = CredentialSecretStore(db, vault)
        store.put(deployment.id, "openai", "old")
        store.put(deployment.id, "openai", "new")
        assert store.get(deployment.id, "openai") == "new"

    def test_missing_and_delete(self, db, deployment, vault) -> None:
        store = CredentialSecretStore(db, vault)
        assert store.get(deployment.id, "nope") is None
        store.put(deployment.id, "k", "v")
        assert store.delete(deployment.id, "k") is True
        assert store.delete(deployment.id, "k") is False

    def test_wrong_secret_on_read(self, db, deployment, vault) -> None:
        CredentialSecretStore(db, vault).put(deployment.id, "k", "v")
        with pytest.raises(DecryptionError):
            CredentialSecretStore(db, CredentialVault("different")).get(deployment.id, "k")

    def test_vault_resolved_lazily(self, db, monkeypatch) -> None:
        monkeypatch.setattr(settings, "encryption_secret", "")
        store = CredentialSecretStore(db)  # no error yet
        with pytest.raises(ConfigurationError):
            store.put("dep", "k", "v")
