"""Credential vault: encrypt on save, decrypt on load, never expose plaintext."""

from __future__ import annotations

import logging

from ..domain.credentials import CredentialRecord
from ..errors import CredentialNotFound, DecryptionError, EnvelopeFormatError
from ..logging import log_event
from ..time_utils import utc_now_iso
from .envelope import decrypt_secret, encrypt_secret
from .hints import key_hint
from .stores import CredentialStore, MemoryCredentialStore


class SecretVault:
    """Stores provider secrets for users behind an authenticated envelope.

    Args:
        key: 32-byte AES key (see ``load_encryption_key``).
        store: Backing store for envelopes; defaults to an in-memory store.
    """

    def __init__(self, key: bytes, store: CredentialStore | None = None) -> None:
        self._key = key
        self.store: CredentialStore = store if store is not None else MemoryCredentialStore()

    def __repr__(self) -> str:
        return f"SecretVault(store={type(self.store).__name__})"

    async def save(self, user_id: str, provider: str, plaintext: str) -> CredentialRecord:
        """Encrypt and upsert a secret; returns the stored record."""
        if not plaintext:
            raise ValueError("Secret must not be empty")

        existing = await self.store.get(user_id, provider)
        now = utc_now_iso()
        record = CredentialRecord(
            user_id=user_id,
            provider=provider,
            envelope=encrypt_secret(self._key, plaintext),
            hint=key_hint(plaintext),
            created_at=existing.created_at if existing is not None else now,
            updated_at=now,
        )
        await self.store.put(record)
        log_event(
            "vault_save",
            user_id=user_id,
            provider=provider,
            hint=record.hint,
            replaced=existing is not None,
        )
        return record

    async def load(self, user_id: str, provider: str) -> str:
        """Return the decrypted secret.

        Raises:
            CredentialNotFound: No record, or the record fails the format or
                integrity check. The two cases differ only in ``status``.
        """
        record = await self.store.get(user_id, provider)
        if record is None:
            raise CredentialNotFound(user_id, provider)
        try:
            return decrypt_secret(self._key, record.envelope)
        except (EnvelopeFormatError, DecryptionError) as e:
            log_event(
                "vault_load_error",
                level=logging.WARNING,
                user_id=user_id,
                provider=provider,
                status="unreadable",
                error_type=type(e).__name__,
            )
            raise CredentialNotFound(user_id, provider, status="unreadable") from None

    async def delete(self, user_id: str, provider: str) -> bool:
        deleted = await self.store.delete(user_id, provider)
        log_event("vault_delete", user_id=user_id, provider=provider, deleted=deleted)
        return deleted

    async def list_records(self, user_id: str) -> list[CredentialRecord]:
        return await self.store.list_for_user(user_id)
