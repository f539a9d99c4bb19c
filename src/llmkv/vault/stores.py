"""Credential backing stores.

Stores hold ``CredentialRecord`` objects only; they never see plaintext.
Reads are lock-free, writes are serialized per store.
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any, Protocol

import aiofiles  # type: ignore[import-untyped]
import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from ..domain.credentials import CredentialRecord
from ..errors import StorageError

STORE_FORMAT_VERSION = 1


class CredentialStore(Protocol):
    """Async persistence contract used by ``SecretVault``."""

    async def get(self, user_id: str, provider: str) -> CredentialRecord | None: ...

    async def put(self, record: CredentialRecord) -> None: ...

    async def delete(self, user_id: str, provider: str) -> bool: ...

    async def list_for_user(self, user_id: str) -> list[CredentialRecord]: ...


class MemoryCredentialStore:
    """Process-local store, used by tests and ephemeral runs."""

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], CredentialRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, user_id: str, provider: str) -> CredentialRecord | None:
        return self._records.get((user_id, provider))

    async def put(self, record: CredentialRecord) -> None:
        async with self._lock:
            self._records[record.key] = record

    async def delete(self, user_id: str, provider: str) -> bool:
        async with self._lock:
            return self._records.pop((user_id, provider), None) is not None

    async def list_for_user(self, user_id: str) -> list[CredentialRecord]:
        records = [r for (uid, _), r in self._records.items() if uid == user_id]
        return sorted(records, key=lambda r: r.provider)


class JsonFileCredentialStore:
    """All records in one JSON document, replaced atomically on every write."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self._lock = asyncio.Lock()

    async def _read_all(self) -> dict[tuple[str, str], CredentialRecord]:
        if not self.path.exists():
            return {}
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                raw: Any = json.loads(await f.read())
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read credential store {self.path}: {e}") from e

        if not isinstance(raw, dict) or not isinstance(raw.get("records"), list):
            raise StorageError(f"Invalid credential store format: {self.path}")

        records: dict[tuple[str, str], CredentialRecord] = {}
        for item in raw["records"]:
            try:
                record = CredentialRecord.from_dict(item)
            except ValueError as e:
                raise StorageError(f"Invalid record in {self.path}: {e}") from e
            records[record.key] = record
        return records

    async def _write_all(self, records: dict[tuple[str, str], CredentialRecord]) -> None:
        payload = {
            "version": STORE_FORMAT_VERSION,
            "records": [
                records[key].to_dict() for key in sorted(records)
            ],
        }
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(payload, indent=2, ensure_ascii=False))
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Failed to write credential store {self.path}: {e}") from e

    async def get(self, user_id: str, provider: str) -> CredentialRecord | None:
        return (await self._read_all()).get((user_id, provider))

    async def put(self, record: CredentialRecord) -> None:
        async with self._lock:
            records = await self._read_all()
            records[record.key] = record
            await self._write_all(records)

    async def delete(self, user_id: str, provider: str) -> bool:
        async with self._lock:
            records = await self._read_all()
            if records.pop((user_id, provider), None) is None:
                return False
            await self._write_all(records)
            return True

    async def list_for_user(self, user_id: str) -> list[CredentialRecord]:
        records = await self._read_all()
        return sorted(
            (r for (uid, _), r in records.items() if uid == user_id),
            key=lambda r: r.provider,
        )


class KeyringCredentialStore:
    """System credential store via ``keyring``.

    Each record is one entry (account ``<user>:<provider>``); a per-user index
    entry (account ``<user>:__index__``) lists that user's providers because
    keyring cannot enumerate accounts.
    """

    INDEX_SUFFIX = "__index__"

    def __init__(self, service: str) -> None:
        self.service = service
        self._lock = asyncio.Lock()

    @staticmethod
    def _account(user_id: str, provider: str) -> str:
        return f"{user_id}:{provider}"

    async def _get_password(self, account: str) -> str | None:
        try:
            return await asyncio.to_thread(keyring.get_password, self.service, account)
        except KeyringError as e:
            raise StorageError(f"Failed to access system credential store: {e}") from e

    async def _set_password(self, account: str, value: str) -> None:
        try:
            await asyncio.to_thread(keyring.set_password, self.service, account, value)
        except KeyringError as e:
            raise StorageError(f"Failed to write system credential store: {e}") from e

    async def _delete_password(self, account: str) -> bool:
        try:
            await asyncio.to_thread(keyring.delete_password, self.service, account)
        except PasswordDeleteError:
            return False
        except KeyringError as e:
            raise StorageError(f"Failed to write system credential store: {e}") from e
        return True

    async def _read_index(self, user_id: str) -> list[str]:
        raw = await self._get_password(self._account(user_id, self.INDEX_SUFFIX))
        if not raw:
            return []
        try:
            providers = json.loads(raw)
        except json.JSONDecodeError:
            return []
        return [p for p in providers if isinstance(p, str)] if isinstance(providers, list) else []

    async def _write_index(self, user_id: str, providers: list[str]) -> None:
        account = self._account(user_id, self.INDEX_SUFFIX)
        if providers:
            await self._set_password(account, json.dumps(sorted(set(providers))))
        else:
            await self._delete_password(account)

    async def get(self, user_id: str, provider: str) -> CredentialRecord | None:
        raw = await self._get_password(self._account(user_id, provider))
        if not raw:
            return None
        try:
            return CredentialRecord.from_dict(json.loads(raw))
        except (json.JSONDecodeError, ValueError) as e:
            raise StorageError(
                f"Invalid credential entry for provider '{provider}' (user '{user_id}')"
            ) from e

    async def put(self, record: CredentialRecord) -> None:
        async with self._lock:
            await self._set_password(
                self._account(record.user_id, record.provider),
                json.dumps(record.to_dict()),
            )
            providers = await self._read_index(record.user_id)
            if record.provider not in providers:
                await self._write_index(record.user_id, [*providers, record.provider])

    async def delete(self, user_id: str, provider: str) -> bool:
        async with self._lock:
            deleted = await self._delete_password(self._account(user_id, provider))
            providers = await self._read_index(user_id)
            if provider in providers:
                await self._write_index(user_id, [p for p in providers if p != provider])
            return deleted

    async def list_for_user(self, user_id: str) -> list[CredentialRecord]:
        records: list[CredentialRecord] = []
        for provider in await self._read_index(user_id):
            record = await self.get(user_id, provider)
            if record is not None:
                records.append(record)
        return sorted(records, key=lambda r: r.provider)
