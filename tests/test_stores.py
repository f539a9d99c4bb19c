"""Tests for credential backing stores."""

import json
from unittest.mock import patch

import pytest
from keyring.errors import KeyringError, PasswordDeleteError

from llmkv.domain.credentials import CredentialRecord
from llmkv.errors import StorageError
from llmkv.vault.stores import JsonFileCredentialStore, KeyringCredentialStore


def _record(user_id: str = "u", provider: str = "openai", hint: str = "****abcd") -> CredentialRecord:
    return CredentialRecord(
        user_id=user_id,
        provider=provider,
        envelope="v1:n:t:c",
        hint=hint,
        created_at="2025-01-01T00:00:00Z",
        updated_at="2025-01-01T00:00:00Z",
    )


class _FakeKeyring:
    """Dict-backed stand-in for the keyring module's functions."""

    def __init__(self):
        self.entries: dict[tuple[str, str], str] = {}

    def get_password(self, service, account):
        return self.entries.get((service, account))

    def set_password(self, service, account, value):
        self.entries[(service, account)] = value

    def delete_password(self, service, account):
        if (service, account) not in self.entries:
            raise PasswordDeleteError("not found")
        del self.entries[(service, account)]


# ---------------------------------------------------------------------------
# JSON file store
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_json_store_persists_across_instances(tmp_path):
    path = tmp_path / "nested" / "credentials.json"
    await JsonFileCredentialStore(path).put(_record())

    reopened = JsonFileCredentialStore(path)
    assert await reopened.get("u", "openai") == _record()
    assert await reopened.get("u", "anthropic") is None

    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["version"] == 1
    assert document["records"][0]["envelope"] == "v1:n:t:c"
    assert not (tmp_path / "nested" / "credentials.json.tmp").exists()


@pytest.mark.asyncio
async def test_json_store_missing_file_is_empty(tmp_path):
    store = JsonFileCredentialStore(tmp_path / "none.json")
    assert await store.get("u", "openai") is None
    assert await store.list_for_user("u") == []
    assert await store.delete("u", "openai") is False


@pytest.mark.asyncio
async def test_json_store_list_and_delete(tmp_path):
    store = JsonFileCredentialStore(tmp_path / "c.json")
    await store.put(_record(provider="openai"))
    await store.put(_record(provider="anthropic"))
    await store.put(_record(user_id="other", provider="gemini"))

    assert [r.provider for r in await store.list_for_user("u")] == ["anthropic", "openai"]
    assert await store.delete("u", "openai") is True
    assert [r.provider for r in await store.list_for_user("u")] == ["anthropic"]
    assert [r.provider for r in await store.list_for_user("other")] == ["gemini"]


@pytest.mark.asyncio
async def test_json_store_rejects_corrupt_file(tmp_path):
    path = tmp_path / "c.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StorageError):
        await JsonFileCredentialStore(path).get("u", "openai")


@pytest.mark.asyncio
async def test_json_store_rejects_invalid_record(tmp_path):
    path = tmp_path / "c.json"
    path.write_text(json.dumps({"version": 1, "records": [{"user_id": "u"}]}), encoding="utf-8")
    with pytest.raises(StorageError, match="Invalid record"):
        await JsonFileCredentialStore(path).list_for_user("u")


# ---------------------------------------------------------------------------
# Keyring store
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_keyring_store_put_get_list():
    fake = _FakeKeyring()
    with patch("llmkv.vault.stores.keyring", fake):
        store = KeyringCredentialStore("llmkv-test")
        await store.put(_record(provider="openai"))
        await store.put(_record(provider="anthropic"))

        assert await store.get("u", "openai") == _record(provider="openai")
        assert [r.provider for r in await store.list_for_user("u")] == ["anthropic", "openai"]

    assert json.loads(fake.entries[("llmkv-test", "u:__index__")]) == ["anthropic", "openai"]


@pytest.mark.asyncio
async def test_keyring_store_delete_updates_index():
    fake = _FakeKeyring()
    with patch("llmkv.vault.stores.keyring", fake):
        store = KeyringCredentialStore("svc")
        await store.put(_record(provider="openai"))

        assert await store.delete("u", "openai") is True
        assert await store.delete("u", "openai") is False
        assert await store.list_for_user("u") == []

    assert fake.entries == {}


@pytest.mark.asyncio
async def test_keyring_store_wraps_backend_failures():
    with patch("llmkv.vault.stores.keyring") as mock_keyring:
        mock_keyring.get_password.side_effect = KeyringError("locked")
        store = KeyringCredentialStore("svc")
        with pytest.raises(StorageError, match="system credential store"):
            await store.get("u", "openai")


@pytest.mark.asyncio
async def test_keyring_store_rejects_invalid_entry():
    fake = _FakeKeyring()
    fake.entries[("svc", "u:openai")] = "not json"
    with patch("llmkv.vault.stores.keyring", fake):
        with pytest.raises(StorageError, match="Invalid credential entry"):
            await KeyringCredentialStore("svc").get("u", "openai")
