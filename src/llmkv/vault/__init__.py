"""Encrypted credential vault."""

from .envelope import (
    decrypt_secret,
    encrypt_secret,
    generate_encryption_key,
    load_encryption_key,
)
from .hints import key_hint, redact_secrets
from .stores import (
    CredentialStore,
    JsonFileCredentialStore,
    KeyringCredentialStore,
    MemoryCredentialStore,
)
from .vault import SecretVault

__all__ = [
    "CredentialStore",
    "JsonFileCredentialStore",
    "KeyringCredentialStore",
    "MemoryCredentialStore",
    "SecretVault",
    "decrypt_secret",
    "encrypt_secret",
    "generate_encryption_key",
    "key_hint",
    "load_encryption_key",
    "redact_secrets",
]
