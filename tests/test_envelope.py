"""Tests for the AES-GCM secret envelope."""

import base64

import pytest

from llmkv.errors import DecryptionError, EnvelopeFormatError, VaultConfigError
from llmkv.vault.envelope import (
    decrypt_secret,
    encrypt_secret,
    generate_encryption_key,
    load_encryption_key,
)


@pytest.fixture
def key() -> bytes:
    return load_encryption_key(generate_encryption_key())


def test_envelope_shape(key):
    envelope = encrypt_secret(key, "sk-secret-value")
    version, nonce, tag, ciphertext = envelope.split(":")
    assert version == "v1"
    assert len(base64.b64decode(nonce)) == 12
    assert len(base64.b64decode(tag)) == 16
    assert len(base64.b64decode(ciphertext)) == len("sk-secret-value")
    assert "sk-secret-value" not in envelope


def test_decrypt_returns_original(key):
    assert decrypt_secret(key, encrypt_secret(key, "päss-wörd")) == "päss-wörd"


def test_each_encryption_uses_fresh_nonce(key):
    assert encrypt_secret(key, "same") != encrypt_secret(key, "same")


def test_tampered_ciphertext_fails_authentication(key):
    version, nonce, tag, ciphertext = encrypt_secret(key, "sk-secret").split(":")
    raw = bytearray(base64.b64decode(ciphertext))
    raw[0] ^= 0x01
    tampered = ":".join((version, nonce, tag, base64.b64encode(bytes(raw)).decode()))
    with pytest.raises(DecryptionError):
        decrypt_secret(key, tampered)


def test_tampered_tag_fails_authentication(key):
    version, nonce, tag, ciphertext = encrypt_secret(key, "sk-secret").split(":")
    raw = bytearray(base64.b64decode(tag))
    raw[-1] ^= 0x80
    tampered = ":".join((version, nonce, base64.b64encode(bytes(raw)).decode(), ciphertext))
    with pytest.raises(DecryptionError):
        decrypt_secret(key, tampered)


def test_wrong_key_fails_authentication(key):
    envelope = encrypt_secret(key, "sk-secret")
    other = load_encryption_key(generate_encryption_key())
    with pytest.raises(DecryptionError):
        decrypt_secret(other, envelope)


@pytest.mark.parametrize(
    "envelope",
    [
        "not-an-envelope",
        "v1:a:b",
        "v2:AAAA:AAAA:AAAA",
        "v1:!!!:AAAA:AAAA",
        "v1:AAAA:AAAA:AAAA",
    ],
)
def test_malformed_envelopes_are_rejected(key, envelope):
    with pytest.raises(EnvelopeFormatError):
        decrypt_secret(key, envelope)


@pytest.mark.parametrize("value", [None, "", "   ", "not base64!", base64.b64encode(b"short").decode()])
def test_load_encryption_key_rejects_bad_keys(value):
    with pytest.raises(VaultConfigError):
        load_encryption_key(value)


def test_generated_key_is_32_bytes():
    assert len(load_encryption_key(generate_encryption_key())) == 32
