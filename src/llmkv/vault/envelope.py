"""Authenticated encryption envelope for stored secrets.

Envelope shape: ``v1:<b64 nonce>:<b64 tag>:<b64 ciphertext>`` using
AES-256-GCM with a fresh 96-bit nonce per call and a 128-bit tag.
"""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import DecryptionError, EnvelopeFormatError, VaultConfigError

ENVELOPE_VERSION = "v1"
KEY_BYTES = 32
NONCE_BYTES = 12
TAG_BYTES = 16


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _b64decode(value: str) -> bytes:
    return base64.b64decode(value.encode("ascii"), validate=True)


def load_encryption_key(encoded: str | None) -> bytes:
    """Decode the process-wide base64 encryption key.

    Raises:
        VaultConfigError: If the key is missing, not base64, or not 32 bytes.
    """
    if not encoded or not encoded.strip():
        raise VaultConfigError("Encryption key is not configured")
    try:
        key = _b64decode(encoded.strip())
    except (binascii.Error, ValueError):
        raise VaultConfigError("Encryption key must be base64-encoded") from None
    if len(key) != KEY_BYTES:
        raise VaultConfigError(
            f"Encryption key must decode to {KEY_BYTES} bytes (got {len(key)})"
        )
    return key


def generate_encryption_key() -> str:
    """Return a fresh base64-encoded 256-bit key."""
    return _b64encode(AESGCM.generate_key(bit_length=KEY_BYTES * 8))


def encrypt_secret(key: bytes, plaintext: str) -> str:
    nonce = os.urandom(NONCE_BYTES)
    sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
    return ":".join(
        (ENVELOPE_VERSION, _b64encode(nonce), _b64encode(tag), _b64encode(ciphertext))
    )


def decrypt_secret(key: bytes, envelope: str) -> str:
    """Open an envelope produced by ``encrypt_secret``.

    Raises:
        EnvelopeFormatError: Unknown version, wrong field count, or bad base64.
        DecryptionError: The authentication tag does not verify.
    """
    fields = envelope.split(":")
    if len(fields) != 4:
        raise EnvelopeFormatError("Invalid envelope format")
    version, nonce_b64, tag_b64, ciphertext_b64 = fields
    if version != ENVELOPE_VERSION:
        raise EnvelopeFormatError("Unsupported envelope version")
    try:
        nonce = _b64decode(nonce_b64)
        tag = _b64decode(tag_b64)
        ciphertext = _b64decode(ciphertext_b64)
    except (binascii.Error, ValueError):
        raise EnvelopeFormatError("Invalid envelope encoding") from None
    if len(nonce) != NONCE_BYTES or len(tag) != TAG_BYTES:
        raise EnvelopeFormatError("Invalid envelope format")

    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext + tag, None)
    except InvalidTag:
        raise DecryptionError("Envelope authentication failed") from None
    return plaintext.decode("utf-8")
