"""AES-256-GCM encryption for TOTP secrets at rest."""

from __future__ import annotations

import base64
import os

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from totpkit.config import settings

_NONCE_SIZE = 12  # 96-bit nonce for AES-GCM


def _get_key(master_key: str | None = None) -> bytes:
    raw = master_key if master_key is not None else settings.master_key
    if not raw:
        raise RuntimeError("TOTPKIT_MASTER_KEY not set")
    key = base64.b64decode(raw)
    if len(key) != 32:
        raise ValueError("TOTPKIT_MASTER_KEY must be 32 bytes (base64-encoded)")
    return key


def generate_key() -> str:
    """Return a fresh base64-encoded 256-bit key suitable for TOTPKIT_MASTER_KEY."""
    return base64.b64encode(AESGCM.generate_key(bit_length=256)).decode()


def encrypt(plaintext: bytes, master_key: str | None = None) -> str:
    """Encrypt bytes. Returns base64(nonce + ciphertext)."""
    key = _get_key(master_key)
    nonce = os.urandom(_NONCE_SIZE)
    ct = AESGCM(key).encrypt(nonce, plaintext, None)
    return base64.b64encode(nonce + ct).decode()


def decrypt(token: str, master_key: str | None = None) -> bytes:
    """Decrypt a base64(nonce + ciphertext) token back to the original bytes."""
    key = _get_key(master_key)
    raw = base64.b64decode(token)
    nonce, ct = raw[:_NONCE_SIZE], raw[_NONCE_SIZE:]
    return AESGCM(key).decrypt(nonce, ct, None)
