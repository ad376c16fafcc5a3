"""Tests for AES-256-GCM encryption of secrets at rest."""

from __future__ import annotations

import base64
import os

import pytest
from cryptography.exceptions import InvalidTag


def test_encrypt_decrypt(monkeypatch):
    # Generate a test key
    key = base64.b64encode(os.urandom(32)).decode()

    from totpkit.config import Settings
    monkeypatch.setattr("totpkit.crypto.settings", Settings(_env_file=None, master_key=key))

    from totpkit.crypto import decrypt, encrypt

    plaintext = b"Hello!\xde\xad\xbe\xef"
    token = encrypt(plaintext)
    assert token.encode() != plaintext
    assert decrypt(token) == plaintext


def test_encrypt_produces_different_ciphertexts(monkeypatch):
    key = base64.b64encode(os.urandom(32)).decode()

    from totpkit.config import Settings
    monkeypatch.setattr("totpkit.crypto.settings", Settings(_env_file=None, master_key=key))

    from totpkit.crypto import encrypt

    # Same plaintext should produce different ciphertexts (random nonce)
    t1 = encrypt(b"test")
    t2 = encrypt(b"test")
    assert t1 != t2


def test_explicit_key_overrides_settings(monkeypatch):
    from totpkit.config import Settings
    from totpkit.crypto import decrypt, encrypt, generate_key

    monkeypatch.setattr("totpkit.crypto.settings", Settings(_env_file=None, master_key=""))
    key = generate_key()
    assert len(base64.b64decode(key)) == 32
    assert decrypt(encrypt(b"secret", key), key) == b"secret"


def test_wrong_key_fails_authentication():
    from totpkit.crypto import decrypt, encrypt, generate_key

    token = encrypt(b"secret", generate_key())
    with pytest.raises(InvalidTag):
        decrypt(token, generate_key())


def test_missing_key_raises(monkeypatch):
    from totpkit.config import Settings
    monkeypatch.setattr("totpkit.crypto.settings", Settings(_env_file=None, master_key=""))

    from totpkit.crypto import encrypt

    with pytest.raises(RuntimeError, match="TOTPKIT_MASTER_KEY not set"):
        encrypt(b"test")


def test_short_key_rejected():
    from totpkit.crypto import encrypt

    with pytest.raises(ValueError, match="must be 32 bytes"):
        encrypt(b"test", base64.b64encode(b"short").decode())
