"""RFC 4648 Base32 for secret interchange (uppercase, no padding)."""

from __future__ import annotations

import base64
import binascii
import re

from totpkit.errors import InvalidSecretFormat

_ALPHABET = re.compile(r"[A-Za-z2-7]*")


def encode(data: bytes) -> str:
    return base64.b32encode(data).decode("ascii").rstrip("=")


def decode(text: str) -> bytes:
    """Decode Base32 text, case-insensitively.

    Trailing ``=`` padding is accepted but not required. Any other character
    outside ``A-Z2-7`` raises InvalidSecretFormat.
    """
    if not isinstance(text, str):
        raise InvalidSecretFormat("Base32 secret must be text")
    normalized = text.rstrip("=")
    if not _ALPHABET.fullmatch(normalized):
        raise InvalidSecretFormat("Secret contains characters outside the Base32 alphabet")
    padding = -len(normalized) % 8
    try:
        return base64.b32decode(normalized.upper() + "=" * padding)
    except binascii.Error as exc:
        raise InvalidSecretFormat(f"Secret has an invalid Base32 length ({len(normalized)})") from exc
