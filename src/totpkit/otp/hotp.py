"""HMAC-based one-time codes (RFC 4226)."""

from __future__ import annotations

import hmac
import struct

from totpkit.errors import InvalidArgument
from totpkit.models import MAX_DIGITS, Algorithm

MAX_COUNTER = 2**64 - 1


def truncate(digest: bytes) -> int:
    """Dynamic truncation: 31-bit integer at the offset named by the last nibble."""
    offset = digest[-1] & 0x0F
    return struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF


def compute(
    secret: bytes,
    counter: int,
    digits: int = 6,
    algorithm: Algorithm | str = Algorithm.SHA1,
) -> str:
    """Return the zero-padded ``digits``-long code for ``counter``."""
    algorithm = Algorithm.parse(algorithm)
    if not 0 <= counter <= MAX_COUNTER:
        raise InvalidArgument(f"counter must fit in 64 unsigned bits, got {counter}")
    if not 1 <= digits <= MAX_DIGITS:
        raise InvalidArgument(f"digits must be between 1 and {MAX_DIGITS}, got {digits}")

    digest = hmac.new(secret, struct.pack(">Q", counter), algorithm.digestmod).digest()
    return str(truncate(digest) % 10**digits).zfill(digits)
