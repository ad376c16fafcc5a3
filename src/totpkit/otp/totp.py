"""Time-based one-time codes (RFC 6238) layered on the HOTP engine.

Everything here is a pure function of its inputs; ``at=None`` reads the
wall clock once per call. Recording a successful verification is left to
the caller (see :class:`totpkit.manager.SecretManager`).
"""

from __future__ import annotations

import hmac
import time
from datetime import UTC, datetime

from totpkit.errors import InvalidArgument
from totpkit.models import TOTPConfig
from totpkit.otp import hotp

Moment = datetime | int | float | None


def unix_seconds(at: Moment = None) -> float:
    """Seconds since the epoch for a datetime (naive means UTC) or a timestamp."""
    if at is None:
        return time.time()
    if isinstance(at, datetime):
        if at.tzinfo is None:
            at = at.replace(tzinfo=UTC)
        return at.timestamp()
    return float(at)


def _check_period(period: int) -> None:
    if period <= 0:
        raise InvalidArgument(f"period must be positive, got {period}")


def counter_at(at: Moment, period: int) -> int:
    _check_period(period)
    return int(unix_seconds(at) // period)


def current_code(config: TOTPConfig, at: Moment = None) -> str:
    return hotp.compute(
        config.secret.raw,
        counter_at(at, config.period),
        config.digits,
        config.algorithm,
    )


def verify(config: TOTPConfig, code: object, at: Moment = None, window: int = 1) -> bool:
    """Check ``code`` against every counter in ``[c - window, c + window]``.

    Wrong, expired or malformed codes give False. All candidates are
    compared; the loop does not stop at the first match.
    """
    if window < 0:
        raise InvalidArgument(f"window must not be negative, got {window}")
    if not isinstance(code, str):
        return False

    submitted = code.encode("utf-8")
    current = counter_at(at, config.period)
    matched = False
    for counter in range(current - window, current + window + 1):
        if counter < 0:
            continue
        candidate = hotp.compute(config.secret.raw, counter, config.digits, config.algorithm)
        if hmac.compare_digest(candidate.encode("ascii"), submitted):
            matched = True
    return matched


def remaining_seconds(period: int, at: Moment = None) -> int:
    """Whole seconds until the current code expires (1..period)."""
    _check_period(period)
    return period - int(unix_seconds(at)) % period


def elapsed_percentage(period: int, at: Moment = None) -> float:
    """Share of the current period already used, as a percentage."""
    return round((period - remaining_seconds(period, at)) / period * 100, 2)
