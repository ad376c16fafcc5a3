"""Value objects and records shared by the engines, the manager and the stores."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from totpkit.errors import InvalidArgument, InvalidSecretFormat, UnsupportedAlgorithm
from totpkit.otp import base32

MAX_DIGITS = 10  # a 31-bit truncated value never has more


class Algorithm(StrEnum):
    SHA1 = "SHA1"
    SHA256 = "SHA256"
    SHA512 = "SHA512"

    @classmethod
    def _missing_(cls, value: object) -> Algorithm | None:
        if isinstance(value, str):
            upper = value.strip().upper()
            for member in cls:
                if member.value == upper:
                    return member
        return None

    @classmethod
    def parse(cls, value: Any) -> Algorithm:
        """Case-insensitive lookup raising UnsupportedAlgorithm on anything else."""
        try:
            return cls(value)
        except ValueError as exc:
            raise UnsupportedAlgorithm(value) from exc

    @property
    def digestmod(self):
        return getattr(hashlib, self.value.lower())


class Secret:
    """Shared key material.

    Holds the raw bytes; the Base32 form is derived on demand. The value is
    masked in ``repr``/``str`` so a secret never lands in a log line by accident.
    """

    __slots__ = ("_raw",)

    def __init__(self, raw: bytes):
        if not isinstance(raw, (bytes, bytearray)):
            raise InvalidArgument("Secret must be built from bytes")
        if not raw:
            raise InvalidSecretFormat("Secret must not be empty")
        self._raw = bytes(raw)

    @classmethod
    def from_base32(cls, text: str) -> Secret:
        return cls(base32.decode(text))

    @property
    def raw(self) -> bytes:
        return self._raw

    @property
    def base32(self) -> str:
        return base32.encode(self._raw)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Secret):
            return NotImplemented
        return self._raw == other._raw

    def __hash__(self) -> int:
        return hash(self._raw)

    def __repr__(self) -> str:
        return "Secret('**********')"

    __str__ = __repr__


@dataclass(frozen=True, slots=True)
class TOTPConfig:
    """Parameters for deriving codes from one secret."""

    secret: Secret
    label: str = ""
    issuer: str | None = None
    algorithm: Algorithm = Algorithm.SHA1
    digits: int = 6
    period: int = 30

    def __post_init__(self) -> None:
        object.__setattr__(self, "algorithm", Algorithm.parse(self.algorithm))
        if isinstance(self.digits, bool) or not isinstance(self.digits, int):
            raise InvalidArgument(f"digits must be an integer, got {self.digits!r}")
        if isinstance(self.period, bool) or not isinstance(self.period, int):
            raise InvalidArgument(f"period must be an integer, got {self.period!r}")
        if not 1 <= self.digits <= MAX_DIGITS:
            raise InvalidArgument(f"digits must be between 1 and {MAX_DIGITS}, got {self.digits}")
        if self.period <= 0:
            raise InvalidArgument(f"period must be positive, got {self.period}")

    @property
    def full_label(self) -> str:
        """Label as written into a provisioning URI: ``issuer:label``."""
        if self.issuer and not self.label.startswith(f"{self.issuer}:"):
            return f"{self.issuer}:{self.label}"
        return self.label

    @property
    def account(self) -> str:
        """Label with any ``issuer:`` prefix removed."""
        if self.issuer and self.label.startswith(f"{self.issuer}:"):
            return self.label[len(self.issuer) + 1:]
        return self.label


# === Persistence / presentation models ===


class CredentialRecord(BaseModel):
    """A TOTP configuration bound to its owner, as handed back by a store."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    id: int
    owner_id: str
    label: str
    issuer: str | None = None
    secret: Secret
    algorithm: Algorithm = Algorithm.SHA1
    digits: int = 6
    period: int = 60
    is_active: bool = True
    last_used_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def config(self) -> TOTPConfig:
        return TOTPConfig(
            secret=self.secret,
            label=self.label,
            issuer=self.issuer,
            algorithm=self.algorithm,
            digits=self.digits,
            period=self.period,
        )


class NewCredential(BaseModel):
    """Fields for a credential that has not been persisted yet."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    owner_id: str
    label: str
    issuer: str | None = None
    secret: Secret
    algorithm: Algorithm = Algorithm.SHA1
    digits: int = 6
    period: int = 60


class DisplayOptions(BaseModel):
    """What the presentation layer wants assembled."""

    include_secret: bool = False
    show_current_code: bool = True
    show_verification: bool = False
    include_qr_code: bool = False
    qr_format: str | None = None


class DisplayData(BaseModel):
    """Everything a renderer needs to show one credential."""

    secret_id: int
    secret: str | None = None
    current_code: str
    period: int
    expires_in: int
    progress_percentage: float
    label: str
    issuer: str | None = None
    show_current_code: bool = True
    show_verification: bool = False
    provisioning_uri: str | None = None
    qr_code: str | None = None
