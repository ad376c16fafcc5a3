"""Exception taxonomy for secret handling, code derivation and provisioning."""

from __future__ import annotations


class TOTPError(Exception):
    """Base class for every error raised by totpkit."""


class InvalidSecretFormat(TOTPError):
    """Secret text is not valid Base32."""


class UnsupportedAlgorithm(TOTPError):
    """Digest algorithm is not one of SHA1, SHA256, SHA512."""

    def __init__(self, algorithm: object):
        super().__init__(f"Unsupported algorithm: {algorithm!r}")
        self.algorithm = algorithm


class InvalidProvisioningUri(TOTPError):
    """Text is not a usable otpauth://totp/ URI."""


class MissingLabel(TOTPError):
    """A provisioning URI cannot be built without a label."""


class InvalidArgument(TOTPError):
    """Caller passed an out-of-range value (window, period, digits, counter)."""


class NotFound(TOTPError):
    """No active credential matches the given owner or id."""


class CredentialConflict(TOTPError):
    """Another active credential already exists for this owner."""

    def __init__(self, owner_id: str):
        super().__init__(f"Active credential already exists for owner {owner_id}")
        self.owner_id = owner_id
