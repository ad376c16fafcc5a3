"""Encode and decode ``otpauth://totp/`` provisioning URIs."""

from __future__ import annotations

from urllib.parse import parse_qsl, quote, unquote_plus

from totpkit.errors import InvalidArgument, InvalidProvisioningUri, MissingLabel
from totpkit.models import Algorithm, Secret, TOTPConfig

PREFIX = "otpauth://totp/"

DEFAULT_ALGORITHM = Algorithm.SHA1
DEFAULT_DIGITS = 6
DEFAULT_PERIOD = 30


def _quote(value: str) -> str:
    return quote(value, safe="@")


def encode(config: TOTPConfig) -> str:
    """Build the canonical URI; the label gets an ``issuer:`` prefix when an issuer is set."""
    if not config.label:
        raise MissingLabel("The label is not set.")

    if config.issuer:
        path = f"{_quote(config.issuer)}:{_quote(config.account)}"
    else:
        path = _quote(config.label)

    params = [("secret", config.secret.base32)]
    if config.issuer:
        params.append(("issuer", _quote(config.issuer)))
    params += [
        ("algorithm", config.algorithm.value),
        ("digits", str(config.digits)),
        ("period", str(config.period)),
    ]
    return PREFIX + path + "?" + "&".join(f"{k}={v}" for k, v in params)


def _int_param(params: dict[str, str], key: str, default: int) -> int:
    raw = params.get(key)
    if raw is None:
        return default
    value = raw.strip()
    if not (value.isascii() and value.isdigit()):
        raise InvalidProvisioningUri(f"{key} must be an integer, got {raw!r}")
    return int(value)


def decode(uri: str) -> TOTPConfig:
    """Parse a provisioning URI back into a TOTPConfig.

    Only the scheme check is strict. Query keys without a value and unknown
    keys are ignored; the last occurrence of a repeated key wins. Missing
    ``algorithm``/``digits``/``period`` fall back to SHA1/6/30.
    """
    if not isinstance(uri, str) or not uri.startswith(PREFIX):
        raise InvalidProvisioningUri("Invalid TOTP QR code format")

    path, _, query = uri[len(PREFIX):].partition("?")
    path = path.partition("#")[0]
    query = query.partition("#")[0]
    label = unquote_plus(path)

    params = dict(parse_qsl(query))

    secret_text = params.get("secret")
    if not secret_text:
        raise InvalidProvisioningUri("Provisioning URI has no secret")

    algorithm = Algorithm.parse(params.get("algorithm", DEFAULT_ALGORITHM))
    digits = _int_param(params, "digits", DEFAULT_DIGITS)
    period = _int_param(params, "period", DEFAULT_PERIOD)

    try:
        return TOTPConfig(
            secret=Secret.from_base32(secret_text),
            label=label,
            issuer=params.get("issuer") or None,
            algorithm=algorithm,
            digits=digits,
            period=period,
        )
    except InvalidArgument as exc:
        raise InvalidProvisioningUri(str(exc)) from exc
