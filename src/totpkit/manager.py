"""Secret lifecycle: issuing secrets, binding them to owners, verifying codes.

A :class:`SecretManager` is built once with its collaborators (credential
store, settings, optional QR renderer) and passed to whatever needs it.
The engines in :mod:`totpkit.otp` stay pure; this is the only layer that
talks to storage.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import pyotp

from totpkit.config import Settings
from totpkit.config import settings as default_settings
from totpkit.errors import CredentialConflict, InvalidArgument, NotFound
from totpkit.models import (
    CredentialRecord,
    DisplayData,
    DisplayOptions,
    NewCredential,
    Secret,
    TOTPConfig,
)
from totpkit.otp import totp, uri
from totpkit.qr import QRCodeRenderer, QRRenderer
from totpkit.storage import CredentialStore

logger = logging.getLogger(__name__)

SECRET_LENGTH = 32  # Base32 characters, 160 bits


def default_label(owner_id: str) -> str:
    return f"Authenticator Secret - {owner_id}"


class SecretManager:
    def __init__(
        self,
        store: CredentialStore,
        settings: Settings | None = None,
        qr_renderer: QRRenderer | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or default_settings
        self.qr_renderer = qr_renderer or QRCodeRenderer(
            box_size=self.settings.qr_code.box_size,
            border=self.settings.qr_code.border,
        )

    # ------------------------------------------------------------------
    # Secrets and configurations
    # ------------------------------------------------------------------

    def generate_secret(self) -> Secret:
        """Fresh 160-bit secret from the system CSPRNG."""
        return Secret.from_base32(pyotp.random_base32(length=SECRET_LENGTH))

    def build_config(
        self,
        secret: Secret,
        label: str | None = None,
        issuer: str | None = None,
        **overrides,
    ) -> TOTPConfig:
        """Configured defaults for ``secret``; keyword overrides win."""
        defaults = self.settings.totp
        return TOTPConfig(
            secret=secret,
            label=label or "",
            issuer=issuer if issuer is not None else defaults.issuer,
            algorithm=overrides.get("algorithm", defaults.algorithm),
            digits=overrides.get("digits", defaults.digits),
            period=overrides.get("period", defaults.period),
        )

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def find_or_create_credential(
        self,
        owner_id: str | int,
        label: str | None = None,
        issuer: str | None = None,
    ) -> CredentialRecord:
        """Return the owner's active credential, creating one if there is none.

        If a concurrent call creates the owner's credential first, the store
        raises CredentialConflict and the winner's record is returned.
        """
        owner_id = self._owner(owner_id)
        existing = self.store.load_active_credential(owner_id)
        if existing is not None:
            return existing

        config = self.build_config(self.generate_secret(), label or default_label(owner_id), issuer)
        fields = NewCredential(
            owner_id=owner_id,
            label=config.label,
            issuer=config.issuer,
            secret=config.secret,
            algorithm=config.algorithm,
            digits=config.digits,
            period=config.period,
        )
        try:
            record = self.store.create_credential(fields)
        except CredentialConflict:
            logger.info("Credential for owner %s created concurrently, reloading", owner_id)
            record = self.store.load_active_credential(owner_id)
            if record is None:
                raise
            return record

        logger.info("Created credential %s for owner %s", record.id, owner_id)
        return record

    def deactivate_credential(self, credential_id: int) -> None:
        if self.store.load_credential(credential_id) is None:
            raise NotFound(f"Credential {credential_id} not found")
        self.store.deactivate_credential(credential_id)
        logger.info("Deactivated credential %s", credential_id)

    def _active(self, credential_id: int) -> CredentialRecord:
        record = self.store.load_credential(credential_id)
        if record is None or not record.is_active:
            raise NotFound(f"No active credential with id {credential_id}")
        return record

    @staticmethod
    def _owner(owner_id: str | int) -> str:
        if owner_id is None or isinstance(owner_id, bool) or str(owner_id).strip() == "":
            raise InvalidArgument("owner_id is required")
        return str(owner_id)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def _window(self, window: int | None) -> int:
        window = self.settings.totp.window if window is None else window
        if window < 0:
            raise InvalidArgument(f"window must not be negative, got {window}")
        return window

    def _verify_record(
        self, record: CredentialRecord, code: str, window: int, at: totp.Moment = None
    ) -> bool:
        now = datetime.now(UTC) if at is None else datetime.fromtimestamp(totp.unix_seconds(at), UTC)
        if not totp.verify(record.config(), code, at=now, window=window):
            logger.info("Verification failed for credential %s", record.id)
            return False
        self.store.touch_last_used(record.id, now)
        logger.info("Verification succeeded for credential %s", record.id)
        return True

    def verify_for_owner(
        self,
        owner_id: str | int,
        code: str,
        window: int | None = None,
        at: totp.Moment = None,
    ) -> bool:
        """Check ``code`` against the owner's active credential.

        No credential is a plain False. A match updates last-used. ``at``
        defaults to the current time.
        """
        owner_id = self._owner(owner_id)
        window = self._window(window)
        record = self.store.load_active_credential(owner_id)
        if record is None:
            logger.info("No active credential for owner %s", owner_id)
            return False
        return self._verify_record(record, code, window, at)

    def verify_credential(
        self,
        credential_id: int,
        code: str,
        window: int | None = None,
        at: totp.Moment = None,
    ) -> bool:
        window = self._window(window)
        record = self.store.load_credential(credential_id)
        if record is None or not record.is_active:
            return False
        return self._verify_record(record, code, window, at)

    # ------------------------------------------------------------------
    # Presentation data
    # ------------------------------------------------------------------

    def current_code(self, record: CredentialRecord, at: totp.Moment = None) -> str:
        return totp.current_code(record.config(), at)

    def provisioning_uri(self, record: CredentialRecord) -> str:
        return uri.encode(record.config())

    def qr_code(self, record: CredentialRecord, fmt: str | None = None) -> str:
        return self.qr_renderer.render(self.provisioning_uri(record), fmt or self.settings.qr_code.format)

    def display_data(
        self,
        credential_id: int,
        options: DisplayOptions | None = None,
        at: totp.Moment = None,
    ) -> DisplayData:
        """Assemble what a renderer needs to show one credential."""
        options = options or DisplayOptions()
        record = self._active(credential_id)
        at = totp.unix_seconds(at)

        data = DisplayData(
            secret_id=record.id,
            secret=record.secret.base32 if options.include_secret else None,
            current_code=self.current_code(record, at),
            period=record.period,
            expires_in=totp.remaining_seconds(record.period, at),
            progress_percentage=totp.elapsed_percentage(record.period, at),
            label=record.label,
            issuer=record.issuer,
            show_current_code=options.show_current_code,
            show_verification=options.show_verification,
        )
        if options.include_qr_code:
            data.provisioning_uri = self.provisioning_uri(record)
            data.qr_code = self.qr_renderer.render(
                data.provisioning_uri,
                options.qr_format or self.settings.qr_code.format,
            )
        return data
