"""Tests for the secret lifecycle manager."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime

import pytest

from totpkit.config import Settings
from totpkit.errors import InvalidArgument, NotFound
from totpkit.manager import SecretManager
from totpkit.models import Algorithm, DisplayOptions, NewCredential, Secret
from totpkit.otp import base32, totp, uri
from totpkit.storage import InMemoryCredentialStore


class FakeRenderer:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def render(self, uri: str, fmt: str = "png") -> str:
        self.calls.append((uri, fmt))
        return f"data:image/{fmt};base64,AAAA"


class RacingStore(InMemoryCredentialStore):
    """Holds the first ``parties`` lookups until all of them have missed."""

    def __init__(self, parties: int) -> None:
        super().__init__()
        self.barrier = threading.Barrier(parties)
        self.parties = parties
        self.create_attempts = 0
        self._held = 0
        self._count_lock = threading.Lock()

    def load_active_credential(self, owner_id):
        record = super().load_active_credential(owner_id)
        with self._count_lock:
            hold = record is None and self._held < self.parties
            if hold:
                self._held += 1
        if hold:
            self.barrier.wait(timeout=5)
        return record

    def create_credential(self, fields):
        with self._count_lock:
            self.create_attempts += 1
        return super().create_credential(fields)


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def store():
    return InMemoryCredentialStore()


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def manager(store, settings, renderer):
    return SecretManager(store, settings, qr_renderer=renderer)


def test_generate_secret(manager):
    secret = manager.generate_secret()
    assert len(secret.raw) == 20
    assert len(secret.base32) == 32
    assert base32.decode(secret.base32) == secret.raw


def test_generated_secrets_are_unique(manager):
    secrets = {manager.generate_secret().base32 for _ in range(50)}
    assert len(secrets) == 50


def test_build_config_uses_settings(manager):
    secret = manager.generate_secret()
    config = manager.build_config(secret, "alice")
    assert config.period == 60
    assert config.digits == 6
    assert config.algorithm is Algorithm.SHA1

    override = manager.build_config(secret, "alice", "MyApp", digits=8, period=30, algorithm="sha256")
    assert (override.digits, override.period, override.algorithm) == (8, 30, Algorithm.SHA256)
    assert override.issuer == "MyApp"


def test_find_or_create_uses_defaults(manager, store):
    record = manager.find_or_create_credential(123)
    assert record.owner_id == "123"
    assert record.label == "Authenticator Secret - 123"
    assert record.algorithm is Algorithm.SHA1
    assert record.digits == 6
    assert record.period == 60
    assert record.is_active
    assert record.issuer is None
    assert len(store) == 1


def test_find_or_create_issuer_from_settings(store, renderer):
    settings = Settings(_env_file=None, totp={"issuer": "Acme", "period": 30, "digits": 8})
    manager = SecretManager(store, settings, qr_renderer=renderer)
    record = manager.find_or_create_credential("bob", label="bob@acme.test")
    assert record.issuer == "Acme"
    assert record.label == "bob@acme.test"
    assert (record.period, record.digits) == (30, 8)


def test_find_or_create_returns_existing(manager, store):
    first = manager.find_or_create_credential(999)
    again = manager.find_or_create_credential(999)
    assert again.id == first.id
    assert again.secret == first.secret
    assert len(store) == 1

    other = manager.find_or_create_credential(1000)
    assert other.id != first.id
    assert len(store) == 2


def test_find_or_create_rejects_blank_owner(manager):
    with pytest.raises(InvalidArgument):
        manager.find_or_create_credential("  ")
    with pytest.raises(InvalidArgument):
        manager.find_or_create_credential(None)


def test_concurrent_find_or_create_persists_one_credential(settings, renderer):
    store = RacingStore(parties=2)
    manager = SecretManager(store, settings, qr_renderer=renderer)

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [pool.submit(manager.find_or_create_credential, "new-owner") for _ in range(2)]
        records = [f.result(timeout=10) for f in futures]

    assert store.create_attempts == 2
    assert len(store) == 1
    assert records[0].id == records[1].id
    assert records[0].secret == records[1].secret


def test_verify_for_owner_marks_last_used(manager, store):
    record = manager.find_or_create_credential(777, "Test")
    assert record.last_used_at is None

    assert manager.verify_for_owner(777, manager.current_code(record))
    assert store.load_credential(record.id).last_used_at is not None


def test_verify_for_owner_rejects_wrong_code(manager, store):
    record = manager.find_or_create_credential(222)
    code = manager.current_code(record)
    wrong = str((int(code) + 500_000) % 10**6).zfill(6)

    assert not manager.verify_for_owner(222, wrong, window=0)
    assert not manager.verify_for_owner(222, "abc123")
    assert not manager.verify_for_owner(222, "")
    assert store.load_credential(record.id).last_used_at is None


def test_verify_for_unknown_owner_is_false(manager):
    assert manager.verify_for_owner("nobody", "123456") is False


def test_verify_for_owner_negative_window(manager):
    manager.find_or_create_credential(5)
    with pytest.raises(InvalidArgument):
        manager.verify_for_owner(5, "123456", window=-1)


def test_verify_uses_configured_window(store, renderer):
    settings = Settings(_env_file=None, totp={"window": 0, "period": 30})
    manager = SecretManager(store, settings, qr_renderer=renderer)
    record = store.create_credential(
        NewCredential(owner_id="1", label="rfc", secret=Secret(b"12345678901234567890"), digits=8, period=30)
    )
    at = 1_111_111_111
    previous = "07081804"  # RFC 6238 SHA1 code at T=1111111109

    assert manager.current_code(record, at) == "14050471"
    assert not manager.verify_for_owner(1, previous, at=at)
    assert store.load_credential(record.id).last_used_at is None
    assert manager.verify_for_owner(1, previous, window=1, at=at)
    assert store.load_credential(record.id).last_used_at == datetime.fromtimestamp(at, UTC)
    assert not manager.verify_credential(record.id, previous, at=at + 60)
    assert manager.verify_credential(record.id, "14050471", at=at)


def test_verify_credential(manager, store):
    record = manager.find_or_create_credential(8)
    assert manager.verify_credential(record.id, manager.current_code(record))
    assert store.load_credential(record.id).last_used_at is not None
    assert not manager.verify_credential(404, "123456")


def test_deactivated_credential_no_longer_verifies(manager, store):
    record = manager.find_or_create_credential(9)
    code = manager.current_code(record)
    manager.deactivate_credential(record.id)

    assert not manager.verify_for_owner(9, code)
    assert not manager.verify_credential(record.id, code)

    replacement = manager.find_or_create_credential(9)
    assert replacement.id != record.id
    assert replacement.secret != record.secret


def test_deactivate_unknown_credential(manager):
    with pytest.raises(NotFound):
        manager.deactivate_credential(404)


def test_provisioning_uri(manager):
    record = manager.find_or_create_credential(3, label="user@example.com", issuer="TestApp")
    text = manager.provisioning_uri(record)
    parsed = uri.decode(text)
    assert parsed.secret == record.secret
    assert parsed.label == "TestApp:user@example.com"
    assert parsed.issuer == "TestApp"
    assert parsed.period == 60
    assert parsed.digits == 6
    assert parsed.algorithm is Algorithm.SHA1


def test_qr_code_uses_configured_format(manager, renderer):
    record = manager.find_or_create_credential(4)
    assert manager.qr_code(record) == "data:image/png;base64,AAAA"
    assert manager.qr_code(record, "svg") == "data:image/svg;base64,AAAA"
    assert renderer.calls[0] == (manager.provisioning_uri(record), "png")


def test_display_data_structure(manager, renderer):
    record = manager.find_or_create_credential(321, "User321")
    at = 1_699_999_990  # 50s left in a 60s period

    data = manager.display_data(record.id, at=at)
    assert data.secret_id == record.id
    assert data.current_code == manager.current_code(record, at)
    assert data.period == 60
    assert data.expires_in == 50
    assert data.progress_percentage == 16.67
    assert data.label == "User321"
    assert data.issuer is None
    assert data.show_current_code is True
    assert data.show_verification is False
    assert data.secret is None
    assert data.qr_code is None
    assert data.provisioning_uri is None
    assert renderer.calls == []


def test_display_data_with_secret_and_qr(manager, renderer):
    record = manager.find_or_create_credential(11, "eve")
    options = DisplayOptions(include_secret=True, include_qr_code=True, qr_format="svg", show_verification=True)

    data = manager.display_data(record.id, options)
    assert data.secret == record.secret.base32
    assert data.provisioning_uri == manager.provisioning_uri(record)
    assert data.qr_code == "data:image/svg;base64,AAAA"
    assert data.show_verification is True
    assert renderer.calls == [(data.provisioning_uri, "svg")]


def test_display_data_not_found(manager):
    with pytest.raises(NotFound):
        manager.display_data(404)


def test_display_data_for_deactivated_credential(manager):
    record = manager.find_or_create_credential(12)
    manager.deactivate_credential(record.id)
    with pytest.raises(NotFound):
        manager.display_data(record.id)


def test_secret_never_in_record_repr(manager):
    record = manager.find_or_create_credential(13)
    assert record.secret.base32 not in repr(record)


def test_manually_built_secret_verifies(manager):
    secret = Secret.from_base32("JBSWY3DPEHPK3PXP")
    config = manager.build_config(secret, "alice")
    assert totp.verify(config, totp.current_code(config, 1_000_000), at=1_000_030)
