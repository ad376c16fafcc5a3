"""Credential store contract and an in-process implementation.

Stores hand decrypted :class:`~totpkit.models.Secret` objects to the core and
must keep at most one active credential per owner. A create that would break
that rule raises :class:`~totpkit.errors.CredentialConflict`.
"""

from __future__ import annotations

import itertools
import logging
import threading
from datetime import UTC, datetime
from typing import Protocol

from totpkit.errors import CredentialConflict, NotFound
from totpkit.models import CredentialRecord, NewCredential

logger = logging.getLogger(__name__)


class CredentialStore(Protocol):
    def load_active_credential(self, owner_id: str) -> CredentialRecord | None: ...

    def load_credential(self, credential_id: int) -> CredentialRecord | None: ...

    def create_credential(self, fields: NewCredential) -> CredentialRecord: ...

    def touch_last_used(self, credential_id: int, at: datetime) -> None: ...

    def deactivate_credential(self, credential_id: int) -> None: ...


class InMemoryCredentialStore:
    """Dict-backed store guarded by a lock; used in tests and single-process setups."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[int, CredentialRecord] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._records)

    def all_credentials(self) -> list[CredentialRecord]:
        with self._lock:
            return list(self._records.values())

    def load_active_credential(self, owner_id: str) -> CredentialRecord | None:
        with self._lock:
            for record in self._records.values():
                if record.owner_id == owner_id and record.is_active:
                    return record
        return None

    def load_credential(self, credential_id: int) -> CredentialRecord | None:
        with self._lock:
            return self._records.get(credential_id)

    def create_credential(self, fields: NewCredential) -> CredentialRecord:
        with self._lock:
            if any(r.owner_id == fields.owner_id and r.is_active for r in self._records.values()):
                raise CredentialConflict(fields.owner_id)
            record = CredentialRecord(id=next(self._ids), **dict(fields))
            self._records[record.id] = record
        logger.debug("Stored credential %s for owner %s", record.id, record.owner_id)
        return record

    def touch_last_used(self, credential_id: int, at: datetime) -> None:
        self._replace(credential_id, last_used_at=at.astimezone(UTC))

    def deactivate_credential(self, credential_id: int) -> None:
        self._replace(credential_id, is_active=False)

    def _replace(self, credential_id: int, **changes: object) -> None:
        with self._lock:
            record = self._records.get(credential_id)
            if record is None:
                raise NotFound(f"Credential {credential_id} not found")
            self._records[credential_id] = record.model_copy(update=changes)
