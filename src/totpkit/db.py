"""PostgreSQL credential store (psycopg) with secrets encrypted at rest."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import psycopg
import psycopg.rows
import psycopg_pool

from totpkit import crypto
from totpkit.config import settings
from totpkit.errors import CredentialConflict, NotFound
from totpkit.models import Algorithm, CredentialRecord, NewCredential, Secret

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS totp_credentials (
    id            BIGSERIAL PRIMARY KEY,
    owner_id      TEXT NOT NULL,
    label         TEXT NOT NULL,
    issuer        TEXT,
    secret_enc    TEXT NOT NULL,
    algorithm     TEXT NOT NULL DEFAULT 'SHA1',
    digits        INTEGER NOT NULL DEFAULT 6,
    period        INTEGER NOT NULL DEFAULT 60,
    is_active     BOOLEAN NOT NULL DEFAULT TRUE,
    last_used_at  TIMESTAMPTZ,
    created_at    TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at    TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE UNIQUE INDEX IF NOT EXISTS totp_credentials_one_active_per_owner
    ON totp_credentials (owner_id) WHERE is_active;
"""

_COLUMNS = """id, owner_id, label, issuer, secret_enc, algorithm, digits, period,
              is_active, last_used_at, created_at"""


class PostgresCredentialStore:
    """Credential store over a psycopg connection pool.

    The partial unique index on ``owner_id WHERE is_active`` is what makes
    concurrent find-or-create safe: the losing INSERT returns no row and
    surfaces as CredentialConflict.
    """

    def __init__(
        self,
        pool: psycopg_pool.ConnectionPool | None = None,
        *,
        conninfo: str | None = None,
        master_key: str | None = None,
    ) -> None:
        self._pool = pool or psycopg_pool.ConnectionPool(
            conninfo=conninfo or settings.database_url,
            min_size=1,
            max_size=10,
            kwargs={"row_factory": psycopg.rows.dict_row},
            open=True,
        )
        self._master_key = master_key

    def close(self) -> None:
        self._pool.close()

    def ensure_schema(self) -> None:
        self._execute(SCHEMA)
        logger.info("totp_credentials schema ensured")

    def _execute(self, query: str, params: tuple[Any, ...] | None = None) -> list[dict[str, Any]]:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=psycopg.rows.dict_row) as cur:
                cur.execute(query, params)
                if cur.description is None:
                    return []
                return cur.fetchall()

    def _to_record(self, row: dict[str, Any]) -> CredentialRecord:
        return CredentialRecord(
            id=row["id"],
            owner_id=row["owner_id"],
            label=row["label"],
            issuer=row["issuer"],
            secret=Secret(crypto.decrypt(row["secret_enc"], self._master_key)),
            algorithm=Algorithm.parse(row["algorithm"]),
            digits=row["digits"],
            period=row["period"],
            is_active=row["is_active"],
            last_used_at=row["last_used_at"],
            created_at=row["created_at"],
        )

    def load_active_credential(self, owner_id: str) -> CredentialRecord | None:
        rows = self._execute(
            f"""SELECT {_COLUMNS} FROM totp_credentials
                WHERE owner_id = %s AND is_active
                ORDER BY id LIMIT 1""",
            (owner_id,),
        )
        return self._to_record(rows[0]) if rows else None

    def load_credential(self, credential_id: int) -> CredentialRecord | None:
        rows = self._execute(
            f"SELECT {_COLUMNS} FROM totp_credentials WHERE id = %s",
            (credential_id,),
        )
        return self._to_record(rows[0]) if rows else None

    def create_credential(self, fields: NewCredential) -> CredentialRecord:
        rows = self._execute(
            f"""INSERT INTO totp_credentials
                   (owner_id, label, issuer, secret_enc, algorithm, digits, period)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (owner_id) WHERE is_active DO NOTHING
                RETURNING {_COLUMNS}""",
            (
                fields.owner_id,
                fields.label,
                fields.issuer,
                crypto.encrypt(fields.secret.raw, self._master_key),
                fields.algorithm.value,
                fields.digits,
                fields.period,
            ),
        )
        if not rows:
            raise CredentialConflict(fields.owner_id)
        logger.info("Credential created: id=%s owner=%s", rows[0]["id"], fields.owner_id)
        return self._to_record(rows[0])

    def touch_last_used(self, credential_id: int, at: datetime) -> None:
        rows = self._execute(
            """UPDATE totp_credentials SET last_used_at = %s, updated_at = now()
               WHERE id = %s RETURNING id""",
            (at, credential_id),
        )
        if not rows:
            raise NotFound(f"Credential {credential_id} not found")

    def deactivate_credential(self, credential_id: int) -> None:
        rows = self._execute(
            """UPDATE totp_credentials SET is_active = FALSE, updated_at = now()
               WHERE id = %s RETURNING id""",
            (credential_id,),
        )
        if not rows:
            raise NotFound(f"Credential {credential_id} not found")
