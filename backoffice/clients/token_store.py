"""SQLite-backed store holding one encrypted OAuth token row per service."""

from __future__ import annotations

import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from backoffice.core.errors import TokenStorageError
from backoffice.models.oauth import OAuthTokenRecord
from backoffice.services.token_cipher import TokenCipherService


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _row_to_record(row: sqlite3.Row) -> OAuthTokenRecord:
    return OAuthTokenRecord(
        service=row["service"],
        access_token=row["access_token"],
        refresh_token=row["refresh_token"],
        location_id=row["location_id"],
        merchant_id=row["merchant_id"],
        expires_at=_as_utc(datetime.fromisoformat(row["expires_at"])),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


class SQLiteTokenStore:
    """Token persistence keyed by service name.

    Tokens are encrypted before they reach the database; expiry and location
    metadata stay in plaintext so validity can be checked without the key.
    """

    def __init__(self, db_path: str, cipher: TokenCipherService) -> None:
        self._db_path = Path(db_path)
        self._cipher = cipher
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS oauth_tokens (
                        service TEXT PRIMARY KEY,
                        access_token TEXT NOT NULL,
                        refresh_token TEXT,
                        location_id TEXT,
                        merchant_id TEXT,
                        expires_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
        except sqlite3.Error as exc:
            raise TokenStorageError(f"Failed to initialise token store: {exc}") from exc

    def upsert(
        self,
        service: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: datetime,
        *,
        location_id: Optional[str] = None,
        merchant_id: Optional[str] = None,
    ) -> OAuthTokenRecord:
        """Encrypt and write the token row for ``service`` in one statement."""
        record = OAuthTokenRecord(
            service=service,
            access_token=self._cipher.encrypt(access_token),
            refresh_token=self._cipher.encrypt(refresh_token) if refresh_token else None,
            location_id=location_id,
            merchant_id=merchant_id,
            expires_at=_as_utc(expires_at),
            updated_at=datetime.now(timezone.utc),
        )
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute(
                    """
                    INSERT INTO oauth_tokens (
                        service, access_token, refresh_token, location_id,
                        merchant_id, expires_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(service) DO UPDATE SET
                        access_token = excluded.access_token,
                        refresh_token = excluded.refresh_token,
                        location_id = COALESCE(excluded.location_id, oauth_tokens.location_id),
                        merchant_id = COALESCE(excluded.merchant_id, oauth_tokens.merchant_id),
                        expires_at = excluded.expires_at,
                        updated_at = excluded.updated_at
                    """,
                    (
                        record.service,
                        record.access_token,
                        record.refresh_token,
                        record.location_id,
                        record.merchant_id,
                        record.expires_at.isoformat(),
                        record.updated_at.isoformat(),
                    ),
                )
        except sqlite3.Error as exc:
            raise TokenStorageError(f"Failed to persist {service} tokens: {exc}") from exc
        return self.get(service) or record

    def get(self, service: str) -> Optional[OAuthTokenRecord]:
        """Return the still-encrypted record for ``service`` if one exists."""
        try:
            with closing(self._connect()) as conn:
                row = conn.execute(
                    "SELECT * FROM oauth_tokens WHERE service = ?",
                    (service,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise TokenStorageError(f"Failed to load {service} tokens: {exc}") from exc
        if not row:
            return None
        return _row_to_record(row)

    def list_records(self) -> List[OAuthTokenRecord]:
        """Return every stored record, still encrypted, ordered by service."""
        try:
            with closing(self._connect()) as conn:
                rows = conn.execute(
                    "SELECT * FROM oauth_tokens ORDER BY service"
                ).fetchall()
        except sqlite3.Error as exc:
            raise TokenStorageError(f"Failed to list stored tokens: {exc}") from exc
        return [_row_to_record(row) for row in rows]


__all__ = ["SQLiteTokenStore"]
