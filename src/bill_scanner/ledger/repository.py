"""SQLite-backed ledger of mailbox messages already considered for a user.

A message id recorded here is never classified again for that user. Rows
are only ever inserted; a second insert of the same (user, message) pair is
ignored.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

import structlog

from bill_scanner.exceptions import LedgerError
from bill_scanner.models import ProcessedMessageRecord

logger = structlog.get_logger()


_SCHEMA_VERSION = 1

# Stays well below SQLITE_MAX_VARIABLE_NUMBER on older builds (999).
_MAX_QUERY_PARAMS = 500


class ProcessedMessageLedger:
    """Repository for the processed-message ledger."""

    def __init__(self, db_path: Path) -> None:
        """Create a ledger.

        Args:
            db_path: Path to the SQLite database file.
        """

        self._db_path = Path(db_path)

    def initialize(self) -> None:
        """Create the ledger schema if needed."""

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL;")

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS _schema_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                """
            )

            current_version = self._get_schema_version(conn)
            if current_version is None:
                self._create_schema_v1(conn)
                self._set_schema_version(conn, _SCHEMA_VERSION)
                conn.commit()
                logger.info("ledger_schema_created", version=_SCHEMA_VERSION, path=str(self._db_path))
                return

            if current_version != _SCHEMA_VERSION:
                raise LedgerError(
                    f"Unsupported ledger schema version {current_version}; expected {_SCHEMA_VERSION}"
                )

    def processed_subset(self, user_id: str, message_ids: Iterable[str]) -> set[str]:
        """Return the subset of ``message_ids`` already recorded for ``user_id``."""

        ids = list(dict.fromkeys(message_ids))
        if not ids:
            return set()

        found: set[str] = set()
        with self._connect() as conn:
            for chunk in _chunks(ids, _MAX_QUERY_PARAMS):
                placeholders = ",".join("?" for _ in chunk)
                rows = conn.execute(
                    f"""
                    SELECT message_id
                    FROM processed_messages
                    WHERE user_id = ? AND message_id IN ({placeholders})
                    """,
                    (user_id, *chunk),
                ).fetchall()
                found.update(row["message_id"] for row in rows)
        return found

    def mark_processed(self, records: Sequence[ProcessedMessageRecord]) -> None:
        """Record a batch of messages in one statement; duplicates are ignored."""

        if not records:
            return

        with self._connect() as conn:
            conn.executemany(
                """
                INSERT OR IGNORE INTO processed_messages (
                    user_id,
                    message_id,
                    service_name,
                    processed_at_iso
                )
                VALUES (?, ?, ?, ?)
                """,
                [
                    (r.user_id, r.message_id, r.service_name, r.processed_at.isoformat())
                    for r in records
                ],
            )
            conn.commit()

        logger.debug("ledger_marked", count=len(records))

    def count(self, user_id: str) -> int:
        """Return how many messages are recorded for ``user_id``."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM processed_messages WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        return int(row[0])

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self._db_path)
        except sqlite3.Error as exc:
            raise LedgerError(f"Could not open ledger at {self._db_path}: {exc}") from exc
        try:
            conn.row_factory = sqlite3.Row
            yield conn
        except sqlite3.Error as exc:
            raise LedgerError(f"Ledger operation failed: {exc}") from exc
        finally:
            conn.close()

    def _get_schema_version(self, conn: sqlite3.Connection) -> int | None:
        row = conn.execute(
            "SELECT value FROM _schema_meta WHERE key = 'schema_version'"
        ).fetchone()
        if row is None:
            return None
        return int(row[0])

    def _set_schema_version(self, conn: sqlite3.Connection, version: int) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO _schema_meta(key, value) VALUES('schema_version', ?) ",
            (str(version),),
        )

    def _create_schema_v1(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS processed_messages (
                rowid INTEGER PRIMARY KEY,
                user_id TEXT NOT NULL,
                message_id TEXT NOT NULL,
                service_name TEXT,
                processed_at_iso TEXT NOT NULL,
                UNIQUE (user_id, message_id)
            );

            CREATE INDEX IF NOT EXISTS idx_processed_messages_user
                ON processed_messages(user_id);
            """
        )


def _chunks(items: list[str], size: int) -> Iterator[list[str]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]
