"""Unit tests for the processed-message ledger."""

from __future__ import annotations

import sqlite3

import pytest

from bill_scanner.exceptions import LedgerError
from bill_scanner.ledger import ProcessedMessageLedger
from bill_scanner.models import ProcessedMessageRecord


def _records(user_id: str, *ids: str, service_name: str | None = None) -> list[ProcessedMessageRecord]:
    return [ProcessedMessageRecord(user_id=user_id, message_id=i, service_name=service_name) for i in ids]


def test_ledger_initialize_and_mark(tmp_path) -> None:
    db_path = tmp_path / "nested" / "ledger.sqlite3"
    ledger = ProcessedMessageLedger(db_path)
    ledger.initialize()

    ledger.mark_processed(_records("u1", "m1", "m2", service_name="EPEC"))

    assert db_path.exists()
    assert ledger.processed_subset("u1", ["m1", "m2", "m3"]) == {"m1", "m2"}
    assert ledger.count("u1") == 2


def test_ledger_is_scoped_per_user(ledger) -> None:
    ledger.mark_processed(_records("u1", "m1"))

    assert ledger.processed_subset("u2", ["m1"]) == set()
    assert ledger.count("u2") == 0


def test_duplicate_inserts_are_ignored(ledger) -> None:
    ledger.mark_processed(_records("u1", "m1", service_name="EPEC"))
    ledger.mark_processed(_records("u1", "m1", "m1", service_name=None))

    assert ledger.count("u1") == 1


def test_existing_rows_are_never_updated(ledger, mock_settings) -> None:
    ledger.mark_processed(_records("u1", "m1", service_name="EPEC"))
    ledger.mark_processed(_records("u1", "m1", service_name=None))

    conn = sqlite3.connect(mock_settings.ledger_db_path)
    try:
        row = conn.execute("SELECT service_name FROM processed_messages WHERE message_id = 'm1'").fetchone()
    finally:
        conn.close()
    assert row[0] == "EPEC"


def test_empty_inputs(ledger) -> None:
    ledger.mark_processed([])

    assert ledger.processed_subset("u1", []) == set()
    assert ledger.count("u1") == 0


def test_large_id_sets_are_chunked(ledger) -> None:
    ids = [f"m{i}" for i in range(1200)]
    ledger.mark_processed(_records("u1", *ids[::2]))

    found = ledger.processed_subset("u1", ids)

    assert len(found) == 600
    assert "m0" in found and "m1" not in found


def test_initialize_is_idempotent(ledger, mock_settings) -> None:
    ledger.mark_processed(_records("u1", "m1"))

    again = ProcessedMessageLedger(mock_settings.ledger_db_path)
    again.initialize()

    assert again.count("u1") == 1


def test_unsupported_schema_version_raises(ledger, mock_settings) -> None:
    conn = sqlite3.connect(mock_settings.ledger_db_path)
    try:
        conn.execute("UPDATE _schema_meta SET value = '99' WHERE key = 'schema_version'")
        conn.commit()
    finally:
        conn.close()

    with pytest.raises(LedgerError):
        ProcessedMessageLedger(mock_settings.ledger_db_path).initialize()
