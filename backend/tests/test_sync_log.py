"""Sync log: bulk lookup, write-once entries, unreadable log is a run-level error."""
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from conftest import MAILBOX
from tracker.errors import SyncConfigurationError
from tracker.models import SyncLogEntry
from tracker.services import sync_log as sl
from tracker.services.sync_log import RESULT_PROCESSED, RESULT_SKIPPED, SyncLog


def test_chunk_list_splits_evenly():
    items = list(range(10))
    assert sl._chunk_list(items, 3) == [[0, 1, 2], [3, 4, 5], [6, 7, 8], [9]]


def test_processed_ids_bulk_lookup(db_session):
    log = SyncLog(db_session, MAILBOX)
    log.record("m1", RESULT_PROCESSED)
    log.record("m2", RESULT_SKIPPED)
    SyncLog(db_session, "bob@example.com").record("m3", RESULT_PROCESSED)

    assert log.processed_ids(["m1", "m2", "m3", "m4"]) == {"m1", "m2"}
    assert log.has_processed("m1")
    assert not log.has_processed("m3")


def test_processed_ids_spans_chunks(db_session, monkeypatch):
    monkeypatch.setattr(sl, "_LOOKUP_CHUNK", 2)
    log = SyncLog(db_session, MAILBOX)
    for i in range(5):
        log.record(f"m{i}", RESULT_PROCESSED)
    assert log.processed_ids([f"m{i}" for i in range(7)]) == {f"m{i}" for i in range(5)}


def test_record_is_write_once(db_session):
    log = SyncLog(db_session, MAILBOX)
    log.record("m1", RESULT_SKIPPED)
    log.record("m1", RESULT_PROCESSED)
    rows = db_session.query(SyncLogEntry).filter(SyncLogEntry.email_id == "m1").all()
    assert len(rows) == 1
    assert rows[0].result == RESULT_SKIPPED


def test_record_rejects_unknown_result(db_session):
    with pytest.raises(ValueError):
        SyncLog(db_session, MAILBOX).record("m1", "failed")


def test_unreadable_log_is_configuration_error():
    db = MagicMock()
    db.query.side_effect = OperationalError("SELECT", {}, Exception("no such table"))
    with pytest.raises(SyncConfigurationError):
        SyncLog(db, MAILBOX).processed_ids(["m1"])
    db.rollback.assert_called_once()
