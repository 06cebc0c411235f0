"""Sync run state in DB (SyncState model) per mailbox."""
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session

from .models import SyncState

_COUNT_FIELDS = (
    "emails_scanned",
    "new_applications",
    "updated_applications",
    "already_processed",
    "skipped",
    "errors",
)


def get_sync_state(db: Session, mailbox_id: str) -> Optional[SyncState]:
    return db.query(SyncState).filter(SyncState.mailbox_id == mailbox_id).first()


def _row_for(db: Session, mailbox_id: str) -> SyncState:
    row = get_sync_state(db, mailbox_id)
    if row is None:
        row = SyncState(mailbox_id=mailbox_id, status="idle")
        db.add(row)
    return row


def set_sync_state_syncing(db: Session, mailbox_id: str):
    row = _row_for(db, mailbox_id)
    row.status = "syncing"
    row.error = None
    row.error_kind = None
    row.updated_at = datetime.utcnow()
    db.commit()


def set_sync_state_idle(db: Session, mailbox_id: str, result: dict):
    """Persist a finished run's counts and mark the mailbox as synced."""
    now = datetime.utcnow()
    row = _row_for(db, mailbox_id)
    row.status = "idle"
    row.error = None
    row.error_kind = None
    row.last_synced_at = now
    for field in _COUNT_FIELDS:
        setattr(row, field, int(result.get(field, 0) or 0))
    row.updated_at = now
    db.commit()


def set_sync_state_error(db: Session, mailbox_id: str, error: str, kind: Optional[str] = None):
    row = _row_for(db, mailbox_id)
    row.status = "error"
    row.error = error
    row.error_kind = kind
    row.updated_at = datetime.utcnow()
    db.commit()


def get_state_from_db(db: Session, mailbox_id: str) -> dict:
    """Return the last persisted run state for a mailbox. Used by GET /api/sync-status."""
    state = {
        "mailbox_id": mailbox_id,
        "status": "idle",
        "error": None,
        "error_kind": None,
        "last_synced_at": None,
    }
    state.update({field: 0 for field in _COUNT_FIELDS})
    row = get_sync_state(db, mailbox_id)
    if not row:
        return state
    state.update(
        {
            "status": row.status or "idle",
            "error": row.error,
            "error_kind": row.error_kind,
            "last_synced_at": row.last_synced_at,
        }
    )
    for field in _COUNT_FIELDS:
        value = getattr(row, field)
        state[field] = value if value is not None else 0
    return state
