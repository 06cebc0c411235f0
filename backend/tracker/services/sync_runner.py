"""Run a sync pass and persist its outcome to the per-mailbox SyncState row."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..errors import SyncAlreadyRunningError, SyncError
from ..sync_state import set_error
from ..sync_state_db import set_sync_state_error, set_sync_state_idle, set_sync_state_syncing
from .sync_orchestrator import ProgressCb, SyncSummary, run_sync

logger = logging.getLogger(__name__)


def run_sync_and_record(
    db: Session,
    mailbox_id: str,
    on_progress: Optional[ProgressCb] = None,
    after_date: Optional[datetime] = None,
) -> SyncSummary:
    """
    run_sync plus DB state: syncing once the guard is held, idle with counts on
    success, error with its kind on a run-level failure. Errors are re-raised.
    """
    started = False

    def progress(processed: int, total: int, message: str):
        nonlocal started
        if not started:
            started = True
            set_sync_state_syncing(db, mailbox_id)
        if on_progress:
            on_progress(processed, total, message)

    try:
        summary = run_sync(db, mailbox_id, on_progress=progress, after_date=after_date)
    except SyncAlreadyRunningError:
        # The running pass owns the state row.
        raise
    except SyncError as e:
        logger.error(f"Sync {mailbox_id} failed ({e.kind}): {e}")
        db.rollback()
        set_error(mailbox_id, str(e))
        set_sync_state_error(db, mailbox_id, str(e), e.kind)
        raise
    except Exception as e:
        logger.exception(f"Sync {mailbox_id} crashed")
        db.rollback()
        set_error(mailbox_id, str(e))
        set_sync_state_error(db, mailbox_id, str(e), SyncError.kind)
        raise
    set_sync_state_idle(db, mailbox_id, summary.as_dict())
    return summary
