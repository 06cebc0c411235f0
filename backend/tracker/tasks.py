"""Celery tasks: per-mailbox sync and the periodic sweep. DB session per task; state in DB."""
import logging

from celery import shared_task

from .database import SessionLocal
from .errors import SyncAlreadyRunningError, SyncError
from .models import MailboxToken
from .services.sync_runner import run_sync_and_record

logger = logging.getLogger(__name__)


@shared_task(bind=True, name="tracker.tasks.run_mailbox_sync")
def run_mailbox_sync(self, mailbox_id: str):
    """
    Run one sync pass for a mailbox and return its summary dict.

    A pass already in flight for the mailbox is not an error here; the task
    returns {"skipped": "already_running"}. Other run-level errors are
    recorded in sync_state and returned with their kind.
    """
    db = SessionLocal()
    try:
        summary = run_sync_and_record(db, mailbox_id)
    except SyncAlreadyRunningError:
        logger.info(f"Sync {mailbox_id} already running; skipping")
        return {"mailbox_id": mailbox_id, "skipped": "already_running"}
    except SyncError as e:
        return {"mailbox_id": mailbox_id, "error": str(e), "error_kind": e.kind}
    finally:
        db.close()
    result = summary.as_dict()
    result["mailbox_id"] = mailbox_id
    result["started_at"] = summary.started_at.isoformat()
    result["finished_at"] = summary.finished_at.isoformat() if summary.finished_at else None
    return result


@shared_task(name="tracker.tasks.sync_all_mailboxes")
def sync_all_mailboxes():
    """Queue a sync for every mailbox with stored Gmail tokens."""
    db = SessionLocal()
    try:
        mailbox_ids = [row[0] for row in db.query(MailboxToken.mailbox_id).all()]
    finally:
        db.close()
    for mailbox_id in mailbox_ids:
        run_mailbox_sync.delay(mailbox_id)
    logger.info(f"Queued sync for {len(mailbox_ids)} mailboxes")
    return {"queued": len(mailbox_ids)}
