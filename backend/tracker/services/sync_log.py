"""Sync Log: write-once record of which emails a mailbox has already handled."""
import logging
from typing import Iterable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import SyncConfigurationError
from ..models import SyncLogEntry

logger = logging.getLogger(__name__)

RESULT_PROCESSED = "processed"
RESULT_SKIPPED = "skipped"

# Bound the IN (...) list; SQLite caps bound parameters per statement.
_LOOKUP_CHUNK = 900


def _chunk_list(items: list, chunk_size: int) -> list[list]:
    if chunk_size <= 0:
        return [items]
    return [items[i : i + chunk_size] for i in range(0, len(items), chunk_size)]


class SyncLog:
    def __init__(self, db: Session, mailbox_id: str):
        self.db = db
        self.mailbox_id = mailbox_id

    def processed_ids(self, email_ids: Iterable[str]) -> set[str]:
        """
        Bulk lookup: which of these email ids are already in the log.

        Raises SyncConfigurationError if the log cannot be read, so the run aborts
        before any email is processed.
        """
        ids = sorted({e for e in email_ids if e})
        found: set[str] = set()
        try:
            for chunk in _chunk_list(ids, _LOOKUP_CHUNK):
                rows = (
                    self.db.query(SyncLogEntry.email_id)
                    .filter(SyncLogEntry.mailbox_id == self.mailbox_id, SyncLogEntry.email_id.in_(chunk))
                    .all()
                )
                found.update(r.email_id for r in rows)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise SyncConfigurationError(f"Sync log unreadable: {e}") from e
        return found

    def has_processed(self, email_id: str) -> bool:
        return email_id in self.processed_ids([email_id])

    def record(self, email_id: str, result: str) -> None:
        """Append one entry and commit. A pre-existing entry for the email is left as is."""
        if result not in (RESULT_PROCESSED, RESULT_SKIPPED):
            raise ValueError(f"Invalid sync log result: {result}")
        self.db.add(SyncLogEntry(mailbox_id=self.mailbox_id, email_id=email_id, result=result))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.debug(f"Sync log already has {email_id}; keeping the first entry")
