"""Inbox sync pass: fetch, skip known emails, classify, resolve, transition, link, log."""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..config import settings
from ..email_classifier import Classification, classify_email
from ..email_filters import is_calendar_artifact
from ..errors import MailboxAuthError, MailboxFetchError, SyncConfigurationError, SyncError
from ..gmail_service import MailboxEmail, fetch_candidate_emails
from ..models import MailboxToken
from ..status_machine import JOB_EMAIL_TYPES, decide_transition, initial_transition
from ..sync_state import MailboxGuard, single_flight, update_progress
from .application_store import ApplicationStore
from .email_linker import link_email
from .entity_resolver import resolve_application
from .sync_log import RESULT_PROCESSED, RESULT_SKIPPED, SyncLog

logger = logging.getLogger(__name__)

ProgressCb = Callable[[int, int, str], None]
ClassifiedEmail = Tuple[MailboxEmail, Optional[Classification]]

OUTCOME_CREATED = "created"
OUTCOME_UPDATED = "updated"
OUTCOME_UNCHANGED = "unchanged"
OUTCOME_SKIPPED = "skipped"
OUTCOME_FAILED = "failed"


@dataclass
class SyncSummary:
    emails_scanned: int = 0
    new_applications: int = 0
    updated_applications: int = 0
    already_processed: int = 0
    skipped: int = 0
    errors: int = 0
    link_failures: int = 0
    timed_out: bool = False
    lock_lost: bool = False
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    def as_dict(self) -> dict:
        return asdict(self)

    def digest(self) -> str:
        text = (
            f"Scanned {self.emails_scanned} emails: {self.new_applications} new, "
            f"{self.updated_applications} updated, {self.already_processed} already processed, "
            f"{self.skipped} skipped"
        )
        if self.errors:
            text += f", {self.errors} failed (will retry)"
        if self.timed_out:
            text += " (stopped early: time limit reached)"
        if self.lock_lost:
            text += " (stopped early: sync lock lost)"
        return text


def _parse_email_date(value: str) -> Optional[datetime]:
    """RFC 2822 or ISO date -> naive UTC datetime."""
    value = (value or "").strip()
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _date_key(email: MailboxEmail):
    received = _parse_email_date(email.get("date", ""))
    return (received is None, received or datetime.min)


def _chronological(emails: List[MailboxEmail]) -> List[MailboxEmail]:
    """Oldest first; emails with no parseable date keep their order at the end."""
    return sorted(emails, key=_date_key)


def _chunk_list(items: list, chunk_size: int) -> list[list]:
    if chunk_size <= 0:
        return [items]
    return [items[i : i + chunk_size] for i in range(0, len(items), chunk_size)]


def _classify_one(email: MailboxEmail) -> ClassifiedEmail:
    try:
        return email, classify_email(email.get("subject", ""), email.get("from", ""), email.get("body", ""))
    except Exception as e:
        logger.error(f"Classification failed for {email['id']}: {str(e)[:200]}")
        return email, None


def _classify_batch(executor: Optional[ThreadPoolExecutor], emails: List[MailboxEmail]) -> List[ClassifiedEmail]:
    """Classify in parallel, return results in input order."""
    if executor is None:
        return [_classify_one(e) for e in emails]
    return list(executor.map(_classify_one, emails))


def is_actionable(c: Classification) -> bool:
    """Only confident job emails naming a company may create or change an Application."""
    return (
        c.confidence >= settings.sync_min_confidence
        and c.type in JOB_EMAIL_TYPES
        and bool(c.company)
    )


def _record(sync_log: SyncLog, email_id: str, result: str) -> None:
    """Write the log entry. A failure here is logged; the email will simply be seen again next run."""
    try:
        sync_log.record(email_id, result)
    except Exception as e:
        sync_log.db.rollback()
        logger.error(f"Sync log write failed for {email_id} ({result}): {str(e)[:200]}")


def _apply_email(
    db: Session,
    store: ApplicationStore,
    sync_log: SyncLog,
    email: MailboxEmail,
    c: Classification,
    summary: SyncSummary,
) -> str:
    """Fold one classified email into the store. Returns the outcome."""
    email_id = email["id"]
    if not is_actionable(c):
        logger.info(
            f"Skipping {email_id}: type={c.type} confidence={c.confidence:.2f} company={c.company!r}"
        )
        _record(sync_log, email_id, RESULT_SKIPPED)
        return OUTCOME_SKIPPED

    received = _parse_email_date(email.get("date", ""))
    try:
        resolution = resolve_application(store, c)
        if resolution is not None:
            app = resolution.application
            transition = decide_transition(app.status, c.type)
            if transition is not None:
                logger.info(f"Application {app.id} ({app.company}): {app.status} -> {transition.status}")
                store.update_status(app, transition.status, transition.close_reason)
                outcome = OUTCOME_UPDATED
            else:
                logger.info(f"Application {app.id} ({app.company}): stays {app.status} on {c.type}")
                outcome = OUTCOME_UNCHANGED
        else:
            initial = initial_transition(c.type)
            app = store.insert(
                company=c.company,
                role=c.role,
                location=c.location,
                status=initial.status,
                close_reason=initial.close_reason,
                applied_date=received or datetime.utcnow(),
                source_email_id=email_id,
            )
            logger.info(f"Created application {app.id}: {c.company} - {c.role or 'no role'} ({initial.status})")
            outcome = OUTCOME_CREATED
        app_id = app.id
        db.commit()
    except Exception as e:
        # No sync log entry: the email is retried on the next run.
        db.rollback()
        logger.error(f"Store write failed for {email_id} ({c.company}): {str(e)[:200]}")
        return OUTCOME_FAILED

    try:
        link_email(db, app_id, email, c.type, received)
    except Exception as e:
        db.rollback()
        summary.link_failures += 1
        logger.warning(f"Failed to link email {email_id} to application {app_id}: {str(e)[:200]}")

    _record(sync_log, email_id, RESULT_PROCESSED)
    return outcome


def _load_token(db: Session, mailbox_id: str) -> MailboxToken:
    token = db.query(MailboxToken).filter(MailboxToken.mailbox_id == mailbox_id).first()
    if token is None or not (token.access_token or token.refresh_token):
        raise MailboxAuthError(f"Gmail not connected for {mailbox_id}")
    return token


def _fetch(db: Session, mailbox_id: str, after_date: Optional[datetime]) -> List[MailboxEmail]:
    token = _load_token(db, mailbox_id)
    try:
        emails = fetch_candidate_emails(token.access_token, token.refresh_token, after_date=after_date)
    except SyncError:
        raise
    except Exception as e:
        raise MailboxFetchError(f"Gmail fetch failed: {e}") from e

    unique: List[MailboxEmail] = []
    seen: set[str] = set()
    for email in emails:
        if email.get("id") and email["id"] not in seen:
            seen.add(email["id"])
            unique.append(email)
    return unique


def _run_pass(
    db: Session,
    mailbox_id: str,
    on_progress: Optional[ProgressCb],
    after_date: Optional[datetime],
    guard: MailboxGuard,
) -> SyncSummary:
    def progress(processed: int, total: int, message: str):
        update_progress(mailbox_id, processed, total, message)
        if on_progress:
            on_progress(processed, total, message)

    if not settings.openai_api_key:
        raise SyncConfigurationError("OPENAI_API_KEY not set; email classification unavailable")

    started_at = datetime.utcnow()
    progress(0, 0, "Connecting to Gmail…")
    emails = _fetch(db, mailbox_id, after_date)
    sync_log = SyncLog(db, mailbox_id)
    done = sync_log.processed_ids(e["id"] for e in emails)

    summary = SyncSummary(emails_scanned=len(emails), started_at=started_at)
    total = len(emails)
    logger.info(f"=== SYNC {mailbox_id}: {total} emails, {len(done)} already processed ===")

    candidates: List[MailboxEmail] = []
    for email in emails:
        if email["id"] in done:
            summary.already_processed += 1
            continue
        if is_calendar_artifact(email.get("subject", "")):
            logger.info(f"Skipping calendar notification: {email.get('subject')!r}")
            _record(sync_log, email["id"], RESULT_SKIPPED)
            summary.skipped += 1
            continue
        candidates.append(email)

    handled = total - len(candidates)
    progress(handled, total, "Classifying…")

    store = ApplicationStore(db, mailbox_id)
    deadline = time.monotonic() + settings.sync_run_timeout_s if settings.sync_run_timeout_s > 0 else None
    workers = max(1, settings.classification_max_concurrency)
    executor = ThreadPoolExecutor(max_workers=workers) if workers > 1 else None
    try:
        for chunk in _chunk_list(_chronological(candidates), workers):
            if deadline is not None and time.monotonic() > deadline:
                summary.timed_out = True
                logger.warning(f"Sync {mailbox_id}: time limit reached with {total - handled} emails left")
                break
            if not guard.renew():
                summary.lock_lost = True
                logger.warning(f"Sync {mailbox_id}: lock lost with {total - handled} emails left")
                break
            # Single writer: classification runs in the pool, store writes stay on this thread in order.
            for email, classification in _classify_batch(executor, chunk):
                handled += 1
                if classification is None:
                    summary.errors += 1
                else:
                    outcome = _apply_email(db, store, sync_log, email, classification, summary)
                    if outcome == OUTCOME_CREATED:
                        summary.new_applications += 1
                    elif outcome == OUTCOME_UPDATED:
                        summary.updated_applications += 1
                    elif outcome == OUTCOME_SKIPPED:
                        summary.skipped += 1
                    elif outcome == OUTCOME_FAILED:
                        summary.errors += 1
                progress(handled, total, "Classifying…")
    finally:
        if executor is not None:
            executor.shutdown(wait=True)

    summary.finished_at = datetime.utcnow()
    logger.info(f"=== SYNC COMPLETE ({mailbox_id}) ===")
    logger.info(summary.digest())
    if summary.link_failures:
        logger.info(f"Email links failed: {summary.link_failures}")
    return summary


def run_sync(
    db: Session,
    mailbox_id: str,
    on_progress: Optional[ProgressCb] = None,
    after_date: Optional[datetime] = None,
) -> SyncSummary:
    """
    Run one sync pass for a mailbox and return its summary.

    Raises SyncAlreadyRunningError when a pass for the mailbox is in flight, and
    MailboxAuthError / SyncConfigurationError / MailboxFetchError for run-level
    failures; those are raised before any email is processed. Per-email failures
    never abort the pass.
    """
    with single_flight(mailbox_id) as guard:
        return _run_pass(db, mailbox_id, on_progress, after_date, guard)
