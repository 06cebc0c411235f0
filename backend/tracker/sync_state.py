"""In-memory sync progress per mailbox and the single-flight guard around a sync pass."""
import threading
from contextlib import contextmanager
from typing import Optional

from .errors import SyncAlreadyRunningError
from .services.redis_lock import acquire_mailbox_lock, extend_mailbox_lock, release_mailbox_lock

_DEFAULT_STATE = {
    "status": "idle",
    "message": "",
    "processed": 0,
    "total": 0,
    "error": None,
}

_state_by_mailbox: dict[str, dict] = {}
_running: set[str] = set()
_lock = threading.Lock()


def _state_for_mailbox(mailbox_id: str) -> dict:
    """Assume caller holds _lock."""
    if mailbox_id not in _state_by_mailbox:
        _state_by_mailbox[mailbox_id] = dict(_DEFAULT_STATE)
    return _state_by_mailbox[mailbox_id]


def get_state(mailbox_id: Optional[str] = None) -> dict:
    """Return current sync progress for a mailbox (default idle state if unknown)."""
    if mailbox_id is None:
        return dict(_DEFAULT_STATE)
    with _lock:
        state = _state_by_mailbox.get(mailbox_id)
        return dict(state) if state else dict(_DEFAULT_STATE)


def is_running(mailbox_id: str) -> bool:
    with _lock:
        return mailbox_id in _running


def update_progress(mailbox_id: str, processed: int, total: int, message: str = "Classifying…"):
    with _lock:
        s = _state_for_mailbox(mailbox_id)
        s["processed"] = processed
        s["total"] = total
        s["message"] = message


def _set_syncing(mailbox_id: str):
    s = _state_for_mailbox(mailbox_id)
    s["status"] = "syncing"
    s["message"] = "Connecting to Gmail…"
    s["processed"] = 0
    s["total"] = 0
    s["error"] = None


def set_error(mailbox_id: str, err: str):
    with _lock:
        s = _state_for_mailbox(mailbox_id)
        s["error"] = err


class MailboxGuard:
    """Handle for a held sync guard. renew() keeps the cross-process lock alive."""

    def __init__(self, mailbox_id: str, token: str):
        self.mailbox_id = mailbox_id
        self.token = token

    def renew(self) -> bool:
        """False when the cross-process lock was lost and another pass may have started."""
        return extend_mailbox_lock(self.mailbox_id, self.token)


def _clear_running(mailbox_id: str, message: str):
    with _lock:
        _running.discard(mailbox_id)
        s = _state_for_mailbox(mailbox_id)
        s["status"] = "idle"
        s["message"] = message


@contextmanager
def single_flight(mailbox_id: str):
    """
    Hold the per-mailbox sync guard for the duration of the block, yielding a MailboxGuard.

    Raises SyncAlreadyRunningError immediately if a pass for this mailbox is
    already running in this process or (via Redis) in another one.
    """
    with _lock:
        if mailbox_id in _running:
            raise SyncAlreadyRunningError(f"A sync is already running for {mailbox_id}")
        _running.add(mailbox_id)
        _set_syncing(mailbox_id)

    try:
        token = acquire_mailbox_lock(mailbox_id)
    except Exception:
        _clear_running(mailbox_id, "")
        raise
    if token is None:
        _clear_running(mailbox_id, "")
        raise SyncAlreadyRunningError(f"A sync is already running for {mailbox_id}")

    try:
        yield MailboxGuard(mailbox_id, token)
    finally:
        try:
            release_mailbox_lock(mailbox_id, token)
        finally:
            _clear_running(mailbox_id, "Done")
