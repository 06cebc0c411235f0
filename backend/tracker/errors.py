"""Exceptions raised by the sync engine.

Run-level errors abort a pass before any email is touched; ClassificationError is
per-email and is isolated by the orchestrator.
"""


class SyncError(Exception):
    """Base class for sync engine errors."""

    kind = "sync_failed"


class MailboxAuthError(SyncError):
    """Mailbox is not connected or its token refresh was rejected. User must re-authorize."""

    kind = "needs_auth"


class SyncConfigurationError(SyncError):
    """Engine is misconfigured (missing OAuth client, classifier key, unreadable sync log)."""

    kind = "configuration"


class MailboxFetchError(SyncError):
    """Listing candidate emails failed for a non-auth reason."""

    kind = "fetch_failed"


class SyncAlreadyRunningError(SyncError):
    """Another pass for the same mailbox holds the single-flight guard."""

    kind = "already_running"


class ClassificationError(Exception):
    """Classifier call failed (timeout, API error). The email is retried on the next run."""
