"""Pydantic schemas for API."""
from datetime import datetime
from pydantic import BaseModel
from typing import Optional, List


class SyncSummaryResponse(BaseModel):
    success: bool = True
    mailbox_id: str
    emails_scanned: int
    new_applications: int
    updated_applications: int
    already_processed: int
    skipped: int
    errors: int = 0
    link_failures: int = 0
    timed_out: bool = False
    lock_lost: bool = False
    digest: str


class SyncErrorResponse(BaseModel):
    error: str
    error_kind: str
    needs_auth: bool = False


class ConnectionStatusResponse(BaseModel):
    mailbox_id: str
    connected: bool
    last_sync: Optional[datetime] = None


class SyncStatusResponse(BaseModel):
    mailbox_id: str
    status: str
    running: bool = False
    processed: int = 0
    total: int = 0
    message: str = ""
    error: Optional[str] = None
    error_kind: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    emails_scanned: int = 0
    new_applications: int = 0
    updated_applications: int = 0
    already_processed: int = 0
    skipped: int = 0
    errors: int = 0


class RelinkRequest(BaseModel):
    mailbox_id: str
    company: str


class RelinkFix(BaseModel):
    email: Optional[str] = None
    from_role: str
    to_role: str


class RelinkResponse(BaseModel):
    success: bool = True
    message: str
    fixes: List[RelinkFix]
