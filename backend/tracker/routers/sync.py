"""Email sync API: POST sync (run a pass), GET connection status, GET sync-status, POST fix-emails."""
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..auth import require_api_key
from ..database import get_sync_db
from ..errors import (
    MailboxAuthError,
    MailboxFetchError,
    SyncAlreadyRunningError,
    SyncConfigurationError,
    SyncError,
)
from ..models import MailboxToken
from ..schemas import (
    ConnectionStatusResponse,
    RelinkFix,
    RelinkRequest,
    RelinkResponse,
    SyncErrorResponse,
    SyncStatusResponse,
    SyncSummaryResponse,
)
from ..services.email_linker import relink_emails_by_role
from ..services.sync_runner import run_sync_and_record
from ..sync_state import get_state, is_running
from ..sync_state_db import get_state_from_db, get_sync_state

router = APIRouter(prefix="/api", tags=["sync"], dependencies=[Depends(require_api_key)])

_ERROR_STATUS = {
    MailboxAuthError: 401,
    SyncAlreadyRunningError: 409,
    MailboxFetchError: 502,
    SyncConfigurationError: 503,
}


def _error_response(e: SyncError) -> JSONResponse:
    status_code = next((code for cls, code in _ERROR_STATUS.items() if isinstance(e, cls)), 500)
    body = SyncErrorResponse(
        error=str(e),
        error_kind=e.kind,
        needs_auth=isinstance(e, MailboxAuthError),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


@router.post("/sync", response_model=SyncSummaryResponse, responses={401: {"model": SyncErrorResponse}})
def sync_mailbox(mailbox_id: str, db: Session = Depends(get_sync_db)):
    """Run one sync pass for the mailbox and return the summary. 409 if a pass is already running."""
    try:
        summary = run_sync_and_record(db, mailbox_id)
    except SyncError as e:
        return _error_response(e)
    return SyncSummaryResponse(
        mailbox_id=mailbox_id,
        emails_scanned=summary.emails_scanned,
        new_applications=summary.new_applications,
        updated_applications=summary.updated_applications,
        already_processed=summary.already_processed,
        skipped=summary.skipped,
        errors=summary.errors,
        link_failures=summary.link_failures,
        timed_out=summary.timed_out,
        lock_lost=summary.lock_lost,
        digest=summary.digest(),
    )


@router.get("/sync", response_model=ConnectionStatusResponse)
def connection_status(mailbox_id: str, db: Session = Depends(get_sync_db)):
    """Whether the mailbox has stored Gmail tokens, and when it last synced."""
    token = db.query(MailboxToken).filter(MailboxToken.mailbox_id == mailbox_id).first()
    row = get_sync_state(db, mailbox_id)
    return ConnectionStatusResponse(
        mailbox_id=mailbox_id,
        connected=bool(token and (token.access_token or token.refresh_token)),
        last_sync=row.last_synced_at if row else None,
    )


@router.get("/sync-status", response_model=SyncStatusResponse)
def sync_status(mailbox_id: str, db: Session = Depends(get_sync_db)):
    """Last persisted run state for the mailbox, plus whether a pass is running in this process."""
    state = get_state_from_db(db, mailbox_id)
    progress = get_state(mailbox_id)
    return SyncStatusResponse(
        running=is_running(mailbox_id),
        processed=progress["processed"],
        total=progress["total"],
        message=progress["message"],
        **state,
    )


@router.post("/sync/fix-emails", response_model=RelinkResponse)
def fix_email_links(payload: RelinkRequest, db: Session = Depends(get_sync_db)):
    """Re-link emails to the application whose role their subject names."""
    fixes = relink_emails_by_role(db, payload.mailbox_id, payload.company)
    if fixes is None:
        raise HTTPException(status_code=404, detail="No applications found")
    return RelinkResponse(
        message=f"Fixed {len(fixes)} email links",
        fixes=[RelinkFix(email=f["email"], from_role=f["from"], to_role=f["to"]) for f in fixes],
    )
