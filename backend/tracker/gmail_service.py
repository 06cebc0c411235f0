"""Gmail API integration: candidate job-email listing with rate limiting."""
import base64
import re
import time
import logging
from datetime import datetime, timedelta
from typing import Optional, List

from typing_extensions import TypedDict

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .config import settings
from .errors import MailboxAuthError, MailboxFetchError, SyncConfigurationError

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]

# Job-related searches (English + French), combined with a date filter.
JOB_QUERIES = [
    # English - confirmation emails
    "subject:(application OR applied OR applying)",
    'subject:("thank you for applying" OR "thanks for applying")',
    'subject:("thank you for your application" OR "thank you for your interest")',
    # French - confirmation emails
    "subject:(candidature OR postuler OR postulé)",
    'subject:("candidature bien reçue" OR "candidature reçue")',
    'subject:("merci pour votre candidature" OR "merci de votre intérêt")',
    # English - interview/process
    "subject:(interview OR screening OR recruiter)",
    "subject:(unfortunately OR regret OR rejected)",
    "subject:(offer OR congratulations OR excited to)",
    "subject:(your application OR job application)",
    "subject:(book a slot OR schedule OR calendly OR availability)",
    "subject:(next steps OR moving forward OR phone call OR video call)",
    # French - interview/process
    "subject:(entretien OR recruteur)",
    "subject:(malheureusement OR regret)",
    "subject:(offre OR félicitations)",
    # ATS platforms
    "from:(greenhouse OR lever OR workday OR icims OR jobvite OR ashby OR welcomekit OR smartrecruiters)",
]

MailboxEmail = TypedDict(
    "MailboxEmail",
    {"id": str, "subject": str, "from": str, "date": str, "body": str, "snippet": str},
)


class GmailAuthRequiredError(MailboxAuthError):
    """Raised when stored Gmail tokens are rejected and the user must sign in again."""
    pass


def _is_auth_error(e: HttpError) -> bool:
    return getattr(e.resp, "status", None) in (401, 403)


def get_gmail_service(access_token: str, refresh_token: Optional[str]):
    """Build a Gmail API service from a stored access/refresh token pair."""
    if not settings.google_client_id or not settings.google_client_secret:
        raise SyncConfigurationError("GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET not set")
    if not access_token and not refresh_token:
        raise GmailAuthRequiredError("Gmail not connected")
    creds = Credentials(
        token=access_token or None,
        refresh_token=refresh_token or None,
        token_uri=settings.google_token_uri,
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        scopes=SCOPES,
    )
    if not creds.token:
        try:
            creds.refresh(Request())
        except RefreshError as e:
            raise GmailAuthRequiredError("Gmail token refresh failed. Reconnect Gmail and try again.") from e
    return build("gmail", "v1", credentials=creds, cache_discovery=False)


# Rate limiting: exponential backoff
def _with_backoff(fn, max_retries: int = 5):
    for attempt in range(max_retries):
        try:
            return fn()
        except HttpError as e:
            if e.resp.status in (429, 500, 503) and attempt < max_retries - 1:
                time.sleep(2 ** attempt)
                continue
            raise


def list_messages(service, query: str, max_results: int) -> List[dict]:
    result = _with_backoff(
        lambda: service.users()
        .messages()
        .list(userId="me", q=query, maxResults=max_results)
        .execute()
    )
    return result.get("messages", [])


def get_message(service, msg_id: str) -> dict:
    """Get full message by ID."""
    return _with_backoff(
        lambda: service.users()
        .messages()
        .get(userId="me", id=msg_id, format="full")
        .execute()
    )


def _decode(data: str) -> str:
    return base64.urlsafe_b64decode(data).decode("utf-8", errors="replace")


def _get_body(payload: dict) -> str:
    if payload.get("body", {}).get("data"):
        return _decode(payload["body"]["data"])
    for part in payload.get("parts", []):
        if part.get("mimeType") == "text/plain" and part.get("body", {}).get("data"):
            return _decode(part["body"]["data"])
    for part in payload.get("parts", []):
        if part.get("mimeType") == "text/html" and part.get("body", {}).get("data"):
            return re.sub(r"<[^>]+>", " ", _decode(part["body"]["data"]))
    return ""


def _get_headers(message: dict) -> dict:
    return {h["name"].lower(): h["value"] for h in message.get("payload", {}).get("headers", [])}


def message_to_email(message: dict) -> MailboxEmail:
    """Flatten a full Gmail message into the fields the sync engine uses."""
    headers = _get_headers(message)
    body = _get_body(message.get("payload", {}))
    return {
        "id": message.get("id", ""),
        "subject": headers.get("subject", ""),
        "from": headers.get("from", ""),
        "date": headers.get("date", ""),
        "body": body[: settings.gmail_body_max_chars],
        "snippet": message.get("snippet", ""),
    }


def _date_filter(after_date: Optional[datetime]) -> str:
    after = after_date or (datetime.utcnow() - timedelta(days=max(1, settings.gmail_days_back)))
    return f" after:{after.strftime('%Y/%m/%d')}"


def fetch_candidate_emails(
    access_token: str,
    refresh_token: Optional[str],
    after_date: Optional[datetime] = None,
    service=None,
) -> List[MailboxEmail]:
    """
    Run every job query and return unique candidate emails.

    Auth failures raise GmailAuthRequiredError. A failing query or message is
    logged and skipped; if every query fails, MailboxFetchError is raised.
    """
    if service is None:
        service = get_gmail_service(access_token, refresh_token)
    date_filter = _date_filter(after_date)
    emails: List[MailboxEmail] = []
    seen_ids: set[str] = set()
    query_errors: List[str] = []

    logger.info(f"Starting Gmail fetch with {len(JOB_QUERIES)} queries")
    for query in JOB_QUERIES:
        try:
            messages = list_messages(service, query + date_filter, settings.gmail_max_results_per_query)
        except RefreshError as e:
            raise GmailAuthRequiredError("Gmail token refresh failed. Reconnect Gmail and try again.") from e
        except HttpError as e:
            if _is_auth_error(e):
                raise GmailAuthRequiredError(f"Gmail rejected credentials: {e}") from e
            logger.error(f"Query failed ({query}): {e}")
            query_errors.append(str(e))
            continue

        for msg in messages:
            msg_id = msg.get("id")
            if not msg_id or msg_id in seen_ids:
                continue
            try:
                full = get_message(service, msg_id)
            except HttpError as e:
                if _is_auth_error(e):
                    raise GmailAuthRequiredError(f"Gmail rejected credentials: {e}") from e
                logger.warning(f"Failed to fetch message {msg_id}: {e}")
                continue
            seen_ids.add(msg_id)
            emails.append(message_to_email(full))

    if query_errors and len(query_errors) == len(JOB_QUERIES):
        raise MailboxFetchError(f"All Gmail queries failed: {query_errors[0]}")

    logger.info(f"Gmail fetch complete: {len(emails)} unique emails")
    return emails
