"""Attach email metadata to Applications, one link per (application, email)."""
import logging
import re
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import Application, EmailLink

logger = logging.getLogger(__name__)


def extract_sender_name(from_header: str) -> Optional[str]:
    """'Jane Doe <jane@acme.com>' -> 'Jane Doe'. None when the header has no display name."""
    m = re.match(r"^([^<]+)<", from_header or "")
    if not m:
        return None
    name = m.group(1).strip().strip('"').strip()
    return name or None


def link_email(
    db: Session,
    application_id: int,
    email: dict,
    email_type: str,
    email_date: Optional[datetime],
) -> EmailLink:
    """
    Create or overwrite the link for (application_id, email id) and commit.

    Re-linking the same pair updates the existing row instead of inserting a second one.
    """
    email_id = email["id"]
    fields = {
        "from_address": (email.get("from") or "")[:255],
        "from_name": extract_sender_name(email.get("from") or ""),
        "subject": (email.get("subject") or "")[:500],
        "snippet": email.get("snippet") or None,
        "email_date": email_date,
        "email_type": email_type,
    }
    link = (
        db.query(EmailLink)
        .filter(EmailLink.application_id == application_id, EmailLink.email_id == email_id)
        .first()
    )
    if link:
        for key, value in fields.items():
            setattr(link, key, value)
    else:
        link = EmailLink(application_id=application_id, email_id=email_id, **fields)
        db.add(link)
    db.commit()
    return link


def _normalize_role(role: str) -> str:
    role = re.sub(r"[^a-z0-9\s]", " ", (role or "").lower())
    return re.sub(r"\s+", " ", role).strip()


def _role_in_text(text: str, role: str) -> bool:
    norm_role = _normalize_role(role)
    return bool(norm_role) and norm_role in _normalize_role(text)


def relink_emails_by_role(db: Session, mailbox_id: str, company: str) -> Optional[list[dict]]:
    """
    Move links whose subject names another application's role to that application.

    Repairs misattribution from the company-wide fallback match. A link is left in
    place when the target application already has the same email linked.
    Returns None when the mailbox has no application for the company.
    """
    apps = (
        db.query(Application)
        .filter(
            Application.mailbox_id == mailbox_id,
            func.lower(Application.company).contains((company or "").strip().lower()),
        )
        .all()
    )
    if not apps:
        return None
    by_id = {a.id: a for a in apps}
    links = db.query(EmailLink).filter(EmailLink.application_id.in_(list(by_id))).all()
    taken = {(link.application_id, link.email_id) for link in links}

    fixes = []
    for link in links:
        current = by_id[link.application_id]
        if current.role and _role_in_text(link.subject or "", current.role):
            continue
        for app in apps:
            if not app.role or app.id == link.application_id:
                continue
            if not _role_in_text(link.subject or "", app.role):
                continue
            if (app.id, link.email_id) in taken:
                break
            logger.info(f"Relinking {link.subject!r} from {current.role!r} to {app.role!r}")
            taken.discard((link.application_id, link.email_id))
            taken.add((app.id, link.email_id))
            link.application_id = app.id
            fixes.append({"email": link.subject, "from": current.role or "unknown", "to": app.role})
            break
    db.commit()
    return fixes
