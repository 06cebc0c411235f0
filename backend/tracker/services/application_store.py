"""Application Store: case-insensitive company lookups and writes, scoped to one mailbox."""
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import Application


def _key(value: Optional[str]) -> str:
    return (value or "").strip().lower()


class ApplicationStore:
    """
    Reads and writes Application rows for a single mailbox.

    Writes flush but never commit; the orchestrator owns the transaction.
    """

    def __init__(self, db: Session, mailbox_id: str):
        self.db = db
        self.mailbox_id = mailbox_id

    def _for_company(self, company: str):
        return self.db.query(Application).filter(
            Application.mailbox_id == self.mailbox_id,
            func.lower(func.trim(Application.company)) == _key(company),
        )

    def find_by_company_and_role(self, company: str, role: str) -> Optional[Application]:
        return (
            self._for_company(company)
            .filter(func.lower(func.trim(Application.role)) == _key(role))
            .order_by(Application.created_at.desc(), Application.id.desc())
            .first()
        )

    def find_by_company_with_null_role(self, company: str) -> Optional[Application]:
        return (
            self._for_company(company)
            .filter((Application.role.is_(None)) | (func.trim(Application.role) == ""))
            .order_by(Application.created_at.desc(), Application.id.desc())
            .first()
        )

    def find_most_recent_by_company(self, company: str) -> Optional[Application]:
        return (
            self._for_company(company)
            .order_by(Application.created_at.desc(), Application.id.desc())
            .first()
        )

    def insert(
        self,
        *,
        company: str,
        role: Optional[str],
        location: Optional[str],
        status: str,
        close_reason: Optional[str],
        applied_date: Optional[datetime],
        source_email_id: str,
    ) -> Application:
        app = Application(
            mailbox_id=self.mailbox_id,
            company=company.strip()[:255],
            role=(role or "").strip()[:255] or None,
            location=(location or "").strip()[:255] or None,
            status=status,
            close_reason=close_reason,
            applied_date=applied_date,
            source_email_id=source_email_id,
        )
        self.db.add(app)
        self.db.flush()
        return app

    def update_status(self, app: Application, status: str, close_reason: Optional[str]) -> None:
        app.status = status
        app.close_reason = close_reason
        self.db.flush()

    def update_role(self, app: Application, role: str) -> None:
        """Fill a missing role. A role that is already set is never overwritten."""
        if app.role:
            return
        app.role = role.strip()[:255]
        self.db.flush()
