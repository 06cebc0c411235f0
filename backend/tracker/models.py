"""SQLAlchemy models."""
from datetime import datetime
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Text,
    ForeignKey,
    Index,
    func,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Application(Base):
    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, index=True)
    mailbox_id = Column(String, nullable=False, index=True)
    company = Column(String, nullable=False)
    role = Column(String, nullable=True)  # null until an email names the role
    location = Column(String, nullable=True)
    status = Column(String, nullable=False, default="applied")  # applied, interviewing, offer, closed
    close_reason = Column(String, nullable=True)  # rejected, withdrawn, ghosted, accepted (closed only)
    applied_date = Column(DateTime, nullable=True)
    source_email_id = Column(String, nullable=True)  # provenance only
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    email_links = relationship(
        "EmailLink",
        back_populates="application",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class EmailLink(Base):
    """Email metadata attached to the Application it resolved to."""
    __tablename__ = "application_emails"

    id = Column(Integer, primary_key=True, index=True)
    application_id = Column(Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True)
    email_id = Column(String, nullable=False, index=True)
    from_address = Column(String, nullable=True)
    from_name = Column(String, nullable=True)
    subject = Column(String, nullable=True)
    snippet = Column(Text, nullable=True)
    email_date = Column(DateTime, nullable=True)
    email_type = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    application = relationship("Application", back_populates="email_links")


class SyncLogEntry(Base):
    """Append-only ledger of emails already handled (processed or skipped) per mailbox."""
    __tablename__ = "email_sync_log"

    id = Column(Integer, primary_key=True, index=True)
    mailbox_id = Column(String, nullable=False, index=True)
    email_id = Column(String, nullable=False)
    result = Column(String, nullable=False)  # processed, skipped
    processed_at = Column(DateTime, default=datetime.utcnow)


class MailboxToken(Base):
    """Stored Gmail OAuth tokens for a connected mailbox."""
    __tablename__ = "gmail_tokens"

    mailbox_id = Column(String, primary_key=True)
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SyncState(Base):
    """Last sync run outcome per mailbox."""
    __tablename__ = "sync_state"

    id = Column(Integer, primary_key=True, index=True)
    mailbox_id = Column(String, nullable=False, unique=True, index=True)
    status = Column(String, default="idle")  # idle, syncing, error
    error = Column(Text, nullable=True)
    error_kind = Column(String(32), nullable=True)  # needs_auth, configuration, fetch_failed, already_running
    last_synced_at = Column(DateTime, nullable=True)
    emails_scanned = Column(Integer, default=0, nullable=True)
    new_applications = Column(Integer, default=0, nullable=True)
    updated_applications = Column(Integer, default=0, nullable=True)
    already_processed = Column(Integer, default=0, nullable=True)
    skipped = Column(Integer, default=0, nullable=True)
    errors = Column(Integer, default=0, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# Company lookups are case-insensitive
Index("ix_applications_mailbox_company", Application.mailbox_id, func.lower(Application.company))
Index("ix_application_emails_app_email", EmailLink.application_id, EmailLink.email_id, unique=True)
Index("ix_email_sync_log_mailbox_email", SyncLogEntry.mailbox_id, SyncLogEntry.email_id, unique=True)
