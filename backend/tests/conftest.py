"""Pytest fixtures: in-memory DB, client, mailbox helpers."""
import os
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("API_KEY", "")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tracker import sync_state
from tracker.database import get_sync_db
from tracker.email_classifier import Classification
from tracker.main import app
from tracker.models import Base, MailboxToken
from tracker.services import redis_lock

MAILBOX = "alice@example.com"


@pytest.fixture(autouse=True)
def local_lock_only(monkeypatch):
    """Keep tests off Redis and reset in-memory sync state between tests."""
    monkeypatch.setattr(redis_lock, "_redis_retry_at", float("inf"))
    monkeypatch.setattr(redis_lock, "_redis_client", None)
    sync_state._state_by_mailbox.clear()
    sync_state._running.clear()
    yield
    sync_state._state_by_mailbox.clear()
    sync_state._running.clear()


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db_session(db_engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def connected_mailbox(db_session):
    db_session.add(MailboxToken(mailbox_id=MAILBOX, access_token="access", refresh_token="refresh"))
    db_session.commit()
    return MAILBOX


@pytest.fixture
def client(db_session):
    def override_get_sync_db():
        yield db_session

    app.dependency_overrides[get_sync_db] = override_get_sync_db
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()


def make_email(email_id: str, subject: str = "Your application", day: int = 1, sender: str = "Jobs <jobs@acme.com>"):
    return {
        "id": email_id,
        "subject": subject,
        "from": sender,
        "date": f"Mon, {day:02d} Jan 2024 12:00:00 +0000",
        "body": "Thanks for your interest.",
        "snippet": subject,
    }


def classifier_for(mapping: dict):
    """classify_email stand-in that answers by subject."""

    def classify(subject, sender, body):
        return mapping[subject]

    return classify


def job(type_: str, company="Acme", role=None, confidence=0.9):
    return Classification(type=type_, company=company, role=role, confidence=confidence)
