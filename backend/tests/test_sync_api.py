"""HTTP surface: sync trigger, status endpoints, error mapping, API key."""
from unittest.mock import patch

from conftest import MAILBOX, classifier_for, job, make_email
from tracker import auth, sync_state
from tracker.errors import MailboxFetchError, SyncConfigurationError
from tracker.models import Application
from tracker.services.email_linker import link_email

FETCH = "tracker.services.sync_orchestrator.fetch_candidate_emails"
CLASSIFY = "tracker.services.sync_orchestrator.classify_email"


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_sync_returns_summary_and_persists_state(client, connected_mailbox):
    emails = [make_email("m1", "Applied", day=1), make_email("m2", "Newsletter", day=2)]
    mapping = {
        "Applied": job("application_confirmation", role="Staff Eng"),
        "Newsletter": job("unknown", company=None),
    }
    with patch(FETCH, return_value=emails), patch(CLASSIFY, side_effect=classifier_for(mapping)):
        r = client.post("/api/sync", params={"mailbox_id": MAILBOX})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["emails_scanned"] == 2
    assert body["new_applications"] == 1
    assert body["skipped"] == 1
    assert body["digest"].startswith("Scanned 2 emails")

    r = client.get("/api/sync-status", params={"mailbox_id": MAILBOX})
    status = r.json()
    assert status["status"] == "idle"
    assert status["running"] is False
    assert status["new_applications"] == 1
    assert status["last_synced_at"] is not None
    assert status["total"] == 2
    assert status["message"] == "Done"


def test_sync_not_connected_needs_auth(client):
    r = client.post("/api/sync", params={"mailbox_id": MAILBOX})
    assert r.status_code == 401
    assert r.json()["needs_auth"] is True
    assert r.json()["error_kind"] == "needs_auth"

    status = client.get("/api/sync-status", params={"mailbox_id": MAILBOX}).json()
    assert status["status"] == "error"
    assert status["error_kind"] == "needs_auth"


def test_sync_fetch_failure_is_502(client, connected_mailbox):
    with patch(FETCH, side_effect=MailboxFetchError("All Gmail queries failed")):
        r = client.post("/api/sync", params={"mailbox_id": MAILBOX})
    assert r.status_code == 502
    assert r.json()["error_kind"] == "fetch_failed"
    assert r.json()["needs_auth"] is False


def test_sync_configuration_error_is_503(client, connected_mailbox):
    with patch(FETCH, side_effect=SyncConfigurationError("GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET not set")):
        r = client.post("/api/sync", params={"mailbox_id": MAILBOX})
    assert r.status_code == 503
    assert r.json()["error_kind"] == "configuration"


def test_sync_already_running_is_409(client, connected_mailbox):
    sync_state._running.add(MAILBOX)
    with patch(FETCH) as fetch:
        r = client.post("/api/sync", params={"mailbox_id": MAILBOX})
    assert r.status_code == 409
    assert r.json()["error_kind"] == "already_running"
    fetch.assert_not_called()
    # The in-flight run owns the persisted state
    assert client.get("/api/sync-status", params={"mailbox_id": MAILBOX}).json()["status"] == "idle"


def test_connection_status(client, connected_mailbox):
    r = client.get("/api/sync", params={"mailbox_id": MAILBOX})
    assert r.json() == {"mailbox_id": MAILBOX, "connected": True, "last_sync": None}

    r = client.get("/api/sync", params={"mailbox_id": "bob@example.com"})
    assert r.json()["connected"] is False


def test_fix_emails_relinks(client, db_session):
    staff = Application(mailbox_id=MAILBOX, company="Acme", role="Staff Eng", status="applied")
    data = Application(mailbox_id=MAILBOX, company="Acme", role="Data Engineer", status="applied")
    db_session.add_all([staff, data])
    db_session.commit()
    link_email(db_session, staff.id, make_email("m1", subject="Data Engineer interview"), "interview_invitation", None)

    r = client.post("/api/sync/fix-emails", json={"mailbox_id": MAILBOX, "company": "Acme"})
    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Fixed 1 email links"
    assert body["fixes"] == [{"email": "Data Engineer interview", "from_role": "Staff Eng", "to_role": "Data Engineer"}]


def test_api_key_enforced_when_configured(client, connected_mailbox, monkeypatch):
    monkeypatch.setattr(auth.settings, "api_key", "secret")
    assert client.get("/api/sync", params={"mailbox_id": MAILBOX}).status_code == 401
    assert (
        client.get("/api/sync", params={"mailbox_id": MAILBOX}, headers={"X-API-Key": "wrong"}).status_code == 401
    )
    r = client.get("/api/sync", params={"mailbox_id": MAILBOX}, headers={"X-API-Key": "secret"})
    assert r.status_code == 200
    # Health stays open
    assert client.get("/api/health").status_code == 200


def test_fix_emails_unknown_company_is_404(client, db_session):
    db_session.add(Application(mailbox_id=MAILBOX, company="Acme", role="Staff Eng", status="applied"))
    db_session.commit()
    r = client.post("/api/sync/fix-emails", json={"mailbox_id": MAILBOX, "company": "Globex"})
    assert r.status_code == 404
    assert r.json()["detail"] == "No applications found"

    r = client.post("/api/sync/fix-emails", json={"mailbox_id": MAILBOX, "company": "Acme"})
    assert r.status_code == 200
    assert r.json()["fixes"] == []
