"""Gmail candidate fetch: dedupe, auth failures, partial query failures."""
import base64
from unittest.mock import MagicMock, patch

import pytest
from googleapiclient.errors import HttpError

from tracker import gmail_service
from tracker.errors import MailboxAuthError, MailboxFetchError, SyncConfigurationError
from tracker.gmail_service import (
    JOB_QUERIES,
    GmailAuthRequiredError,
    fetch_candidate_emails,
    get_gmail_service,
    message_to_email,
)


def _http_error(status: int) -> HttpError:
    resp = MagicMock()
    resp.status = status
    resp.reason = "error"
    return HttpError(resp, b"{}")


def _full_message(msg_id: str, subject: str = "Interview at Acme") -> dict:
    return {
        "id": msg_id,
        "snippet": "snippet " + msg_id,
        "payload": {
            "headers": [
                {"name": "Subject", "value": subject},
                {"name": "From", "value": "Acme <hr@acme.com>"},
                {"name": "Date", "value": "Mon, 01 Jan 2024 12:00:00 +0000"},
            ],
            "body": {"data": base64.urlsafe_b64encode(b"hello").decode()},
        },
    }


@pytest.fixture(autouse=True)
def no_backoff():
    with patch("tracker.gmail_service._with_backoff", side_effect=lambda fn: fn()):
        yield


def test_message_to_email():
    email = message_to_email(_full_message("msg123"))
    assert email == {
        "id": "msg123",
        "subject": "Interview at Acme",
        "from": "Acme <hr@acme.com>",
        "date": "Mon, 01 Jan 2024 12:00:00 +0000",
        "body": "hello",
        "snippet": "snippet msg123",
    }


def test_fetch_dedupes_across_queries():
    with patch("tracker.gmail_service.list_messages", return_value=[{"id": "a"}, {"id": "b"}]), patch(
        "tracker.gmail_service.get_message", side_effect=lambda service, msg_id: _full_message(msg_id)
    ) as get_message:
        emails = fetch_candidate_emails("access", "refresh", service=MagicMock())
    assert [e["id"] for e in emails] == ["a", "b"]
    assert get_message.call_count == 2


def test_queries_carry_date_filter():
    with patch("tracker.gmail_service.list_messages", return_value=[]) as list_messages:
        fetch_candidate_emails("access", "refresh", service=MagicMock())
    assert list_messages.call_count == len(JOB_QUERIES)
    assert all(" after:" in call.args[1] for call in list_messages.call_args_list)


def test_auth_error_raises_needs_auth():
    with patch("tracker.gmail_service.list_messages", side_effect=_http_error(401)):
        with pytest.raises(GmailAuthRequiredError) as exc:
            fetch_candidate_emails("access", "refresh", service=MagicMock())
    assert isinstance(exc.value, MailboxAuthError)
    assert exc.value.kind == "needs_auth"


def test_single_query_failure_is_skipped():
    calls = {"n": 0}

    def flaky(service, query, max_results):
        calls["n"] += 1
        if calls["n"] == 1:
            raise _http_error(500)
        return [{"id": "a"}]

    with patch("tracker.gmail_service.list_messages", side_effect=flaky), patch(
        "tracker.gmail_service.get_message", side_effect=lambda service, msg_id: _full_message(msg_id)
    ):
        emails = fetch_candidate_emails("access", "refresh", service=MagicMock())
    assert [e["id"] for e in emails] == ["a"]


def test_all_queries_failing_raises_fetch_error():
    with patch("tracker.gmail_service.list_messages", side_effect=_http_error(500)):
        with pytest.raises(MailboxFetchError):
            fetch_candidate_emails("access", "refresh", service=MagicMock())


def test_missing_client_config(monkeypatch):
    monkeypatch.setattr(gmail_service.settings, "google_client_id", "")
    with pytest.raises(SyncConfigurationError):
        get_gmail_service("access", "refresh")


def test_no_tokens_needs_auth():
    with pytest.raises(GmailAuthRequiredError):
        get_gmail_service("", None)
