from unittest.mock import MagicMock, patch

import redis

from tracker.services import redis_lock


def test_acquire_returns_token_when_free():
    client = MagicMock()
    client.set.return_value = True
    with patch("tracker.services.redis_lock.get_redis_client", return_value=client):
        token = redis_lock.acquire_mailbox_lock("alice@example.com", ttl_s=60)
    assert token
    args, kwargs = client.set.call_args
    assert args == ("sync_lock:alice@example.com", token)
    assert kwargs == {"nx": True, "ex": 60}


def test_acquire_returns_none_when_held():
    client = MagicMock()
    client.set.return_value = None
    with patch("tracker.services.redis_lock.get_redis_client", return_value=client):
        assert redis_lock.acquire_mailbox_lock("alice@example.com") is None


def test_acquire_without_redis_falls_back_to_local():
    assert redis_lock.acquire_mailbox_lock("alice@example.com") == ""


def test_acquire_error_falls_back_to_local():
    client = MagicMock()
    client.set.side_effect = redis.ConnectionError("gone")
    with patch("tracker.services.redis_lock.get_redis_client", return_value=client):
        assert redis_lock.acquire_mailbox_lock("alice@example.com") == ""


def test_release_only_with_token():
    client = MagicMock()
    with patch("tracker.services.redis_lock.get_redis_client", return_value=client):
        redis_lock.release_mailbox_lock("alice@example.com", "")
        client.eval.assert_not_called()
        redis_lock.release_mailbox_lock("alice@example.com", "tok")
    client.eval.assert_called_once_with(redis_lock._RELEASE_SCRIPT, 1, "sync_lock:alice@example.com", "tok")


def test_malformed_url_is_unavailable_not_fatal(monkeypatch):
    monkeypatch.setattr(redis_lock, "_redis_retry_at", 0.0)
    monkeypatch.setattr(redis_lock.settings, "redis_url", "localhost:6379")
    assert redis_lock.get_redis_client() is None
    assert redis_lock.acquire_mailbox_lock("alice@example.com") == ""


def test_connection_is_retried_after_failure(monkeypatch):
    monkeypatch.setattr(redis_lock, "_redis_retry_at", 0.0)
    client = MagicMock()
    with patch("tracker.services.redis_lock.redis.from_url", side_effect=redis.ConnectionError("down")):
        assert redis_lock.get_redis_client() is None
    # Still inside the retry window
    with patch("tracker.services.redis_lock.redis.from_url", return_value=client) as from_url:
        assert redis_lock.get_redis_client() is None
        from_url.assert_not_called()
    monkeypatch.setattr(redis_lock, "_redis_retry_at", 0.0)
    with patch("tracker.services.redis_lock.redis.from_url", return_value=client):
        assert redis_lock.get_redis_client() is client


def test_extend_reports_lost_lock():
    client = MagicMock()
    with patch("tracker.services.redis_lock.get_redis_client", return_value=client):
        client.eval.return_value = 1
        assert redis_lock.extend_mailbox_lock("alice@example.com", "tok", ttl_s=60) is True
        client.eval.assert_called_with(redis_lock._EXTEND_SCRIPT, 1, "sync_lock:alice@example.com", "tok", 60)
        client.eval.return_value = 0
        assert redis_lock.extend_mailbox_lock("alice@example.com", "tok") is False


def test_extend_without_redis_keeps_running():
    assert redis_lock.extend_mailbox_lock("alice@example.com", "") is True
    assert redis_lock.extend_mailbox_lock("alice@example.com", "tok") is True
