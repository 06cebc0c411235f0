"""
Redis-backed per-mailbox lock.

Lets API processes and Celery workers agree that only one sync pass runs per
mailbox. Falls back to process-local locking while Redis is unreachable.
"""
import logging
import secrets
import time
from typing import Optional

import redis

from ..config import settings

logger = logging.getLogger(__name__)

_redis_client = None
# Monotonic time before which a failed connection is not retried.
_redis_retry_at = 0.0
REDIS_RETRY_INTERVAL_S = 30.0

LOCK_KEY_PREFIX = "sync_lock:"

# Delete the key only if we still own it.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""

# Push the expiry out only if we still own it.
_EXTEND_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("expire", KEYS[1], ARGV[2])
end
return 0
"""


def get_redis_client():
    """
    Get or create Redis client.
    Returns None if Redis is unavailable; the connection is retried after
    REDIS_RETRY_INTERVAL_S.
    """
    global _redis_client, _redis_retry_at

    if _redis_client is not None:
        return _redis_client

    if time.monotonic() < _redis_retry_at:
        return None

    try:
        client = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        client.ping()
    except (redis.RedisError, ValueError) as e:
        logger.warning(f"Redis unavailable: {e}. Using process-local sync lock only.")
        _redis_retry_at = time.monotonic() + REDIS_RETRY_INTERVAL_S
        return None
    _redis_client = client
    logger.debug("Redis lock backend connected")
    return _redis_client


def _drop_client():
    """Forget a client whose connection failed so the next call reconnects."""
    global _redis_client, _redis_retry_at
    _redis_client = None
    _redis_retry_at = time.monotonic() + REDIS_RETRY_INTERVAL_S


def acquire_mailbox_lock(mailbox_id: str, ttl_s: Optional[int] = None) -> Optional[str]:
    """
    Try to take the lock for a mailbox.

    Returns an owner token on success, "" when Redis is unavailable (caller relies
    on the local lock), and None when another process holds the lock.
    """
    client = get_redis_client()
    if client is None:
        return ""
    token = secrets.token_hex(16)
    try:
        acquired = client.set(
            f"{LOCK_KEY_PREFIX}{mailbox_id}",
            token,
            nx=True,
            ex=ttl_s or settings.sync_lock_ttl_s,
        )
    except redis.RedisError as e:
        logger.warning(f"Redis lock acquire failed for {mailbox_id}: {e}")
        _drop_client()
        return ""
    return token if acquired else None


def extend_mailbox_lock(mailbox_id: str, token: str, ttl_s: Optional[int] = None) -> bool:
    """
    Reset the lock's TTL while a pass is still running.

    Returns False only when Redis answers that the lock is no longer ours
    (expired or taken by another process).
    """
    if not token:
        return True
    client = get_redis_client()
    if client is None:
        return True
    try:
        extended = client.eval(
            _EXTEND_SCRIPT,
            1,
            f"{LOCK_KEY_PREFIX}{mailbox_id}",
            token,
            ttl_s or settings.sync_lock_ttl_s,
        )
    except redis.RedisError as e:
        logger.warning(f"Redis lock extend failed for {mailbox_id}: {e}")
        _drop_client()
        return True
    return bool(extended)


def release_mailbox_lock(mailbox_id: str, token: str) -> None:
    if not token:
        return
    client = get_redis_client()
    if client is None:
        return
    try:
        client.eval(_RELEASE_SCRIPT, 1, f"{LOCK_KEY_PREFIX}{mailbox_id}", token)
    except redis.RedisError as e:
        # The TTL frees the key anyway.
        logger.warning(f"Redis lock release failed for {mailbox_id}: {e}")
        _drop_client()
