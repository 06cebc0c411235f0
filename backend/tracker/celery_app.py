"""Celery app for background mailbox sync. Redis broker; beat runs the periodic sweep."""
import logging

from celery import Celery

from .config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

celery_app = Celery(
    "job_tracker_sync",
    broker=settings.celery_broker,
    backend=settings.redis_url,
    include=["tracker.tasks"],
)
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    beat_schedule={
        "sync-all-mailboxes": {
            "task": "tracker.tasks.sync_all_mailboxes",
            "schedule": max(1, settings.sync_interval_minutes) * 60.0,
        },
    },
)
