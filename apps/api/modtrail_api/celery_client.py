"""Shared Celery client for the API to enqueue tasks.

Configured to match the worker's expectations (serializer, timezone, queue
routing) without importing the worker package.
"""

import logging
from typing import Optional

from celery import Celery

from modtrail_api.settings import get_settings

logger = logging.getLogger(__name__)

INTEGRITY_CHECK_TASK = "modtrail_worker.tasks.run_integrity_check"

_celery_app: Optional[Celery] = None


def get_celery_app() -> Celery:
    """Get or create singleton Celery app instance."""
    global _celery_app

    if _celery_app is None:
        settings = get_settings()

        _celery_app = Celery("modtrail_api")
        _celery_app.conf.update(
            broker_url=settings.redis_url,
            result_backend=settings.redis_url,
            task_serializer="json",
            accept_content=["json"],
            result_serializer="json",
            timezone="UTC",
            enable_utc=True,
            task_routes={INTEGRITY_CHECK_TASK: {"queue": settings.integrity_check_queue}},
        )

        logger.info("Initialized Celery client for modtrail_api")

    return _celery_app


def enqueue_integrity_check(limit: Optional[int] = None) -> str:
    """Queue an integrity check on the worker and return the task id."""
    result = get_celery_app().send_task(INTEGRITY_CHECK_TASK, kwargs={"limit": limit})
    return result.id
