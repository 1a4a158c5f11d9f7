"""Celery tasks for the moderation audit trail."""

import logging
from typing import Optional

import redis

from modtrail_api.integrity.scheduler import CheckState, build_scheduler
from modtrail_worker.celery_app import celery_app
from modtrail_worker.db import SessionLocal
from modtrail_worker.settings import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()
redis_client = redis.from_url(settings.redis_url, decode_responses=True)


@celery_app.task(
    bind=True,
    name="modtrail_worker.tasks.run_integrity_check",
    max_retries=max(settings.integrity_check_max_attempts - 1, 0),
)
def run_integrity_check(self, limit: Optional[int] = None):
    """Verify the audit chain; one scheduler attempt per task execution."""
    attempt = self.request.retries + 1
    log_extra = {"task": "run_integrity_check", "attempt": attempt, "limit": limit}

    scheduler = build_scheduler(SessionLocal, redis_client, settings)
    outcome = scheduler.run_attempt(limit, attempt)

    if outcome.state == CheckState.FAILED_RETRYABLE:
        logger.warning(f"Integrity check will retry in {outcome.retry_in}s", extra=log_extra)
        raise self.retry(exc=outcome.error, countdown=outcome.retry_in)

    if outcome.state == CheckState.FAILED_TERMINAL:
        logger.error("Integrity check failed permanently", extra=log_extra)
        raise outcome.error

    return outcome.report.to_dict()
