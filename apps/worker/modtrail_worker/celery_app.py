"""Celery application configuration."""

from celery import Celery

from modtrail_worker.settings import get_settings

settings = get_settings()

celery_app = Celery(
    "modtrail_worker",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # Per-attempt timeout: the soft limit lets the attempt settle as a retryable failure
    task_time_limit=settings.integrity_check_timeout_seconds + 30,
    task_soft_time_limit=settings.integrity_check_timeout_seconds,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_routes={
        "modtrail_worker.tasks.run_integrity_check": {"queue": settings.integrity_check_queue},
    },
    beat_schedule={
        "audit-integrity-check": {
            "task": "modtrail_worker.tasks.run_integrity_check",
            "schedule": float(settings.integrity_check_interval_seconds),
            "kwargs": {"limit": settings.integrity_check_default_limit},
        },
    },
)

# Import tasks to register them with Celery
# This must be done after celery_app is created
from modtrail_worker import tasks  # noqa: F401, E402
