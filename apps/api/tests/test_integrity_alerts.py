"""Tests for integrity alert sinks."""

import logging
from datetime import datetime

from modtrail_api.integrity.alerts import (
    CompositeAlertSink,
    DatabaseAlertSink,
    IntegrityAlert,
    JobFailureAlert,
    LoggingAlertSink,
)
from modtrail_api.models import SecurityAlert

INTEGRITY = IntegrityAlert(
    total_checked=100,
    violations_found=2,
    integrity_score=0.98,
    last_verified_hash="e" * 64,
    checked_at=datetime(2024, 3, 1, 3, 0),
)

JOB_FAILURE = JobFailureAlert(
    error_message="connection refused",
    attempts=3,
    max_attempts=3,
    queue_name="moderation",
)


class BrokenSink:
    def integrity_violation(self, alert):
        raise RuntimeError("pager is down")

    def job_failed(self, alert):
        raise RuntimeError("pager is down")


def test_integrity_alert_payload():
    assert INTEGRITY.to_dict() == {
        "total_checked": 100,
        "violations_found": 2,
        "integrity_score": 0.98,
        "last_verified_hash": "e" * 64,
        "checked_at": "2024-03-01T03:00:00.000000",
    }


def test_job_failure_payload():
    assert JOB_FAILURE.to_dict() == {
        "error_message": "connection refused",
        "attempts": 3,
        "max_attempts": 3,
        "queue_name": "moderation",
    }


def test_logging_sink_logs_critical(caplog):
    with caplog.at_level(logging.CRITICAL, logger="modtrail_api.integrity.alerts"):
        LoggingAlertSink().integrity_violation(INTEGRITY)
        LoggingAlertSink().job_failed(JOB_FAILURE)

    assert [r.levelno for r in caplog.records] == [logging.CRITICAL, logging.CRITICAL]
    assert caplog.records[0].violations_found == 2
    assert caplog.records[1].queue_name == "moderation"


def test_database_sink_persists_alerts(db, session_factory):
    sink = DatabaseAlertSink(session_factory)

    sink.integrity_violation(INTEGRITY)
    sink.job_failed(JOB_FAILURE)

    alerts = db.query(SecurityAlert).order_by(SecurityAlert.id).all()
    assert [(a.type, a.severity) for a in alerts] == [
        ("audit_integrity_violation", "critical"),
        ("audit_integrity_job_failed", "high"),
    ]
    assert alerts[0].message == "2 of 100 audit entries failed verification"
    assert alerts[1].metadata_json["attempts"] == 3
    assert alerts[0].resolved_at is None


def test_composite_sink_keeps_going_past_a_broken_sink(alert_sink):
    sink = CompositeAlertSink(BrokenSink(), alert_sink)

    sink.integrity_violation(INTEGRITY)
    sink.job_failed(JOB_FAILURE)

    assert alert_sink.integrity_alerts == [INTEGRITY]
    assert alert_sink.job_failures == [JOB_FAILURE]
