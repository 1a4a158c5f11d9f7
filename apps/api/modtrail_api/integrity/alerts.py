"""Alert collaborators for the integrity check job.

Two alert shapes leave this package: an integrity violation (the ledger is
broken) and a job failure (verification could not run at all).
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol

from sqlalchemy.orm import Session

from modtrail_api.ledger.entry import format_timestamp
from modtrail_api.models import SecurityAlert
from modtrail_api.utils import metrics

logger = logging.getLogger(__name__)

INTEGRITY_VIOLATION = "audit_integrity_violation"
JOB_FAILED = "audit_integrity_job_failed"


@dataclass(frozen=True)
class IntegrityAlert:
    total_checked: int
    violations_found: int
    integrity_score: float
    last_verified_hash: Optional[str]
    checked_at: datetime

    @classmethod
    def from_report(cls, report) -> "IntegrityAlert":
        return cls(
            total_checked=report.total_checked,
            violations_found=report.violations_found,
            integrity_score=report.integrity_score,
            last_verified_hash=report.last_verified_hash,
            checked_at=report.checked_at,
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["checked_at"] = format_timestamp(self.checked_at)
        return data


@dataclass(frozen=True)
class JobFailureAlert:
    error_message: str
    attempts: int
    max_attempts: int
    queue_name: str

    def to_dict(self) -> dict:
        return asdict(self)


class AlertSink(Protocol):
    """Where alerts go. Implementations must not raise."""

    def integrity_violation(self, alert: IntegrityAlert) -> None: ...

    def job_failed(self, alert: JobFailureAlert) -> None: ...


class LoggingAlertSink:
    """Critical log records, picked up by log-based alerting."""

    def integrity_violation(self, alert: IntegrityAlert) -> None:
        metrics.alerts_sent.labels(kind=INTEGRITY_VIOLATION).inc()
        logger.critical(
            "Audit integrity violations detected - immediate attention required",
            extra={"alert": INTEGRITY_VIOLATION, **alert.to_dict()},
        )

    def job_failed(self, alert: JobFailureAlert) -> None:
        metrics.alerts_sent.labels(kind=JOB_FAILED).inc()
        logger.critical(
            "Audit integrity check job failed - system administrator attention required",
            extra={"alert": JOB_FAILED, **alert.to_dict()},
        )


class DatabaseAlertSink:
    """Persists alerts to ``security_alerts`` for the moderation dashboard."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def integrity_violation(self, alert: IntegrityAlert) -> None:
        self._store(
            INTEGRITY_VIOLATION,
            "critical",
            f"{alert.violations_found} of {alert.total_checked} audit entries failed verification",
            alert.to_dict(),
        )

    def job_failed(self, alert: JobFailureAlert) -> None:
        self._store(
            JOB_FAILED,
            "high",
            f"Audit integrity check failed after {alert.attempts} attempts: {alert.error_message}",
            alert.to_dict(),
        )

    def _store(self, alert_type: str, severity: str, message: str, metadata: dict) -> None:
        db = self.session_factory()
        try:
            db.add(SecurityAlert(type=alert_type, severity=severity, message=message, metadata_json=metadata))
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to store security alert: {e}", exc_info=True, extra={"alert": alert_type})
        finally:
            db.close()


class CompositeAlertSink:
    """Fans an alert out to several sinks; one failing sink does not stop the rest."""

    def __init__(self, *sinks: AlertSink):
        self.sinks = sinks

    def integrity_violation(self, alert: IntegrityAlert) -> None:
        for sink in self.sinks:
            try:
                sink.integrity_violation(alert)
            except Exception as e:
                logger.error(f"Failed to send integrity alert via {type(sink).__name__}: {e}", exc_info=True)

    def job_failed(self, alert: JobFailureAlert) -> None:
        for sink in self.sinks:
            try:
                sink.job_failed(alert)
            except Exception as e:
                logger.error(f"Failed to send job failure alert via {type(sink).__name__}: {e}", exc_info=True)
