"""Integrity check job: retry policy, report lifecycle and alert decisions.

A run moves through ``scheduled -> running`` and ends in ``succeeded``
(with or without violations), ``failed_retryable`` (another attempt is due
after the backoff) or ``failed_terminal`` (attempt budget spent). A ledger
with violations is a succeeded run that is flagged, not a failure.
"""

import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import Session

from modtrail_api.integrity.alerts import AlertSink, IntegrityAlert, JobFailureAlert
from modtrail_api.integrity.store import ReportStore
from modtrail_api.integrity.verifier import IntegrityVerifier, VerificationReport
from modtrail_api.ledger.exceptions import VerificationTimeoutError
from modtrail_api.ledger.service import LedgerService
from modtrail_api.utils import metrics

logger = logging.getLogger(__name__)

# verify(limit, deadline) -> report
VerifyCallable = Callable[[Optional[int], Optional[float]], VerificationReport]


class CheckState(str, enum.Enum):
    SCHEDULED = "scheduled"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED_RETRYABLE = "failed_retryable"
    FAILED_TERMINAL = "failed_terminal"


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget for one integrity check."""

    max_attempts: int = 3
    backoff_seconds: int = 60
    timeout_seconds: int = 300
    queue_name: str = "moderation"

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.integrity_check_max_attempts,
            backoff_seconds=settings.integrity_check_retry_backoff_seconds,
            timeout_seconds=settings.integrity_check_timeout_seconds,
            queue_name=settings.integrity_check_queue,
        )


@dataclass(frozen=True)
class CheckOutcome:
    state: CheckState
    attempt: int
    report: Optional[VerificationReport] = None
    error: Optional[Exception] = None
    retry_in: Optional[int] = None

    @property
    def flagged(self) -> bool:
        """True when the run succeeded but the ledger did not."""
        return self.report is not None and not self.report.passed


def session_verifier(session_factory: Callable[[], Session], chunk_size: int = 500) -> VerifyCallable:
    """A verify callable that opens a fresh session per attempt."""

    def verify(limit: Optional[int], deadline: Optional[float]) -> VerificationReport:
        db = session_factory()
        try:
            verifier = IntegrityVerifier(LedgerService(db), chunk_size=chunk_size)
            return verifier.verify(limit=limit, deadline=deadline)
        finally:
            db.close()

    return verify


class IntegrityCheckScheduler:
    """Runs verification under a retry policy and acts on the result."""

    def __init__(
        self,
        verify: VerifyCallable,
        alerts: AlertSink,
        store: Optional[ReportStore] = None,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.verify = verify
        self.alerts = alerts
        self.store = store
        self.policy = policy or RetryPolicy()
        self.sleep = sleep
        self.clock = clock
        self.state = CheckState.SCHEDULED
        self.transitions: list[tuple[CheckState, int]] = [(CheckState.SCHEDULED, 0)]

    def _enter(self, state: CheckState, attempt: int) -> None:
        self.state = state
        self.transitions.append((state, attempt))

    def run(self, limit: Optional[int] = None) -> CheckOutcome:
        """Run attempts in-process until success or the budget is spent."""
        attempt = 1
        while True:
            outcome = self.run_attempt(limit, attempt)
            if outcome.state != CheckState.FAILED_RETRYABLE:
                return outcome
            self.sleep(outcome.retry_in)
            attempt += 1

    def run_attempt(self, limit: Optional[int], attempt: int) -> CheckOutcome:
        """Run attempt number ``attempt`` (1-based) and settle its state."""
        self._enter(CheckState.RUNNING, attempt)
        logger.info(
            "Starting audit integrity check",
            extra={"limit": limit, "attempt": attempt, "max_attempts": self.policy.max_attempts},
        )

        deadline = self.clock() + self.policy.timeout_seconds
        try:
            with metrics.verification_duration.time():
                report = self.verify(limit, deadline)
            if self.clock() > deadline:
                raise VerificationTimeoutError(
                    f"Verification exceeded {self.policy.timeout_seconds}s attempt timeout"
                )
        except Exception as e:
            return self._attempt_failed(e, attempt, limit)

        return self._succeeded(report, attempt)

    def _succeeded(self, report: VerificationReport, attempt: int) -> CheckOutcome:
        metrics.integrity_score.set(report.integrity_score)
        metrics.integrity_violations.set(report.violations_found)

        summary = {
            "total_checked": report.total_checked,
            "violations_found": report.violations_found,
            "integrity_score": report.integrity_score,
            "last_verified_hash": report.last_verified_hash,
            "duration_ms": report.duration_ms,
        }
        if report.passed:
            metrics.integrity_runs.labels(outcome="passed").inc()
            logger.info("Audit integrity check passed", extra=summary)
        else:
            metrics.integrity_runs.labels(outcome="violations").inc()
            logger.error("Audit integrity check failed", extra=summary)
            self.alerts.integrity_violation(IntegrityAlert.from_report(report))

        if self.store is not None:
            self.store.save(report)

        self._enter(CheckState.SUCCEEDED, attempt)
        return CheckOutcome(state=CheckState.SUCCEEDED, attempt=attempt, report=report)

    def _attempt_failed(self, error: Exception, attempt: int, limit: Optional[int]) -> CheckOutcome:
        if attempt < self.policy.max_attempts:
            metrics.integrity_runs.labels(outcome="retrying").inc()
            logger.warning(
                f"Audit integrity check attempt failed: {error}",
                extra={"attempt": attempt, "limit": limit, "retry_in": self.policy.backoff_seconds},
            )
            self._enter(CheckState.FAILED_RETRYABLE, attempt)
            return CheckOutcome(
                state=CheckState.FAILED_RETRYABLE,
                attempt=attempt,
                error=error,
                retry_in=self.policy.backoff_seconds,
            )

        metrics.integrity_runs.labels(outcome="failed").inc()
        logger.error(
            f"Audit integrity check job failed permanently: {error}",
            exc_info=error,
            extra={"attempt": attempt, "limit": limit},
        )
        self.alerts.job_failed(
            JobFailureAlert(
                error_message=str(error),
                attempts=attempt,
                max_attempts=self.policy.max_attempts,
                queue_name=self.policy.queue_name,
            )
        )
        self._enter(CheckState.FAILED_TERMINAL, attempt)
        return CheckOutcome(state=CheckState.FAILED_TERMINAL, attempt=attempt, error=error)


def build_scheduler(
    session_factory: Callable[[], Session],
    redis_client,
    settings,
    policy: Optional[RetryPolicy] = None,
    **kwargs,
) -> IntegrityCheckScheduler:
    """Scheduler wired to the database, the Redis report cache and the standard alert sinks."""
    from modtrail_api.integrity.alerts import CompositeAlertSink, DatabaseAlertSink, LoggingAlertSink

    return IntegrityCheckScheduler(
        verify=session_verifier(session_factory, chunk_size=settings.integrity_verify_chunk_size),
        alerts=CompositeAlertSink(LoggingAlertSink(), DatabaseAlertSink(session_factory)),
        store=ReportStore(
            session_factory,
            redis_client,
            cache_key=settings.integrity_last_check_cache_key,
            ttl_seconds=settings.integrity_last_check_ttl_seconds,
        ),
        policy=policy or RetryPolicy.from_settings(settings),
        **kwargs,
    )
