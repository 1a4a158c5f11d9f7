"""Storage for integrity verification reports.

The most recent report is cached in Redis (last write wins) and every report
is appended to ``audit_integrity_history``.
"""

import json
import logging
from typing import Callable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from modtrail_api.integrity.verifier import VerificationReport
from modtrail_api.models import AuditIntegrityCheck
from modtrail_api.settings import get_settings

logger = logging.getLogger(__name__)


class ReportStore:
    """Last-report cache plus permanent history."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        redis_client,
        cache_key: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
    ):
        settings = get_settings()
        self.session_factory = session_factory
        self.redis = redis_client
        self.cache_key = cache_key or settings.integrity_last_check_cache_key
        self.ttl_seconds = ttl_seconds or settings.integrity_last_check_ttl_seconds

    def save(self, report: VerificationReport) -> None:
        """Cache and record ``report``. Failures are logged, never raised."""
        blob = json.dumps(report.to_dict())

        try:
            self.redis.setex(self.cache_key, self.ttl_seconds, blob)
        except Exception as e:
            logger.error(f"Failed to cache integrity report: {e}", exc_info=True)

        db = self.session_factory()
        try:
            db.add(
                AuditIntegrityCheck(
                    check_date=report.checked_at,
                    total_checked=report.total_checked,
                    violations_found=report.violations_found,
                    integrity_score=report.integrity_score,
                    last_verified_hash=report.last_verified_hash,
                    passed=report.passed,
                    duration_ms=report.duration_ms,
                    details=blob,
                )
            )
            db.commit()
            logger.debug(
                "Audit integrity check results stored",
                extra={"integrity_score": report.integrity_score, "violations_found": report.violations_found},
            )
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to store audit integrity check results: {e}", exc_info=True)
        finally:
            db.close()

    def last_report(self) -> Optional[VerificationReport]:
        """Cached report, falling back to the newest history row."""
        try:
            cached = self.redis.get(self.cache_key)
        except Exception as e:
            logger.warning(f"Integrity report cache unavailable: {e}")
            cached = None
        if cached:
            if isinstance(cached, bytes):
                cached = cached.decode("utf-8")
            return VerificationReport.from_dict(json.loads(cached))

        db = self.session_factory()
        try:
            row = (
                db.query(AuditIntegrityCheck)
                .order_by(AuditIntegrityCheck.check_date.desc(), AuditIntegrityCheck.id.desc())
                .first()
            )
            if row is None or not row.details:
                return None
            return VerificationReport.from_dict(json.loads(row.details))
        finally:
            db.close()

    def history(self, page: int = 1, per_page: int = 20) -> tuple[list[dict], int]:
        """Newest-first page of history records and the total count."""
        db = self.session_factory()
        try:
            total = db.query(func.count(AuditIntegrityCheck.id)).scalar() or 0
            rows = (
                db.query(AuditIntegrityCheck)
                .order_by(AuditIntegrityCheck.check_date.desc(), AuditIntegrityCheck.id.desc())
                .offset((page - 1) * per_page)
                .limit(per_page)
                .all()
            )
            records = [
                {
                    "id": row.id,
                    "check_date": row.check_date,
                    "total_checked": row.total_checked,
                    "violations_found": row.violations_found,
                    "integrity_score": row.integrity_score,
                    "last_verified_hash": row.last_verified_hash,
                    "passed": row.passed,
                    "duration_ms": row.duration_ms,
                }
                for row in rows
            ]
            return records, total
        finally:
            db.close()
