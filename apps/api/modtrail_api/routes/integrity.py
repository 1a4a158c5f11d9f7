"""Integrity check routes for the moderation dashboard."""

import dataclasses
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from modtrail_api.celery_client import enqueue_integrity_check
from modtrail_api.db.cache import get_redis_client
from modtrail_api.db.session import SessionLocal
from modtrail_api.integrity.scheduler import CheckState, IntegrityCheckScheduler, RetryPolicy, build_scheduler
from modtrail_api.integrity.store import ReportStore
from modtrail_api.settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/audit/integrity", tags=["integrity"])


class ViolationResponse(BaseModel):
    sequence_id: int
    kind: str
    detail: str


class ReportResponse(BaseModel):
    """Verification report as shown on the dashboard."""

    total_checked: int
    violations_found: int
    integrity_score: float
    last_verified_hash: Optional[str] = None
    checked_at: datetime
    duration_ms: float
    passed: bool
    violations: list[ViolationResponse] = []
    first_sequence: Optional[int] = None
    last_sequence: Optional[int] = None


class IntegrityStatusResponse(BaseModel):
    status: str  # healthy, warning, unknown
    integrity_score: Optional[float] = None
    last_report: Optional[ReportResponse] = None


class HistoryRecord(BaseModel):
    id: int
    check_date: datetime
    total_checked: int
    violations_found: int
    integrity_score: float
    last_verified_hash: Optional[str] = None
    passed: bool
    duration_ms: Optional[float] = None


class HistoryPage(BaseModel):
    items: list[HistoryRecord]
    total: int
    page: int
    per_page: int


class VerifyRequest(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1, le=10000)
    run_async: bool = False


class VerifyQueuedResponse(BaseModel):
    status: str
    task_id: str


def get_report_store() -> ReportStore:
    """Report store backed by the API database and Redis."""
    return ReportStore(SessionLocal, get_redis_client())


def get_integrity_scheduler() -> IntegrityCheckScheduler:
    """Scheduler for on-demand checks: a single attempt, no sleeping in requests."""
    settings = get_settings()
    policy = dataclasses.replace(RetryPolicy.from_settings(settings), max_attempts=1)
    return build_scheduler(SessionLocal, get_redis_client(), settings, policy=policy)


@router.get("", response_model=IntegrityStatusResponse)
def integrity_status(store: ReportStore = Depends(get_report_store)):
    """Status derived from the most recent verification report."""
    report = store.last_report()
    if report is None:
        return {"status": "unknown"}
    return {
        "status": "healthy" if report.passed else "warning",
        "integrity_score": report.integrity_score,
        "last_report": report,
    }


@router.get("/history", response_model=HistoryPage)
def integrity_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=200),
    store: ReportStore = Depends(get_report_store),
):
    """Page through past verification runs, newest first."""
    items, total = store.history(page=page, per_page=per_page)
    return {"items": items, "total": total, "page": page, "per_page": per_page}


@router.post(
    "/verify",
    response_model=ReportResponse,
    responses={status.HTTP_202_ACCEPTED: {"model": VerifyQueuedResponse}},
)
def verify_integrity(
    request: VerifyRequest,
    scheduler: IntegrityCheckScheduler = Depends(get_integrity_scheduler),
):
    """Run a verification now, or queue one on the worker."""
    if request.run_async:
        try:
            task_id = enqueue_integrity_check(request.limit)
        except Exception as e:
            logger.error(f"Failed to enqueue integrity check: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Integrity check queue is unavailable",
            )
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content={"status": "queued", "task_id": task_id},
        )

    outcome = scheduler.run_attempt(request.limit, attempt=1)
    if outcome.state != CheckState.SUCCEEDED:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Integrity verification could not run",
        )
    return outcome.report
