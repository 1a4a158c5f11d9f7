"""Audit ledger routes: append and read moderation audit entries."""

import logging
from datetime import datetime
from typing import Any, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from modtrail_api.db.session import get_db
from modtrail_api.ledger.entry import ActorType
from modtrail_api.ledger.exceptions import LedgerWriteError
from modtrail_api.ledger.service import LedgerService
from modtrail_api.middleware.correlation import current_correlation_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/audit", tags=["audit"])


class AuditEntryCreate(BaseModel):
    """Append request from a moderation-event collaborator."""

    event_type: str = Field(min_length=1, max_length=100)
    actor_type: ActorType
    actor_id: Optional[Union[int, str]] = None
    target_type: Optional[str] = Field(default=None, max_length=100)
    target_id: Optional[Union[int, str]] = None
    action: str = Field(min_length=1, max_length=100)
    old_values: Optional[dict[str, Any]] = None
    new_values: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None


class AuditEntryResponse(BaseModel):
    """Committed audit entry."""

    sequence_id: int
    entry_hash: str
    previous_hash: str
    event_type: str
    actor_type: str
    actor_id: Optional[str] = None
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    action: str
    old_values: Optional[dict[str, Any]] = None
    new_values: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None
    timestamp: datetime

    class Config:
        from_attributes = True


class AuditEntryPage(BaseModel):
    items: list[AuditEntryResponse]
    total: int
    page: int
    per_page: int


def _request_context(request: Request) -> dict:
    context = {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
        "route": request.url.path,
    }
    correlation_id = current_correlation_id() or getattr(request.state, "correlation_id", None)
    if correlation_id:
        context["correlation_id"] = correlation_id
    return context


@router.post("/entries", response_model=AuditEntryResponse, status_code=status.HTTP_201_CREATED)
def append_entry(
    entry_data: AuditEntryCreate,
    request: Request,
    db: Session = Depends(get_db),
):
    """Append a moderation event to the audit ledger."""
    metadata = {**_request_context(request), **(entry_data.metadata or {})}

    ledger = LedgerService(db)
    try:
        return ledger.append(
            event_type=entry_data.event_type,
            actor_type=entry_data.actor_type,
            actor_id=entry_data.actor_id,
            target_type=entry_data.target_type,
            target_id=entry_data.target_id,
            action=entry_data.action,
            old_values=entry_data.old_values,
            new_values=entry_data.new_values,
            metadata=metadata,
        )
    except ValueError:
        logger.warning("Audit append rejected: content cannot be hashed")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Audit entry contains values that cannot be hashed; the entry was not recorded",
        )
    except LedgerWriteError:
        logger.error("Audit append failed", extra={"event_type": entry_data.event_type})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Audit ledger is unavailable; the entry was not recorded",
        )


@router.get("/entries", response_model=AuditEntryPage)
def search_entries(
    event_type: Optional[str] = None,
    actor_type: Optional[ActorType] = None,
    actor_id: Optional[str] = None,
    target_type: Optional[str] = None,
    target_id: Optional[str] = None,
    action: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Search audit entries, newest first."""
    entries, total = LedgerService(db).search(
        event_type=event_type,
        actor_type=actor_type.value if actor_type else None,
        actor_id=actor_id,
        target_type=target_type,
        target_id=target_id,
        action=action,
        date_from=date_from,
        date_to=date_to,
        page=page,
        per_page=per_page,
    )
    return {"items": entries, "total": total, "page": page, "per_page": per_page}


@router.get("/entries/by-hash/{entry_hash}", response_model=AuditEntryResponse)
def get_entry_by_hash(entry_hash: str, db: Session = Depends(get_db)):
    """Look up an entry by its hash."""
    entry = LedgerService(db).get_by_hash(entry_hash)
    if not entry:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Audit entry with hash {entry_hash} not found",
        )
    return entry


@router.get("/entries/{sequence_id}", response_model=AuditEntryResponse)
def get_entry(sequence_id: int, db: Session = Depends(get_db)):
    """Look up an entry by sequence id."""
    entry = LedgerService(db).get_by_sequence(sequence_id)
    if not entry:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Audit entry {sequence_id} not found",
        )
    return entry
