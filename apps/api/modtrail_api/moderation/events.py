"""Moderation events the audit trail knows how to record.

Each event is a frozen dataclass; ``ModerationActivityRecorder`` maps the
closed set of event classes onto ledger appends. ``context`` carries request
details (ip address, user agent, route, correlation id) into the entry
metadata.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class ReportSubmitted:
    report_id: int
    reporter_id: int
    reportable_type: str
    reportable_id: int
    category_id: Optional[int] = None
    priority: Optional[str] = None
    evidence_count: int = 0
    context: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ReportResolved:
    report_id: int
    moderator_id: int
    resolution: str
    previous_status: Optional[str] = None
    resolution_notes: Optional[str] = None
    actions_taken: tuple = ()
    context: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ReportEscalated:
    report_id: int
    moderator_id: int
    previous_priority: Optional[str]
    priority: str
    reason: Optional[str] = None
    context: dict = field(default_factory=dict)


@dataclass(frozen=True)
class WarningIssued:
    warning_id: int
    user_id: int
    moderator_id: int
    level: str
    type: str
    reason: str
    expires_at: Optional[datetime] = None
    context: dict = field(default_factory=dict)


@dataclass(frozen=True)
class RestrictionApplied:
    restriction_id: int
    user_id: int
    moderator_id: int
    type: str
    reason: str
    expires_at: Optional[datetime] = None
    is_permanent: bool = False
    context: dict = field(default_factory=dict)


@dataclass(frozen=True)
class AppealSubmitted:
    appeal_id: int
    user_id: int
    appealable_type: str
    appealable_id: int
    reason: str
    evidence_count: int = 0
    context: dict = field(default_factory=dict)


@dataclass(frozen=True)
class AppealReviewed:
    appeal_id: int
    reviewer_id: int
    decision: str
    previous_status: Optional[str] = None
    review_notes: Optional[str] = None
    appealable_type: Optional[str] = None
    context: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ModeratorAccess:
    moderator_id: int
    resource_type: str
    resource_id: Optional[int] = None
    route: Optional[str] = None
    context: dict = field(default_factory=dict)
