"""Records typed moderation events in the audit ledger."""

import logging
from functools import singledispatchmethod

from modtrail_api.ledger.entry import ActorType, AuditEntry, EventType
from modtrail_api.ledger.service import LedgerService
from modtrail_api.moderation.events import (
    AppealReviewed,
    AppealSubmitted,
    ModeratorAccess,
    ReportEscalated,
    ReportResolved,
    ReportSubmitted,
    RestrictionApplied,
    WarningIssued,
)

logger = logging.getLogger(__name__)


class ModerationActivityRecorder:
    """Turns moderation events into ledger entries."""

    def __init__(self, ledger: LedgerService):
        self.ledger = ledger

    @singledispatchmethod
    def record(self, event) -> AuditEntry:
        raise TypeError(f"No audit mapping for moderation event {type(event).__name__}")

    @record.register
    def _(self, event: ReportSubmitted) -> AuditEntry:
        return self.ledger.append(
            event_type=EventType.REPORT_SUBMITTED,
            actor_type=ActorType.USER,
            actor_id=event.reporter_id,
            target_type="Report",
            target_id=event.report_id,
            action="create",
            new_values={
                "reportable_type": event.reportable_type,
                "reportable_id": event.reportable_id,
                "category_id": event.category_id,
                "priority": event.priority,
                "evidence_count": event.evidence_count,
            },
            metadata=event.context or None,
        )

    @record.register
    def _(self, event: ReportResolved) -> AuditEntry:
        return self.ledger.append(
            event_type=EventType.REPORT_RESOLVED,
            actor_type=ActorType.MODERATOR,
            actor_id=event.moderator_id,
            target_type="Report",
            target_id=event.report_id,
            action="resolve",
            old_values={"status": event.previous_status} if event.previous_status else None,
            new_values={
                "status": event.resolution,
                "resolution_notes": event.resolution_notes,
                "actions_taken": list(event.actions_taken),
            },
            metadata=event.context or None,
        )

    @record.register
    def _(self, event: ReportEscalated) -> AuditEntry:
        return self.ledger.append(
            event_type=EventType.REPORT_ESCALATED,
            actor_type=ActorType.MODERATOR,
            actor_id=event.moderator_id,
            target_type="Report",
            target_id=event.report_id,
            action="escalate",
            old_values={"priority": event.previous_priority},
            new_values={"priority": event.priority, "reason": event.reason},
            metadata=event.context or None,
        )

    @record.register
    def _(self, event: WarningIssued) -> AuditEntry:
        return self.ledger.append(
            event_type=EventType.WARNING_ISSUED,
            actor_type=ActorType.MODERATOR,
            actor_id=event.moderator_id,
            target_type="Warning",
            target_id=event.warning_id,
            action="issue_warning",
            new_values={
                "user_id": event.user_id,
                "level": event.level,
                "type": event.type,
                "reason": event.reason,
                "expires_at": event.expires_at,
            },
            metadata=event.context or None,
        )

    @record.register
    def _(self, event: RestrictionApplied) -> AuditEntry:
        return self.ledger.append(
            event_type=EventType.RESTRICTION_APPLIED,
            actor_type=ActorType.MODERATOR,
            actor_id=event.moderator_id,
            target_type="UserRestriction",
            target_id=event.restriction_id,
            action="apply_restriction",
            new_values={
                "user_id": event.user_id,
                "type": event.type,
                "reason": event.reason,
                "expires_at": event.expires_at,
                "is_permanent": event.is_permanent,
            },
            metadata=event.context or None,
        )

    @record.register
    def _(self, event: AppealSubmitted) -> AuditEntry:
        return self.ledger.append(
            event_type=EventType.APPEAL_SUBMITTED,
            actor_type=ActorType.USER,
            actor_id=event.user_id,
            target_type="Appeal",
            target_id=event.appeal_id,
            action="submit_appeal",
            new_values={
                "appealable_type": event.appealable_type,
                "appealable_id": event.appealable_id,
                "reason": event.reason,
                "evidence_count": event.evidence_count,
            },
            metadata=event.context or None,
        )

    @record.register
    def _(self, event: AppealReviewed) -> AuditEntry:
        return self.ledger.append(
            event_type=EventType.APPEAL_REVIEWED,
            actor_type=ActorType.MODERATOR,
            actor_id=event.reviewer_id,
            target_type="Appeal",
            target_id=event.appeal_id,
            action="review_appeal",
            old_values={"status": event.previous_status} if event.previous_status else None,
            new_values={
                "status": event.decision,
                "review_notes": event.review_notes,
                "appealable_type": event.appealable_type,
            },
            metadata=event.context or None,
        )

    @record.register
    def _(self, event: ModeratorAccess) -> AuditEntry:
        metadata = dict(event.context)
        if event.route:
            metadata["route"] = event.route
        return self.ledger.append(
            event_type=EventType.MODERATOR_ACCESS,
            actor_type=ActorType.MODERATOR,
            actor_id=event.moderator_id,
            target_type=event.resource_type,
            target_id=event.resource_id,
            action="view",
            metadata=metadata or None,
        )
