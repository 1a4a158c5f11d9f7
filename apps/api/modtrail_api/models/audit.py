"""Moderation audit ledger models."""

from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    event,
)

from modtrail_api.db.base import Base
from modtrail_api.ledger.exceptions import LedgerImmutableError


class ModerationAuditLog(Base):
    """Append-only moderation audit ledger with hash chaining."""

    __tablename__ = "moderation_audit_logs"

    sequence_id = Column(BigInteger, primary_key=True, autoincrement=False)
    entry_hash = Column(String(64), nullable=False, unique=True)
    previous_hash = Column(String(64), nullable=False, unique=True)  # GENESIS_HASH for the first entry
    event_type = Column(String(100), nullable=False, index=True)
    actor_type = Column(String(20), nullable=False)
    actor_id = Column(String(64), nullable=True)
    target_type = Column(String(100), nullable=True)
    target_id = Column(String(64), nullable=True)
    action = Column(String(100), nullable=False)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    timestamp = Column(DateTime, nullable=False, index=True)

    __table_args__ = (
        CheckConstraint(
            "actor_type IN ('user', 'moderator', 'system', 'api')",
            name="ck_moderation_audit_logs_actor_type",
        ),
        Index("ix_moderation_audit_logs_actor", "actor_type", "actor_id"),
        Index("ix_moderation_audit_logs_target", "target_type", "target_id"),
        Index("ix_moderation_audit_logs_chain", "previous_hash", "entry_hash"),
    )


class LedgerHead(Base):
    """Single-row sequence reservation for the ledger writer."""

    __tablename__ = "ledger_head"

    id = Column(Integer, primary_key=True, default=1)
    last_sequence = Column(BigInteger, nullable=False, default=0)
    last_hash = Column(String(64), nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


@event.listens_for(ModerationAuditLog, "before_update")
def _reject_update(mapper, connection, target):
    raise LedgerImmutableError(
        f"Audit entry {target.sequence_id} is immutable; record a correction as a new entry"
    )


@event.listens_for(ModerationAuditLog, "before_delete")
def _reject_delete(mapper, connection, target):
    raise LedgerImmutableError(f"Audit entry {target.sequence_id} cannot be deleted")
