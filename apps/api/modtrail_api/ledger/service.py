"""Moderation audit ledger service with hash chaining."""

import logging
import threading
from datetime import datetime
from typing import Iterator, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from modtrail_api.ledger.entry import (
    GENESIS_HASH,
    ActorType,
    AuditEntry,
    compute_entry_hash,
    ensure_encodable,
    normalize_identifier,
    normalize_snapshot,
    utc_now,
)
from modtrail_api.ledger.exceptions import LedgerConflictError, LedgerWriteError
from modtrail_api.models import LedgerHead, ModerationAuditLog
from modtrail_api.settings import get_settings
from modtrail_api.utils import metrics

logger = logging.getLogger(__name__)

LEDGER_HEAD_ID = 1

# Serialises "read head -> hash -> commit" for every writer in this process.
# Writers in other processes are serialised by the row lock on ledger_head.
_append_lock = threading.Lock()


class LedgerService:
    """Tamper-evident moderation audit ledger."""

    def __init__(self, db: Session, max_append_retries: Optional[int] = None):
        """Initialize ledger service."""
        self.db = db
        if max_append_retries is None:
            max_append_retries = get_settings().ledger_append_max_retries
        self.max_append_retries = max(1, max_append_retries)

    def append(
        self,
        event_type: str,
        actor_type: str,
        actor_id=None,
        target_type: Optional[str] = None,
        target_id=None,
        action: str = "create",
        old_values: Optional[dict] = None,
        new_values: Optional[dict] = None,
        metadata: Optional[dict] = None,
    ) -> AuditEntry:
        """Append an entry to the chain and commit it.

        The sequence id, timestamp and previous hash are assigned here, under
        the append lock, so a retried call is always sequenced after anything
        that did commit. Raises ``ValueError`` for input that cannot be hashed
        (checked before any lock is taken) and ``LedgerWriteError`` if nothing
        was written.
        """
        event_type = getattr(event_type, "value", event_type)
        if not event_type:
            raise ValueError("event_type is required")
        if not action:
            raise ValueError("action is required")
        actor_type = ActorType(actor_type).value

        content = {
            "event_type": event_type,
            "actor_type": actor_type,
            "actor_id": normalize_identifier(actor_id),
            "target_type": target_type,
            "target_id": normalize_identifier(target_id),
            "action": action,
            "old_values": normalize_snapshot(old_values),
            "new_values": normalize_snapshot(new_values),
            "metadata": normalize_snapshot(metadata),
        }
        ensure_encodable(content)

        attempt = 0
        while True:
            attempt += 1
            try:
                with _append_lock:
                    entry = self._append_once(content)
            except LedgerConflictError:
                metrics.ledger_append_conflicts.inc()
                if attempt >= self.max_append_retries:
                    metrics.ledger_appends.labels(event_type=event_type, outcome="conflict").inc()
                    raise
                logger.warning(
                    "Ledger append lost a race, retrying against new head",
                    extra={"event_type": event_type, "attempt": attempt},
                )
                continue
            except LedgerWriteError:
                metrics.ledger_appends.labels(event_type=event_type, outcome="failed").inc()
                raise

            metrics.ledger_appends.labels(event_type=event_type, outcome="committed").inc()
            logger.debug(
                f"Appended audit entry {entry.sequence_id}",
                extra={"sequence_id": entry.sequence_id, "event_type": event_type},
            )
            return entry

    def _lock_head(self) -> LedgerHead:
        """Load the head row with a write lock, creating it on first use."""
        head = (
            self.db.query(LedgerHead)
            .filter(LedgerHead.id == LEDGER_HEAD_ID)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if head is not None:
            return head

        # Bootstrap from whatever is already in the table
        last = self.db.query(ModerationAuditLog).order_by(ModerationAuditLog.sequence_id.desc()).first()
        head = LedgerHead(
            id=LEDGER_HEAD_ID,
            last_sequence=last.sequence_id if last else 0,
            last_hash=last.entry_hash if last else GENESIS_HASH,
            updated_at=utc_now(),
        )
        self.db.add(head)
        self.db.flush()
        return head

    def _append_once(self, content: dict) -> AuditEntry:
        try:
            head = self._lock_head()

            fields = dict(content)
            fields["sequence_id"] = head.last_sequence + 1
            fields["previous_hash"] = head.last_hash
            fields["timestamp"] = utc_now()
            entry_hash = compute_entry_hash(fields)

            row = ModerationAuditLog(
                sequence_id=fields["sequence_id"],
                entry_hash=entry_hash,
                previous_hash=fields["previous_hash"],
                event_type=fields["event_type"],
                actor_type=fields["actor_type"],
                actor_id=fields["actor_id"],
                target_type=fields["target_type"],
                target_id=fields["target_id"],
                action=fields["action"],
                old_values=fields["old_values"],
                new_values=fields["new_values"],
                metadata_json=fields["metadata"],
                timestamp=fields["timestamp"],
            )
            self.db.add(row)

            head.last_sequence = fields["sequence_id"]
            head.last_hash = entry_hash
            head.updated_at = fields["timestamp"]

            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise LedgerConflictError(f"Ledger append conflicted with a concurrent writer: {e.orig}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Ledger append failed: {e}", exc_info=True)
            raise LedgerWriteError(f"Ledger append failed: {e}") from e
        except Exception:
            # Never leave the head row locked behind a half-built append
            self.db.rollback()
            raise

        return AuditEntry(entry_hash=entry_hash, **fields)

    def head(self) -> Optional[tuple[int, str]]:
        """Committed ``(last_sequence, last_hash)`` from the head row, read without locking."""
        row = (
            self.db.query(LedgerHead.last_sequence, LedgerHead.last_hash)
            .filter(LedgerHead.id == LEDGER_HEAD_ID)
            .first()
        )
        if row is None or not row.last_sequence:
            return None
        return row.last_sequence, row.last_hash

    def latest(self) -> Optional[AuditEntry]:
        """Return the highest-sequence entry, or None if the ledger is empty."""
        row = self.db.query(ModerationAuditLog).order_by(ModerationAuditLog.sequence_id.desc()).first()
        return AuditEntry.from_model(row) if row else None

    def get_by_sequence(self, sequence_id: int) -> Optional[AuditEntry]:
        row = self.db.query(ModerationAuditLog).filter(ModerationAuditLog.sequence_id == sequence_id).first()
        return AuditEntry.from_model(row) if row else None

    def get_by_hash(self, entry_hash: str) -> Optional[AuditEntry]:
        row = self.db.query(ModerationAuditLog).filter(ModerationAuditLog.entry_hash == entry_hash).first()
        return AuditEntry.from_model(row) if row else None

    def get_by_sequence_range(self, from_sequence: int, to_sequence: int) -> list[AuditEntry]:
        """Entries with ``from_sequence <= sequence_id <= to_sequence``, ascending.

        Missing sequence ids are not filled in; the verifier reports them.
        """
        rows = (
            self.db.query(ModerationAuditLog)
            .filter(
                ModerationAuditLog.sequence_id >= from_sequence,
                ModerationAuditLog.sequence_id <= to_sequence,
            )
            .order_by(ModerationAuditLog.sequence_id.asc())
            .all()
        )
        return [AuditEntry.from_model(row) for row in rows]

    def iter_range(self, from_sequence: Optional[int] = None, chunk_size: int = 500) -> Iterator[AuditEntry]:
        """Stream entries in ascending sequence order, one chunk at a time."""
        cursor = (from_sequence - 1) if from_sequence is not None else None
        while True:
            query = self.db.query(ModerationAuditLog)
            if cursor is not None:
                query = query.filter(ModerationAuditLog.sequence_id > cursor)
            rows = query.order_by(ModerationAuditLog.sequence_id.asc()).limit(chunk_size).all()
            if not rows:
                return
            for row in rows:
                yield AuditEntry.from_model(row)
            cursor = rows[-1].sequence_id
            if len(rows) < chunk_size:
                return

    def count(self) -> int:
        return self.db.query(func.count(ModerationAuditLog.sequence_id)).scalar() or 0

    def first_sequence(self) -> Optional[int]:
        return self.db.query(func.min(ModerationAuditLog.sequence_id)).scalar()

    def sequence_floor_for_last(self, limit: int) -> Optional[int]:
        """Sequence id of the oldest entry among the most recent ``limit``."""
        floor = (
            self.db.query(ModerationAuditLog.sequence_id)
            .order_by(ModerationAuditLog.sequence_id.desc())
            .offset(limit - 1)
            .limit(1)
            .scalar()
        )
        if floor is None:
            return self.first_sequence()
        return floor

    def get_entity_logs(self, target_type: str, target_id, limit: int = 50) -> list[AuditEntry]:
        """Most recent entries about one entity."""
        rows = (
            self.db.query(ModerationAuditLog)
            .filter(
                ModerationAuditLog.target_type == target_type,
                ModerationAuditLog.target_id == normalize_identifier(target_id),
            )
            .order_by(ModerationAuditLog.sequence_id.desc())
            .limit(limit)
            .all()
        )
        return [AuditEntry.from_model(row) for row in rows]

    def get_actor_logs(self, actor_id, limit: int = 50) -> list[AuditEntry]:
        """Most recent entries caused by one principal."""
        rows = (
            self.db.query(ModerationAuditLog)
            .filter(ModerationAuditLog.actor_id == normalize_identifier(actor_id))
            .order_by(ModerationAuditLog.sequence_id.desc())
            .limit(limit)
            .all()
        )
        return [AuditEntry.from_model(row) for row in rows]

    def search(
        self,
        event_type: Optional[str] = None,
        actor_type: Optional[str] = None,
        actor_id=None,
        target_type: Optional[str] = None,
        target_id=None,
        action: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        page: int = 1,
        per_page: int = 100,
    ) -> tuple[list[AuditEntry], int]:
        """Filtered, newest-first page of entries and the total match count."""
        query = self.db.query(ModerationAuditLog)

        if event_type:
            query = query.filter(ModerationAuditLog.event_type == event_type)
        if actor_type:
            query = query.filter(ModerationAuditLog.actor_type == actor_type)
        if actor_id is not None:
            query = query.filter(ModerationAuditLog.actor_id == normalize_identifier(actor_id))
        if target_type:
            query = query.filter(ModerationAuditLog.target_type == target_type)
        if target_id is not None:
            query = query.filter(ModerationAuditLog.target_id == normalize_identifier(target_id))
        if action:
            query = query.filter(ModerationAuditLog.action == action)
        if date_from:
            query = query.filter(ModerationAuditLog.timestamp >= date_from)
        if date_to:
            query = query.filter(ModerationAuditLog.timestamp <= date_to)

        total = query.count()
        rows = (
            query.order_by(ModerationAuditLog.sequence_id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return [AuditEntry.from_model(row) for row in rows], total
