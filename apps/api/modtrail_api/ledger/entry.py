"""Audit entry record type and its hash rule.

The same canonical encoding is used by the ledger when an entry is written
and by the verifier when it is re-read, so any change here breaks every
existing chain. The encoded field order is:

    sequence_id, previous_hash, event_type, actor_type, actor_id,
    target_type, target_id, action, old_values, new_values, metadata,
    timestamp

Each field is emitted as a ``[name, value]`` pair inside a JSON array, so
the top-level order never depends on dict iteration. Nested maps are
serialised with sorted keys, ``None`` is emitted as ``null`` and timestamps
as ``YYYY-MM-DDTHH:MM:SS.ffffff`` in UTC.
"""

import enum
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

# Previous hash of the very first entry in the ledger
GENESIS_HASH = "0" * 64

HASH_FIELD_ORDER = (
    "sequence_id",
    "previous_hash",
    "event_type",
    "actor_type",
    "actor_id",
    "target_type",
    "target_id",
    "action",
    "old_values",
    "new_values",
    "metadata",
    "timestamp",
)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"


class ActorType(str, enum.Enum):
    """Principal kinds that can cause a moderation event."""

    USER = "user"
    MODERATOR = "moderator"
    SYSTEM = "system"
    API = "api"


class EventType(str, enum.Enum):
    """Moderation-relevant event tags recorded in the ledger."""

    REPORT_SUBMITTED = "report_submitted"
    REPORT_RESOLVED = "report_resolved"
    REPORT_ESCALATED = "report_escalated"
    REPORT_DISMISSED = "report_dismissed"
    WARNING_ISSUED = "warning_issued"
    RESTRICTION_APPLIED = "restriction_applied"
    RESTRICTION_LIFTED = "restriction_lifted"
    APPEAL_SUBMITTED = "appeal_submitted"
    APPEAL_REVIEWED = "appeal_reviewed"
    MODERATOR_ACCESS = "moderator_access"
    MODERATOR_ACTION = "moderator_action"
    SYSTEM_EVENT = "system_event"


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, enum.Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def normalize_snapshot(value: Optional[dict]) -> Optional[dict]:
    """Reduce a snapshot to plain JSON types.

    Entries are hashed in the form they are stored in, so anything the JSON
    column would coerce (datetimes, decimals, UUIDs, enums, tuples) is
    coerced before hashing.
    """
    if value is None:
        return None
    if not isinstance(value, dict):
        raise TypeError("Snapshots and metadata must be mappings")
    snapshot = json.loads(json.dumps(value, default=_json_default))
    ensure_encodable(snapshot)
    return snapshot


def ensure_encodable(value: Any) -> None:
    """Raise ``ValueError`` if ``value`` cannot take part in the canonical encoding.

    Lone surrogates survive JSON parsing but not UTF-8 encoding.
    """
    try:
        json.dumps(value, ensure_ascii=False, default=_json_default).encode("utf-8")
    except UnicodeEncodeError as e:
        raise ValueError(f"Text is not valid UTF-8 (position {e.start})") from e


def normalize_identifier(value: Any) -> Optional[str]:
    """Identifiers are stored as strings whatever the caller passed."""
    if value is None:
        return None
    return str(value)


def utc_now() -> datetime:
    """Naive UTC time with microsecond precision."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(TIMESTAMP_FORMAT)


def canonical_encoding(fields: dict) -> bytes:
    """Encode hashable fields deterministically.

    ``fields`` must contain every name in ``HASH_FIELD_ORDER``; any other
    key (notably ``entry_hash``) is ignored.
    """
    pairs = []
    for name in HASH_FIELD_ORDER:
        value = fields[name]
        if name == "timestamp":
            value = format_timestamp(value)
        elif isinstance(value, enum.Enum):
            value = value.value
        pairs.append([name, value])
    return json.dumps(
        pairs,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_default,
    ).encode("utf-8")


def compute_entry_hash(fields: dict) -> str:
    """SHA-256 over the canonical encoding, lowercase hex."""
    return hashlib.sha256(canonical_encoding(fields)).hexdigest()


@dataclass(frozen=True)
class AuditEntry:
    """Immutable snapshot of one committed ledger entry."""

    sequence_id: int
    entry_hash: str
    previous_hash: str
    event_type: str
    actor_type: str
    actor_id: Optional[str]
    target_type: Optional[str]
    target_id: Optional[str]
    action: str
    old_values: Optional[dict]
    new_values: Optional[dict]
    metadata: Optional[dict]
    timestamp: datetime

    @classmethod
    def from_model(cls, row) -> "AuditEntry":
        """Build from a ``ModerationAuditLog`` row."""
        return cls(
            sequence_id=row.sequence_id,
            entry_hash=row.entry_hash,
            previous_hash=row.previous_hash,
            event_type=row.event_type,
            actor_type=row.actor_type,
            actor_id=row.actor_id,
            target_type=row.target_type,
            target_id=row.target_id,
            action=row.action,
            old_values=row.old_values,
            new_values=row.new_values,
            metadata=row.metadata_json,
            timestamp=row.timestamp,
        )

    def hash_fields(self) -> dict:
        return {name: getattr(self, name) for name in HASH_FIELD_ORDER}

    def compute_hash(self) -> str:
        """Re-derive the hash from the stored content."""
        return compute_entry_hash(self.hash_fields())

    @property
    def is_genesis(self) -> bool:
        return self.previous_hash == GENESIS_HASH

    def to_dict(self) -> dict:
        data = self.hash_fields()
        data["entry_hash"] = self.entry_hash
        data["timestamp"] = format_timestamp(self.timestamp)
        return data
