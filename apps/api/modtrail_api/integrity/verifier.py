"""Hash chain integrity verification."""

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from modtrail_api.ledger.entry import GENESIS_HASH, AuditEntry, format_timestamp, utc_now
from modtrail_api.ledger.exceptions import VerificationTimeoutError
from modtrail_api.ledger.service import LedgerService

logger = logging.getLogger(__name__)

CONTENT_TAMPERED = "content_tampered"
CHAIN_BREAK = "chain_break"
ORIGIN_CORRUPTED = "origin_corrupted"
SEQUENCE_GAP = "sequence_gap"
HEAD_MISMATCH = "head_mismatch"
TAIL_TRUNCATED = "tail_truncated"


@dataclass(frozen=True)
class Violation:
    """One finding against one entry."""

    sequence_id: int
    kind: str
    detail: str


@dataclass(frozen=True)
class VerificationReport:
    """Result of a single verification pass. Never mutated once built."""

    total_checked: int
    violations_found: int
    integrity_score: float
    last_verified_hash: Optional[str]
    checked_at: datetime
    duration_ms: float
    passed: bool
    violations: tuple[Violation, ...] = field(default_factory=tuple)
    first_sequence: Optional[int] = None
    last_sequence: Optional[int] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["checked_at"] = format_timestamp(self.checked_at)
        data["violations"] = [asdict(v) for v in self.violations]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "VerificationReport":
        return cls(
            total_checked=data["total_checked"],
            violations_found=data["violations_found"],
            integrity_score=data["integrity_score"],
            last_verified_hash=data.get("last_verified_hash"),
            checked_at=datetime.fromisoformat(data["checked_at"]),
            duration_ms=data["duration_ms"],
            passed=data["passed"],
            violations=tuple(Violation(**v) for v in data.get("violations", [])),
            first_sequence=data.get("first_sequence"),
            last_sequence=data.get("last_sequence"),
        )


def check_entries(
    entries: Iterable[AuditEntry],
    covers_origin: bool,
    deadline: Optional[float] = None,
    deadline_every: int = 500,
    anchor: Optional[tuple[int, str]] = None,
) -> dict:
    """Walk ``entries`` (ascending) and collect findings.

    Pure over its input. ``deadline`` is a ``time.monotonic()`` value checked
    every ``deadline_every`` entries. ``anchor`` is the ``(sequence_id,
    entry_hash)`` the ledger head recorded before the walk; the walk must reach
    it with that hash, so entries removed from the tail are reported too.
    """
    violations: list[Violation] = []
    violating_entries = 0
    total = 0
    previous: Optional[AuditEntry] = None
    first_sequence = None
    last_verified_hash: Optional[str] = None
    prefix_intact = True
    anchor_seen = False

    for entry in entries:
        if deadline is not None and total % deadline_every == 0 and time.monotonic() > deadline:
            raise VerificationTimeoutError(f"Verification exceeded its deadline after {total} entries")

        findings = []
        if entry.compute_hash() != entry.entry_hash:
            findings.append(Violation(entry.sequence_id, CONTENT_TAMPERED, "stored hash does not match content"))

        if previous is None:
            first_sequence = entry.sequence_id
            if covers_origin and entry.previous_hash != GENESIS_HASH:
                findings.append(
                    Violation(entry.sequence_id, ORIGIN_CORRUPTED, "first entry does not link to the genesis sentinel")
                )
        else:
            if entry.previous_hash != previous.entry_hash:
                findings.append(
                    Violation(
                        entry.sequence_id,
                        CHAIN_BREAK,
                        f"previous hash does not match entry {previous.sequence_id}",
                    )
                )
            if entry.sequence_id != previous.sequence_id + 1:
                findings.append(
                    Violation(
                        entry.sequence_id,
                        SEQUENCE_GAP,
                        f"sequence jumps from {previous.sequence_id} to {entry.sequence_id}",
                    )
                )

        if anchor is not None and entry.sequence_id == anchor[0]:
            anchor_seen = True
            if entry.entry_hash != anchor[1]:
                findings.append(
                    Violation(entry.sequence_id, HEAD_MISMATCH, "stored hash differs from the ledger head")
                )

        total += 1
        if findings:
            violating_entries += 1
            violations.extend(findings)
            if prefix_intact:
                prefix_intact = False
                if last_verified_hash is None:
                    last_verified_hash = GENESIS_HASH
        elif prefix_intact:
            last_verified_hash = entry.entry_hash

        previous = entry

    last_sequence = previous.sequence_id if previous else None
    if anchor is not None and not anchor_seen and (last_sequence is None or last_sequence < anchor[0]):
        violating_entries += 1
        violations.append(
            Violation(
                anchor[0],
                TAIL_TRUNCATED,
                f"ledger head records entry {anchor[0]} but the chain ends at {last_sequence or 'nothing'}",
            )
        )

    return {
        "total_checked": total,
        "violations_found": violating_entries,
        "violations": tuple(violations),
        "last_verified_hash": last_verified_hash,
        "first_sequence": first_sequence,
        "last_sequence": last_sequence,
    }


def _score(total: int, found: int) -> float:
    if not total:
        return 0.0 if found else 1.0
    return max(0.0, 1.0 - found / total)


class IntegrityVerifier:
    """Read-only verification of a range of the ledger."""

    def __init__(self, ledger: LedgerService, chunk_size: int = 500):
        self.ledger = ledger
        self.chunk_size = chunk_size

    def verify(self, limit: Optional[int] = None, deadline: Optional[float] = None) -> VerificationReport:
        """Verify the whole ledger, or only the most recent ``limit`` entries.

        ``limit`` of None or 0 means a full scan. Raises
        ``VerificationTimeoutError`` past ``deadline`` and lets store errors
        propagate; violations are reported, never raised.
        """
        started = time.monotonic()
        checked_at = utc_now()

        # Read before the scan; appends that commit meanwhile only extend past it
        anchor = self.ledger.head()
        if anchor is None and self.ledger.latest() is not None:
            logger.warning("Ledger head row is missing; tail truncation cannot be checked")

        first = self.ledger.first_sequence()
        if first is None:
            start = None
        elif limit:
            start = self.ledger.sequence_floor_for_last(limit)
        else:
            start = first

        if start is None:
            result = check_entries((), covers_origin=True, anchor=anchor)
        else:
            result = check_entries(
                self.ledger.iter_range(start, chunk_size=self.chunk_size),
                covers_origin=(start == first),
                deadline=deadline,
                deadline_every=self.chunk_size,
                anchor=anchor,
            )

        total = result["total_checked"]
        found = result["violations_found"]
        report = VerificationReport(
            total_checked=total,
            violations_found=found,
            integrity_score=_score(total, found),
            last_verified_hash=result["last_verified_hash"],
            checked_at=checked_at,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
            passed=found == 0,
            violations=result["violations"],
            first_sequence=result["first_sequence"],
            last_sequence=result["last_sequence"],
        )

        logger.debug(
            "Verification pass finished",
            extra={"total_checked": total, "violations_found": found, "limit": limit},
        )
        return report
