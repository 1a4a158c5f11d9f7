"""Tests for ledger chain verification."""

import json
import time
from dataclasses import replace

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session

from modtrail_api.integrity.verifier import (
    CHAIN_BREAK,
    CONTENT_TAMPERED,
    HEAD_MISMATCH,
    ORIGIN_CORRUPTED,
    SEQUENCE_GAP,
    TAIL_TRUNCATED,
    IntegrityVerifier,
    VerificationReport,
    check_entries,
)
from modtrail_api.ledger.entry import GENESIS_HASH
from modtrail_api.ledger.exceptions import VerificationTimeoutError
from modtrail_api.ledger.service import LedgerService


def _tamper(db: Session, sequence_id: int, column: str, value):
    # Raw SQL: the ORM refuses to update ledger rows
    db.execute(
        text(f'UPDATE moderation_audit_logs SET "{column}" = :value WHERE sequence_id = :seq'),
        {"value": value, "seq": sequence_id},
    )
    db.commit()


def _delete(db: Session, sequence_id: int):
    db.execute(text("DELETE FROM moderation_audit_logs WHERE sequence_id = :seq"), {"seq": sequence_id})
    db.commit()


@pytest.fixture
def verifier(ledger: LedgerService) -> IntegrityVerifier:
    return IntegrityVerifier(ledger, chunk_size=2)


def test_ledger_chain_valid(verifier: IntegrityVerifier, append_reports):
    """Test that valid chain passes verification."""
    entries = append_reports(6)

    report = verifier.verify()

    assert report.passed
    assert report.total_checked == 6
    assert report.violations_found == 0
    assert report.integrity_score == 1.0
    assert report.last_verified_hash == entries[-1].entry_hash
    assert report.first_sequence == 1
    assert report.last_sequence == 6


def test_moderation_scenario(ledger: LedgerService, db: Session):
    """Five moderation events, then entry 3's action is overwritten."""
    event_types = ["report_submitted", "report_resolved", "warning_issued", "restriction_applied", "appeal_reviewed"]
    entries = [
        ledger.append(event_type=event_type, actor_type="moderator", actor_id=1, target_type="Report", target_id=7)
        for event_type in event_types
    ]
    verifier = IntegrityVerifier(ledger)

    report = verifier.verify()
    assert (report.total_checked, report.violations_found, report.integrity_score, report.passed) == (5, 0, 1.0, True)

    _tamper(db, 3, "action", "dismiss")
    report = verifier.verify()

    assert report.total_checked == 5
    assert report.violations_found == 1
    assert not report.passed
    assert report.integrity_score == pytest.approx(0.8)
    assert [(v.sequence_id, v.kind) for v in report.violations] == [(3, CONTENT_TAMPERED)]
    assert report.last_verified_hash == entries[1].entry_hash


@pytest.mark.parametrize(
    "column,value",
    [
        ("previous_hash", "a" * 64),
        ("event_type", "report_dismissed"),
        ("actor_type", "system"),
        ("actor_id", "999"),
        ("target_type", "Appeal"),
        ("target_id", "999"),
        ("action", "tampered"),
        ("old_values", json.dumps({"status": "pending"})),
        ("new_values", json.dumps({"reportable_type": "Comment", "reportable_id": 1})),
        ("metadata", json.dumps({"ip_address": "192.168.1.1"})),
        ("timestamp", "2020-01-01 00:00:00.000001"),
    ],
)
def test_ledger_chain_tampered_fails(db: Session, verifier: IntegrityVerifier, append_reports, column, value):
    """Test that tampered content fails verification at the tampered entry."""
    append_reports(5)

    _tamper(db, 3, column, value)
    report = verifier.verify()

    assert not report.passed
    assert report.violations_found == 1
    assert {v.sequence_id for v in report.violations} == {3}
    assert CONTENT_TAMPERED in {v.kind for v in report.violations}


def test_renumbered_entry_is_flagged(db: Session, verifier: IntegrityVerifier, append_reports):
    append_reports(5)

    _tamper(db, 5, "sequence_id", 6)
    report = verifier.verify()

    assert report.violations_found == 1
    assert {(v.sequence_id, v.kind) for v in report.violations} == {(6, CONTENT_TAMPERED), (6, SEQUENCE_GAP)}


def test_deleted_entry_breaks_chain(db: Session, verifier: IntegrityVerifier, append_reports):
    entries = append_reports(5)

    _delete(db, 3)
    report = verifier.verify()

    assert report.total_checked == 4
    assert report.violations_found == 1
    assert {(v.sequence_id, v.kind) for v in report.violations} == {(4, CHAIN_BREAK), (4, SEQUENCE_GAP)}
    assert report.last_verified_hash == entries[1].entry_hash


def test_deleted_newest_entry_is_flagged(db: Session, verifier: IntegrityVerifier, append_reports):
    entries = append_reports(5)

    _delete(db, 5)
    report = verifier.verify()

    assert not report.passed
    assert report.total_checked == 4
    assert report.violations_found == 1
    assert [(v.sequence_id, v.kind) for v in report.violations] == [(5, TAIL_TRUNCATED)]
    assert report.last_sequence == 4
    assert report.last_verified_hash == entries[3].entry_hash


def test_deleted_tail_run_is_flagged(db: Session, verifier: IntegrityVerifier, append_reports):
    append_reports(5)

    _delete(db, 5)
    _delete(db, 4)
    report = verifier.verify()

    assert report.total_checked == 3
    assert [(v.sequence_id, v.kind) for v in report.violations] == [(5, TAIL_TRUNCATED)]
    assert "ends at 3" in report.violations[0].detail


def test_deleted_tail_is_flagged_inside_limit_window(db: Session, verifier: IntegrityVerifier, append_reports):
    append_reports(6)

    _delete(db, 6)
    report = verifier.verify(limit=3)

    assert (report.first_sequence, report.last_sequence) == (3, 5)
    assert [(v.sequence_id, v.kind) for v in report.violations] == [(6, TAIL_TRUNCATED)]


def test_emptied_ledger_is_flagged(db: Session, verifier: IntegrityVerifier, append_reports):
    append_reports(3)

    db.execute(text("DELETE FROM moderation_audit_logs"))
    db.commit()
    report = verifier.verify()

    assert not report.passed
    assert report.total_checked == 0
    assert report.violations_found == 1
    assert report.integrity_score == 0.0
    assert [(v.sequence_id, v.kind) for v in report.violations] == [(3, TAIL_TRUNCATED)]


def test_rewritten_newest_hash_disagrees_with_head(db: Session, verifier: IntegrityVerifier, append_reports):
    entries = append_reports(3)
    forged = replace(entries[-1], action="dismiss")

    _tamper(db, 3, "action", "dismiss")
    _tamper(db, 3, "entry_hash", forged.compute_hash())
    report = verifier.verify()

    assert report.violations_found == 1
    assert [(v.sequence_id, v.kind) for v in report.violations] == [(3, HEAD_MISMATCH)]


def test_missing_head_row_skips_tail_check(db: Session, verifier: IntegrityVerifier, append_reports):
    append_reports(3)

    db.execute(text("DELETE FROM ledger_head"))
    _delete(db, 3)
    report = verifier.verify()

    assert report.passed
    assert report.total_checked == 2


def test_check_entries_without_anchor_ignores_tail(append_reports):
    entries = append_reports(3)

    assert check_entries(entries[:2], covers_origin=True)["violations_found"] == 0
    result = check_entries(entries[:2], covers_origin=True, anchor=(3, entries[2].entry_hash))
    assert [(v.sequence_id, v.kind) for v in result["violations"]] == [(3, TAIL_TRUNCATED)]


def test_deleted_origin_is_flagged(db: Session, verifier: IntegrityVerifier, append_reports):
    append_reports(3)

    _delete(db, 1)
    report = verifier.verify()

    assert report.violations_found == 1
    assert [(v.sequence_id, v.kind) for v in report.violations] == [(2, ORIGIN_CORRUPTED)]
    assert report.last_verified_hash == GENESIS_HASH


def test_verification_is_deterministic(verifier: IntegrityVerifier, append_reports):
    append_reports(5)

    first = verifier.verify().to_dict()
    second = verifier.verify().to_dict()

    for report in (first, second):
        report.pop("checked_at")
        report.pop("duration_ms")
    assert first == second


def test_empty_ledger_passes_vacuously(verifier: IntegrityVerifier):
    for limit in (None, 0):
        report = verifier.verify(limit=limit)

        assert report.passed
        assert report.total_checked == 0
        assert report.integrity_score == 1.0
        assert report.last_verified_hash is None


def test_limit_zero_scans_everything(verifier: IntegrityVerifier, append_reports):
    append_reports(4)

    assert verifier.verify(limit=0).total_checked == 4


def test_limit_checks_most_recent_entries(db: Session, verifier: IntegrityVerifier, append_reports):
    append_reports(6)
    _tamper(db, 2, "action", "tampered")

    recent = verifier.verify(limit=3)
    assert recent.passed
    assert recent.total_checked == 3
    assert (recent.first_sequence, recent.last_sequence) == (4, 6)

    full = verifier.verify()
    assert not full.passed


def test_limit_window_does_not_require_genesis(verifier: IntegrityVerifier, append_reports):
    entries = append_reports(4)

    report = verifier.verify(limit=2)

    assert report.passed
    assert report.last_verified_hash == entries[-1].entry_hash


def test_limit_larger_than_ledger(verifier: IntegrityVerifier, append_reports):
    append_reports(3)

    report = verifier.verify(limit=100)

    assert report.total_checked == 3
    assert report.passed


def test_first_entry_tampered_reports_genesis_as_last_verified(db: Session, verifier: IntegrityVerifier,
                                                               append_reports):
    append_reports(3)
    _tamper(db, 1, "actor_id", "0")

    report = verifier.verify()

    assert report.violations_found == 1
    assert report.last_verified_hash == GENESIS_HASH


def test_deadline_raises_timeout(verifier: IntegrityVerifier, append_reports):
    append_reports(3)

    with pytest.raises(VerificationTimeoutError):
        verifier.verify(deadline=time.monotonic() - 1)


def test_verification_does_not_write(db: Session, ledger: LedgerService, verifier: IntegrityVerifier,
                                     append_reports):
    entries = append_reports(3)

    verifier.verify()

    assert ledger.count() == 3
    assert ledger.latest() == entries[-1]


def test_check_entries_counts_entries_not_findings(append_reports):
    entries = append_reports(3)
    broken = replace(entries[1], previous_hash="b" * 64, action="tampered")

    result = check_entries([entries[0], broken, entries[2]], covers_origin=True)

    assert result["total_checked"] == 3
    assert result["violations_found"] == 1
    assert {v.kind for v in result["violations"]} == {CONTENT_TAMPERED, CHAIN_BREAK}


def test_report_dict_round_trip(verifier: IntegrityVerifier, append_reports):
    append_reports(2)

    report = verifier.verify()

    assert VerificationReport.from_dict(json.loads(json.dumps(report.to_dict()))) == report
