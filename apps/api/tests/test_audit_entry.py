"""Tests for the audit entry hash rule."""

import hashlib
import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from modtrail_api.ledger.entry import (
    GENESIS_HASH,
    HASH_FIELD_ORDER,
    AuditEntry,
    canonical_encoding,
    compute_entry_hash,
    format_timestamp,
    normalize_snapshot,
)


def _fields(**overrides):
    fields = {
        "sequence_id": 1,
        "previous_hash": GENESIS_HASH,
        "event_type": "report_resolved",
        "actor_type": "moderator",
        "actor_id": "7",
        "target_type": "Report",
        "target_id": "42",
        "action": "resolve",
        "old_values": {"status": "pending"},
        "new_values": {"status": "resolved", "actions_taken": ["warn"]},
        "metadata": {"ip_address": "10.0.0.1", "user_agent": "pytest"},
        "timestamp": datetime(2024, 3, 1, 12, 30, 45, 123456),
    }
    fields.update(overrides)
    return fields


def test_genesis_hash_is_64_zeros():
    assert GENESIS_HASH == "0" * 64


def test_hash_is_sha256_of_canonical_encoding():
    fields = _fields()
    digest = compute_entry_hash(fields)

    assert digest == hashlib.sha256(canonical_encoding(fields)).hexdigest()
    assert len(digest) == 64
    assert digest == digest.lower()


def test_encoding_lists_fields_in_fixed_order():
    pairs = json.loads(canonical_encoding(_fields()))

    assert [name for name, _ in pairs] == list(HASH_FIELD_ORDER)
    assert pairs[-1] == ["timestamp", "2024-03-01T12:30:45.123456"]


def test_encoding_ignores_dict_insertion_order():
    forward = _fields(metadata={"a": 1, "b": {"x": 1, "y": 2}})
    backward = dict(reversed(list(_fields(metadata={"b": {"y": 2, "x": 1}, "a": 1}).items())))

    assert canonical_encoding(forward) == canonical_encoding(backward)


def test_encoding_ignores_entry_hash_key():
    fields = _fields()
    with_hash = dict(fields, entry_hash="f" * 64)

    assert compute_entry_hash(fields) == compute_entry_hash(with_hash)


def test_null_fields_are_encoded_explicitly():
    pairs = dict(json.loads(canonical_encoding(_fields(actor_id=None, old_values=None))))

    assert "actor_id" in pairs
    assert pairs["actor_id"] is None
    assert pairs["old_values"] is None


def test_null_and_empty_snapshot_hash_differently():
    assert compute_entry_hash(_fields(old_values=None)) != compute_entry_hash(_fields(old_values={}))


@pytest.mark.parametrize(
    "field_name,value",
    [
        ("sequence_id", 2),
        ("previous_hash", "a" * 64),
        ("event_type", "report_escalated"),
        ("actor_type", "system"),
        ("actor_id", "8"),
        ("target_type", "Appeal"),
        ("target_id", "43"),
        ("action", "escalate"),
        ("old_values", {"status": "open"}),
        ("new_values", {"status": "dismissed"}),
        ("metadata", {"ip_address": "10.0.0.2"}),
        ("timestamp", datetime(2024, 3, 1, 12, 30, 45, 123457)),
    ],
)
def test_every_hashed_field_changes_the_hash(field_name, value):
    assert compute_entry_hash(_fields(**{field_name: value})) != compute_entry_hash(_fields())


def test_timestamp_is_formatted_as_naive_utc():
    aware = datetime(2024, 3, 1, 14, 30, 45, 123456, tzinfo=timezone.utc)

    assert format_timestamp(aware) == "2024-03-01T14:30:45.123456"
    assert format_timestamp(datetime(2024, 3, 1)) == "2024-03-01T00:00:00.000000"


def test_normalize_snapshot_reduces_to_json_types():
    snapshot = normalize_snapshot(
        {
            "expires_at": datetime(2024, 5, 1, 9, 0),
            "amount": Decimal("1.50"),
            "actions": ("warn", "mute"),
        }
    )

    assert snapshot == {
        "expires_at": "2024-05-01T09:00:00.000000",
        "amount": "1.50",
        "actions": ["warn", "mute"],
    }
    assert normalize_snapshot(None) is None


def test_normalize_snapshot_rejects_non_mappings():
    with pytest.raises(TypeError):
        normalize_snapshot(["not", "a", "mapping"])


def test_normalize_snapshot_rejects_lone_surrogates():
    with pytest.raises(ValueError):
        normalize_snapshot({"note": "\ud800"})
    with pytest.raises(ValueError):
        normalize_snapshot({"nested": {"\udc00": 1}})


def test_audit_entry_recomputes_its_own_hash():
    fields = _fields()
    entry = AuditEntry(entry_hash=compute_entry_hash(fields), **fields)

    assert entry.compute_hash() == entry.entry_hash
    assert entry.is_genesis
    assert entry.to_dict()["timestamp"] == "2024-03-01T12:30:45.123456"
    assert entry.to_dict()["entry_hash"] == entry.entry_hash
