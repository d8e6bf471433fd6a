"""Unit tests for shared data models."""

import json
from datetime import datetime, timezone

import pytest

from shared.models import (
    FlushResult,
    NotificationType,
    PendingNotification,
    PersistResult,
    QueueEntry,
    QueueOperation,
    generate_entry_id,
)


class TestQueueEntry:
    """Tests for QueueEntry dataclass."""

    def test_create_queue_entry(self):
        """Test creating a QueueEntry with a default enqueue timestamp."""
        entry = QueueEntry(
            entry_id="rem-1-abc",
            profile_id="p1",
            operation=QueueOperation.CREATE.value,
            payload={"type": "Medicine"}
        )

        assert entry.entry_id == "rem-1-abc"
        assert entry.profile_id == "p1"
        assert entry.operation == "create"
        assert entry.queued_at > 0

    def test_queue_entry_json_round_trip(self):
        """Test that an entry survives JSON persistence."""
        entry = QueueEntry(
            entry_id="rem-2-def",
            profile_id="p1",
            operation="update",
            payload={"reminder_id": "r1", "notes": "after food"},
            queued_at=1700000000000
        )

        restored = QueueEntry.from_dict(json.loads(json.dumps(entry.to_dict())))

        assert restored == entry

    def test_from_dict_ignores_unknown_keys(self):
        """Test that fields written by other versions are tolerated."""
        data = {
            "entry_id": "doc-3-xyz",
            "profile_id": "p2",
            "operation": "create",
            "payload": {"name": "scan.pdf"},
            "queued_at": 5,
            "schema": 2,
        }

        entry = QueueEntry.from_dict(data)

        assert entry.entry_id == "doc-3-xyz"
        assert entry.payload == {"name": "scan.pdf"}

    def test_from_dict_requires_identity_fields(self):
        """Test that entries without an id cannot be parsed."""
        with pytest.raises(KeyError):
            QueueEntry.from_dict({"profile_id": "p1", "operation": "create"})


class TestPendingNotification:
    """Tests for PendingNotification dataclass."""

    def test_fire_at_parses_scheduled_at(self):
        fire_at = datetime(2026, 10, 19, 9, 50, tzinfo=timezone.utc)
        notification = PendingNotification(
            reminder_id="r1",
            type=NotificationType.MEDICINE.value,
            scheduled_at=fire_at.isoformat(),
            medicine_name="Paracetamol",
            dose="1 tablet"
        )

        assert notification.fire_at == fire_at

    def test_from_dict_defaults_domain_fields(self):
        notification = PendingNotification.from_dict({
            "reminder_id": "r2",
            "type": "appointment",
            "scheduled_at": "2026-10-19T09:00:00+00:00",
            "doctor_name": "Dr. Rao",
        })

        assert notification.doctor_name == "Dr. Rao"
        assert notification.notes is None
        assert notification.medicine_name is None

    def test_from_dict_rejects_unknown_type(self):
        with pytest.raises(ValueError):
            PendingNotification.from_dict({
                "reminder_id": "r3",
                "type": "lab_result",
                "scheduled_at": "2026-10-19T09:00:00+00:00",
            })


def test_generate_entry_id_format():
    entry_id = generate_entry_id("rem")
    prefix, millis, suffix = entry_id.split("-")

    assert prefix == "rem"
    assert millis.isdigit()
    assert len(suffix) == 8


def test_generate_entry_id_is_unique():
    ids = {generate_entry_id("doc", 6) for _ in range(100)}
    assert len(ids) == 100


def test_persist_result_ok():
    assert PersistResult.PERSISTED.ok
    assert not PersistResult.NOT_PERSISTED.ok


def test_flush_result_defaults():
    assert FlushResult() == FlushResult(synced=0, remaining=0)
