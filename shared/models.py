"""Shared data models for the offline-first sync and reminder services."""

import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class QueueOperation(str, Enum):
    """Mutation kinds a queue entry can carry."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class NotificationType(str, Enum):
    """Kinds of local reminder notifications."""
    MEDICINE = "medicine"
    APPOINTMENT = "appointment"


class PersistResult(str, Enum):
    """Outcome of a best-effort local write."""
    PERSISTED = "persisted"
    NOT_PERSISTED = "not_persisted"

    @property
    def ok(self) -> bool:
        return self is PersistResult.PERSISTED


def generate_entry_id(prefix: str, suffix_length: int = 8) -> str:
    """Build a roughly time-ordered id such as ``rem-1700000000000-3f9a0c1b``."""
    millis = int(time.time() * 1000)
    return f"{prefix}-{millis}-{uuid.uuid4().hex[:suffix_length]}"


@dataclass
class QueueEntry:
    """One pending mutation awaiting application to the remote store."""
    entry_id: str
    profile_id: str
    operation: str
    payload: Dict[str, Any]
    queued_at: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueueEntry":
        # Unknown keys are ignored so older/newer writers can share a queue.
        return cls(
            entry_id=data["entry_id"],
            profile_id=data["profile_id"],
            operation=data["operation"],
            payload=dict(data.get("payload") or {}),
            queued_at=int(data.get("queued_at") or 0),
        )


@dataclass
class PendingNotification:
    """Persisted record of an armed reminder notification.

    ``scheduled_at`` is the ISO timestamp of the intended fire time, already
    offset from the event time.
    """
    reminder_id: str
    type: str
    scheduled_at: str
    medicine_name: Optional[str] = None
    dose: Optional[str] = None
    doctor_name: Optional[str] = None
    notes: Optional[str] = None

    @property
    def fire_at(self) -> datetime:
        return datetime.fromisoformat(self.scheduled_at)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingNotification":
        """Raises ValueError for an unknown notification type."""
        return cls(
            reminder_id=data["reminder_id"],
            type=NotificationType(data["type"]).value,
            scheduled_at=data["scheduled_at"],
            medicine_name=data.get("medicine_name"),
            dose=data.get("dose"),
            doctor_name=data.get("doctor_name"),
            notes=data.get("notes"),
        )


@dataclass
class FlushResult:
    """Counts reported by a queue flush."""
    synced: int = 0
    remaining: int = 0


@dataclass
class SubmitResult:
    """Outcome of an online-first write."""
    status: str  # applied, queued
    remote_id: Optional[str] = None
    entry: Optional[QueueEntry] = None
    error: Optional[str] = None
