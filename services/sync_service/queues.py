"""Offline mutation queues for reminders, documents and appointments."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from shared.collection_store import PersistedCollection
from shared.db_operations import DatabaseOperations
from shared.models import QueueEntry, QueueOperation, PersistResult, generate_entry_id
from services.document_store.client import DocumentStoreClient, SERVER_TIMESTAMP

logger = logging.getLogger(__name__)


class UnsupportedOperationError(ValueError):
    """Raised when a domain is asked to queue or apply an operation it does not support."""


def _normalize_timestamp(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return datetime.fromisoformat(value).isoformat()


class MutationQueue:
    """Durable queue of pending remote writes for one record domain.

    Queued entries and direct writes share :meth:`to_remote_record`, so a
    flushed entry produces the same remote state as an immediate online
    write.
    """

    domain: str = ""
    storage_key: str = ""
    entry_prefix: str = ""
    entry_suffix_length: int = 8
    collection_name: str = ""
    record_id_field: str = "id"
    supported_operations = (QueueOperation.CREATE, QueueOperation.UPDATE, QueueOperation.DELETE)

    def __init__(self, db_ops: DatabaseOperations, remote: DocumentStoreClient):
        """
        Initialize the queue.

        Args:
            db_ops: Local key-value persistence
            remote: Remote document store client
        """
        self.store = PersistedCollection(db_ops, self.storage_key, label=f"{self.domain} queue")
        self.remote = remote

    # Remote record translation

    def to_remote_record(self, payload: Dict[str, Any], include_created_at: bool = False) -> Dict[str, Any]:
        raise NotImplementedError

    def collection_path(self, profile_id: str) -> str:
        return f"users/{profile_id}/{self.collection_name}"

    def record_path(self, profile_id: str, record_id: str) -> str:
        return f"{self.collection_path(profile_id)}/{record_id}"

    # Queue operations

    def supports(self, operation: str) -> bool:
        return operation in {op.value for op in self.supported_operations}

    def validate(self, operation: str, payload: Dict[str, Any]) -> None:
        """
        Reject operations the domain cannot apply.

        Raises:
            UnsupportedOperationError: If the domain does not support ``operation``
            ValueError: If an update or delete does not name its target record
        """
        if not self.supports(operation):
            raise UnsupportedOperationError(f"{self.domain} queue does not support '{operation}'")
        if operation != QueueOperation.CREATE.value and not payload.get(self.record_id_field):
            raise ValueError(f"{self.domain} {operation} requires '{self.record_id_field}'")

    def build_entry(self, profile_id: str, operation: str, payload: Dict[str, Any]) -> QueueEntry:
        return QueueEntry(
            entry_id=generate_entry_id(self.entry_prefix, self.entry_suffix_length),
            profile_id=profile_id,
            operation=operation,
            payload=dict(payload),
        )

    def enqueue(self, profile_id: str, operation: str, payload: Dict[str, Any]) -> QueueEntry:
        """
        Append a pending mutation to the persisted queue.

        A failed local write is logged, not raised; the returned entry is
        still handed back to the caller.

        Args:
            profile_id: Owning profile
            operation: One of the domain's supported operations
            payload: Operation data; updates and deletes carry the target record id

        Returns:
            The new queue entry

        Raises:
            UnsupportedOperationError: If the domain does not support ``operation``
        """
        operation = getattr(operation, "value", operation)
        self.validate(operation, payload)

        entry = self.build_entry(profile_id, operation, payload)
        result = self.store.append(entry.to_dict())
        if result is PersistResult.NOT_PERSISTED:
            logger.error(f"Queued {self.domain} {operation} {entry.entry_id} could not be persisted")
        else:
            logger.info(f"Queued {self.domain} {operation} {entry.entry_id} for profile {profile_id}")
        return entry

    def list_queued(self, profile_id: Optional[str] = None) -> List[QueueEntry]:
        """Return queued entries in insertion order, optionally for one profile."""
        entries = []
        for raw in self.store.read():
            try:
                entry = QueueEntry.from_dict(raw)
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Skipping malformed {self.domain} queue entry: {raw}")
                continue
            if profile_id and entry.profile_id != profile_id:
                continue
            entries.append(entry)
        return entries

    def remove(self, entry_id: str) -> PersistResult:
        """Delete one entry; the storage key is dropped once the queue is empty."""
        return self.store.remove_where(lambda raw: raw.get("entry_id") == entry_id)

    # Direct writes

    async def apply_create_now(self, profile_id: str, payload: Dict[str, Any]) -> str:
        self._require(QueueOperation.CREATE)
        return await self.remote.create(
            self.collection_path(profile_id),
            self.to_remote_record(payload, include_created_at=True)
        )

    async def apply_update_now(self, profile_id: str, record_id: str, payload: Dict[str, Any]) -> None:
        self._require(QueueOperation.UPDATE)
        await self.remote.update(
            self.record_path(profile_id, record_id),
            self.to_remote_record(payload)
        )

    async def apply_delete_now(self, profile_id: str, record_id: str) -> None:
        self._require(QueueOperation.DELETE)
        await self.remote.delete(self.record_path(profile_id, record_id))

    async def apply(self, entry: QueueEntry) -> Optional[str]:
        """
        Apply a queued entry against the remote store.

        Returns:
            The remote id for creates, otherwise None

        Raises:
            UnsupportedOperationError: For operations this domain cannot apply
            DocumentStoreError: If the remote write fails
        """
        if entry.operation == QueueOperation.CREATE.value:
            return await self.apply_create_now(entry.profile_id, entry.payload)
        if entry.operation == QueueOperation.UPDATE.value:
            await self.apply_update_now(entry.profile_id, entry.payload[self.record_id_field], entry.payload)
            return None
        if entry.operation == QueueOperation.DELETE.value:
            await self.apply_delete_now(entry.profile_id, entry.payload[self.record_id_field])
            return None
        raise UnsupportedOperationError(f"Unknown {self.domain} queue operation '{entry.operation}'")

    def _require(self, operation: QueueOperation):
        if operation not in self.supported_operations:
            raise UnsupportedOperationError(f"{self.domain} queue does not support '{operation.value}'")


class ReminderQueue(MutationQueue):
    """Medicine and appointment reminders."""

    domain = "reminders"
    storage_key = "reminder_queue_v1"
    entry_prefix = "rem"
    collection_name = "reminders"
    record_id_field = "reminder_id"

    def to_remote_record(self, payload: Dict[str, Any], include_created_at: bool = False) -> Dict[str, Any]:
        reminder_type = payload.get("type")
        is_medicine = reminder_type == "Medicine"
        is_appointment = reminder_type == "Appointment"

        record = {
            "type": reminder_type,
            "schedule_type": payload.get("schedule_type"),
            "medicine_name": payload.get("medicine_name") if is_medicine else None,
            "dose": payload.get("dose") if is_medicine else None,
            "doctor_name": payload.get("doctor_name") if is_appointment else None,
            "notes": payload.get("notes") or "",
            "time_of_day": payload.get("time_of_day") if is_medicine else None,
            "scheduled_at": _normalize_timestamp(payload.get("scheduled_at")),
            "updated_at": SERVER_TIMESTAMP,
        }
        if include_created_at:
            record["created_at"] = SERVER_TIMESTAMP
        return record

    def queue_create(self, profile_id: str, payload: Dict[str, Any]) -> QueueEntry:
        return self.enqueue(profile_id, QueueOperation.CREATE.value, payload)

    def queue_update(self, profile_id: str, reminder_id: str, payload: Dict[str, Any]) -> QueueEntry:
        return self.enqueue(profile_id, QueueOperation.UPDATE.value, {"reminder_id": reminder_id, **payload})

    def queue_delete(self, profile_id: str, reminder_id: str) -> QueueEntry:
        return self.enqueue(profile_id, QueueOperation.DELETE.value, {"reminder_id": reminder_id})


class DocumentQueue(MutationQueue):
    """Uploaded medical documents. Uploads are create-only."""

    domain = "documents"
    storage_key = "document_upload_queue_v1"
    entry_prefix = "doc"
    entry_suffix_length = 6
    collection_name = "documents"
    supported_operations = (QueueOperation.CREATE,)

    def to_remote_record(self, payload: Dict[str, Any], include_created_at: bool = False) -> Dict[str, Any]:
        return {
            "name": payload.get("name"),
            "base64_data": payload.get("base64_data"),
            "mime_type": payload.get("mime_type"),
            "extension": payload.get("extension"),
            "file_size": payload.get("file_size"),
            "source_type": payload.get("source_type") or "unknown",
            "original_file_name": payload.get("original_file_name"),
            "uploaded_at": SERVER_TIMESTAMP,
        }

    def queue_upload(self, profile_id: str, payload: Dict[str, Any]) -> QueueEntry:
        return self.enqueue(profile_id, QueueOperation.CREATE.value, payload)

    async def upload_now(self, profile_id: str, payload: Dict[str, Any]) -> str:
        return await self.apply_create_now(profile_id, payload)


class AppointmentQueue(MutationQueue):
    """Booked doctor appointments. Appointments are created and updated, never deleted."""

    domain = "appointments"
    storage_key = "appointment_queue_v1"
    entry_prefix = "appt"
    collection_name = "appointments"
    record_id_field = "appointment_id"
    supported_operations = (QueueOperation.CREATE, QueueOperation.UPDATE)

    def to_remote_record(self, payload: Dict[str, Any], include_created_at: bool = False) -> Dict[str, Any]:
        record = {
            "doctor_name": payload.get("doctor_name"),
            "doctor_id": payload.get("doctor_id"),
            "specialty": payload.get("specialty"),
            "notes": payload.get("notes") or "",
            "scheduled_at": _normalize_timestamp(payload.get("scheduled_at")),
            "meeting_url": payload.get("meeting_url"),
            "status": payload.get("status") or "scheduled",
            "updated_at": SERVER_TIMESTAMP,
        }
        if include_created_at:
            record["created_at"] = SERVER_TIMESTAMP
        return record

    def queue_create(self, profile_id: str, payload: Dict[str, Any]) -> QueueEntry:
        return self.enqueue(profile_id, QueueOperation.CREATE.value, payload)

    def queue_update(self, profile_id: str, appointment_id: str, payload: Dict[str, Any]) -> QueueEntry:
        return self.enqueue(profile_id, QueueOperation.UPDATE.value, {"appointment_id": appointment_id, **payload})
