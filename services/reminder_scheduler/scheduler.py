"""Local reminder notification scheduling.

Notifications are armed as asyncio tasks that sleep until their fire time.
Each armed notification is also persisted so it can be re-armed after a
restart through :meth:`NotificationScheduler.restore_pending_notifications`.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from shared.collection_store import PersistedCollection
from shared.db_operations import DatabaseOperations
from shared.models import NotificationType, PendingNotification, PersistResult
from services.reminder_scheduler.presenter import NotificationPresenter

logger = logging.getLogger(__name__)

PENDING_NOTIFICATIONS_KEY = "pending_notifications"

MEDICINE_OFFSET = timedelta(minutes=10)
APPOINTMENT_OFFSET = timedelta(minutes=60)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes are taken to be UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _describe_offset(offset: timedelta) -> str:
    minutes = int(offset.total_seconds() // 60)
    if minutes and minutes % 60 == 0:
        hours = minutes // 60
        return "1 hour" if hours == 1 else f"{hours} hours"
    return "1 minute" if minutes == 1 else f"{minutes} minutes"


class NotificationScheduler:
    """Owns the live reminder timers and their persisted records.

    Per reminder id there is at most one live timer and one persisted
    record; scheduling again replaces both.
    """

    def __init__(
        self,
        db_ops: DatabaseOperations,
        presenter: NotificationPresenter,
        medicine_offset: timedelta = MEDICINE_OFFSET,
        appointment_offset: timedelta = APPOINTMENT_OFFSET,
        now: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the scheduler.

        Args:
            db_ops: Local key-value persistence for pending notifications
            presenter: Presents notifications when their timers fire
            medicine_offset: How long before a dose the reminder fires
            appointment_offset: How long before an appointment the reminder fires
            now: Clock returning an aware datetime
        """
        self.store = PersistedCollection(db_ops, PENDING_NOTIFICATIONS_KEY, label="pending notifications")
        self.presenter = presenter
        self.medicine_offset = medicine_offset
        self.appointment_offset = appointment_offset
        self._now = now or _utc_now
        self._timers: Dict[str, asyncio.Task] = {}

    async def schedule_medicine_notification(
        self,
        reminder_id: str,
        medicine_name: str,
        dose: Optional[str],
        scheduled_time: datetime
    ) -> Optional[str]:
        """
        Schedule a notification ahead of a medicine dose.

        Args:
            reminder_id: The reminder record id
            medicine_name: Name of the medicine
            dose: Dose of the medicine
            scheduled_time: When the dose is due

        Returns:
            The reminder id, or None if the fire time has already passed
        """
        fire_at = _as_utc(scheduled_time) - self.medicine_offset
        return self._arm(PendingNotification(
            reminder_id=reminder_id,
            type=NotificationType.MEDICINE.value,
            scheduled_at=fire_at.isoformat(),
            medicine_name=medicine_name,
            dose=dose,
        ))

    async def schedule_appointment_notification(
        self,
        reminder_id: str,
        doctor_name: str,
        notes: Optional[str],
        appointment_time: datetime
    ) -> Optional[str]:
        """
        Schedule a notification ahead of an appointment.

        Args:
            reminder_id: The reminder record id
            doctor_name: Name of the doctor
            notes: Appointment notes
            appointment_time: When the appointment starts

        Returns:
            The reminder id, or None if the fire time has already passed
        """
        fire_at = _as_utc(appointment_time) - self.appointment_offset
        return self._arm(PendingNotification(
            reminder_id=reminder_id,
            type=NotificationType.APPOINTMENT.value,
            scheduled_at=fire_at.isoformat(),
            doctor_name=doctor_name,
            notes=notes,
        ))

    def cancel_notification(self, reminder_id: str) -> bool:
        """
        Cancel the live timer and drop the persisted record for a reminder.

        Both steps are no-ops when nothing is armed.

        Returns:
            True if a live timer was cancelled
        """
        cancelled = self._cancel_timer(reminder_id)
        self.store.remove_where(lambda item: item.get("reminder_id") == reminder_id)
        if cancelled:
            logger.info(f"Notification cancelled: {reminder_id}")
        return cancelled

    async def reassign_notification(self, old_id: str, new_id: str) -> Optional[str]:
        """
        Move a notification to a new reminder id, keeping its fire time.

        Reminders created offline are armed under their queue entry id; once
        the create is flushed the notification must follow the stored
        record's id so later updates and deletes reach it.

        Args:
            old_id: The id the notification is armed under
            new_id: The reminder record id

        Returns:
            The new id, or None if nothing armable was held under ``old_id``
        """
        record = next(
            (raw for raw in self.store.read() if raw.get("reminder_id") == old_id),
            None
        )
        self._cancel_timer(old_id)
        if record is None:
            return None

        self.store.remove_where(lambda item: item.get("reminder_id") == old_id)
        try:
            notification = PendingNotification.from_dict({**record, "reminder_id": new_id})
            reassigned = self._arm(notification)
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Dropping malformed pending notification: {record}")
            return None

        if reassigned:
            logger.info(f"Notification {old_id} reassigned to {new_id}")
        return reassigned

    def cancel_all_notifications(self) -> int:
        """
        Cancel every live timer.

        Persisted records are left in place so a later restore can re-arm them.

        Returns:
            Number of timers cancelled
        """
        count = len(self._timers)
        for task in self._timers.values():
            task.cancel()
        self._timers.clear()
        logger.info(f"All notifications cancelled ({count} timers)")
        return count

    async def restore_pending_notifications(self) -> int:
        """
        Re-arm notifications persisted before the process last stopped.

        Each record is armed at its persisted fire time. The old batch is
        then replaced in one write by the records that were re-armed, which
        drops stale duplicates and records whose fire time has passed.

        Returns:
            Number of notifications re-armed
        """
        records = self.store.read()
        if not records:
            logger.info("No pending notifications to restore")
            return 0

        logger.info(f"Restoring {len(records)} pending notifications")

        armed: Dict[str, PendingNotification] = {}
        for raw in records:
            try:
                notification = PendingNotification.from_dict(raw)
                rearmed = self._arm(notification)
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Dropping malformed pending notification: {raw}")
                continue

            if rearmed:
                armed[notification.reminder_id] = notification

        self.store.write([notification.to_dict() for notification in armed.values()])
        logger.info(f"Restored {len(armed)} pending notifications")
        return len(armed)

    def sweep_stale_notifications(self) -> int:
        """
        Drop persisted records whose fire time has passed without a live timer.

        Such records are left behind when removing a fired record fails.

        Returns:
            Number of records removed
        """
        now = self._now()
        stale = set()
        for raw in self.store.read():
            reminder_id = raw.get("reminder_id")
            if reminder_id in self._timers:
                continue
            try:
                fire_at = _as_utc(PendingNotification.from_dict(raw).fire_at)
            except (KeyError, TypeError, ValueError):
                stale.add(reminder_id)
                continue
            if fire_at <= now:
                stale.add(reminder_id)

        if stale:
            self.store.remove_where(lambda item: item.get("reminder_id") in stale)
            logger.info(f"Swept {len(stale)} stale pending notifications")
        return len(stale)

    def get_scheduled_notifications(self) -> List[str]:
        """Return the reminder ids that currently have a live timer."""
        return list(self._timers.keys())

    def get_pending_notifications(self) -> List[PendingNotification]:
        """Return the persisted pending notifications."""
        pending = []
        for raw in self.store.read():
            try:
                pending.append(PendingNotification.from_dict(raw))
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Skipping malformed pending notification: {raw}")
        return pending

    def get_debug_status(self) -> Dict[str, Any]:
        return {
            "active_count": len(self._timers),
            "reminders": self.get_scheduled_notifications(),
            "timestamp": self._now().isoformat(),
        }

    async def send_test_notification(self, notification_type: str = NotificationType.MEDICINE.value):
        """Present a sample notification immediately."""
        if notification_type == NotificationType.MEDICINE.value:
            sample = PendingNotification(
                reminder_id="test-medicine",
                type=NotificationType.MEDICINE.value,
                scheduled_at=self._now().isoformat(),
                medicine_name="Paracetamol",
                dose="1 tablet",
            )
        else:
            sample = PendingNotification(
                reminder_id="test-appointment",
                type=NotificationType.APPOINTMENT.value,
                scheduled_at=self._now().isoformat(),
                doctor_name="Dr. Smith",
                notes="Test appointment",
            )
        title, body, data = self.render(sample)
        await self.presenter.present(f"Test {title}", body, data)

    def render(self, notification: PendingNotification) -> Tuple[str, str, Dict[str, Any]]:
        """Build the title, body and data payload for a notification."""
        if notification.type == NotificationType.MEDICINE.value:
            title = "Medicine Reminder"
            body = f"Time to take {notification.medicine_name}"
            if notification.dose:
                body += f" ({notification.dose})"
            data = {
                "reminder_id": notification.reminder_id,
                "type": notification.type,
                "medicine_name": notification.medicine_name,
                "dose": notification.dose,
            }
        elif notification.type == NotificationType.APPOINTMENT.value:
            title = "Appointment Reminder"
            body = (
                f"Your appointment with {notification.doctor_name} "
                f"is in {_describe_offset(self.appointment_offset)}"
            )
            if notification.notes:
                body += f": {notification.notes}"
            data = {
                "reminder_id": notification.reminder_id,
                "type": notification.type,
                "doctor_name": notification.doctor_name,
                "notes": notification.notes,
            }
        else:
            raise ValueError(f"Unknown notification type '{notification.type}'")
        return title, body, data

    def _arm(self, notification: PendingNotification) -> Optional[str]:
        reminder_id = notification.reminder_id
        now = self._now()
        fire_at = _as_utc(notification.fire_at)

        if fire_at <= now:
            logger.info(f"Notification time for {reminder_id} is in the past, skipping")
            return None

        if self._cancel_timer(reminder_id):
            logger.info(f"Cancelled previous notification for: {reminder_id}")

        # Persist before arming so a crash before firing is recoverable.
        result = self.store.replace_where(
            lambda item: item.get("reminder_id") == reminder_id,
            notification.to_dict()
        )
        if result is PersistResult.NOT_PERSISTED:
            logger.error(f"Pending notification {reminder_id} could not be persisted")

        delay = (fire_at - now).total_seconds()
        self._timers[reminder_id] = asyncio.create_task(
            self._fire_after(delay, notification),
            name=f"notification-{reminder_id}"
        )
        logger.info(f"{notification.type} notification {reminder_id} scheduled for {round(delay)} seconds from now")
        return reminder_id

    def _cancel_timer(self, reminder_id: str) -> bool:
        task = self._timers.pop(reminder_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    async def _fire_after(self, delay: float, notification: PendingNotification):
        await asyncio.sleep(delay)

        reminder_id = notification.reminder_id
        if self._timers.get(reminder_id) is not asyncio.current_task():
            return
        del self._timers[reminder_id]

        title, body, data = self.render(notification)
        logger.info(f"Triggering {notification.type} notification for: {reminder_id}")
        try:
            await self.presenter.present(title, body, data)
            logger.info(f"{notification.type} notification sent for: {reminder_id}")
        except Exception as e:
            logger.error(f"Error presenting notification {reminder_id}: {e}", exc_info=True)

        # A newer schedule for this reminder owns the persisted record.
        if reminder_id in self._timers:
            return
        self.store.remove_where(lambda item: item.get("reminder_id") == reminder_id)
