"""Notification presentation for fired reminders."""

import logging
from typing import Any, Dict, Optional

import httpx

from shared.config import get_notification_config

logger = logging.getLogger(__name__)


class NotificationPresenter:
    """Hands a notification to the device notification center.

    Presentation is fire-and-forget: there is no delivery acknowledgement.
    When a webhook is configured the notification is posted there,
    otherwise it is only logged.
    """

    def __init__(
        self,
        enabled: Optional[bool] = None,
        webhook_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        """Initialize notification presenter."""
        config = get_notification_config()
        self.notification_enabled = config["enabled"] if enabled is None else enabled
        self.notification_webhook = webhook_url if webhook_url is not None else config["webhook_url"]
        self.client = client

    async def present(self, title: str, body: str, data: Optional[Dict[str, Any]] = None):
        """
        Present a notification immediately.

        Args:
            title: Notification title
            body: Notification body text
            data: Payload attached to the notification (reminder id, type, domain fields)

        Raises:
            httpx.HTTPError: If the webhook rejects or cannot receive the notification
        """
        if not self.notification_enabled:
            logger.info(f"Notifications disabled, skipping notification: {title}")
            return

        logger.info(f"NOTIFICATION: {title} - {body}")

        if not self.notification_webhook:
            return

        content = {"title": title, "body": body, "data": data or {}}
        if self.client is not None:
            response = await self.client.post(self.notification_webhook, json=content, timeout=10.0)
            response.raise_for_status()
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(self.notification_webhook, json=content, timeout=10.0)
                response.raise_for_status()
        logger.info(f"Notification delivered to webhook: {title}")
