"""Posts user-facing notifications to the intake channel webhook."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from order_intake.core.config import IntegrationSettings
from order_intake.core.exceptions import APIClientError
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)

NOTIFICATION_TYPES = frozenset(
    {
        "blocked",
        "issues",
        "selection_needed",
        "ready_for_approval",
        "complete",
        "failed",
        "reminder",
        "escalation",
        "timeout_warning",
        "cancelled",
    }
)


class NotificationService:
    def __init__(self, webhook_url: str, timeout: float = 60.0):
        self.webhook_url = webhook_url
        self.timeout = timeout

    @classmethod
    def from_settings(cls, integrations: IntegrationSettings) -> "NotificationService":
        return cls(integrations.notification_webhook_url, integrations.http_timeout)

    async def notify(
        self,
        case_id: str,
        notification_type: str,
        user_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        recipient_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Deliver one notification keyed by case id.

        Raises:
            ValueError: For an unknown notification type
            APIClientError: If the webhook is unreachable or rejects the message
        """
        if notification_type not in NOTIFICATION_TYPES:
            raise ValueError(f"Unknown notification type: {notification_type}")

        body = {
            "case_id": case_id,
            "type": notification_type,
            "user_id": user_id,
            "recipient_id": recipient_id or user_id,
            "payload": payload or {},
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=body)
        except httpx.HTTPError as e:
            LOGGER.error(f"Error sending {notification_type} for case {case_id}: {str(e)}", exc_info=True)
            raise APIClientError(f"Notification delivery failed: {str(e)}", original_error=e)

        if response.status_code >= 300:
            LOGGER.error(
                f"Notification webhook rejected message: {response.text}",
                extra={"case_id": case_id, "status_code": response.status_code},
            )
            raise APIClientError(f"Notification webhook returned {response.status_code}")

        LOGGER.info(f"Sent {notification_type} notification", extra={"case_id": case_id})
        return {"delivered": True, "type": notification_type}
