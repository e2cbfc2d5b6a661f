# booking_engine/services/notification/notification_service.py
"""
Fire-and-forget notification dispatch.

The scheduling core only calls ``NotificationService.notify``; rendering and
delivering email/SMS belongs to the collaborator listening on the webhook.
"""
import hashlib
import hmac
import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import httpx

from booking_engine.config.settings import get_settings
import logging

logger = logging.getLogger(__name__)

Enqueue = Callable[[str, Dict[str, Any]], Any]


class NotificationService:
    """Hands appointment events to the notification collaborator"""

    # Available notification event types
    VALID_EVENT_TYPES = [
        "booking.created",
        "booking.status_changed",
        "booking.cancelled",
        "booking.rescheduled",
    ]

    def __init__(self, enqueue: Optional[Enqueue] = None):
        self._enqueue = enqueue

    def notify(self, event_type: str, payload: Dict[str, Any]) -> bool:
        """
        Queue an event for delivery.

        Never raises for delivery problems: a failed enqueue is logged and the
        calling operation carries on. Returns whether the event was queued.
        """
        if event_type not in self.VALID_EVENT_TYPES:
            raise ValueError(f"Invalid event type: {event_type}")

        if not get_settings().NOTIFICATIONS_ENABLED:
            logger.debug(f"Notifications disabled, dropping {event_type}")
            return False

        enqueue = self._enqueue or _enqueue_celery_task
        try:
            enqueue(event_type, payload)
        except Exception as e:
            logger.error(f"Failed to dispatch {event_type} notification: {e}")
            return False

        logger.info(f"Queued {event_type} notification for appointment {payload.get('id')}")
        return True


def _enqueue_celery_task(event_type: str, payload: Dict[str, Any]) -> None:
    from booking_engine.tasks.notification_tasks import send_appointment_notification

    send_appointment_notification.delay(event_type, payload)


_default_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    global _default_service
    if _default_service is None:
        _default_service = NotificationService()
    return _default_service


def build_payload(event_type: str, event_data: Dict[str, Any]) -> Dict[str, Any]:
    """Build the webhook payload in a consistent format."""
    return {
        "event": event_type,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "business_id": event_data.get("business_id"),
        "data": event_data,
    }


def sign_payload(payload_json: str, secret: str) -> str:
    """Sign the payload using HMAC-SHA256."""
    signature = hmac.new(
        secret.encode(),
        payload_json.encode(),
        hashlib.sha256
    ).hexdigest()

    return f"sha256={signature}"


def verify_signature(payload_json: str, signature: str, secret: str) -> bool:
    expected_signature = sign_payload(payload_json, secret)
    return hmac.compare_digest(signature, expected_signature)


def deliver_notification(
        event_type: str,
        event_data: Dict[str, Any],
        url: Optional[str] = None,
        secret: Optional[str] = None,
        client: Optional[httpx.Client] = None
) -> Optional[int]:
    """
    POST one event to the notification webhook.

    Returns the response status, or None when no webhook is configured.
    Raises httpx errors so the calling task can retry.
    """
    settings = get_settings()
    url = url or settings.NOTIFICATION_WEBHOOK_URL
    secret = secret if secret is not None else settings.NOTIFICATION_WEBHOOK_SECRET

    if not url:
        logger.warning(f"NOTIFICATION_WEBHOOK_URL not set, skipping {event_type}")
        return None

    payload_json = json.dumps(build_payload(event_type, event_data))
    headers = {
        "Content-Type": "application/json",
        "X-Webhook-Event": event_type,
        "X-Webhook-Signature": sign_payload(payload_json, secret),
        "User-Agent": "BookingEngine-Webhook/1.0",
    }

    owns_client = client is None
    client = client or httpx.Client(timeout=15.0, follow_redirects=True)
    try:
        response = client.post(url, content=payload_json, headers=headers)
        response.raise_for_status()
    finally:
        if owns_client:
            client.close()

    logger.info(f"Delivered {event_type} notification ({response.status_code})")
    return response.status_code
