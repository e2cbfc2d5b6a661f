# ===== booking_engine/tasks/notification_tasks.py =====
from typing import Any, Dict
import logging

import httpx

from booking_engine.config.celery_config import celery_app
from booking_engine.services.notification.notification_service import deliver_notification

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def send_appointment_notification(self, event_type: str, event_data: Dict[str, Any]):
    """
    Deliver an appointment event to the notification webhook

    Args:
        event_type: booking.created, booking.cancelled, ...
        event_data: Serialized appointment
    """
    try:
        status_code = deliver_notification(event_type, event_data)
        if status_code is None:
            return {"status": "skipped", "reason": "no_webhook_configured"}
        return {"status": "delivered", "status_code": status_code}

    except httpx.HTTPError as exc:
        logger.error(f"Failed to deliver {event_type} for appointment {event_data.get('id')}: {exc}")

        # Retry with exponential backoff: 1min, 2min, 4min
        raise self.retry(
            exc=exc,
            countdown=60 * (2 ** self.request.retries)
        )
