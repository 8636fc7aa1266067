# ===== app/services/notifications/notification_service.py =====
import logging
from typing import Any, Dict

from app.schemas.scheduling import BookingStatus
from app.tasks.email_tasks import send_booking_notification

logger = logging.getLogger(__name__)

TEMPLATE_KEYS = {
    BookingStatus.PENDING: "booking_pending",
    BookingStatus.CONFIRMED: "booking_confirmed",
    BookingStatus.COMPLETED: "booking_completed",
    BookingStatus.CANCELLED: "booking_cancelled",
    BookingStatus.NO_SHOW: "booking_no_show",
}

BOOKING_REMINDER_KEY = "booking_reminder"
MEETING_REMINDER_KEY = "meeting_reminder"
MEETING_CALENDAR_FALLBACK_KEY = "meeting_calendar_fallback"


def template_key_for_status(status) -> str:
    """Email template for a booking that just moved into ``status``"""
    return TEMPLATE_KEYS[BookingStatus(status)]


class NotificationService:
    """Queues customer emails; delivery and its retries happen in the worker"""

    def enqueue(self, template_key: str, recipient: str, context: Dict[str, Any]) -> bool:
        try:
            send_booking_notification.delay(template_key, recipient, context)
        except Exception as e:
            logger.error(f"Failed to enqueue {template_key} email for {recipient}: {e}")
            return False

        logger.info(f"Queued {template_key} email for {recipient}")
        return True
