# ===== app/services/notifications/admin_alert_service.py =====
import logging
from typing import Any, Dict

from app.tasks.email_tasks import send_admin_calendar_alert

logger = logging.getLogger(__name__)


class AdminAlertService:
    """Tells the administrator that a calendar operation needs manual follow-up"""

    def notify(self, operation: str, subject_id: str, error_summary: Dict[str, Any]) -> bool:
        try:
            send_admin_calendar_alert.delay(operation, subject_id, error_summary)
        except Exception as e:
            logger.error(f"Failed to enqueue admin alert for calendar {operation} on {subject_id}: {e}")
            return False

        logger.warning(f"Admin alerted: calendar {operation} failed for {subject_id}")
        return True
