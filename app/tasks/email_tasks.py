# ===== app/tasks/email_tasks.py =====
from typing import Any, Dict
import logging

from app.config.celery_config import celery_app
from app.services.email.email_service import EmailService

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def send_booking_notification(
        self,
        template_key: str,
        recipient: str,
        context: Dict[str, Any]
):
    """
    Send a booking status email to the customer

    Args:
        template_key: One of booking_pending/confirmed/completed/cancelled/no_show
        recipient: Customer's email address
        context: Template values (name, date, slot, meeting link or manual instructions)
    """
    try:
        logger.info(f"Sending {template_key} email to {recipient}")

        EmailService.send_booking_status_email(
            template_key=template_key,
            email=recipient,
            context=context
        )

        logger.info(f"{template_key} email sent successfully to {recipient}")
        return {"status": "success", "email": recipient, "template": template_key}

    except Exception as exc:
        logger.error(f"Failed to send {template_key} email to {recipient}: {exc}")

        # Retry with exponential backoff: 1min, 2min, 4min
        raise self.retry(
            exc=exc,
            countdown=60 * (2 ** self.request.retries)
        )


@celery_app.task(bind=True, max_retries=3)
def send_admin_calendar_alert(
        self,
        operation: str,
        subject_id: str,
        error_summary: Dict[str, Any]
):
    """
    Email the administrator about a calendar operation that fell back

    Args:
        operation: create, update or delete
        subject_id: Booking or occurrence id
        error_summary: Classified error (kind, code, message, attempts)
    """
    try:
        logger.info(f"Sending calendar alert for {operation} on {subject_id}")

        EmailService.send_admin_calendar_alert(
            operation=operation,
            subject_id=subject_id,
            error_summary=error_summary
        )

        return {"status": "success", "subject_id": subject_id}

    except Exception as exc:
        logger.error(f"Failed to send calendar alert for {subject_id}: {exc}")

        raise self.retry(
            exc=exc,
            countdown=60 * (2 ** self.request.retries)
        )
