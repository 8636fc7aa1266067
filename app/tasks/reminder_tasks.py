# ===== app/tasks/reminder_tasks.py =====
from app.config.celery_config import celery_app
from app.config.database import get_db
from app.services.scheduling.booking_lifecycle import BookingLifecycle
from app.services.scheduling.recurring_meeting_service import RecurringMeetingService
import logging

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def send_due_reminders(self):
    """Every 15 minutes: remind customers and meeting owners about what is coming up"""
    db = next(get_db())
    try:
        bookings_sent = 0
        lifecycle = BookingLifecycle(db)
        for booking in lifecycle.bookings_needing_reminders():
            if lifecycle.send_reminder(booking):
                bookings_sent += 1

        occurrences_sent = 0
        service = RecurringMeetingService(db)
        for reminder_type, occurrences in service.occurrences_needing_reminders().items():
            for occurrence in occurrences:
                if service.send_reminder(occurrence, reminder_type):
                    occurrences_sent += 1

        logger.info(f"Queued {bookings_sent} booking and {occurrences_sent} meeting reminder(s)")
        return {"status": "success", "bookings": bookings_sent, "occurrences": occurrences_sent}

    except Exception as exc:
        logger.error(f"Reminder run failed: {exc}")
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))

    finally:
        db.close()
