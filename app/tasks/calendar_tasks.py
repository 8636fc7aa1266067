# ===== app/tasks/calendar_tasks.py =====
from app.config.celery_config import celery_app
from app.config.database import get_db
from app.models.recurring_meeting import MeetingOccurrence
from app.services.calendar.integration_service import CalendarIntegrationService
from app.services.scheduling.recurrence import RecurrenceGenerator
from app.services.scheduling.errors import NotFound
from app.services.scheduling.recurring_meeting_service import RecurringMeetingService
from app.utils.ids import coerce_uuid
import logging

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def extend_recurring_meeting_horizons(self):
    """Daily: keep every active recurring meeting generated a full horizon ahead"""
    db = next(get_db())
    try:
        created = RecurrenceGenerator(db).extend_all()

        for occurrence in created:
            sync_occurrence_to_calendar.delay(str(occurrence.id))

        logger.info(f"Horizon extension created {len(created)} occurrence(s)")
        return {"status": "success", "created": len(created)}

    except Exception as exc:
        logger.error(f"Recurring meeting horizon extension failed: {exc}")
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))

    finally:
        db.close()


@celery_app.task(bind=True, max_retries=3)
def sync_occurrence_to_calendar(self, occurrence_id: str):
    """Push one occurrence to the connected calendar (create or update)"""
    db = next(get_db())
    try:
        gateway = CalendarIntegrationService.build_gateway(db)
        if gateway is None:
            return {"status": "skipped", "reason": "no_active_integration"}

        service = RecurringMeetingService(db, gateway=gateway)
        try:
            occurrence = service.get_occurrence(occurrence_id)
        except NotFound:
            logger.error(f"Occurrence {occurrence_id} not found")
            return {"status": "failed", "reason": "occurrence_not_found"}
        if occurrence.status == "cancelled":
            return {"status": "skipped", "reason": "occurrence_cancelled"}

        result = service.sync_occurrence(occurrence, notify=False)
        logger.info(f"Synced occurrence {occurrence_id}: degraded={result.degraded}")
        return {"status": "degraded" if result.degraded else "synced", "event_id": result.event_id}

    except Exception as exc:
        logger.error(f"Calendar sync failed for occurrence {occurrence_id}: {exc}")

        db.rollback()
        occurrence = db.query(MeetingOccurrence).filter_by(id=coerce_uuid(occurrence_id)).first()
        if occurrence:
            occurrence.calendar_sync_status = "failed"
            db.commit()

        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))

    finally:
        db.close()
