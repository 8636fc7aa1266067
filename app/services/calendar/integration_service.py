# ===== app/services/calendar/integration_service.py =====
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from app.config.scheduling import SchedulingConfig
from app.models import CalendarIntegration
from app.schemas.scheduling import CalendarSyncResult
from app.services.calendar.errors import CalendarError, CalendarErrorKind
from app.services.calendar.retry_policy import RetryPolicy
from app.services.calendar.sync_gateway import CalendarSyncGateway, UnavailableCalendarGateway

logger = logging.getLogger(__name__)


class CalendarIntegrationService:
    """Looks up the active calendar integration and records sync health on it"""

    @staticmethod
    def get_active(db: Session) -> Optional[CalendarIntegration]:
        return (
            db.query(CalendarIntegration)
            .filter(CalendarIntegration.is_active.is_(True))
            .order_by(CalendarIntegration.created_at.desc())
            .first()
        )

    @staticmethod
    def build_gateway(
            db: Session,
            config: Optional[SchedulingConfig] = None,
            admin_alerts=None,
    ) -> Optional[CalendarSyncGateway]:
        """Gateway over the active integration, or None when no usable calendar is connected"""
        integration = CalendarIntegrationService.get_active(db)
        if not integration:
            logger.info("No active calendar integration; calendar sync disabled")
            return None
        if integration.needs_reauth:
            logger.warning(f"Calendar integration {integration.id} needs re-authentication; sync disabled")
            return None

        if integration.provider != "google":
            raise ValueError(f"Unsupported calendar provider: {integration.provider}")

        from app.services.calendar.google_calendar_service import GoogleCalendarProvider
        return CalendarSyncGateway(
            GoogleCalendarProvider(integration, db),
            policy=RetryPolicy.from_settings(),
            admin_alerts=admin_alerts,
            config=config,
        )

    @staticmethod
    def resolve_gateway(
            db: Session,
            config: Optional[SchedulingConfig] = None,
            admin_alerts=None,
    ) -> CalendarSyncGateway:
        """
        Gateway for a booking transition. Without a usable integration this is
        an UnavailableCalendarGateway, so confirmations still fall back to
        manual instructions and raise an admin alert instead of silently
        skipping the calendar.
        """
        gateway = CalendarIntegrationService.build_gateway(db, config, admin_alerts)
        if gateway is not None:
            return gateway

        integration = CalendarIntegrationService.get_active(db)
        if integration is not None:
            reason = CalendarError(
                CalendarErrorKind.INVALID_TOKEN,
                f"Calendar integration {integration.id} needs re-authentication",
                401,
            )
        else:
            reason = CalendarError(CalendarErrorKind.CALENDAR_NOT_FOUND, "No calendar integration is connected")
        return UnavailableCalendarGateway(reason, admin_alerts=admin_alerts, config=config)

    @staticmethod
    def record_result(db: Session, result: CalendarSyncResult) -> None:
        """Stamp sync status on the integration and flag it when credentials were rejected"""
        integration = CalendarIntegrationService.get_active(db)
        if not integration:
            return

        integration.last_sync_at = datetime.now(timezone.utc)
        if result.degraded:
            integration.last_sync_status = "degraded" if result.success else "failed"
        else:
            integration.last_sync_status = "success"

        if result.needs_reauth:
            integration.needs_reauth = True
            logger.warning(f"Calendar integration {integration.id} flagged for re-authentication")

        db.commit()
