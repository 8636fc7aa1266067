# ===== app/services/calendar/sync_gateway.py =====
"""
Calendar sync gateway.

Wraps a CalendarProvider with retries, a deadline and the degraded-mode
fallback. Calendar trouble never raises out of here: every call returns a
CalendarSyncResult describing what happened.
"""
import logging
import random
import time
from typing import Callable, Dict, List, Optional, Protocol

from app.config.scheduling import SchedulingConfig
from app.schemas.scheduling import CalendarEventRequest, CalendarSyncResult
from app.services.calendar.errors import CalendarError, should_refresh_token
from app.services.calendar.fallback import manual_meeting_instructions
from app.services.calendar.retry_policy import RetryExecutor, RetryPolicy
from app.services.notifications.admin_alert_service import AdminAlertService

logger = logging.getLogger(__name__)


class CalendarProvider(Protocol):
    """Anything that can create, update and delete events on an external calendar.

    create/update return a dict with ``event_id`` and optionally ``meeting_link``
    and ``event_url``.
    """

    def create_event(self, request: CalendarEventRequest) -> Dict: ...

    def update_event(self, event_id: str, request: CalendarEventRequest) -> Dict: ...

    def delete_event(self, event_id: str) -> None: ...


class CalendarSyncGateway:

    def __init__(
            self,
            provider: CalendarProvider,
            policy: Optional[RetryPolicy] = None,
            admin_alerts=None,
            config: Optional[SchedulingConfig] = None,
            sleep: Callable[[float], None] = time.sleep,
            clock: Callable[[], float] = time.monotonic,
            rand: Callable[[], float] = random.random,
    ):
        self.provider = provider
        self.policy = policy or RetryPolicy.from_settings()
        self.config = config or SchedulingConfig.from_settings()
        self.executor = RetryExecutor(self.policy, sleep=sleep, clock=clock, rand=rand)

        self.admin_alerts = admin_alerts or AdminAlertService()

    def create_event(self, request: CalendarEventRequest) -> CalendarSyncResult:
        try:
            event = self.executor.run(lambda: self.provider.create_event(request), "calendar create")
        except CalendarError as error:
            return self._fallback("create", request.subject_id, error, request)

        logger.info(f"Created calendar event {event['event_id']} for {request.subject_id}")
        return CalendarSyncResult(
            success=True,
            operation="create",
            subject_id=request.subject_id,
            event_id=event["event_id"],
            meeting_link=event.get("meeting_link"),
        )

    def update_event(self, event_id: str, request: CalendarEventRequest) -> CalendarSyncResult:
        try:
            event = self.executor.run(
                lambda: self.provider.update_event(event_id, request), "calendar update"
            )
        except CalendarError as error:
            return self._fallback("update", request.subject_id, error, request, event_id=event_id)

        logger.info(f"Updated calendar event {event_id} for {request.subject_id}")
        return CalendarSyncResult(
            success=True,
            operation="update",
            subject_id=request.subject_id,
            event_id=event.get("event_id") or event_id,
            meeting_link=event.get("meeting_link"),
        )

    def delete_event(self, event_id: str, subject_id: str) -> CalendarSyncResult:
        """
        Remove an event. The owning record is already committed, so a failure
        is reported (success=False, degraded=True) and alerted but not raised.
        """
        try:
            self.executor.run(lambda: self.provider.delete_event(event_id), "calendar delete")
        except CalendarError as error:
            return self._delete_failed(subject_id, error, event_id)

        logger.info(f"Deleted calendar event {event_id} for {subject_id}")
        return CalendarSyncResult(success=True, operation="delete", subject_id=subject_id, event_id=event_id)

    def _delete_failed(self, subject_id: str, error: CalendarError, event_id: Optional[str]) -> CalendarSyncResult:
        self._log_failure("delete", subject_id, error)
        actions = ["Error logged for debugging"]
        if self._alert_admin("delete", subject_id, error):
            actions.append("Admin notified of calendar failure")
        return CalendarSyncResult(
            success=False,
            degraded=True,
            operation="delete",
            subject_id=subject_id,
            event_id=event_id,
            error_kind=error.kind.value,
            error_code=error.code,
            error_message=error.message,
            needs_reauth=should_refresh_token(error),
            fallback_actions=actions,
        )

    def _fallback(
            self,
            operation: str,
            subject_id: str,
            error: CalendarError,
            request: CalendarEventRequest,
            event_id: Optional[str] = None,
    ) -> CalendarSyncResult:
        """Degraded success: the booking stands and the customer gets manual instructions"""
        self._log_failure(operation, subject_id, error)
        actions: List[str] = ["Error logged for debugging"]

        meeting_time = request.start.strftime("%A %d %B %Y, %I:%M %p") + f" ({request.timezone})"
        instructions = manual_meeting_instructions(
            request.customer_phone, meeting_time, self.config.fallback_contact_phone
        )
        actions.append("Manual meeting instructions created")

        if self._alert_admin(operation, subject_id, error):
            actions.append("Admin notified of calendar failure")

        return CalendarSyncResult(
            success=True,
            degraded=True,
            operation=operation,
            subject_id=subject_id,
            event_id=event_id,
            fallback_instructions=instructions,
            error_kind=error.kind.value,
            error_code=error.code,
            error_message=error.message,
            needs_reauth=should_refresh_token(error),
            fallback_actions=actions,
        )

    def _log_failure(self, operation: str, subject_id: str, error: CalendarError) -> None:
        logger.error(
            f"Calendar {operation} failed for {subject_id}: {error.kind.value} {error.message}",
            extra={
                "calendar_operation": operation,
                "subject_id": subject_id,
                "error_kind": error.kind.value,
                "error_code": error.code,
                "retryable": error.retryable,
                "attempts": error.attempts,
            },
        )

    def _alert_admin(self, operation: str, subject_id: str, error: CalendarError) -> bool:
        return self.admin_alerts.notify(operation, subject_id, error.summary())


class UnavailableCalendarGateway(CalendarSyncGateway):
    """
    Stands in when no usable calendar is connected (none configured, or the
    integration is waiting for re-authentication). Nothing is sent anywhere;
    every call takes the same degraded path a failed provider call would, so
    customers still get manual instructions and the admin still hears about it.
    """

    def __init__(
            self,
            reason: CalendarError,
            admin_alerts=None,
            config: Optional[SchedulingConfig] = None,
    ):
        self.provider = None
        self.reason = reason
        self.policy = None
        self.executor = None
        self.config = config or SchedulingConfig.from_settings()
        self.admin_alerts = admin_alerts or AdminAlertService()

    def create_event(self, request: CalendarEventRequest) -> CalendarSyncResult:
        return self._fallback("create", request.subject_id, self.reason, request)

    def update_event(self, event_id: str, request: CalendarEventRequest) -> CalendarSyncResult:
        return self._fallback("update", request.subject_id, self.reason, request, event_id=event_id)

    def delete_event(self, event_id: str, subject_id: str) -> CalendarSyncResult:
        return self._delete_failed(subject_id, self.reason, event_id)
