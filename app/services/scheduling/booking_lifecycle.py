# ===== app/services/scheduling/booking_lifecycle.py =====
"""
Booking state machine.

    pending   -> confirmed | cancelled
    confirmed -> completed | cancelled | no_show

completed, cancelled and no_show are terminal. Status changes are committed
before any calendar call, so calendar trouble can only degrade a transition,
never undo it.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.config.scheduling import SchedulingConfig
from app.models.booking import Booking
from app.schemas.scheduling import (
    BookingCreate,
    BookingStatus,
    CalendarEventRequest,
    CalendarSyncResult,
    TransitionResult,
    parse_time_slot,
)
from app.services.calendar.fallback import manual_meeting_instructions
from app.services.calendar.integration_service import CalendarIntegrationService
from app.services.calendar.sync_gateway import CalendarSyncGateway
from app.services.notifications.notification_service import (
    BOOKING_REMINDER_KEY,
    NotificationService,
    template_key_for_status,
)
from app.services.scheduling.conflict_validator import validate_date_selection, validate_time_slot_choice
from app.services.scheduling.errors import IllegalTransition, NotFound
from app.services.scheduling.slot_catalog import SlotCatalog
from app.utils.ids import coerce_uuid

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[BookingStatus, tuple] = {
    BookingStatus.PENDING: (BookingStatus.CONFIRMED, BookingStatus.CANCELLED),
    BookingStatus.CONFIRMED: (BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW),
    BookingStatus.COMPLETED: (),
    BookingStatus.CANCELLED: (),
    BookingStatus.NO_SHOW: (),
}


def allowed_transitions(status) -> List[BookingStatus]:
    """Statuses a booking in ``status`` may move to"""
    return list(TRANSITIONS[BookingStatus(status)])


class BookingLifecycle:

    def __init__(
            self,
            db: Session,
            catalog: Optional[SlotCatalog] = None,
            gateway: Optional[CalendarSyncGateway] = None,
            notifier: Optional[NotificationService] = None,
            config: Optional[SchedulingConfig] = None,
            admin_alerts=None,
    ):
        self.db = db
        self.config = config or SchedulingConfig.from_settings()
        self.catalog = catalog or SlotCatalog(db, self.config)
        self.gateway = gateway
        self.notifier = notifier or NotificationService()
        self.admin_alerts = admin_alerts

    def get_booking(self, booking_id, lock: bool = False) -> Booking:
        query = self.db.query(Booking).filter_by(id=coerce_uuid(booking_id))
        if lock:
            query = query.with_for_update().populate_existing()
        booking = query.first()
        if not booking:
            raise NotFound("Booking not found", {"booking_id": str(booking_id)})
        return booking

    def list_bookings(
            self,
            status: Optional[str] = None,
            date_from: Optional[date] = None,
            date_to: Optional[date] = None,
    ) -> List[Booking]:
        query = self.db.query(Booking)
        if status:
            query = query.filter(Booking.status == BookingStatus(status).value)
        if date_from:
            query = query.filter(Booking.preferred_date >= date_from)
        if date_to:
            query = query.filter(Booking.preferred_date <= date_to)
        return query.order_by(Booking.preferred_date, Booking.preferred_time_slot).all()

    def create_booking(self, data: BookingCreate, today: Optional[date] = None, notify: bool = False) -> Booking:
        """
        Validate and store a new pending booking.

        The slot choice is checked against a freshly computed availability set
        and the seat is then taken with an atomic counter update, so the last
        seat cannot be sold twice. Nothing external happens here.
        """
        today = today or self.config.today()

        try:
            blackouts = self.catalog.list_blackouts(data.preferred_date, data.preferred_date)
            error = validate_date_selection(
                data.preferred_date,
                blackouts,
                max_days_ahead=self.config.max_days_ahead,
                today=today,
                business_days=self.config.business_days,
            )
            if error:
                raise error

            error = validate_time_slot_choice(
                data.preferred_time_slot, self.catalog.available_slots_for_date(data.preferred_date)
            )
            if error:
                raise error

            self.catalog.reserve_capacity(data.preferred_date, data.preferred_time_slot)

            booking = Booking(**data.model_dump(), status=BookingStatus.PENDING.value)
            self.db.add(booking)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info(
            f"Created booking {booking.id} for {booking.preferred_date} {booking.preferred_time_slot}"
        )

        if notify:
            self.notifier.enqueue(
                template_key_for_status(BookingStatus.PENDING),
                booking.customer_email,
                self._customer_context(booking, BookingStatus.PENDING),
            )
        return booking

    def transition(self, booking_id, target, note: Optional[str] = None, notify: bool = False) -> TransitionResult:
        target = BookingStatus(target)

        try:
            # concurrent transitions on one booking queue behind this row lock
            booking = self.get_booking(booking_id, lock=True)
            current = BookingStatus(booking.status)
            if target not in TRANSITIONS[current]:
                raise IllegalTransition(current.value, target.value)

            booking.status = target.value
            if note:
                booking.admin_notes = note
            if target == BookingStatus.CANCELLED:
                booking.cancelled_at = datetime.now(timezone.utc)
                self.catalog.release_capacity(booking.preferred_date, booking.preferred_time_slot)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Booking {booking.id}: {current.value} -> {target.value}")

        calendar = None
        if target == BookingStatus.CONFIRMED:
            calendar = self._create_calendar_event(booking)
        elif target == BookingStatus.CANCELLED and current == BookingStatus.CONFIRMED and booking.external_event_id:
            calendar = self._delete_calendar_event(booking)

        enqueued = False
        if notify:
            enqueued = self._notify(booking, target, calendar)

        return TransitionResult(
            booking_id=booking.id,
            previous_status=current,
            status=target,
            calendar=calendar,
            notification_enqueued=enqueued,
        )

    def starts_at(self, booking: Booking) -> datetime:
        start_time, _ = parse_time_slot(booking.preferred_time_slot)
        return datetime.combine(booking.preferred_date, start_time, tzinfo=self.config.tz)

    def bookings_needing_reminders(
            self,
            now: Optional[datetime] = None,
            within: timedelta = timedelta(hours=24),
    ) -> List[Booking]:
        """Confirmed bookings starting within ``within`` that have not had a reminder yet"""
        now = now or datetime.now(timezone.utc)
        until = now + within
        local_now = now.astimezone(self.config.tz)
        local_until = until.astimezone(self.config.tz)

        candidates = (
            self.db.query(Booking)
            .filter(
                Booking.status == BookingStatus.CONFIRMED.value,
                Booking.reminder_sent_at.is_(None),
                Booking.preferred_date >= local_now.date(),
                Booking.preferred_date <= local_until.date(),
            )
            .order_by(Booking.preferred_date, Booking.preferred_time_slot)
            .all()
        )
        return [b for b in candidates if now < self.starts_at(b) <= until]

    def mark_reminder_sent(self, booking_id, sent_at: Optional[datetime] = None) -> Booking:
        booking = self.get_booking(booking_id)
        booking.reminder_sent_at = sent_at or datetime.now(timezone.utc)
        self.db.commit()
        return booking

    def send_reminder(self, booking: Booking) -> bool:
        """Queue the reminder email and stamp reminder_sent_at once it is queued"""
        context = self._customer_context(booking, BookingStatus(booking.status))
        if not context["meeting_link"]:
            context["fallback_instructions"] = manual_meeting_instructions(
                booking.customer_phone,
                self.starts_at(booking).strftime("%A %d %B %Y, %I:%M %p") + f" ({self.config.business_timezone})",
                self.config.fallback_contact_phone,
            )
        enqueued = self.notifier.enqueue(BOOKING_REMINDER_KEY, booking.customer_email, context)
        if enqueued:
            self.mark_reminder_sent(booking.id)
            logger.info(f"Reminder queued for booking {booking.id}")
        return enqueued

    def event_request(self, booking: Booking) -> CalendarEventRequest:
        start_time, end_time = parse_time_slot(booking.preferred_time_slot)
        tz = self.config.tz
        description = "\n".join(
            line for line in (
                f"Customer: {booking.customer_name} ({booking.customer_email}, {booking.customer_phone})",
                f"Business: {booking.business_name}",
                f"Type: {booking.business_type}" if booking.business_type else None,
                f"Location: {booking.business_location}" if booking.business_location else None,
                f"Biggest challenge: {booking.biggest_challenge}" if booking.biggest_challenge else None,
                f"Notes: {booking.additional_notes}" if booking.additional_notes else None,
            ) if line
        )
        return CalendarEventRequest(
            subject_id=str(booking.id),
            summary=f"Strategy Call - {booking.business_name}",
            description=description,
            start=datetime.combine(booking.preferred_date, start_time, tzinfo=tz),
            end=datetime.combine(booking.preferred_date, end_time, tzinfo=tz),
            timezone=self.config.business_timezone,
            attendees=[booking.customer_email],
            customer_phone=booking.customer_phone,
        )

    def _gateway(self) -> CalendarSyncGateway:
        if self.gateway is None:
            self.gateway = CalendarIntegrationService.resolve_gateway(self.db, self.config, self.admin_alerts)
        return self.gateway

    def _create_calendar_event(self, booking: Booking) -> CalendarSyncResult:
        result = self._gateway().create_event(self.event_request(booking))

        if result.degraded:
            booking.calendar_sync_status = "degraded"
            booking.last_sync_error = f"{result.error_kind}: {result.error_message}"
        else:
            booking.external_event_id = result.event_id
            booking.external_meeting_link = result.meeting_link
            booking.calendar_sync_status = "synced"
            booking.last_sync_error = None
        self.db.commit()

        CalendarIntegrationService.record_result(self.db, result)
        return result

    def _delete_calendar_event(self, booking: Booking) -> CalendarSyncResult:
        result = self._gateway().delete_event(booking.external_event_id, str(booking.id))

        if result.success:
            booking.calendar_sync_status = "removed"
            booking.external_meeting_link = None
        else:
            booking.calendar_sync_status = "delete_failed"
            booking.last_sync_error = f"{result.error_kind}: {result.error_message}"
        self.db.commit()

        CalendarIntegrationService.record_result(self.db, result)
        return result

    def _customer_context(self, booking: Booking, status: BookingStatus,
                          calendar: Optional[CalendarSyncResult] = None) -> Dict:
        # admin_notes stay internal
        return {
            "customer_name": booking.customer_name,
            "business_name": booking.business_name,
            "preferred_date": booking.preferred_date.strftime("%A, %d %B %Y"),
            "preferred_time_slot": booking.preferred_time_slot,
            "status": status.value,
            "meeting_link": booking.external_meeting_link if status == BookingStatus.CONFIRMED else None,
            "fallback_instructions": calendar.fallback_instructions if calendar else None,
        }

    def _notify(self, booking: Booking, status: BookingStatus, calendar: Optional[CalendarSyncResult]) -> bool:
        enqueued = self.notifier.enqueue(
            template_key_for_status(status),
            booking.customer_email,
            self._customer_context(booking, status, calendar),
        )
        if enqueued and status == BookingStatus.CONFIRMED:
            booking.confirmation_sent_at = datetime.now(timezone.utc)
            self.db.commit()
        return enqueued
