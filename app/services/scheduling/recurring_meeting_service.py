# ===== app/services/scheduling/recurring_meeting_service.py =====
import logging
from datetime import date, datetime, time, timedelta, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config.scheduling import SchedulingConfig
from app.models.recurring_meeting import MeetingOccurrence, RecurringMeeting
from app.schemas.scheduling import (
    CalendarEventRequest,
    CalendarSyncResult,
    MeetingOccurrenceUpdate,
    MeetingType,
    OccurrenceStatus,
    RecurrenceFrequency,
    RecurringMeetingCreate,
    RecurringMeetingUpdate,
    format_time_slot,
)
from app.services.calendar.fallback import manual_meeting_instructions
from app.services.calendar.integration_service import CalendarIntegrationService
from app.services.calendar.sync_gateway import CalendarSyncGateway
from app.services.notifications.notification_service import (
    MEETING_CALENDAR_FALLBACK_KEY,
    MEETING_REMINDER_KEY,
    NotificationService,
)
from app.services.scheduling.errors import (
    AlreadyExists,
    FrequencyNotAllowed,
    IllegalTransition,
    NotFound,
    PastDate,
    TierNotAllowed,
)
from app.services.scheduling.recurrence import RecurrenceGenerator, validate_rule
from app.utils.ids import coerce_uuid

logger = logging.getLogger(__name__)

RULE_FIELDS = ("recurrence_frequency", "day_of_week", "day_of_month", "week_of_month", "start_date", "end_date")
SCHEDULE_FIELDS = (
    "recurrence_frequency", "day_of_week", "day_of_month", "week_of_month",
    "preferred_time", "duration_minutes", "end_date",
)
CONTACT_FIELDS = ("owner_name", "owner_email", "owner_phone")
OPEN_STATUSES = (OccurrenceStatus.SCHEDULED.value, OccurrenceStatus.RESCHEDULED.value)
REMINDER_WINDOWS = {
    "24h": timedelta(hours=24),
    "1h": timedelta(hours=1),
}

FREQUENCY_LABELS = {
    RecurrenceFrequency.WEEKLY: "Weekly",
    RecurrenceFrequency.BI_WEEKLY: "Bi-weekly",
    RecurrenceFrequency.MONTHLY: "Monthly",
}
MEETING_TYPE_LABELS = {
    MeetingType.REPORT_BRIEF: "Report Brief",
    MeetingType.STRATEGY: "Strategy Session",
    MeetingType.CONSULTATION: "Consultation",
}


def _value(v):
    return v.value if hasattr(v, "value") else v


class RecurringMeetingService:
    """Subscriber recurring meetings: tier gating, schedule changes and occurrence upkeep"""

    def __init__(
            self,
            db: Session,
            gateway: Optional[CalendarSyncGateway] = None,
            generator: Optional[RecurrenceGenerator] = None,
            config: Optional[SchedulingConfig] = None,
            notifier: Optional[NotificationService] = None,
    ):
        self.db = db
        self.config = config or SchedulingConfig.from_settings()
        self.generator = generator or RecurrenceGenerator(db, self.config)
        # without a connected calendar occurrences stay not_synced
        self.gateway = gateway if gateway is not None else CalendarIntegrationService.build_gateway(db, self.config)
        self.notifier = notifier or NotificationService()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, meeting_id) -> RecurringMeeting:
        meeting = self.db.query(RecurringMeeting).filter_by(id=coerce_uuid(meeting_id)).first()
        if not meeting:
            raise NotFound("Recurring meeting not found", {"meeting_id": str(meeting_id)})
        return meeting

    def get_occurrence(self, occurrence_id) -> MeetingOccurrence:
        occurrence = self.db.query(MeetingOccurrence).filter_by(id=coerce_uuid(occurrence_id)).first()
        if not occurrence:
            raise NotFound("Meeting occurrence not found", {"occurrence_id": str(occurrence_id)})
        return occurrence

    def active_for_owner(self, owner_id) -> Optional[RecurringMeeting]:
        return (
            self.db.query(RecurringMeeting)
            .filter(RecurringMeeting.owner_id == coerce_uuid(owner_id), RecurringMeeting.is_active.is_(True))
            .first()
        )

    def upcoming(self, owner_id, limit: int = 10, today: Optional[date] = None) -> List[MeetingOccurrence]:
        today = today or self.config.today()
        return (
            self.db.query(MeetingOccurrence)
            .join(RecurringMeeting, MeetingOccurrence.recurring_meeting_id == RecurringMeeting.id)
            .filter(
                RecurringMeeting.owner_id == coerce_uuid(owner_id),
                RecurringMeeting.is_active.is_(True),
                MeetingOccurrence.scheduled_date >= today,
                MeetingOccurrence.status.in_(OPEN_STATUSES),
            )
            .order_by(MeetingOccurrence.scheduled_date, MeetingOccurrence.scheduled_time)
            .limit(limit)
            .all()
        )

    # ------------------------------------------------------------------
    # Schedule management
    # ------------------------------------------------------------------

    def check_tier(self, tier: str, frequency) -> None:
        frequency = RecurrenceFrequency(frequency)
        allowed = self.config.tier_allowed_frequencies.get(tier)
        if allowed is None:
            raise TierNotAllowed(f"Unknown subscription tier: {tier}", {"tier": tier})
        if not allowed:
            raise TierNotAllowed(
                f"Recurring meetings are not included in the {tier} plan", {"tier": tier}
            )
        if frequency.value not in allowed:
            raise FrequencyNotAllowed(
                f"{frequency.value} meetings are not available on the {tier} plan",
                {"tier": tier, "frequency": frequency.value, "allowed": list(allowed)},
            )

    def create(self, owner_id, tier: str, data: RecurringMeetingCreate,
               today: Optional[date] = None) -> RecurringMeeting:
        today = today or self.config.today()
        owner_uuid = coerce_uuid(owner_id)
        if owner_uuid is None:
            raise NotFound("Owner not found", {"owner_id": str(owner_id)})

        self.check_tier(tier, data.recurrence_frequency)

        error = validate_rule(data)
        if error:
            raise error
        if data.start_date < today:
            raise PastDate("Start date cannot be in the past", {"start_date": data.start_date.isoformat()})

        if self.active_for_owner(owner_uuid):
            raise AlreadyExists(
                "You already have an active recurring meeting. Update or cancel it first.",
                {"owner_id": str(owner_uuid)},
            )

        meeting = RecurringMeeting(
            owner_id=owner_uuid,
            subscription_tier=tier,
            meeting_type=data.meeting_type.value,
            title=data.title or self._default_title(data.recurrence_frequency, data.meeting_type),
            recurrence_frequency=data.recurrence_frequency.value,
            day_of_week=data.day_of_week,
            day_of_month=data.day_of_month,
            week_of_month=data.week_of_month,
            preferred_time=data.preferred_time,
            duration_minutes=data.duration_minutes,
            start_date=data.start_date,
            end_date=data.end_date,
            is_active=True,
            owner_name=data.owner_name,
            owner_email=data.owner_email,
            owner_phone=data.owner_phone,
        )
        self.db.add(meeting)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise AlreadyExists(
                "You already have an active recurring meeting. Update or cancel it first.",
                {"owner_id": str(owner_uuid)},
            )
        self.db.refresh(meeting)
        logger.info(f"Created {meeting.recurrence_frequency} recurring meeting {meeting.id} for owner {owner_uuid}")

        occurrences = self.generator.materialize(meeting, today=today)
        self.sync_occurrences(meeting, occurrences)
        return meeting

    def update(self, meeting_id, changes: RecurringMeetingUpdate,
               today: Optional[date] = None) -> RecurringMeeting:
        """
        Apply changes. When a schedule field changes, future open occurrences
        are cancelled (their calendar events removed) and regenerated.
        """
        today = today or self.config.today()
        meeting = self.get(meeting_id)
        fields = {k: _value(v) for k, v in changes.model_dump(exclude_unset=True).items()}

        if "recurrence_frequency" in fields and fields["recurrence_frequency"] is not None:
            self.check_tier(meeting.subscription_tier, fields["recurrence_frequency"])

        candidate = SimpleNamespace(**{f: getattr(meeting, f) for f in RULE_FIELDS})
        for f in RULE_FIELDS:
            if f in fields:
                setattr(candidate, f, fields[f])
        error = validate_rule(candidate)
        if error:
            raise error

        schedule_changed = any(
            f in fields and fields[f] != getattr(meeting, f) for f in SCHEDULE_FIELDS
        )
        contact_changed = any(
            f in fields and fields[f] != getattr(meeting, f) for f in CONTACT_FIELDS
        )
        for f, v in fields.items():
            if f in RULE_FIELDS or f in SCHEDULE_FIELDS or f in CONTACT_FIELDS or f == "title":
                setattr(meeting, f, v)
        self.db.commit()

        if schedule_changed and meeting.is_active:
            self._cancel_open_occurrences(meeting, on_or_after=today)
            occurrences = self.generator.materialize(meeting, today=today, revive_cancelled=True)
            self.sync_occurrences(meeting, occurrences)
            logger.info(f"Regenerated {len(occurrences)} occurrence(s) for recurring meeting {meeting.id}")
        elif contact_changed and meeting.is_active:
            # refresh attendees on events that already exist
            synced = [o for o in self._open_occurrences(meeting, on_or_after=today) if o.external_event_id]
            self.sync_occurrences(meeting, synced)

        return meeting

    def pause(self, meeting_id, today: Optional[date] = None) -> RecurringMeeting:
        """
        End the schedule today; past and today's occurrences are kept.

        A schedule that has not started yet ends on its start date instead, so
        the stored rule stays valid. Every occurrence after today is cancelled
        either way.
        """
        today = today or self.config.today()
        meeting = self.get(meeting_id)
        meeting.end_date = max(today, meeting.start_date)
        self.db.commit()

        self._cancel_open_occurrences(meeting, on_or_after=today + timedelta(days=1))
        logger.info(f"Paused recurring meeting {meeting.id}")
        return meeting

    def resume(self, meeting_id, today: Optional[date] = None) -> RecurringMeeting:
        today = today or self.config.today()
        meeting = self.get(meeting_id)
        if not meeting.is_active:
            raise IllegalTransition("cancelled", "active")
        meeting.end_date = None
        self.db.commit()

        occurrences = self.generator.materialize(meeting, today=today, revive_cancelled=True)
        self.sync_occurrences(meeting, occurrences)
        logger.info(f"Resumed recurring meeting {meeting.id}")
        return meeting

    def cancel(self, meeting_id, today: Optional[date] = None) -> RecurringMeeting:
        today = today or self.config.today()
        meeting = self.get(meeting_id)
        meeting.is_active = False
        self.db.commit()

        self._cancel_open_occurrences(meeting, on_or_after=today)
        logger.info(f"Cancelled recurring meeting {meeting.id}")
        return meeting

    # ------------------------------------------------------------------
    # Occurrences
    # ------------------------------------------------------------------

    def reschedule_occurrence(
            self,
            occurrence_id,
            new_date: date,
            new_time: time,
            reason: Optional[str] = None,
            today: Optional[date] = None,
    ) -> MeetingOccurrence:
        """Move one occurrence; the first original date and time are kept for reference"""
        today = today or self.config.today()
        occurrence = self.get_occurrence(occurrence_id)

        if occurrence.status not in OPEN_STATUSES:
            raise IllegalTransition(occurrence.status, OccurrenceStatus.RESCHEDULED.value)
        if new_date < today:
            raise PastDate("Please select a future date", {"date": new_date.isoformat()})

        clash = (
            self.db.query(MeetingOccurrence)
            .filter(
                MeetingOccurrence.recurring_meeting_id == occurrence.recurring_meeting_id,
                MeetingOccurrence.scheduled_date == new_date,
                MeetingOccurrence.id != occurrence.id,
            )
            .first()
        )
        if clash:
            raise AlreadyExists(
                "Another meeting in this series is already on that date", {"date": new_date.isoformat()}
            )

        if occurrence.original_date is None:
            occurrence.original_date = occurrence.scheduled_date
            occurrence.original_time = occurrence.scheduled_time
        occurrence.scheduled_date = new_date
        occurrence.scheduled_time = new_time
        occurrence.status = OccurrenceStatus.RESCHEDULED.value
        occurrence.reschedule_reason = reason
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise AlreadyExists(
                "Another meeting in this series is already on that date", {"date": new_date.isoformat()}
            )

        logger.info(f"Rescheduled occurrence {occurrence.id} from {occurrence.original_date} to {new_date}")
        self.sync_occurrence(occurrence)
        return occurrence

    def complete_occurrence(
            self,
            occurrence_id,
            attended: bool,
            admin_notes: Optional[str] = None,
            summary: Optional[str] = None,
    ) -> MeetingOccurrence:
        """Close out an occurrence after its time: completed when attended, otherwise no_show"""
        occurrence = self.get_occurrence(occurrence_id)
        target = OccurrenceStatus.COMPLETED if attended else OccurrenceStatus.NO_SHOW
        if occurrence.status not in OPEN_STATUSES:
            raise IllegalTransition(occurrence.status, target.value)

        occurrence.status = target.value
        occurrence.attended = attended
        if admin_notes is not None:
            occurrence.admin_notes = admin_notes
        if summary is not None:
            occurrence.meeting_summary = summary
        self.db.commit()

        logger.info(f"Occurrence {occurrence.id} marked {target.value}")
        return occurrence

    def update_occurrence_notes(self, occurrence_id, changes: MeetingOccurrenceUpdate) -> MeetingOccurrence:
        occurrence = self.get_occurrence(occurrence_id)
        for field, value in changes.model_dump(exclude_unset=True).items():
            setattr(occurrence, field, value)
        self.db.commit()
        return occurrence

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    def starts_at(self, occurrence: MeetingOccurrence) -> datetime:
        return datetime.combine(occurrence.scheduled_date, occurrence.scheduled_time, tzinfo=self.config.tz)

    def occurrences_needing_reminders(self, now: Optional[datetime] = None) -> Dict[str, List[MeetingOccurrence]]:
        """
        Open occurrences of active meetings due a reminder, keyed "24h" and "1h".

        An occurrence starting within the hour only appears under "1h", so a
        late-running job sends one reminder rather than two back to back.
        """
        now = now or datetime.now(timezone.utc)
        horizon = now + REMINDER_WINDOWS["24h"]

        candidates = (
            self.db.query(MeetingOccurrence)
            .join(RecurringMeeting, MeetingOccurrence.recurring_meeting_id == RecurringMeeting.id)
            .filter(
                RecurringMeeting.is_active.is_(True),
                MeetingOccurrence.status.in_(OPEN_STATUSES),
                MeetingOccurrence.scheduled_date >= now.astimezone(self.config.tz).date(),
                MeetingOccurrence.scheduled_date <= horizon.astimezone(self.config.tz).date(),
            )
            .order_by(MeetingOccurrence.scheduled_date, MeetingOccurrence.scheduled_time)
            .all()
        )

        due = {"24h": [], "1h": []}
        for occurrence in candidates:
            starts = self.starts_at(occurrence)
            if not now < starts <= horizon:
                continue
            if starts <= now + REMINDER_WINDOWS["1h"]:
                if occurrence.reminder_1h_sent_at is None:
                    due["1h"].append(occurrence)
            elif occurrence.reminder_24h_sent_at is None:
                due["24h"].append(occurrence)
        return due

    def mark_reminder_sent(self, occurrence_id, reminder_type: str,
                           sent_at: Optional[datetime] = None) -> MeetingOccurrence:
        if reminder_type not in REMINDER_WINDOWS:
            raise ValueError(f"Unknown reminder type: {reminder_type}")
        occurrence = self.get_occurrence(occurrence_id)
        setattr(occurrence, f"reminder_{reminder_type}_sent_at", sent_at or datetime.now(timezone.utc))
        self.db.commit()
        return occurrence

    def send_reminder(self, occurrence: MeetingOccurrence, reminder_type: str) -> bool:
        """
        Queue a reminder to the meeting owner, with manual instructions when the
        occurrence has no meeting link. Meetings without an owner email are skipped.
        """
        meeting = occurrence.recurring_meeting
        if not meeting.owner_email:
            return False

        context = self._owner_context(meeting, occurrence)
        if not context["meeting_link"]:
            context["fallback_instructions"] = manual_meeting_instructions(
                meeting.owner_phone,
                self.starts_at(occurrence).strftime("%A %d %B %Y, %I:%M %p") + f" ({self.config.business_timezone})",
                self.config.fallback_contact_phone,
            )
        enqueued = self.notifier.enqueue(MEETING_REMINDER_KEY, meeting.owner_email, context)
        if enqueued:
            self.mark_reminder_sent(occurrence.id, reminder_type)
            logger.info(f"{reminder_type} reminder queued for occurrence {occurrence.id}")
        return enqueued

    # ------------------------------------------------------------------
    # Calendar
    # ------------------------------------------------------------------

    def event_request(self, meeting: RecurringMeeting, occurrence: MeetingOccurrence) -> CalendarEventRequest:
        start = self.starts_at(occurrence)
        return CalendarEventRequest(
            subject_id=str(occurrence.id),
            summary=meeting.title or "Recurring Meeting",
            description=f"{meeting.title} ({meeting.recurrence_frequency})",
            start=start,
            end=start + timedelta(minutes=meeting.duration_minutes),
            timezone=self.config.business_timezone,
            attendees=[meeting.owner_email] if meeting.owner_email else [],
            customer_phone=meeting.owner_phone,
        )

    def sync_occurrence(self, occurrence: MeetingOccurrence, notify: bool = True) -> Optional[CalendarSyncResult]:
        """
        Create or update the occurrence's calendar event. None when no calendar
        is connected. With ``notify``, a degraded result sends the owner the
        manual meeting instructions.
        """
        if self.gateway is None:
            return None

        meeting = occurrence.recurring_meeting
        request = self.event_request(meeting, occurrence)
        if occurrence.external_event_id:
            result = self.gateway.update_event(occurrence.external_event_id, request)
        else:
            result = self.gateway.create_event(request)

        if result.degraded:
            occurrence.calendar_sync_status = "degraded"
        else:
            occurrence.external_event_id = result.event_id
            occurrence.external_meeting_link = result.meeting_link or occurrence.external_meeting_link
            occurrence.calendar_sync_status = "synced"
        self.db.commit()

        CalendarIntegrationService.record_result(self.db, result)
        if notify and result.degraded:
            self._send_fallback_instructions(meeting, occurrence, result)
        return result

    def sync_occurrences(self, meeting: RecurringMeeting, occurrences: List[MeetingOccurrence]) -> None:
        """Sync a batch; the owner gets one fallback email, for the earliest degraded occurrence"""
        first_degraded = None
        for occurrence in occurrences:
            result = self.sync_occurrence(occurrence, notify=False)
            if result is not None and result.degraded and first_degraded is None:
                first_degraded = (occurrence, result)

        if first_degraded:
            self._send_fallback_instructions(meeting, *first_degraded)

    def _send_fallback_instructions(self, meeting: RecurringMeeting, occurrence: MeetingOccurrence,
                                    result: CalendarSyncResult) -> bool:
        if not meeting.owner_email or not result.fallback_instructions:
            return False
        context = self._owner_context(meeting, occurrence)
        context["fallback_instructions"] = result.fallback_instructions
        return self.notifier.enqueue(MEETING_CALENDAR_FALLBACK_KEY, meeting.owner_email, context)

    def _owner_context(self, meeting: RecurringMeeting, occurrence: MeetingOccurrence) -> Dict:
        # admin_notes stay internal
        start = self.starts_at(occurrence)
        end = start + timedelta(minutes=meeting.duration_minutes)
        return {
            "customer_name": meeting.owner_name,
            "business_name": meeting.title,
            "preferred_date": occurrence.scheduled_date.strftime("%A, %d %B %Y"),
            "preferred_time_slot": format_time_slot(start.time(), end.time()),
            "status": occurrence.status,
            "meeting_link": occurrence.external_meeting_link,
            "fallback_instructions": None,
        }

    def _open_occurrences(self, meeting: RecurringMeeting, on_or_after: date) -> List[MeetingOccurrence]:
        return (
            self.db.query(MeetingOccurrence)
            .filter(
                MeetingOccurrence.recurring_meeting_id == meeting.id,
                MeetingOccurrence.scheduled_date >= on_or_after,
                MeetingOccurrence.status.in_(OPEN_STATUSES),
            )
            .order_by(MeetingOccurrence.scheduled_date)
            .all()
        )

    def _cancel_open_occurrences(self, meeting: RecurringMeeting, on_or_after: date) -> List[MeetingOccurrence]:
        occurrences = self._open_occurrences(meeting, on_or_after)
        for occurrence in occurrences:
            occurrence.status = OccurrenceStatus.CANCELLED.value
        self.db.commit()

        if self.gateway is not None:
            for occurrence in occurrences:
                if not occurrence.external_event_id:
                    continue
                result = self.gateway.delete_event(occurrence.external_event_id, str(occurrence.id))
                if result.success:
                    occurrence.calendar_sync_status = "removed"
                    occurrence.external_event_id = None
                    occurrence.external_meeting_link = None
                else:
                    occurrence.calendar_sync_status = "delete_failed"
                self.db.commit()
                CalendarIntegrationService.record_result(self.db, result)

        if occurrences:
            logger.info(f"Cancelled {len(occurrences)} open occurrence(s) of recurring meeting {meeting.id}")
        return occurrences

    @staticmethod
    def _default_title(frequency, meeting_type) -> str:
        return f"{FREQUENCY_LABELS[RecurrenceFrequency(frequency)]} {MEETING_TYPE_LABELS[MeetingType(meeting_type)]}"
