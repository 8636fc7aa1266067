# ===== app/services/scheduling/recurrence.py =====
"""
Recurrence rules and occurrence materialization.

A rule is anything with ``recurrence_frequency``, ``day_of_week``,
``day_of_month``, ``week_of_month``, ``start_date`` and ``end_date``
attributes: a RecurringMeeting row or a RecurringMeetingCreate payload.
"""
import calendar
import logging
from datetime import date, datetime, timedelta, timezone
from itertools import islice, takewhile
from typing import Iterator, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.config.scheduling import SchedulingConfig
from app.models.recurring_meeting import MeetingOccurrence, RecurringMeeting
from app.schemas.scheduling import OccurrenceStatus, RecurrenceFrequency
from app.services.scheduling.errors import InvalidRecurrence, SchedulingError

logger = logging.getLogger(__name__)

MAX_DAY_OF_MONTH = 28
WEEK_STEP_DAYS = {
    RecurrenceFrequency.WEEKLY: 7,
    RecurrenceFrequency.BI_WEEKLY: 14,
}


def _frequency(rule) -> RecurrenceFrequency:
    return RecurrenceFrequency(rule.recurrence_frequency)


def validate_rule(rule) -> Optional[SchedulingError]:
    """Return InvalidRecurrence when the rule's fields don't describe exactly one pattern"""
    try:
        frequency = _frequency(rule)
    except ValueError:
        return InvalidRecurrence(
            f"Unknown recurrence frequency: {rule.recurrence_frequency}",
            {"recurrence_frequency": str(rule.recurrence_frequency)},
        )

    dow, dom, wom = rule.day_of_week, rule.day_of_month, rule.week_of_month

    if dow is not None and not 0 <= dow <= 6:
        return InvalidRecurrence("day_of_week must be between 0 (Monday) and 6 (Sunday)", {"day_of_week": dow})

    if frequency in WEEK_STEP_DAYS:
        if dow is None:
            return InvalidRecurrence(f"{frequency.value} meetings need a day_of_week")
        if dom is not None or wom is not None:
            return InvalidRecurrence(
                f"{frequency.value} meetings cannot set day_of_month or week_of_month",
                {"day_of_month": dom, "week_of_month": wom},
            )
    else:
        by_day = dom is not None
        by_weekday = dow is not None or wom is not None
        if by_day == by_weekday:
            return InvalidRecurrence(
                "Monthly meetings need either day_of_month or day_of_week with week_of_month",
                {"day_of_month": dom, "day_of_week": dow, "week_of_month": wom},
            )
        if by_day and not 1 <= dom <= MAX_DAY_OF_MONTH:
            return InvalidRecurrence(
                f"day_of_month must be between 1 and {MAX_DAY_OF_MONTH}", {"day_of_month": dom}
            )
        if by_weekday:
            if dow is None or wom is None:
                return InvalidRecurrence(
                    "Monthly meetings by weekday need both day_of_week and week_of_month",
                    {"day_of_week": dow, "week_of_month": wom},
                )
            if not 1 <= wom <= 5:
                return InvalidRecurrence("week_of_month must be between 1 and 5", {"week_of_month": wom})

    if rule.end_date is not None and rule.end_date < rule.start_date:
        return InvalidRecurrence(
            "end_date cannot be before start_date",
            {"start_date": rule.start_date.isoformat(), "end_date": rule.end_date.isoformat()},
        )

    return None


def nth_weekday(year: int, month: int, weekday: int, n: int) -> Optional[date]:
    """The n-th ``weekday`` of the month, or None when the month has fewer"""
    first_weekday, days_in_month = calendar.monthrange(year, month)
    day = 1 + (weekday - first_weekday) % 7 + 7 * (n - 1)
    if day > days_in_month:
        return None
    return date(year, month, day)


def _add_months(year: int, month: int, offset: int):
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def _iter_weekly(rule, start: date, step: int) -> Iterator[date]:
    # Cadence is anchored on the rule's start so later runs stay in phase
    anchor = rule.start_date + timedelta(days=(rule.day_of_week - rule.start_date.weekday()) % 7)
    if anchor < start:
        periods = -(-(start - anchor).days // step)
        anchor += timedelta(days=periods * step)
    current = anchor
    while True:
        yield current
        current += timedelta(days=step)


def _iter_monthly(rule, start: date) -> Iterator[date]:
    offset = 0
    while True:
        year, month = _add_months(start.year, start.month, offset)
        offset += 1

        if rule.day_of_month is not None:
            days_in_month = calendar.monthrange(year, month)[1]
            candidate = date(year, month, min(rule.day_of_month, days_in_month))
        else:
            candidate = nth_weekday(year, month, rule.day_of_week, rule.week_of_month)
            if candidate is None:
                continue

        if candidate >= start:
            yield candidate


def iter_occurrences(rule, from_date: date) -> Iterator[date]:
    """Occurrence dates on or after ``from_date``, in order; stops at the rule's end_date"""
    error = validate_rule(rule)
    if error:
        raise error

    start = max(from_date, rule.start_date)
    frequency = _frequency(rule)
    if frequency in WEEK_STEP_DAYS:
        dates = _iter_weekly(rule, start, WEEK_STEP_DAYS[frequency])
    else:
        dates = _iter_monthly(rule, start)

    if rule.end_date is None:
        return dates
    return takewhile(lambda d: d <= rule.end_date, dates)


def next_occurrences(rule, count: int, from_date: date) -> List[date]:
    return list(islice(iter_occurrences(rule, from_date), count))


def occurrences_between(rule, date_from: date, date_to: date, limit: Optional[int] = None) -> List[date]:
    dates = takewhile(lambda d: d <= date_to, iter_occurrences(rule, date_from))
    return list(islice(dates, limit))


class RecurrenceGenerator:
    """Keeps meeting_occurrences filled for a rolling horizon"""

    def __init__(self, db: Session, config: Optional[SchedulingConfig] = None):
        self.db = db
        self.config = config or SchedulingConfig.from_settings()

    def materialize(
            self,
            meeting: RecurringMeeting,
            horizon_days: Optional[int] = None,
            today: Optional[date] = None,
            revive_cancelled: bool = False,
    ) -> List[MeetingOccurrence]:
        """
        Create the missing occurrences between today and today + horizon.

        Dates already present (including the original date of a rescheduled
        occurrence) are left alone, so calling this twice is harmless. With
        ``revive_cancelled`` a cancelled row on a generated date is put back to
        scheduled instead, which is how an edited schedule reclaims its dates.
        Returns the rows created or revived. Commits.
        """
        today = today or self.config.today()
        horizon = horizon_days if horizon_days is not None else self.config.occurrence_horizon_days
        dates = occurrences_between(
            meeting, today, today + timedelta(days=horizon), self.config.max_occurrences_per_run
        )

        existing = {
            o.scheduled_date: o
            for o in self.db.query(MeetingOccurrence).filter(MeetingOccurrence.recurring_meeting_id == meeting.id)
        }
        moved_from = {
            o.original_date for o in existing.values()
            if o.original_date is not None
            and not (revive_cancelled and o.status == OccurrenceStatus.CANCELLED.value)
        }

        touched = []
        try:
            for occurrence_date in dates:
                if occurrence_date in moved_from:
                    continue
                current = existing.get(occurrence_date)
                if current is not None:
                    if revive_cancelled and current.status == OccurrenceStatus.CANCELLED.value:
                        current.status = OccurrenceStatus.SCHEDULED.value
                        current.scheduled_time = meeting.preferred_time
                        current.calendar_sync_status = "not_synced"
                        current.external_event_id = None
                        current.external_meeting_link = None
                        touched.append(current)
                    continue

                occurrence = MeetingOccurrence(
                    recurring_meeting_id=meeting.id,
                    scheduled_date=occurrence_date,
                    scheduled_time=meeting.preferred_time,
                    status=OccurrenceStatus.SCHEDULED.value,
                    calendar_sync_status="not_synced",
                )
                self.db.add(occurrence)
                touched.append(occurrence)

            meeting.last_generated_at = datetime.now(timezone.utc)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Materialized {len(touched)} occurrence(s) for recurring meeting {meeting.id}")
        return touched

    def due_meetings(self, today: date, now: Optional[datetime] = None) -> List[RecurringMeeting]:
        """Active, unfinished meetings not generated within regenerate_after_days"""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=self.config.regenerate_after_days)
        return (
            self.db.query(RecurringMeeting)
            .filter(
                RecurringMeeting.is_active.is_(True),
                or_(RecurringMeeting.end_date.is_(None), RecurringMeeting.end_date >= today),
                or_(RecurringMeeting.last_generated_at.is_(None), RecurringMeeting.last_generated_at < cutoff),
            )
            .all()
        )

    def extend_all(self, today: Optional[date] = None, now: Optional[datetime] = None) -> List[MeetingOccurrence]:
        """Periodic job: top up every due meeting. One bad meeting does not stop the rest."""
        today = today or self.config.today()
        created = []
        for meeting in self.due_meetings(today, now):
            try:
                created.extend(self.materialize(meeting, today=today))
            except Exception as e:
                logger.error(f"Failed to extend recurring meeting {meeting.id}: {e}")
                continue

        logger.info(f"Extended recurring meetings, {len(created)} new occurrence(s)")
        return created
