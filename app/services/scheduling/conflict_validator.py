# ===== app/services/scheduling/conflict_validator.py =====
"""Pure validation rules for slots and booking requests.

Nothing here touches the database: callers load the data and pass it in. Each
function returns a SchedulingError (not raised) or None.
"""
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional, Sequence

from app.services.scheduling.errors import (
    BlackedOut,
    InvalidRange,
    PastDate,
    SchedulingError,
    SlotNoLongerAvailable,
    SlotOverlap,
    TooFarAhead,
    TooShort,
    Unavailable,
)

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
DEFAULT_BUSINESS_DAYS = (0, 1, 2, 3, 4)


def _minutes_between(start: time, end: time) -> int:
    anchor = date(2000, 1, 1)
    return int((datetime.combine(anchor, end) - datetime.combine(anchor, start)).total_seconds() // 60)


def validate_slot_times(start: time, end: time, min_minutes: int = 30) -> Optional[SchedulingError]:
    """Reject inverted or empty ranges, then ranges shorter than ``min_minutes``"""
    if start >= end:
        return InvalidRange(
            "End time must be after start time",
            {"start_time": start.isoformat(), "end_time": end.isoformat()},
        )

    duration = _minutes_between(start, end)
    if duration < min_minutes:
        return TooShort(
            f"Time slot must be at least {min_minutes} minutes long",
            {"duration_minutes": duration, "min_minutes": min_minutes},
        )

    return None


def slots_overlap(a_start: time, a_end: time, b_start: time, b_end: time) -> bool:
    """Half-open [start, end) overlap; touching boundaries do not overlap"""
    return a_start < b_end and a_end > b_start


def detect_slot_overlap(candidate, existing_slots: Iterable, exclude_id=None) -> Optional[SchedulingError]:
    """
    Find the first active slot on the candidate's weekday that overlaps it.

    ``candidate`` and the existing slots only need ``day_of_week``,
    ``start_time``, ``end_time`` and ``is_available`` attributes. The slot being
    edited is skipped via ``exclude_id``. Inactive slots never conflict.
    """
    if not getattr(candidate, "is_available", True):
        return None

    for existing in existing_slots:
        if exclude_id is not None and getattr(existing, "id", None) == exclude_id:
            continue
        if not getattr(existing, "is_available", True):
            continue
        if existing.day_of_week != candidate.day_of_week:
            continue

        if slots_overlap(candidate.start_time, candidate.end_time, existing.start_time, existing.end_time):
            day_name = DAY_NAMES[existing.day_of_week]
            existing_range = f"{existing.start_time.strftime('%H:%M')}-{existing.end_time.strftime('%H:%M')}"
            return SlotOverlap(
                f"Time slot overlaps with existing slot on {day_name} {existing_range}",
                {
                    "day_of_week": existing.day_of_week,
                    "start_time": existing.start_time.isoformat(),
                    "end_time": existing.end_time.isoformat(),
                    "conflicting_slot_id": str(getattr(existing, "id", "") or ""),
                },
            )

    return None


def _blackout_date(blackout) -> date:
    return blackout if isinstance(blackout, date) else blackout.date


def validate_date_selection(
        selected_date: date,
        blackouts: Iterable = (),
        max_days_ahead: int = 60,
        today: Optional[date] = None,
        business_days: Sequence[int] = DEFAULT_BUSINESS_DAYS,
) -> Optional[SchedulingError]:
    """
    Check a requested booking date.

    Checks run in a fixed order (past, too far ahead, blackout, non-business
    day) so exactly one outcome applies to any date.
    """
    today = today or date.today()

    if selected_date < today:
        return PastDate("Please select a future date", {"date": selected_date.isoformat()})

    if selected_date > today + timedelta(days=max_days_ahead):
        return TooFarAhead(
            f"Bookings can only be made up to {max_days_ahead} days in advance",
            {"date": selected_date.isoformat(), "max_days_ahead": max_days_ahead},
        )

    for blackout in blackouts:
        if _blackout_date(blackout) == selected_date:
            reason = getattr(blackout, "reason", None) or "This date is not available"
            return BlackedOut(reason, {"date": selected_date.isoformat()})

    if selected_date.weekday() not in business_days:
        return Unavailable(
            "Weekend bookings are not currently available",
            {"date": selected_date.isoformat(), "day_of_week": selected_date.weekday()},
        )

    return None


def validate_time_slot_choice(slot_value: str, available_slots: Iterable) -> Optional[SchedulingError]:
    """
    Ensure the chosen slot is still in the freshly computed available set.

    ``available_slots`` holds AvailableSlot objects or plain "HH:MM-HH:MM"
    strings.
    """
    values = {s if isinstance(s, str) else s.value for s in available_slots}
    if slot_value not in values:
        return SlotNoLongerAvailable(
            "Selected time slot is no longer available. Please choose another time.",
            {"time_slot": slot_value},
        )
    return None
