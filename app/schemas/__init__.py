# ===== app/schemas/__init__.py =====
from .scheduling import (
    BookingStatus,
    RecurrenceFrequency,
    OccurrenceStatus,
    MeetingType,
    format_time_slot,
    parse_time_slot,
    TimeSlotCreate,
    BlackoutDateCreate,
    AvailableSlot,
    BookingCreate,
    RecurringMeetingCreate,
    RecurringMeetingUpdate,
    MeetingOccurrenceUpdate,
    CalendarEventRequest,
    CalendarSyncResult,
    TransitionResult,
)

__all__ = [
    "BookingStatus",
    "RecurrenceFrequency",
    "OccurrenceStatus",
    "MeetingType",
    "format_time_slot",
    "parse_time_slot",
    "TimeSlotCreate",
    "BlackoutDateCreate",
    "AvailableSlot",
    "BookingCreate",
    "RecurringMeetingCreate",
    "RecurringMeetingUpdate",
    "MeetingOccurrenceUpdate",
    "CalendarEventRequest",
    "CalendarSyncResult",
    "TransitionResult",
]
