# ===== app/models/__init__.py =====
from .base import Base
from .availability import AvailableTimeSlot, SlotDayLock, BlackoutDate, SlotReservation
from .booking import Booking
from .recurring_meeting import RecurringMeeting, MeetingOccurrence
from .calendar_integration import CalendarIntegration

__all__ = [
    "Base",
    "AvailableTimeSlot",
    "SlotDayLock",
    "BlackoutDate",
    "SlotReservation",
    "Booking",
    "RecurringMeeting",
    "MeetingOccurrence",
    "CalendarIntegration",
]
