# ===== app/schemas/scheduling.py =====
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List
from datetime import date, time, datetime
from enum import Enum
from uuid import UUID


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class RecurrenceFrequency(str, Enum):
    WEEKLY = "weekly"
    BI_WEEKLY = "bi-weekly"
    MONTHLY = "monthly"


class OccurrenceStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"
    NO_SHOW = "no_show"


class MeetingType(str, Enum):
    REPORT_BRIEF = "report_brief"
    STRATEGY = "strategy"
    CONSULTATION = "consultation"


def format_time_slot(start_time: time, end_time: time) -> str:
    """Canonical "HH:MM-HH:MM" value stored on bookings"""
    return f"{start_time.strftime('%H:%M')}-{end_time.strftime('%H:%M')}"


def parse_time_slot(value: str) -> tuple:
    start, end = value.split("-")
    return (
        datetime.strptime(start.strip(), "%H:%M").time(),
        datetime.strptime(end.strip(), "%H:%M").time(),
    )


class TimeSlotCreate(BaseModel):
    """Admin-defined weekly slot"""
    day_of_week: int = Field(..., description="Day of week (0=Monday, 6=Sunday)", ge=0, le=6)
    start_time: time = Field(..., description="Slot start time")
    end_time: time = Field(..., description="Slot end time")
    max_bookings_per_slot: int = Field(1, description="Bookings allowed per date", ge=1)
    is_available: bool = Field(True, description="Whether the slot accepts bookings")


class BlackoutDateCreate(BaseModel):
    blackout_date: date = Field(..., description="Date excluded from booking")
    reason: Optional[str] = Field(None, max_length=200, description="Shown to customers picking this date")


class AvailableSlot(BaseModel):
    """Bookable slot on a concrete date"""
    slot_date: date
    start_time: time
    end_time: time
    remaining: int = Field(..., description="Bookings still available")

    @property
    def value(self) -> str:
        return format_time_slot(self.start_time, self.end_time)


class BookingCreate(BaseModel):
    """Customer booking request"""
    customer_name: str = Field(..., min_length=2, max_length=100)
    customer_email: EmailStr
    customer_phone: str = Field(..., min_length=8, max_length=20)
    business_name: str = Field(..., min_length=2, max_length=200)
    business_type: Optional[str] = None
    business_location: Optional[str] = None
    biggest_challenge: Optional[str] = Field(None, max_length=500)
    additional_notes: Optional[str] = Field(None, max_length=1000)
    preferred_date: date
    preferred_time_slot: str = Field(..., description='Slot value, e.g. "09:00-10:00"')

    @field_validator("preferred_time_slot")
    @classmethod
    def validate_time_slot(cls, v: str) -> str:
        try:
            start, end = parse_time_slot(v)
        except ValueError:
            raise ValueError("Time slot must be in HH:MM-HH:MM format")
        return format_time_slot(start, end)


class RecurringMeetingCreate(BaseModel):
    """Recurring meeting schedule request"""
    recurrence_frequency: RecurrenceFrequency
    day_of_week: Optional[int] = Field(None, description="0=Monday, 6=Sunday", ge=0, le=6)
    day_of_month: Optional[int] = Field(None, description="1-28")
    week_of_month: Optional[int] = Field(None, description="1-5, used with day_of_week for monthly")
    preferred_time: time
    duration_minutes: int = Field(30, gt=0, le=480)
    start_date: date
    end_date: Optional[date] = None
    meeting_type: MeetingType = MeetingType.REPORT_BRIEF
    title: Optional[str] = None
    owner_name: Optional[str] = Field(None, max_length=100)
    owner_email: Optional[EmailStr] = Field(None, description="Invited to every occurrence")
    owner_phone: Optional[str] = Field(None, min_length=8, max_length=20)


class RecurringMeetingUpdate(BaseModel):
    recurrence_frequency: Optional[RecurrenceFrequency] = None
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    day_of_month: Optional[int] = None
    week_of_month: Optional[int] = None
    preferred_time: Optional[time] = None
    duration_minutes: Optional[int] = Field(None, gt=0, le=480)
    end_date: Optional[date] = None
    title: Optional[str] = None
    owner_name: Optional[str] = Field(None, max_length=100)
    owner_email: Optional[EmailStr] = None
    owner_phone: Optional[str] = Field(None, min_length=8, max_length=20)


class MeetingOccurrenceUpdate(BaseModel):
    """Notes on a single occurrence"""
    client_notes: Optional[str] = Field(None, max_length=2000)
    admin_notes: Optional[str] = Field(None, max_length=2000)


class CalendarEventRequest(BaseModel):
    """Provider-agnostic event payload"""
    subject_id: str = Field(..., description="Booking or occurrence id, used for logs and alerts")
    summary: str
    description: str = ""
    start: datetime
    end: datetime
    timezone: str = "UTC"
    attendees: List[str] = Field(default_factory=list)
    customer_phone: Optional[str] = None

    @field_validator("end")
    @classmethod
    def end_after_start(cls, v: datetime, info) -> datetime:
        start = info.data.get("start")
        if start and v <= start:
            raise ValueError("End time must be after start time")
        return v


class CalendarSyncResult(BaseModel):
    """Outcome of one gateway operation"""
    success: bool
    degraded: bool = False
    operation: str
    subject_id: str
    event_id: Optional[str] = None
    meeting_link: Optional[str] = None
    fallback_instructions: Optional[str] = None
    error_kind: Optional[str] = None
    error_code: Optional[int] = None
    error_message: Optional[str] = None
    needs_reauth: bool = False
    fallback_actions: List[str] = Field(default_factory=list)


class TransitionResult(BaseModel):
    booking_id: UUID
    previous_status: BookingStatus
    status: BookingStatus
    calendar: Optional[CalendarSyncResult] = None
    notification_enqueued: bool = False
