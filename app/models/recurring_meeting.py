# ===== app/models/recurring_meeting.py =====
from sqlalchemy import (
    Column, String, Integer, Boolean, Text, Date, Time, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, Index,
    Uuid, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.models.base import Base
import uuid


class RecurringMeeting(Base):
    """Recurring meeting schedule owned by a subscriber"""
    __tablename__ = "recurring_meetings"
    __table_args__ = (
        CheckConstraint(
            "day_of_month IS NULL OR (day_of_month >= 1 AND day_of_month <= 28)", name="ck_recurring_meetings_day_of_month"
        ),
        CheckConstraint(
            "week_of_month IS NULL OR (week_of_month >= 1 AND week_of_month <= 5)", name="ck_recurring_meetings_week_of_month"
        ),
        # one active schedule per owner
        Index(
            "uq_recurring_meetings_active_owner",
            "owner_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    subscription_tier = Column(String(20), nullable=False)

    # Contact details used for calendar invites and fallback emails
    owner_name = Column(String, nullable=True)
    owner_email = Column(String, nullable=True)
    owner_phone = Column(String, nullable=True)

    meeting_type = Column(String(30), default="report_brief")  # report_brief, strategy, consultation
    title = Column(String(200), default="Monthly Report Brief")

    # Recurrence pattern
    recurrence_frequency = Column(String(20), nullable=False)  # weekly, bi-weekly, monthly
    day_of_week = Column(Integer, nullable=True)  # 0=Monday, 6=Sunday
    day_of_month = Column(Integer, nullable=True)  # 1-28
    week_of_month = Column(Integer, nullable=True)  # 1-5
    preferred_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=30)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)  # null = ongoing
    is_active = Column(Boolean, nullable=False, default=True)

    last_generated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    occurrences = relationship(
        "MeetingOccurrence",
        back_populates="recurring_meeting",
        cascade="all, delete-orphan",
        order_by="MeetingOccurrence.scheduled_date",
    )

    def __repr__(self):
        return f"<RecurringMeeting(id={self.id}, frequency={self.recurrence_frequency})>"


class MeetingOccurrence(Base):
    """Concrete meeting generated from a recurring schedule"""
    __tablename__ = "meeting_occurrences"
    __table_args__ = (
        UniqueConstraint("recurring_meeting_id", "scheduled_date", name="uq_meeting_occurrences_meeting_date"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    recurring_meeting_id = Column(
        Uuid(as_uuid=True), ForeignKey("recurring_meetings.id", ondelete="CASCADE"), nullable=False, index=True
    )

    scheduled_date = Column(Date, nullable=False, index=True)
    scheduled_time = Column(Time, nullable=False)

    # Rescheduling
    original_date = Column(Date, nullable=True)
    original_time = Column(Time, nullable=True)
    reschedule_reason = Column(Text, nullable=True)

    # Calendar sync
    external_event_id = Column(String, nullable=True, unique=True)
    external_meeting_link = Column(String, nullable=True)
    calendar_sync_status = Column(String(20), default="not_synced")

    status = Column(String(20), nullable=False, default="scheduled")  # scheduled, completed, cancelled, rescheduled, no_show
    client_notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    attended = Column(Boolean, nullable=True)
    meeting_summary = Column(Text, nullable=True)

    # Reminders
    reminder_24h_sent_at = Column(DateTime(timezone=True), nullable=True)
    reminder_1h_sent_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    recurring_meeting = relationship("RecurringMeeting", back_populates="occurrences")
