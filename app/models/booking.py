# ===== app/models/booking.py =====
from sqlalchemy import Column, String, Text, Date, DateTime, CheckConstraint, Uuid
from sqlalchemy.sql import func
from app.models.base import Base
import uuid


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'cancelled', 'no_show')",
            name="ck_bookings_status",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Customer info
    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=False, index=True)
    customer_phone = Column(String, nullable=False)

    # Business info
    business_name = Column(String, nullable=False)
    business_type = Column(String, nullable=True)
    business_location = Column(String, nullable=True)
    biggest_challenge = Column(Text, nullable=True)
    additional_notes = Column(Text, nullable=True)

    # Booking details
    preferred_date = Column(Date, nullable=False, index=True)
    preferred_time_slot = Column(String(11), nullable=False)  # "09:00-10:00"

    # Status tracking
    status = Column(String(20), nullable=False, default="pending", index=True)
    admin_notes = Column(Text, nullable=True)  # never shown to the customer

    # Calendar sync
    external_event_id = Column(String, nullable=True, unique=True)
    external_meeting_link = Column(String, nullable=True)
    calendar_sync_status = Column(String(20), default="not_synced")  # not_synced, synced, degraded, removed, delete_failed
    last_sync_error = Column(Text, nullable=True)

    # Reminders & notifications
    confirmation_sent_at = Column(DateTime(timezone=True), nullable=True)
    reminder_sent_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Booking(id={self.id}, date={self.preferred_date}, status={self.status})>"
