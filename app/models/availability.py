# ===== app/models/availability.py =====
from sqlalchemy import Column, String, Integer, Boolean, Time, Date, DateTime, UniqueConstraint, CheckConstraint, Uuid
from sqlalchemy.sql import func
from app.models.base import Base
import uuid


class AvailableTimeSlot(Base):
    """Recurring weekly capacity window"""
    __tablename__ = "available_time_slots"
    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_available_time_slots_day"),
        CheckConstraint("end_time > start_time", name="ck_available_time_slots_range"),
        CheckConstraint("max_bookings_per_slot >= 1", name="ck_available_time_slots_capacity"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    day_of_week = Column(Integer, nullable=False, index=True)  # 0=Monday, 6=Sunday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    max_bookings_per_slot = Column(Integer, nullable=False, default=1)
    is_available = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<AvailableTimeSlot(day={self.day_of_week}, {self.start_time}-{self.end_time})>"


class SlotDayLock(Base):
    """One row per weekday, locked while that weekday's slots are written"""
    __tablename__ = "slot_day_locks"

    day_of_week = Column(Integer, primary_key=True, autoincrement=False)
    version = Column(Integer, nullable=False, default=0)


class BlackoutDate(Base):
    """Specific dates when no bookings are allowed (holidays, vacations, etc.)"""
    __tablename__ = "booking_blackout_dates"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    date = Column(Date, nullable=False, unique=True, index=True)
    reason = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class SlotReservation(Base):
    """Active booking count for one slot on one date"""
    __tablename__ = "slot_reservations"
    __table_args__ = (
        UniqueConstraint("slot_date", "start_time", name="uq_slot_reservations_date_start"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    slot_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    booked_count = Column(Integer, nullable=False, default=0)
