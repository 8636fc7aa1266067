# ===== app/services/scheduling/slot_catalog.py =====
"""Weekly slot grid, blackout dates and per-date capacity"""
import logging
from datetime import date, time, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config.scheduling import SchedulingConfig
from app.models.availability import AvailableTimeSlot, BlackoutDate, SlotDayLock, SlotReservation
from app.schemas.scheduling import AvailableSlot, BlackoutDateCreate, TimeSlotCreate, parse_time_slot
from app.services.scheduling.conflict_validator import detect_slot_overlap, validate_slot_times
from app.services.scheduling.errors import (
    CapacityExceeded,
    DuplicateBlackout,
    NotFound,
    SlotNoLongerAvailable,
)
from app.utils.ids import coerce_uuid

logger = logging.getLogger(__name__)


class SlotCatalog:
    """Owns available_time_slots, booking_blackout_dates and slot_reservations"""

    def __init__(self, db: Session, config: Optional[SchedulingConfig] = None):
        self.db = db
        self.config = config or SchedulingConfig.from_settings()

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------

    def list_slots(self, day_of_week: Optional[int] = None, only_available: bool = False) -> List[AvailableTimeSlot]:
        query = self.db.query(AvailableTimeSlot)
        if day_of_week is not None:
            query = query.filter(AvailableTimeSlot.day_of_week == day_of_week)
        if only_available:
            query = query.filter(AvailableTimeSlot.is_available.is_(True))
        return query.order_by(AvailableTimeSlot.day_of_week, AvailableTimeSlot.start_time).all()

    def get_slot(self, slot_id) -> AvailableTimeSlot:
        slot = self.db.query(AvailableTimeSlot).filter_by(id=coerce_uuid(slot_id)).first()
        if not slot:
            raise NotFound("Time slot not found", {"slot_id": str(slot_id)})
        return slot

    def upsert_slot(self, slot_data: TimeSlotCreate, slot_id=None) -> AvailableTimeSlot:
        """
        Create a slot, or update ``slot_id``, rejecting overlaps.

        The weekday lock rows are taken before the overlap check and held until
        commit, so two writers on the same weekday cannot both validate against
        a stale snapshot.
        """
        error = validate_slot_times(slot_data.start_time, slot_data.end_time, self.config.min_slot_minutes)
        if error:
            raise error

        try:
            existing = self.get_slot(slot_id) if slot_id is not None else None

            days = {slot_data.day_of_week}
            if existing is not None:
                days.add(existing.day_of_week)
            locks = [self._lock_day(day) for day in sorted(days)]

            same_day = (
                self.db.query(AvailableTimeSlot)
                .filter(AvailableTimeSlot.day_of_week == slot_data.day_of_week)
                .all()
            )
            error = detect_slot_overlap(
                slot_data, same_day, exclude_id=existing.id if existing is not None else None
            )
            if error:
                raise error

            slot = existing or AvailableTimeSlot()
            slot.day_of_week = slot_data.day_of_week
            slot.start_time = slot_data.start_time
            slot.end_time = slot_data.end_time
            slot.max_bookings_per_slot = slot_data.max_bookings_per_slot
            slot.is_available = slot_data.is_available
            if existing is None:
                self.db.add(slot)

            for lock in locks:
                lock.version = (lock.version or 0) + 1

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(slot)
        logger.info(
            f"{'Updated' if existing is not None else 'Created'} slot {slot.id} "
            f"day={slot.day_of_week} {slot.start_time}-{slot.end_time}"
        )
        return slot

    def delete_slot(self, slot_id) -> None:
        """Delete a slot definition; bookings keep their own date and time"""
        try:
            slot = self.get_slot(slot_id)
            lock = self._lock_day(slot.day_of_week)
            self.db.delete(slot)
            lock.version = (lock.version or 0) + 1
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"Deleted slot {slot_id}")

    def _lock_day(self, day_of_week: int) -> SlotDayLock:
        """Row-lock the weekday's lock row, creating it on first use"""
        self._insert_ignore(SlotDayLock, {"day_of_week": day_of_week, "version": 0}, ["day_of_week"])
        return (
            self.db.query(SlotDayLock)
            .filter(SlotDayLock.day_of_week == day_of_week)
            .with_for_update()
            .populate_existing()
            .one()
        )

    def _insert_ignore(self, model, values: Dict, conflict_columns: List[str]) -> None:
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            filters = [getattr(model, column) == values[column] for column in conflict_columns]
            if self.db.query(model).filter(*filters).first() is None:
                self.db.add(model(**values))
                self.db.flush()
            return

        stmt = insert(model).values(**values).on_conflict_do_nothing(index_elements=conflict_columns)
        self.db.execute(stmt)

    # ------------------------------------------------------------------
    # Blackout dates
    # ------------------------------------------------------------------

    def list_blackouts(self, date_from: Optional[date] = None, date_to: Optional[date] = None) -> List[BlackoutDate]:
        query = self.db.query(BlackoutDate)
        if date_from is not None:
            query = query.filter(BlackoutDate.date >= date_from)
        if date_to is not None:
            query = query.filter(BlackoutDate.date <= date_to)
        return query.order_by(BlackoutDate.date).all()

    def add_blackout(self, blackout, reason: Optional[str] = None) -> BlackoutDate:
        """Block a date. Accepts a BlackoutDateCreate or a plain date plus reason."""
        if not isinstance(blackout, BlackoutDateCreate):
            blackout = BlackoutDateCreate(blackout_date=blackout, reason=reason)
        blackout_date, reason = blackout.blackout_date, blackout.reason

        if self.db.query(BlackoutDate).filter(BlackoutDate.date == blackout_date).first():
            raise DuplicateBlackout(
                f"{blackout_date.isoformat()} is already blacked out", {"date": blackout_date.isoformat()}
            )

        blackout = BlackoutDate(date=blackout_date, reason=reason)
        self.db.add(blackout)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateBlackout(
                f"{blackout_date.isoformat()} is already blacked out", {"date": blackout_date.isoformat()}
            )

        self.db.refresh(blackout)
        logger.info(f"Added blackout date {blackout_date} ({reason or 'no reason'})")
        return blackout

    def remove_blackout(self, blackout_id) -> None:
        blackout = self.db.query(BlackoutDate).filter_by(id=coerce_uuid(blackout_id)).first()
        if not blackout:
            raise NotFound("Blackout date not found", {"blackout_id": str(blackout_id)})

        self.db.delete(blackout)
        self.db.commit()
        logger.info(f"Removed blackout date {blackout.date}")

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def available_slots(self, date_from: date, date_to: date) -> List[AvailableSlot]:
        """Bookable slots with remaining capacity for every date in the range"""
        blacked_out = {b.date for b in self.list_blackouts(date_from, date_to)}
        slots_by_day: Dict[int, List[AvailableTimeSlot]] = {}
        for slot in self.list_slots(only_available=True):
            slots_by_day.setdefault(slot.day_of_week, []).append(slot)
        booked = self._booked_counts(date_from, date_to)

        result = []
        current = date_from
        while current <= date_to:
            weekday = current.weekday()
            if current not in blacked_out and weekday in self.config.business_days:
                for slot in slots_by_day.get(weekday, []):
                    remaining = slot.max_bookings_per_slot - booked.get((current, slot.start_time), 0)
                    if remaining > 0:
                        result.append(AvailableSlot(
                            slot_date=current,
                            start_time=slot.start_time,
                            end_time=slot.end_time,
                            remaining=remaining,
                        ))
            current += timedelta(days=1)

        return result

    def available_slots_for_date(self, slot_date: date) -> List[AvailableSlot]:
        return self.available_slots(slot_date, slot_date)

    def is_bookable(self, slot_date: date) -> bool:
        """Not blacked out, a business day, and at least one slot with room left"""
        return len(self.available_slots_for_date(slot_date)) > 0

    def _booked_counts(self, date_from: date, date_to: date) -> Dict[Tuple[date, time], int]:
        rows = (
            self.db.query(SlotReservation)
            .filter(SlotReservation.slot_date >= date_from, SlotReservation.slot_date <= date_to)
            .all()
        )
        return {(r.slot_date, r.start_time): r.booked_count for r in rows}

    def find_active_slot(self, slot_date: date, time_slot: str) -> Optional[AvailableTimeSlot]:
        start_time, end_time = parse_time_slot(time_slot)
        return (
            self.db.query(AvailableTimeSlot)
            .filter(
                AvailableTimeSlot.day_of_week == slot_date.weekday(),
                AvailableTimeSlot.start_time == start_time,
                AvailableTimeSlot.end_time == end_time,
                AvailableTimeSlot.is_available.is_(True),
            )
            .first()
        )

    def reserve_capacity(self, slot_date: date, time_slot: str) -> None:
        """
        Atomically take one seat for ``time_slot`` on ``slot_date``.

        A single conditional UPDATE increments the counter only while it is
        below the slot's maximum; zero affected rows means someone else took
        the last seat. Does not commit.
        """
        slot = self.find_active_slot(slot_date, time_slot)
        if slot is None:
            raise SlotNoLongerAvailable(
                "Selected time slot is no longer available. Please choose another time.",
                {"time_slot": time_slot, "date": slot_date.isoformat()},
            )

        self._insert_ignore(
            SlotReservation,
            {
                "slot_date": slot_date,
                "start_time": slot.start_time,
                "end_time": slot.end_time,
                "booked_count": 0,
            },
            ["slot_date", "start_time"],
        )

        result = self.db.execute(
            update(SlotReservation)
            .where(
                SlotReservation.slot_date == slot_date,
                SlotReservation.start_time == slot.start_time,
                SlotReservation.booked_count < slot.max_bookings_per_slot,
            )
            .values(booked_count=SlotReservation.booked_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(f"Capacity exceeded for {slot_date} {time_slot}")
            raise CapacityExceeded(
                "This time slot was just booked. Please select another time.",
                {"time_slot": time_slot, "date": slot_date.isoformat()},
            )

    def release_capacity(self, slot_date: date, time_slot: str) -> None:
        """Give a seat back after a cancellation. Does not commit."""
        start_time, _ = parse_time_slot(time_slot)
        self.db.execute(
            update(SlotReservation)
            .where(
                SlotReservation.slot_date == slot_date,
                SlotReservation.start_time == start_time,
                SlotReservation.booked_count > 0,
            )
            .values(booked_count=SlotReservation.booked_count - 1)
            .execution_options(synchronize_session=False)
        )
