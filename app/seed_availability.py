# ===== app/seed_availability.py =====
from datetime import time

from app.config.database import get_db
from app.schemas.scheduling import TimeSlotCreate
from app.services.scheduling.errors import SlotOverlap
from app.services.scheduling.slot_catalog import SlotCatalog

# Mon-Fri, hourly 09:00-17:00
DEFAULT_HOURS = range(9, 17)
DEFAULT_DAYS = range(0, 5)  # 0=Monday ... 4=Friday


def seed_availability():
    db = next(get_db())

    try:
        catalog = SlotCatalog(db)
        created = 0
        for day in DEFAULT_DAYS:
            for hour in DEFAULT_HOURS:
                try:
                    catalog.upsert_slot(TimeSlotCreate(
                        day_of_week=day,
                        start_time=time(hour, 0),
                        end_time=time(hour + 1, 0),
                        max_bookings_per_slot=1,
                    ))
                    created += 1
                except SlotOverlap:
                    # Already seeded
                    continue

        print(f"Seeded {created} time slot(s)")

    finally:
        db.close()


if __name__ == "__main__":
    seed_availability()
