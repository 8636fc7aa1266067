"""
Pytest configuration and shared fixtures.
"""

from datetime import date, time
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config.scheduling import SchedulingConfig
from app.models import Base
from app.schemas.scheduling import BookingCreate, TimeSlotCreate
from app.services.calendar.retry_policy import RetryPolicy
from app.services.calendar.sync_gateway import CalendarSyncGateway
from app.services.scheduling.slot_catalog import SlotCatalog

# Monday
TODAY = date(2026, 3, 2)
CONTACT_PHONE = "+61 400 111 222"


@pytest.fixture
def engine():
    """In-memory SQLite shared across connections."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    """Session bound to the test engine."""
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def config():
    """Scheduling config with a known contact number."""
    return SchedulingConfig(fallback_contact_phone=CONTACT_PHONE)


@pytest.fixture
def catalog(db, config):
    return SlotCatalog(db, config)


@pytest.fixture
def weekday_slots(catalog):
    """Mon-Fri 09:00-10:00 (one seat) and 10:00-11:00 (two seats)."""
    slots = []
    for day in range(5):
        slots.append(catalog.upsert_slot(TimeSlotCreate(
            day_of_week=day, start_time=time(9, 0), end_time=time(10, 0), max_bookings_per_slot=1,
        )))
        slots.append(catalog.upsert_slot(TimeSlotCreate(
            day_of_week=day, start_time=time(10, 0), end_time=time(11, 0), max_bookings_per_slot=2,
        )))
    return slots


@pytest.fixture
def provider():
    """Calendar provider that always succeeds."""
    mock_provider = MagicMock()
    mock_provider.create_event.return_value = {
        "event_id": "evt_123",
        "event_url": "https://calendar.google.com/event?eid=evt_123",
        "meeting_link": "https://meet.google.com/abc-defg-hij",
    }
    mock_provider.update_event.return_value = {
        "event_id": "evt_123",
        "meeting_link": "https://meet.google.com/abc-defg-hij",
    }
    mock_provider.delete_event.return_value = None
    return mock_provider


@pytest.fixture
def admin_alerts():
    alerts = MagicMock()
    alerts.notify.return_value = True
    return alerts


@pytest.fixture
def sleep():
    return MagicMock()


@pytest.fixture
def gateway(provider, admin_alerts, config, sleep):
    """Gateway with no real waiting and no jitter."""
    return CalendarSyncGateway(
        provider,
        policy=RetryPolicy(),
        admin_alerts=admin_alerts,
        config=config,
        sleep=sleep,
        clock=lambda: 0.0,
        rand=lambda: 0.0,
    )


@pytest.fixture
def notifier():
    mock_notifier = MagicMock()
    mock_notifier.enqueue.return_value = True
    return mock_notifier


def make_booking_data(**overrides) -> BookingCreate:
    data = {
        "customer_name": "Jane Citizen",
        "customer_email": "jane@example.com",
        "customer_phone": "+61 412 345 678",
        "business_name": "Citizen Plumbing",
        "business_type": "Trades",
        "business_location": "Melbourne",
        "biggest_challenge": "Getting found online",
        "preferred_date": TODAY,
        "preferred_time_slot": "09:00-10:00",
    }
    data.update(overrides)
    return BookingCreate(**data)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def booking_data():
    """Factory for valid booking requests."""
    return make_booking_data
