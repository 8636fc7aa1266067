"""
Unit tests for the calendar Celery tasks, run in-process against the test database.
"""

import uuid
from datetime import date, time
from unittest.mock import patch

import pytest

from app.models import MeetingOccurrence, RecurringMeeting
from app.tasks.calendar_tasks import extend_recurring_meeting_horizons, sync_occurrence_to_calendar


@pytest.fixture
def task_db(db):
    """Hand the test session to the tasks instead of opening a new one."""
    with patch("app.tasks.calendar_tasks.get_db", side_effect=lambda: iter([db])):
        yield db


@pytest.fixture
def occurrence(db):
    meeting = RecurringMeeting(
        owner_id=uuid.uuid4(),
        subscription_tier="pro",
        title="Weekly Report Brief",
        recurrence_frequency="weekly",
        day_of_week=2,
        preferred_time=time(10, 0),
        duration_minutes=30,
        start_date=date(2026, 3, 2),
        is_active=True,
    )
    db.add(meeting)
    db.commit()
    occurrence = MeetingOccurrence(
        recurring_meeting_id=meeting.id,
        scheduled_date=date(2026, 3, 4),
        scheduled_time=time(10, 0),
        status="scheduled",
    )
    db.add(occurrence)
    db.commit()
    return occurrence


class TestSyncOccurrenceToCalendar:

    def test_skipped_without_integration(self, task_db, occurrence):
        result = sync_occurrence_to_calendar.run(str(occurrence.id))
        assert result == {"status": "skipped", "reason": "no_active_integration"}

    def test_synced(self, task_db, occurrence, gateway, provider):
        occurrence_id = occurrence.id

        with patch("app.tasks.calendar_tasks.CalendarIntegrationService.build_gateway", return_value=gateway):
            result = sync_occurrence_to_calendar.run(str(occurrence_id))

        assert result == {"status": "synced", "event_id": "evt_123"}
        # the task closed the session
        stored = task_db.get(MeetingOccurrence, occurrence_id)
        assert stored.external_event_id == "evt_123"
        assert stored.calendar_sync_status == "synced"

    def test_cancelled_skipped(self, task_db, occurrence, gateway, provider):
        occurrence.status = "cancelled"
        task_db.commit()

        with patch("app.tasks.calendar_tasks.CalendarIntegrationService.build_gateway", return_value=gateway):
            result = sync_occurrence_to_calendar.run(str(occurrence.id))

        assert result["status"] == "skipped"
        provider.create_event.assert_not_called()

    def test_unknown_occurrence_not_retried(self, task_db, gateway):
        with patch("app.tasks.calendar_tasks.CalendarIntegrationService.build_gateway", return_value=gateway):
            result = sync_occurrence_to_calendar.run(str(uuid.uuid4()))

        assert result == {"status": "failed", "reason": "occurrence_not_found"}


class TestExtendRecurringMeetingHorizons:

    def test_queues_sync_for_new_occurrences(self, task_db):
        created = [MeetingOccurrence(id=uuid.uuid4()), MeetingOccurrence(id=uuid.uuid4())]

        with patch("app.tasks.calendar_tasks.RecurrenceGenerator") as generator, \
                patch.object(sync_occurrence_to_calendar, "delay") as delay:
            generator.return_value.extend_all.return_value = created
            result = extend_recurring_meeting_horizons.run()

        assert result == {"status": "success", "created": 2}
        assert [c.args[0] for c in delay.call_args_list] == [str(o.id) for o in created]
