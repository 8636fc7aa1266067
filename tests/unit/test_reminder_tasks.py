"""
Unit tests for the reminder Celery task, with the scheduling services mocked.
"""

from unittest.mock import MagicMock, patch

import pytest

from app.tasks.reminder_tasks import send_due_reminders


@pytest.fixture
def task_db(db):
    with patch("app.tasks.reminder_tasks.get_db", side_effect=lambda: iter([db])):
        yield db


@pytest.fixture
def lifecycle():
    with patch("app.tasks.reminder_tasks.BookingLifecycle") as mock_lifecycle:
        yield mock_lifecycle.return_value


@pytest.fixture
def meetings():
    with patch("app.tasks.reminder_tasks.RecurringMeetingService") as mock_service:
        yield mock_service.return_value


class TestSendDueReminders:

    def test_sends_booking_and_meeting_reminders(self, task_db, lifecycle, meetings):
        booking = MagicMock()
        day_before, hour_before = MagicMock(), MagicMock()
        lifecycle.bookings_needing_reminders.return_value = [booking]
        lifecycle.send_reminder.return_value = True
        meetings.occurrences_needing_reminders.return_value = {"24h": [day_before], "1h": [hour_before]}
        meetings.send_reminder.return_value = True

        result = send_due_reminders.run()

        assert result == {"status": "success", "bookings": 1, "occurrences": 2}
        lifecycle.send_reminder.assert_called_once_with(booking)
        assert [c.args for c in meetings.send_reminder.call_args_list] == [
            (day_before, "24h"), (hour_before, "1h"),
        ]

    def test_unsent_reminders_not_counted(self, task_db, lifecycle, meetings):
        lifecycle.bookings_needing_reminders.return_value = [MagicMock()]
        lifecycle.send_reminder.return_value = False
        meetings.occurrences_needing_reminders.return_value = {"24h": [], "1h": [MagicMock()]}
        meetings.send_reminder.return_value = False

        result = send_due_reminders.run()

        assert result == {"status": "success", "bookings": 0, "occurrences": 0}

    def test_nothing_due(self, task_db, lifecycle, meetings):
        lifecycle.bookings_needing_reminders.return_value = []
        meetings.occurrences_needing_reminders.return_value = {"24h": [], "1h": []}

        assert send_due_reminders.run() == {"status": "success", "bookings": 0, "occurrences": 0}
        lifecycle.send_reminder.assert_not_called()
