"""
Unit tests for notification queueing, email rendering and the email tasks.
"""

import smtplib
from unittest.mock import MagicMock, patch

import pytest
from celery.exceptions import Retry

from app.schemas.scheduling import BookingStatus
from app.services.email.email_service import EmailService
from app.services.notifications.admin_alert_service import AdminAlertService
from app.services.notifications.notification_service import NotificationService, template_key_for_status
from app.tasks.email_tasks import send_admin_calendar_alert, send_booking_notification

CONTEXT = {
    "customer_name": "Jane Citizen",
    "business_name": "Citizen Plumbing",
    "preferred_date": "Monday, 02 March 2026",
    "preferred_time_slot": "09:00-10:00",
    "status": "confirmed",
    "meeting_link": "https://meet.google.com/abc-defg-hij",
    "fallback_instructions": None,
}


class TestTemplateKeys:

    @pytest.mark.parametrize("status,key", [
        ("pending", "booking_pending"),
        ("confirmed", "booking_confirmed"),
        ("completed", "booking_completed"),
        ("cancelled", "booking_cancelled"),
        (BookingStatus.NO_SHOW, "booking_no_show"),
    ])
    def test_key_per_status(self, status, key):
        assert template_key_for_status(status) == key


class TestNotificationService:

    def test_enqueue(self):
        with patch("app.services.notifications.notification_service.send_booking_notification") as task:
            assert NotificationService().enqueue("booking_confirmed", "jane@example.com", CONTEXT) is True

        task.delay.assert_called_once_with("booking_confirmed", "jane@example.com", CONTEXT)

    def test_broker_down_returns_false(self):
        with patch("app.services.notifications.notification_service.send_booking_notification") as task:
            task.delay.side_effect = ConnectionError("broker unreachable")
            assert NotificationService().enqueue("booking_confirmed", "jane@example.com", CONTEXT) is False


class TestAdminAlertService:

    def test_notify(self):
        summary = {"kind": "QUOTA_EXCEEDED", "attempts": 1}
        with patch("app.services.notifications.admin_alert_service.send_admin_calendar_alert") as task:
            assert AdminAlertService().notify("create", "booking-1", summary) is True

        task.delay.assert_called_once_with("create", "booking-1", summary)

    def test_broker_down_returns_false(self):
        with patch("app.services.notifications.admin_alert_service.send_admin_calendar_alert") as task:
            task.delay.side_effect = ConnectionError("broker unreachable")
            assert AdminAlertService().notify("create", "booking-1", {}) is False


class TestRenderBookingEmail:

    def test_confirmed_with_link(self):
        subject, html_content, plain = EmailService.render_booking_email("booking_confirmed", CONTEXT)

        assert subject.startswith("Booking Confirmed!")
        assert "https://meet.google.com/abc-defg-hij" in html_content
        assert "Join the meeting: https://meet.google.com/abc-defg-hij" in plain
        assert "Hi Jane Citizen," in plain

    def test_fallback_instructions_without_link(self):
        context = dict(CONTEXT, meeting_link=None, fallback_instructions="Call us on +61 400 111 222")

        _, html_content, plain = EmailService.render_booking_email("booking_confirmed", context)

        assert "Join Meeting" not in html_content
        assert "Call us on +61 400 111 222" in html_content
        assert "Call us on +61 400 111 222" in plain

    def test_values_escaped(self):
        context = dict(CONTEXT, business_name="<script>alert(1)</script>")
        _, html_content, _ = EmailService.render_booking_email("booking_pending", context)

        assert "<script>" not in html_content
        assert "&lt;script&gt;" in html_content

    def test_unknown_template(self):
        with pytest.raises(ValueError):
            EmailService.render_booking_email("booking_rescheduled", CONTEXT)

    @pytest.mark.parametrize("template_key,heading", [
        ("booking_reminder", "Your Call Is Coming Up"),
        ("meeting_reminder", "Meeting Reminder"),
        ("meeting_calendar_fallback", "Your Meeting Details"),
    ])
    def test_reminder_and_fallback_templates(self, template_key, heading):
        context = dict(CONTEXT, meeting_link=None, fallback_instructions="Call us on +61 400 111 222")

        subject, html_content, plain = EmailService.render_booking_email(template_key, context)

        assert subject.startswith(heading)
        assert "Call us on +61 400 111 222" in plain


class TestSendEmail:

    @pytest.fixture
    def server(self):
        connection = MagicMock()
        connection.__enter__.return_value = connection
        with patch.object(EmailService, "_get_smtp_connection", return_value=connection):
            yield connection

    def test_sends_and_closes(self, server):
        assert EmailService.send_email("jane@example.com", "Hello", "<p>Hi</p>", plain_text="Hi") is True

        server.sendmail.assert_called_once()
        assert server.sendmail.call_args[0][1] == ["jane@example.com"]
        server.__exit__.assert_called_once()

    @pytest.mark.parametrize("error", [smtplib.SMTPRecipientsRefused({}), OSError("connection reset")])
    def test_connection_closed_on_failure(self, server, error):
        server.sendmail.side_effect = error

        with pytest.raises(type(error)):
            EmailService.send_email("jane@example.com", "Hello", "<p>Hi</p>")

        server.__exit__.assert_called_once()
        exc_type = server.__exit__.call_args[0][0]
        assert exc_type is type(error)


class TestEmailTasks:

    def test_send_booking_notification(self):
        with patch("app.tasks.email_tasks.EmailService.send_booking_status_email") as send:
            result = send_booking_notification.run("booking_confirmed", "jane@example.com", CONTEXT)

        send.assert_called_once_with(template_key="booking_confirmed", email="jane@example.com", context=CONTEXT)
        assert result["status"] == "success"

    def test_smtp_failure_retries(self):
        with patch("app.tasks.email_tasks.EmailService.send_booking_status_email") as send, \
                patch.object(send_booking_notification, "retry", side_effect=Retry()) as retry:
            send.side_effect = OSError("smtp down")

            with pytest.raises(Retry):
                send_booking_notification.run("booking_confirmed", "jane@example.com", CONTEXT)

        assert retry.call_args.kwargs["countdown"] == 60

    def test_admin_alert_task(self):
        summary = {"kind": "FORBIDDEN"}
        with patch("app.tasks.email_tasks.EmailService.send_admin_calendar_alert") as send:
            result = send_admin_calendar_alert.run("delete", "booking-1", summary)

        send.assert_called_once_with(operation="delete", subject_id="booking-1", error_summary=summary)
        assert result == {"status": "success", "subject_id": "booking-1"}

    def test_admin_alert_goes_to_admin(self):
        with patch.object(EmailService, "send_email", return_value=True) as send:
            EmailService.send_admin_calendar_alert("create", "booking-1", {"kind": "UNKNOWN", "attempts": 4})

        kwargs = send.call_args.kwargs
        assert kwargs["to_email"] == "admin@example.com"
        assert "Calendar create failed" in kwargs["subject"]
        assert "attempts: 4" in kwargs["plain_text"]
