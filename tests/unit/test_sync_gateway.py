"""
Unit tests for CalendarSyncGateway: retries, fallback and alerts.
"""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from app.schemas.scheduling import CalendarEventRequest
from app.services.calendar.errors import CalendarError, CalendarErrorKind, ProviderHTTPError
from app.services.calendar.sync_gateway import UnavailableCalendarGateway

MELBOURNE = ZoneInfo("Australia/Melbourne")


@pytest.fixture
def request_payload():
    return CalendarEventRequest(
        subject_id="booking-1",
        summary="Strategy Call - Citizen Plumbing",
        start=datetime(2026, 3, 2, 9, 0, tzinfo=MELBOURNE),
        end=datetime(2026, 3, 2, 10, 0, tzinfo=MELBOURNE),
        timezone="Australia/Melbourne",
        attendees=["jane@example.com"],
        customer_phone="+61 412 345 678",
    )


class TestCreateEvent:

    def test_success(self, gateway, provider, admin_alerts, request_payload):
        result = gateway.create_event(request_payload)

        assert result.success is True
        assert result.degraded is False
        assert result.event_id == "evt_123"
        assert result.meeting_link == "https://meet.google.com/abc-defg-hij"
        provider.create_event.assert_called_once_with(request_payload)
        admin_alerts.notify.assert_not_called()

    def test_transient_failure_retried(self, gateway, provider, sleep, request_payload):
        provider.create_event.side_effect = [
            ConnectionError("reset"),
            {"event_id": "evt_456", "meeting_link": None},
        ]

        result = gateway.create_event(request_payload)

        assert result.success is True
        assert result.event_id == "evt_456"
        assert provider.create_event.call_count == 2
        sleep.assert_called_once_with(1.0)

    def test_exhausted_retries_degrade(self, gateway, provider, admin_alerts, sleep, request_payload):
        provider.create_event.side_effect = ProviderHTTPError(503)

        result = gateway.create_event(request_payload)

        assert provider.create_event.call_count == 4
        assert sleep.call_count == 3
        assert result.success is True
        assert result.degraded is True
        assert result.error_kind == "UNKNOWN"
        assert result.error_code == 503
        assert result.event_id is None
        assert result.fallback_actions == [
            "Error logged for debugging",
            "Manual meeting instructions created",
            "Admin notified of calendar failure",
        ]
        admin_alerts.notify.assert_called_once()
        operation, subject_id, summary = admin_alerts.notify.call_args[0]
        assert (operation, subject_id) == ("create", "booking-1")
        assert summary["attempts"] == 4

    def test_fallback_instructions(self, gateway, provider, request_payload):
        provider.create_event.side_effect = ProviderHTTPError(400, {"error": {"message": "Bad"}})

        result = gateway.create_event(request_payload)

        assert "+61 412 345 678" in result.fallback_instructions
        assert "+61 400 111 222" in result.fallback_instructions
        assert "Monday 02 March 2026, 09:00 AM (Australia/Melbourne)" in result.fallback_instructions

    def test_expired_token_flags_reauth(self, gateway, provider, request_payload):
        provider.create_event.side_effect = ProviderHTTPError(401, {"error": {"message": "Unauthorized"}})

        result = gateway.create_event(request_payload)

        assert provider.create_event.call_count == 1
        assert result.error_kind == "TOKEN_EXPIRED"
        assert result.needs_reauth is True

    def test_alert_failure_not_listed(self, gateway, provider, admin_alerts, request_payload):
        provider.create_event.side_effect = ProviderHTTPError(400)
        admin_alerts.notify.return_value = False

        result = gateway.create_event(request_payload)

        assert result.degraded is True
        assert "Admin notified of calendar failure" not in result.fallback_actions

    def test_socket_timeout_degrades_as_network_error(self, gateway, provider, sleep, request_payload):
        provider.create_event.side_effect = TimeoutError("timed out")

        result = gateway.create_event(request_payload)

        assert provider.create_event.call_count == 4
        assert result.success is True
        assert result.degraded is True
        assert result.error_kind == "NETWORK_ERROR"
        assert "+61 412 345 678" in result.fallback_instructions


class TestUpdateEvent:

    def test_success(self, gateway, provider, request_payload):
        result = gateway.update_event("evt_123", request_payload)

        assert result.success is True
        assert result.operation == "update"
        provider.update_event.assert_called_once_with("evt_123", request_payload)

    def test_failure_keeps_event_id(self, gateway, provider, request_payload):
        provider.update_event.side_effect = ProviderHTTPError(409)

        result = gateway.update_event("evt_123", request_payload)

        assert result.degraded is True
        assert result.event_id == "evt_123"
        assert result.error_kind == "EVENT_CONFLICT"


class TestDeleteEvent:

    def test_success(self, gateway, provider):
        result = gateway.delete_event("evt_123", "booking-1")

        assert result.success is True
        assert result.degraded is False
        provider.delete_event.assert_called_once_with("evt_123")

    def test_failure_reported_not_raised(self, gateway, provider, admin_alerts):
        provider.delete_event.side_effect = ProviderHTTPError(403)

        result = gateway.delete_event("evt_123", "booking-1")

        assert result.success is False
        assert result.degraded is True
        assert result.error_kind == "FORBIDDEN"
        assert result.fallback_instructions is None
        admin_alerts.notify.assert_called_once()
        assert admin_alerts.notify.call_args[0][0] == "delete"


class TestUnavailableCalendarGateway:

    @pytest.fixture
    def unavailable(self, admin_alerts, config):
        reason = CalendarError(CalendarErrorKind.CALENDAR_NOT_FOUND, "No calendar integration is connected")
        return UnavailableCalendarGateway(reason, admin_alerts=admin_alerts, config=config)

    def test_create_gives_manual_instructions(self, unavailable, admin_alerts, request_payload):
        result = unavailable.create_event(request_payload)

        assert result.success is True
        assert result.degraded is True
        assert result.error_kind == "CALENDAR_NOT_FOUND"
        assert "+61 412 345 678" in result.fallback_instructions
        admin_alerts.notify.assert_called_once()

    def test_delete_reported_as_failed(self, unavailable, request_payload):
        result = unavailable.delete_event("evt_123", "booking-1")

        assert result.success is False
        assert result.degraded is True
        assert result.event_id == "evt_123"
