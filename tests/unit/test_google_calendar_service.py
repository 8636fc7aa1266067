"""
Unit tests for the Google Calendar provider, the OAuth connector and the
integration bookkeeping. The Google client libraries are mocked.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import httplib2
import pytest
from cryptography.fernet import Fernet
from googleapiclient.errors import HttpError

from app.config.settings import Settings
from app.models import CalendarIntegration
from app.schemas.scheduling import CalendarEventRequest, CalendarSyncResult
from app.services.calendar.google_calendar_service import GoogleCalendarConnector, GoogleCalendarProvider
from app.services.calendar.integration_service import CalendarIntegrationService
from app.services.calendar.sync_gateway import CalendarSyncGateway, UnavailableCalendarGateway

MODULE = "app.services.calendar.google_calendar_service"


@pytest.fixture
def settings():
    return Settings(
        CALENDAR_ENCRYPTION_KEY=Fernet.generate_key().decode(),
        GOOGLE_CLIENT_ID="client-id",
        GOOGLE_CLIENT_SECRET="client-secret",
    )


@pytest.fixture
def fernet(settings):
    return Fernet(settings.CALENDAR_ENCRYPTION_KEY.encode())


@pytest.fixture
def integration(db, fernet):
    record = CalendarIntegration(
        provider="google",
        is_active=True,
        calendar_id="bookings@example.com",
        access_token_encrypted=fernet.encrypt(b"access-token"),
        refresh_token_encrypted=fernet.encrypt(b"refresh-token"),
        token_expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
    )
    db.add(record)
    db.commit()
    return record


@pytest.fixture
def events():
    """The object returned by service.events()."""
    return MagicMock()


@pytest.fixture
def google(events):
    with patch(f"{MODULE}.build") as mock_build, patch(f"{MODULE}.Credentials") as mock_credentials:
        mock_build.return_value.events.return_value = events
        yield mock_build, mock_credentials


@pytest.fixture
def calendar_provider(integration, db, settings, google):
    return GoogleCalendarProvider(integration, db, settings)


@pytest.fixture
def event_request():
    start = datetime(2026, 3, 2, 9, 0, tzinfo=timezone(timedelta(hours=11)))
    return CalendarEventRequest(
        subject_id="booking-1",
        summary="Strategy Call - Citizen Plumbing",
        description="Customer: Jane",
        start=start,
        end=start + timedelta(hours=1),
        timezone="Australia/Melbourne",
        attendees=["jane@example.com"],
    )


def http_error(status):
    return HttpError(httplib2.Response({"status": status}), b'{"error": {"message": "x"}}')


class TestGoogleCalendarProvider:

    def test_create_event_requests_meet_link(self, calendar_provider, events, event_request):
        events.insert.return_value.execute.return_value = {
            "id": "evt_1",
            "htmlLink": "https://calendar.google.com/event?eid=evt_1",
            "hangoutLink": "https://meet.google.com/abc-defg-hij",
        }

        result = calendar_provider.create_event(event_request)

        assert result == {
            "event_id": "evt_1",
            "event_url": "https://calendar.google.com/event?eid=evt_1",
            "meeting_link": "https://meet.google.com/abc-defg-hij",
        }
        kwargs = events.insert.call_args.kwargs
        assert kwargs["calendarId"] == "bookings@example.com"
        assert kwargs["conferenceDataVersion"] == 1
        assert kwargs["sendUpdates"] == "all"
        body = kwargs["body"]
        assert body["conferenceData"]["createRequest"]["requestId"] == "meet-booking-1"
        assert body["attendees"] == [{"email": "jane@example.com"}]
        assert body["start"]["timeZone"] == "Australia/Melbourne"

    def test_meeting_link_from_entry_points(self, calendar_provider, events, event_request):
        events.insert.return_value.execute.return_value = {
            "id": "evt_1",
            "conferenceData": {"entryPoints": [
                {"entryPointType": "phone", "uri": "tel:+1-555"},
                {"entryPointType": "video", "uri": "https://meet.google.com/xyz"},
            ]},
        }
        assert calendar_provider.create_event(event_request)["meeting_link"] == "https://meet.google.com/xyz"

    def test_update_event_patches(self, calendar_provider, events, event_request):
        events.patch.return_value.execute.return_value = {"id": "evt_1"}

        result = calendar_provider.update_event("evt_1", event_request)

        assert result["event_id"] == "evt_1"
        assert events.patch.call_args.kwargs["eventId"] == "evt_1"

    @pytest.mark.parametrize("status", [404, 410])
    def test_delete_already_gone(self, calendar_provider, events, status):
        events.delete.return_value.execute.side_effect = http_error(status)
        assert calendar_provider.delete_event("evt_1") is None

    def test_delete_other_error_raised(self, calendar_provider, events):
        events.delete.return_value.execute.side_effect = http_error(500)
        with pytest.raises(HttpError):
            calendar_provider.delete_event("evt_1")

    def test_valid_token_not_refreshed(self, calendar_provider, google):
        _, mock_credentials = google

        calendar_provider.get_valid_credentials()

        assert mock_credentials.call_args.kwargs["token"] == "access-token"
        assert mock_credentials.call_args.kwargs["refresh_token"] == "refresh-token"
        mock_credentials.return_value.refresh.assert_not_called()

    def test_expiring_token_refreshed(self, calendar_provider, integration, db, fernet, google):
        _, mock_credentials = google
        new_expiry = datetime.now(timezone.utc) + timedelta(hours=1)
        mock_credentials.return_value.token = "new-access-token"
        mock_credentials.return_value.expiry = new_expiry
        integration.token_expires_at = datetime.now(timezone.utc) + timedelta(minutes=2)
        db.commit()

        with patch(f"{MODULE}.Request"):
            calendar_provider.get_valid_credentials()

        mock_credentials.return_value.refresh.assert_called_once()
        db.refresh(integration)
        assert fernet.decrypt(integration.access_token_encrypted) == b"new-access-token"

    def test_service_built_once(self, calendar_provider, events, google):
        mock_build, _ = google
        events.patch.return_value.execute.return_value = {"id": "evt_1"}
        events.delete.return_value.execute.return_value = None

        calendar_provider.delete_event("evt_1")
        calendar_provider.delete_event("evt_2")

        assert mock_build.call_count == 1
        assert mock_build.call_args.kwargs["cache_discovery"] is False

    def test_service_uses_http_timeout(self, integration, db, settings, events, google):
        mock_build, mock_credentials = google
        settings.CALENDAR_HTTP_TIMEOUT_SECONDS = 12.5
        events.delete.return_value.execute.return_value = None

        with patch(f"{MODULE}.AuthorizedHttp") as mock_authorized:
            GoogleCalendarProvider(integration, db, settings).delete_event("evt_1")

        credentials, = mock_authorized.call_args.args
        assert credentials is mock_credentials.return_value
        http = mock_authorized.call_args.kwargs["http"]
        assert isinstance(http, httplib2.Http)
        assert http.timeout == 12.5
        assert mock_build.call_args.kwargs["http"] is mock_authorized.return_value
        assert "credentials" not in mock_build.call_args.kwargs


class TestGoogleCalendarConnector:

    def test_authorization_url(self, settings):
        with patch(f"{MODULE}.Flow") as mock_flow:
            mock_flow.from_client_config.return_value.authorization_url.return_value = ("https://accounts/x", "s")
            connector = GoogleCalendarConnector("https://app/callback", settings)

            assert connector.generate_authorization_url("state-1") == "https://accounts/x"

        kwargs = mock_flow.from_client_config.return_value.authorization_url.call_args.kwargs
        assert kwargs["access_type"] == "offline"
        assert kwargs["state"] == "state-1"

    def test_callback_replaces_active_integration(self, settings, db, integration, fernet):
        expiry = datetime.now(timezone.utc) + timedelta(hours=1)
        with patch(f"{MODULE}.Flow") as mock_flow:
            flow = mock_flow.from_client_config.return_value
            flow.credentials.token = "fresh-access"
            flow.credentials.refresh_token = "fresh-refresh"
            flow.credentials.expiry = expiry

            created = GoogleCalendarConnector("https://app/callback", settings).handle_oauth_callback("code-1", db)

        flow.fetch_token.assert_called_once_with(code="code-1")
        db.refresh(integration)
        assert integration.is_active is False
        assert created.is_active is True
        assert created.calendar_id == "primary"
        assert fernet.decrypt(created.refresh_token_encrypted) == b"fresh-refresh"
        assert CalendarIntegrationService.get_active(db).id == created.id


class TestCalendarIntegrationService:

    def test_no_integration_no_gateway(self, db):
        assert CalendarIntegrationService.build_gateway(db) is None

    def test_needs_reauth_no_gateway(self, db, integration):
        integration.needs_reauth = True
        db.commit()
        assert CalendarIntegrationService.build_gateway(db) is None

    def test_gateway_for_google(self, db, integration, config):
        with patch(f"{MODULE}.GoogleCalendarProvider") as mock_provider:
            gateway = CalendarIntegrationService.build_gateway(db, config)

        assert isinstance(gateway, CalendarSyncGateway)
        assert gateway.provider is mock_provider.return_value

    def test_resolve_without_integration(self, db, config):
        gateway = CalendarIntegrationService.resolve_gateway(db, config)

        assert isinstance(gateway, UnavailableCalendarGateway)
        assert gateway.reason.kind.value == "CALENDAR_NOT_FOUND"

    def test_resolve_needs_reauth(self, db, integration, config):
        integration.needs_reauth = True
        db.commit()

        gateway = CalendarIntegrationService.resolve_gateway(db, config)

        assert isinstance(gateway, UnavailableCalendarGateway)
        assert gateway.reason.kind.value == "INVALID_TOKEN"

    def test_resolve_prefers_real_gateway(self, db, integration, config):
        with patch(f"{MODULE}.GoogleCalendarProvider"):
            gateway = CalendarIntegrationService.resolve_gateway(db, config)

        assert type(gateway) is CalendarSyncGateway

    def test_unsupported_provider(self, db, integration):
        integration.provider = "outlook"
        db.commit()
        with pytest.raises(ValueError):
            CalendarIntegrationService.build_gateway(db)

    def test_record_degraded_result(self, db, integration):
        result = CalendarSyncResult(success=True, degraded=True, operation="create", subject_id="b1")

        CalendarIntegrationService.record_result(db, result)

        db.refresh(integration)
        assert integration.last_sync_status == "degraded"
        assert integration.last_sync_at is not None
        assert integration.needs_reauth is False

    def test_record_rejected_credentials(self, db, integration):
        result = CalendarSyncResult(
            success=False, degraded=True, operation="delete", subject_id="b1", needs_reauth=True,
        )

        CalendarIntegrationService.record_result(db, result)

        db.refresh(integration)
        assert integration.last_sync_status == "failed"
        assert integration.needs_reauth is True
