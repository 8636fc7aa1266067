# ===== app/services/calendar/google_calendar_service.py =====
from datetime import timedelta, datetime, timezone
from typing import Dict, Optional

from google.auth.transport.requests import Request
from google_auth_httplib2 import AuthorizedHttp
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from cryptography.fernet import Fernet
import httplib2
from sqlalchemy.orm import Session
import logging

from app.config.settings import Settings, get_settings
from app.models import CalendarIntegration
from app.schemas.scheduling import CalendarEventRequest

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
AUTH_URI = "https://accounts.google.com/o/oauth2/auth"


def _client_config(settings: Settings, redirect_uri: Optional[str] = None) -> Dict:
    config = {
        "web": {
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "auth_uri": AUTH_URI,
            "token_uri": TOKEN_URI,
        }
    }
    if redirect_uri:
        config["web"]["redirect_uris"] = [redirect_uri]
    return config


class GoogleCalendarConnector:
    """OAuth flow that stores an encrypted CalendarIntegration for the business calendar"""
    SCOPES = ['https://www.googleapis.com/auth/calendar']

    def __init__(self, redirect_uri: str, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.redirect_uri = redirect_uri
        self.fernet = Fernet(self.settings.CALENDAR_ENCRYPTION_KEY.encode())
        self.client_config = _client_config(self.settings, redirect_uri)

    def _flow(self) -> Flow:
        return Flow.from_client_config(self.client_config, scopes=self.SCOPES, redirect_uri=self.redirect_uri)

    def generate_authorization_url(self, state: str) -> str:
        """Step 1: consent URL for the calendar owner"""
        authorization_url, _ = self._flow().authorization_url(
            access_type='offline',  # Gets refresh token
            include_granted_scopes='true',
            prompt='consent',
            state=state,
        )
        logger.info(f"Generated Google authorization URL (state={state})")
        return authorization_url

    def handle_oauth_callback(self, code: str, db: Session, calendar_id: Optional[str] = None) -> CalendarIntegration:
        """Step 2: exchange the code and replace any active integration"""
        flow = self._flow()
        try:
            flow.fetch_token(code=code)
        except Exception as e:
            logger.error(f"Failed to exchange code for tokens: {e}")
            raise
        credentials = flow.credentials

        for existing in db.query(CalendarIntegration).filter_by(provider='google', is_active=True).all():
            existing.is_active = False

        integration = CalendarIntegration(
            provider='google',
            is_active=True,
            calendar_id=calendar_id or self.settings.GOOGLE_CALENDAR_ID,
            access_token_encrypted=self.fernet.encrypt(credentials.token.encode()),
            refresh_token_encrypted=self.fernet.encrypt(credentials.refresh_token.encode()),
            token_expires_at=credentials.expiry,
            needs_reauth=False,
        )
        db.add(integration)
        db.commit()

        logger.info(f"Created Google calendar integration {integration.id}")
        return integration


class GoogleCalendarProvider:
    """CalendarProvider backed by the Google Calendar v3 API"""

    def __init__(self, integration: CalendarIntegration, db: Session, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.integration = integration
        self.db = db
        self.fernet = Fernet(self.settings.CALENDAR_ENCRYPTION_KEY.encode())
        self.client_config = _client_config(self.settings)
        self._service = None

    @property
    def calendar_id(self) -> str:
        return self.integration.calendar_id or self.settings.GOOGLE_CALENDAR_ID

    def get_valid_credentials(self) -> Credentials:
        """Get valid credentials, refreshing if necessary"""
        now = datetime.now(timezone.utc)
        expires_at = self.integration.token_expires_at
        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)

        if expires_at is None or expires_at <= now + timedelta(minutes=5):
            return self.refresh_access_token()

        access_token = self.fernet.decrypt(self.integration.access_token_encrypted).decode()
        refresh_token = self.fernet.decrypt(self.integration.refresh_token_encrypted).decode()
        return Credentials(
            token=access_token,
            refresh_token=refresh_token,
            token_uri=self.client_config['web']['token_uri'],
            client_id=self.client_config['web']['client_id'],
            client_secret=self.client_config['web']['client_secret']
        )

    def refresh_access_token(self) -> Credentials:
        """Refresh expired access token using refresh token"""
        refresh_token = self.fernet.decrypt(self.integration.refresh_token_encrypted).decode()
        credentials = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=self.client_config['web']['token_uri'],
            client_id=self.client_config['web']['client_id'],
            client_secret=self.client_config['web']['client_secret']
        )
        credentials.refresh(Request())
        self.integration.access_token_encrypted = self.fernet.encrypt(credentials.token.encode())
        self.integration.token_expires_at = credentials.expiry
        self.db.commit()
        logger.info(f"Refreshed access token for integration {self.integration.id}")
        return credentials

    def _events(self):
        if self._service is None:
            http = AuthorizedHttp(
                self.get_valid_credentials(),
                http=httplib2.Http(timeout=self.settings.CALENDAR_HTTP_TIMEOUT_SECONDS),
            )
            self._service = build('calendar', 'v3', http=http, cache_discovery=False)
        return self._service.events()

    @staticmethod
    def _event_body(request: CalendarEventRequest) -> Dict:
        return {
            'summary': request.summary,
            'description': request.description,
            'start': {'dateTime': request.start.isoformat(), 'timeZone': request.timezone},
            'end': {'dateTime': request.end.isoformat(), 'timeZone': request.timezone},
            'attendees': [{'email': email} for email in request.attendees],
        }

    @staticmethod
    def _to_result(event: Dict) -> Dict:
        meeting_link = event.get('hangoutLink')
        if not meeting_link:
            for entry in event.get('conferenceData', {}).get('entryPoints', []):
                if entry.get('entryPointType') == 'video':
                    meeting_link = entry.get('uri')
                    break
        return {
            'event_id': event['id'],
            'event_url': event.get('htmlLink'),
            'meeting_link': meeting_link,
        }

    def create_event(self, request: CalendarEventRequest) -> Dict:
        """Create an event with a Google Meet link"""
        body = self._event_body(request)
        body['conferenceData'] = {
            'createRequest': {
                'requestId': f"meet-{request.subject_id}",
                'conferenceSolutionKey': {'type': 'hangoutsMeet'},
            }
        }
        event = self._events().insert(
            calendarId=self.calendar_id,
            body=body,
            conferenceDataVersion=1,
            sendUpdates='all',
        ).execute()
        return self._to_result(event)

    def update_event(self, event_id: str, request: CalendarEventRequest) -> Dict:
        event = self._events().patch(
            calendarId=self.calendar_id,
            eventId=event_id,
            body=self._event_body(request),
            sendUpdates='all',
        ).execute()
        return self._to_result(event)

    def delete_event(self, event_id: str) -> None:
        """Delete an event; one that is already gone counts as deleted"""
        try:
            self._events().delete(calendarId=self.calendar_id, eventId=event_id, sendUpdates='all').execute()
        except HttpError as e:
            if e.resp.status in (404, 410):
                logger.info(f"Calendar event {event_id} already deleted")
                return
            raise
