# ===== app/services/calendar/errors.py =====
"""Calendar error taxonomy.

Raw provider failures are turned into a CalendarError exactly once, in
``classify_error``; everything downstream matches on ``CalendarError.kind``.
"""
import json
import socket
from enum import Enum
from typing import Any, Dict, Mapping, Optional

import httplib2
import requests
from google.auth import exceptions as google_auth_exceptions
from googleapiclient.errors import HttpError


class CalendarErrorKind(str, Enum):
    RATE_LIMITED = "RATE_LIMITED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    NETWORK_ERROR = "NETWORK_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    CALENDAR_NOT_FOUND = "CALENDAR_NOT_FOUND"
    EVENT_CONFLICT = "EVENT_CONFLICT"
    UNKNOWN = "UNKNOWN"


RETRYABLE_KINDS = frozenset({
    CalendarErrorKind.RATE_LIMITED,
    CalendarErrorKind.NETWORK_ERROR,
    CalendarErrorKind.UNKNOWN,
})

QUOTA_REASONS = {"quotaExceeded", "dailyLimitExceeded"}
RATE_LIMIT_REASONS = {"rateLimitExceeded", "userRateLimitExceeded"}
INVALID_TOKEN_MARKERS = ("invalid_grant", "invalid_token", "invalid credentials")

NETWORK_EXCEPTIONS = (
    ConnectionError,
    TimeoutError,
    socket.gaierror,
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    httplib2.HttpLib2Error,
    google_auth_exceptions.TransportError,
)


class CalendarError(Exception):
    """Classified calendar failure"""

    def __init__(
            self,
            kind: CalendarErrorKind,
            message: str,
            code: Optional[int] = None,
            retry_after: Optional[float] = None,
            original: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code = code
        self.retry_after = retry_after
        self.original = original
        self.attempts = 0

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def summary(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "attempts": self.attempts,
        }

    def __repr__(self):
        return f"<CalendarError(kind={self.kind.value}, code={self.code}, message={self.message!r})>"


class ProviderHTTPError(Exception):
    """HTTP failure from a provider client that does not raise its own typed error"""

    def __init__(self, status_code: int, payload: Optional[Dict] = None, headers: Optional[Mapping] = None):
        super().__init__(f"Calendar provider returned HTTP {status_code}")
        self.status_code = status_code
        self.payload = payload or {}
        self.headers = dict(headers or {})


def parse_retry_after(headers: Optional[Mapping]) -> Optional[float]:
    """Seconds from a Retry-After header; HTTP-date values are ignored"""
    if not headers:
        return None
    value = None
    for key, header_value in headers.items():
        if str(key).lower() == "retry-after":
            value = header_value
            break
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return seconds if seconds > 0 else None


def _decode_payload(content) -> Dict:
    if isinstance(content, dict):
        return content
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    if not content:
        return {}
    try:
        payload = json.loads(content)
    except ValueError:
        return {"error": {"message": str(content)}}
    return payload if isinstance(payload, dict) else {}


def _error_reasons(payload: Dict) -> set:
    error = payload.get("error")
    if not isinstance(error, dict):
        return set()
    return {e.get("reason") for e in error.get("errors", []) if isinstance(e, dict)}


def _error_message(payload: Dict) -> str:
    error = payload.get("error")
    if isinstance(error, dict):
        return error.get("message") or ""
    if isinstance(error, str):
        return payload.get("error_description") or error
    return ""


def classify_http_error(
        status: Optional[int],
        payload: Optional[Dict] = None,
        headers: Optional[Mapping] = None,
        original: Optional[BaseException] = None,
) -> CalendarError:
    """Map an HTTP status plus response body onto a CalendarErrorKind"""
    payload = payload or {}
    reasons = _error_reasons(payload)
    message = _error_message(payload)
    retry_after = parse_retry_after(headers)

    def error(kind: CalendarErrorKind, default_message: str) -> CalendarError:
        return CalendarError(kind, message or default_message, status, retry_after, original)

    if status == 400:
        return error(CalendarErrorKind.INVALID_REQUEST, "Invalid request to the calendar API")

    if status == 401:
        lowered = f"{message} {payload.get('error', '')}".lower()
        if any(marker in lowered for marker in INVALID_TOKEN_MARKERS):
            return error(CalendarErrorKind.INVALID_TOKEN, "Calendar credentials are invalid")
        return error(CalendarErrorKind.TOKEN_EXPIRED, "Authentication failed. Token may be expired or invalid.")

    if status == 403:
        if reasons & QUOTA_REASONS:
            return error(CalendarErrorKind.QUOTA_EXCEEDED, "Calendar API quota exceeded")
        if reasons & RATE_LIMIT_REASONS:
            return error(CalendarErrorKind.RATE_LIMITED, "Calendar API rate limit exceeded")
        return error(CalendarErrorKind.FORBIDDEN, "Access denied to the calendar")

    if status == 404:
        if "calendar" in message.lower():
            return error(CalendarErrorKind.CALENDAR_NOT_FOUND, "Calendar not found")
        return error(CalendarErrorKind.NOT_FOUND, "Requested resource not found")

    if status == 410:
        return error(CalendarErrorKind.NOT_FOUND, "Requested resource has been deleted")

    if status == 409:
        return error(CalendarErrorKind.EVENT_CONFLICT, "Event conflict detected")

    if status == 429:
        return error(CalendarErrorKind.RATE_LIMITED, "Rate limit exceeded. Please try again later.")

    return error(CalendarErrorKind.UNKNOWN, f"Calendar API error: {status}")


def classify_error(exc: BaseException) -> CalendarError:
    """Classify any exception raised by a provider call"""
    if isinstance(exc, CalendarError):
        return exc

    if isinstance(exc, HttpError):
        headers = dict(exc.resp) if exc.resp is not None else {}
        return classify_http_error(exc.resp.status, _decode_payload(exc.content), headers, exc)

    if isinstance(exc, ProviderHTTPError):
        return classify_http_error(exc.status_code, exc.payload, exc.headers, exc)

    if isinstance(exc, requests.exceptions.HTTPError) and exc.response is not None:
        try:
            payload = exc.response.json()
        except ValueError:
            payload = {}
        return classify_http_error(exc.response.status_code, payload, exc.response.headers, exc)

    if isinstance(exc, google_auth_exceptions.RefreshError):
        return CalendarError(
            CalendarErrorKind.INVALID_TOKEN, f"Calendar token refresh failed: {exc}", 401, original=exc
        )

    if isinstance(exc, NETWORK_EXCEPTIONS):
        return CalendarError(
            CalendarErrorKind.NETWORK_ERROR,
            "Network error occurred while connecting to the calendar service",
            original=exc,
        )

    return CalendarError(CalendarErrorKind.UNKNOWN, str(exc) or exc.__class__.__name__, original=exc)


def should_refresh_token(error: CalendarError) -> bool:
    """True when the caller should re-authenticate the integration"""
    return error.kind in (CalendarErrorKind.TOKEN_EXPIRED, CalendarErrorKind.INVALID_TOKEN) or error.code == 401
