# ===== app/services/calendar/fallback.py =====
"""Customer-facing text used when the calendar cannot be reached"""
from typing import Optional

from app.services.calendar.errors import CalendarError, CalendarErrorKind

MANUAL_MEETING_TEMPLATE = """MEETING CONNECTION INSTRUCTIONS

We had a technical issue creating your video meeting link, so please use one of these alternatives:

Option 1: Video Call
We'll email you a video call link 15 minutes before your scheduled time.

Option 2: Phone Call
We'll call you at the number you provided: [PHONE_NUMBER]
Please make sure you're available to answer at your scheduled time.

Option 3: Call Us
Call or message us on [CONTACT_PHONE] if you'd prefer to reach us directly.

Your scheduled time remains the same: [MEETING_TIME]

We apologise for the inconvenience and look forward to speaking with you!"""

USER_FACING_MESSAGES = {
    CalendarErrorKind.RATE_LIMITED: "Calendar service is temporarily busy. Please try again in a few minutes.",
    CalendarErrorKind.TOKEN_EXPIRED: "Calendar connection needs to be refreshed. Please contact support.",
    CalendarErrorKind.INVALID_TOKEN: "Calendar connection needs to be refreshed. Please contact support.",
    CalendarErrorKind.CALENDAR_NOT_FOUND: "Calendar not found. Please contact support to fix the configuration.",
    CalendarErrorKind.NETWORK_ERROR: "Network connection issue. Please check your internet and try again.",
    CalendarErrorKind.QUOTA_EXCEEDED: "Calendar service limit reached. Please try again later or contact support.",
    CalendarErrorKind.FORBIDDEN: "Access denied to calendar service. Please contact support.",
    CalendarErrorKind.EVENT_CONFLICT: "Calendar event conflict detected. Please choose a different time.",
}

DEFAULT_USER_FACING_MESSAGE = (
    "Calendar service is temporarily unavailable. Your booking is confirmed, "
    "but the calendar event may need to be created manually."
)


def manual_meeting_instructions(
        customer_phone: Optional[str],
        meeting_time: Optional[str],
        contact_phone: str,
) -> str:
    """Alternate connection options with the customer's phone and meeting time filled in"""
    return (
        MANUAL_MEETING_TEMPLATE
        .replace("[PHONE_NUMBER]", customer_phone or "the number on your booking")
        .replace("[MEETING_TIME]", meeting_time or "as booked")
        .replace("[CONTACT_PHONE]", contact_phone)
    )


def user_facing_message(error: CalendarError) -> str:
    return USER_FACING_MESSAGES.get(error.kind, DEFAULT_USER_FACING_MESSAGE)
