# ===== app/config/scheduling.py =====
"""Per-instance scheduling configuration.

Components receive one of these in their constructor instead of reading the
global settings, so a test or a tenant can override any knob.
"""
from datetime import date, datetime
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from app.config.settings import Settings, get_settings


class SchedulingConfig(BaseModel):
    business_timezone: str = "Australia/Melbourne"
    business_days: List[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4])
    max_days_ahead: int = 60
    min_slot_minutes: int = 30
    default_meeting_minutes: int = 60
    occurrence_horizon_days: int = 90
    max_occurrences_per_run: int = 52
    regenerate_after_days: int = 7
    tier_allowed_frequencies: Dict[str, List[str]] = Field(
        default_factory=lambda: {
            "starter": [],
            "growth": ["monthly"],
            "pro": ["monthly", "bi-weekly", "weekly"],
        }
    )
    fallback_contact_phone: str = "+61 400 000 000"
    admin_alert_email: str = "admin@example.com"

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SchedulingConfig":
        settings = settings or get_settings()
        return cls(
            business_timezone=settings.BUSINESS_TIMEZONE,
            business_days=settings.BUSINESS_DAYS,
            max_days_ahead=settings.BOOKING_MAX_DAYS_AHEAD,
            min_slot_minutes=settings.MIN_SLOT_MINUTES,
            default_meeting_minutes=settings.DEFAULT_MEETING_MINUTES,
            occurrence_horizon_days=settings.OCCURRENCE_HORIZON_DAYS,
            max_occurrences_per_run=settings.MAX_OCCURRENCES_PER_RUN,
            regenerate_after_days=settings.OCCURRENCE_REGENERATE_AFTER_DAYS,
            tier_allowed_frequencies=settings.TIER_ALLOWED_FREQUENCIES,
            fallback_contact_phone=settings.FALLBACK_CONTACT_PHONE,
            admin_alert_email=settings.ADMIN_ALERT_EMAIL,
        )

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.business_timezone)

    def today(self) -> date:
        """Current date in the business timezone"""
        return datetime.now(self.tz).date()
