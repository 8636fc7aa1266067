# ===== app/services/scheduling/errors.py =====
"""Deterministic scheduling errors.

Every error carries a machine-readable ``reason`` and a human-readable
``message``. None of them are retried automatically; callers surface them to
the user (``to_dict`` gives the API-ready shape).
"""
from typing import Any, Dict, Optional


class SchedulingError(Exception):
    """Base class for validation and conflict errors"""

    reason = "SCHEDULING_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"reason": self.reason, "message": self.message, "details": self.details}

    def __repr__(self):
        return f"<{self.__class__.__name__}(reason={self.reason}, message={self.message!r})>"


class InvalidRange(SchedulingError):
    reason = "INVALID_RANGE"


class TooShort(SchedulingError):
    reason = "TOO_SHORT"


class SlotOverlap(SchedulingError):
    reason = "SLOT_OVERLAP"


class PastDate(SchedulingError):
    reason = "PAST_DATE"


class TooFarAhead(SchedulingError):
    reason = "TOO_FAR_AHEAD"


class BlackedOut(SchedulingError):
    reason = "BLACKED_OUT"


class Unavailable(SchedulingError):
    reason = "UNAVAILABLE"


class SlotNoLongerAvailable(SchedulingError):
    reason = "SLOT_NO_LONGER_AVAILABLE"


class CapacityExceeded(SchedulingError):
    """Concurrent submissions took the last seat"""
    reason = "CAPACITY_EXCEEDED"


class IllegalTransition(SchedulingError):
    reason = "ILLEGAL_TRANSITION"

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot change booking status from '{current}' to '{requested}'",
            {"current": current, "requested": requested},
        )
        self.current = current
        self.requested = requested


class InvalidRecurrence(SchedulingError):
    reason = "INVALID_RECURRENCE"


class TierNotAllowed(SchedulingError):
    reason = "INVALID_TIER"


class FrequencyNotAllowed(SchedulingError):
    reason = "FREQUENCY_NOT_ALLOWED"


class AlreadyExists(SchedulingError):
    reason = "ALREADY_EXISTS"


class DuplicateBlackout(SchedulingError):
    reason = "DUPLICATE_BLACKOUT"


class NotFound(SchedulingError):
    reason = "NOT_FOUND"
