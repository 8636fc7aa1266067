# ===== app/services/calendar/retry_policy.py =====
"""Retry/backoff math for calendar calls.

``decide_retry`` is pure: it only looks at the attempt number, the error kind
and the provider hint. ``RetryExecutor`` is the thin loop that sleeps between
attempts and enforces the overall deadline.
"""
import logging
import random
import time
from typing import Callable, List, Optional, TypeVar

from pydantic import BaseModel, Field

from app.config.settings import Settings, get_settings
from app.services.calendar.errors import (
    RETRYABLE_KINDS,
    CalendarError,
    CalendarErrorKind,
    classify_error,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    max_retries: int = Field(3, ge=0)
    base_delay: float = Field(1.0, ge=0)
    max_delay: float = Field(30.0, ge=0)
    multiplier: float = Field(2.0, ge=1)
    jitter_ratio: float = Field(0.3, ge=0, le=1)
    deadline: float = Field(120.0, gt=0, description="Overall budget in seconds for one operation")
    retryable_kinds: List[CalendarErrorKind] = Field(default_factory=lambda: sorted(RETRYABLE_KINDS))

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RetryPolicy":
        settings = settings or get_settings()
        return cls(
            max_retries=settings.CALENDAR_MAX_RETRIES,
            base_delay=settings.CALENDAR_BASE_DELAY_SECONDS,
            max_delay=settings.CALENDAR_MAX_DELAY_SECONDS,
            multiplier=settings.CALENDAR_BACKOFF_MULTIPLIER,
            jitter_ratio=settings.CALENDAR_JITTER_RATIO,
            deadline=settings.CALENDAR_OPERATION_DEADLINE_SECONDS,
        )


class RetryDecision(BaseModel):
    retry: bool
    delay: float = 0.0


def backoff_delay(attempt: int, policy: RetryPolicy, rand: Callable[[], float] = random.random) -> float:
    """Exponential delay after the ``attempt``-th failure, with up to jitter_ratio extra, capped"""
    exponential = policy.base_delay * (policy.multiplier ** (attempt - 1))
    jitter = exponential * policy.jitter_ratio * rand()
    return min(exponential + jitter, policy.max_delay)


def decide_retry(
        attempt: int,
        kind: CalendarErrorKind,
        retry_after: Optional[float] = None,
        policy: Optional[RetryPolicy] = None,
        rand: Callable[[], float] = random.random,
) -> RetryDecision:
    """
    Decide whether to retry after the ``attempt``-th failed attempt (1-based).

    With max_retries=3 attempts 1..3 may be retried, so an operation runs at
    most four times. A rate-limit hint from the provider replaces the computed
    backoff, still capped at max_delay.
    """
    policy = policy or RetryPolicy()

    if kind not in policy.retryable_kinds or attempt > policy.max_retries:
        return RetryDecision(retry=False)

    if kind == CalendarErrorKind.RATE_LIMITED and retry_after:
        return RetryDecision(retry=True, delay=min(float(retry_after), policy.max_delay))

    return RetryDecision(retry=True, delay=backoff_delay(attempt, policy, rand))


class RetryExecutor:
    """Runs a provider call under a RetryPolicy"""

    def __init__(
            self,
            policy: Optional[RetryPolicy] = None,
            sleep: Callable[[float], None] = time.sleep,
            clock: Callable[[], float] = time.monotonic,
            rand: Callable[[], float] = random.random,
    ):
        self.policy = policy or RetryPolicy()
        self.sleep = sleep
        self.clock = clock
        self.rand = rand

    def run(self, operation: Callable[[], T], operation_name: str) -> T:
        """Call ``operation`` until it succeeds or the policy gives up; raises CalendarError"""
        started = self.clock()
        attempt = 0

        while True:
            if attempt > 0 and self.clock() - started >= self.policy.deadline:
                raise self._deadline_error(operation_name, attempt)

            attempt += 1
            try:
                result = operation()
            except Exception as exc:
                error = classify_error(exc)
                error.attempts = attempt

                decision = decide_retry(attempt, error.kind, error.retry_after, self.policy, self.rand)
                if not decision.retry:
                    logger.warning(
                        f"{operation_name} failed after {attempt} attempt(s): "
                        f"{error.kind.value} (code={error.code}) {error.message}"
                    )
                    if error is exc:
                        raise
                    raise error from exc

                elapsed = self.clock() - started
                if elapsed + decision.delay > self.policy.deadline:
                    raise self._deadline_error(operation_name, attempt) from exc

                logger.info(
                    f"{operation_name} attempt {attempt} failed with {error.kind.value}, "
                    f"retrying in {decision.delay:.2f}s"
                )
                self.sleep(decision.delay)
                continue

            if attempt > 1:
                logger.info(f"{operation_name} succeeded on attempt {attempt}")
            return result

    def _deadline_error(self, operation_name: str, attempt: int) -> CalendarError:
        error = CalendarError(
            CalendarErrorKind.NETWORK_ERROR,
            f"{operation_name} did not complete within {self.policy.deadline:.0f}s",
        )
        error.attempts = attempt
        logger.warning(f"{operation_name} hit its deadline after {attempt} attempt(s)")
        return error
