"""
Store circuit breaker.

After ``failure_threshold`` consecutive failures a store is considered down and
calls are short-circuited until ``reset_timeout`` has passed. The next call is
then let through as a trial: success closes the circuit again, failure reopens
it for another cool-down.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable

from loguru import logger


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Thresholds for one store's breaker."""

    failure_threshold: int = 3
    reset_timeout: timedelta = timedelta(seconds=30)
    half_open_max_requests: int = 1  # trial calls allowed while half-open


class CircuitBreaker:
    """
    Tracks the health of one key/value store.

    Usage:
        breaker = CircuitBreaker("sql")

        if breaker.can_request():
            try:
                value = await store.get(key)
                breaker.record_success()
            except Exception:
                breaker.record_failure()
    """

    def __init__(
        self,
        service_id: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.service_id = service_id
        self.config = config or CircuitBreakerConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at: datetime | None = None
        self._trials_in_flight = 0
        self._last_error_at: datetime | None = None

    @property
    def state(self) -> CircuitState:
        """Current state; an expired cool-down moves OPEN to HALF_OPEN."""
        if self._state == CircuitState.OPEN and self._cooldown_elapsed():
            self._state = CircuitState.HALF_OPEN
            self._trials_in_flight = 0
            logger.info(f"[Store] '{self.service_id}' cool-down over, allowing a trial call")
        return self._state

    def _cooldown_elapsed(self) -> bool:
        if self._opened_at is None:
            return True
        return self._clock() >= self._opened_at + self.config.reset_timeout

    def can_request(self) -> bool:
        """Whether a call may go through now. Half-open calls take a trial slot."""
        state = self.state
        if state == CircuitState.OPEN:
            return False
        if state == CircuitState.HALF_OPEN:
            if self._trials_in_flight >= self.config.half_open_max_requests:
                return False
            self._trials_in_flight += 1
        return True

    def record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            logger.info(f"[Store] '{self.service_id}' recovered")
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = None
        self._trials_in_flight = 0

    def record_failure(self) -> None:
        self._consecutive_failures += 1
        self._last_error_at = self._clock()

        failed_trial = self._state == CircuitState.HALF_OPEN
        if failed_trial or self._consecutive_failures >= self.config.failure_threshold:
            self._trip()

    def _trip(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        logger.warning(
            f"[Store] '{self.service_id}' unavailable after "
            f"{self._consecutive_failures} failures, pausing calls for "
            f"{self.config.reset_timeout.total_seconds():.0f}s"
        )

    def get_time_until_reset(self) -> float | None:
        """Seconds left in the current cool-down, None when not open."""
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return None
        remaining = self._opened_at + self.config.reset_timeout - self._clock()
        return max(0.0, remaining.total_seconds())

    def get_status(self) -> dict[str, Any]:
        return {
            "service_id": self.service_id,
            "state": self.state.value,
            "failure_count": self._consecutive_failures,
            "last_failure": self._last_error_at.isoformat() if self._last_error_at else None,
            "time_until_reset": self.get_time_until_reset(),
        }
