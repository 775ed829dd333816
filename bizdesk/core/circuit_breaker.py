"""Per-table circuit breakers for the remote backends.

Each remote table gets its own breaker so that a failing ``leads`` table
never blocks reads or writes against ``products``.
"""

import enum
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """A remote table is being skipped after repeated failures."""

    def __init__(self, service_name: str) -> None:
        self.service_name = service_name
        super().__init__(f"{service_name} is temporarily unavailable")


class CircuitBreaker:
    """Failure tracker for one remote table.

    After ``failure_threshold`` failures in a row calls are refused until
    ``recovery_timeout`` seconds pass. The next call is then a trial: a
    success closes the breaker, a failure refuses calls for another full
    timeout.

    Args:
        service_name: Log label such as ``supabase:leads``.
        failure_threshold: Failures in a row that open the breaker.
        recovery_timeout: Seconds refused before a trial call.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        service_name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock

        self._failures = 0
        self._opened_at = 0.0
        self._state = CircuitState.CLOSED

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._clock() - self._opened_at >= self.recovery_timeout:
            self._state = CircuitState.HALF_OPEN
            logger.info("Trial call allowed for %s", self.service_name)
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    def check(self) -> None:
        """Raise ``CircuitBreakerOpen`` while calls are refused."""
        if self.state == CircuitState.OPEN:
            raise CircuitBreakerOpen(self.service_name)

    def record_success(self) -> None:
        if self._state != CircuitState.CLOSED:
            logger.warning("%s reachable again", self.service_name)
        self._failures = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failures += 1
        trial_failed = self._state == CircuitState.HALF_OPEN
        if not trial_failed and self._failures < self.failure_threshold:
            return
        if self._state != CircuitState.OPEN:
            logger.warning(
                "Skipping %s for %.0fs after %d failures",
                self.service_name,
                self.recovery_timeout,
                self._failures,
            )
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()

    async def call_async(self, func: Callable[[], Awaitable[T]]) -> T:
        """Await ``func()`` and record its outcome.

        Raises:
            CircuitBreakerOpen: While calls are refused.
            Exception: Whatever ``func`` raised, after counting the failure.
        """
        self.check()
        try:
            result = await func()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result


class CircuitBreakerRegistry:
    """One lazily created breaker per table, all sharing thresholds."""

    def __init__(
        self,
        prefix: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._prefix = prefix
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        if name not in self._breakers:
            self._breakers[name] = CircuitBreaker(
                f"{self._prefix}:{name}",
                failure_threshold=self._failure_threshold,
                recovery_timeout=self._recovery_timeout,
                clock=self._clock,
            )
        return self._breakers[name]

    def reset(self) -> None:
        self._breakers.clear()
