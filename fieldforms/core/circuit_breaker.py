"""
Circuit breaker for calls to the external audit sink.
"""
import logging
import time
from enum import Enum
from typing import Callable, Any, Optional
from functools import wraps
from fieldforms.config import settings

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenException(Exception):
    """Exception raised when circuit breaker is open."""

    def __init__(self, message: str = "Circuit breaker is open"):
        self.message = message
        super().__init__(self.message)


class CircuitBreaker:
    """
    Stops calling a failing dependency for a while.

    After failure_threshold consecutive failures the circuit opens and calls
    fail fast with CircuitBreakerOpenException. Once recovery_timeout has
    elapsed a limited number of trial calls is let through; enough successes
    close the circuit again, a failure re-opens it.

    Usage:
        breaker = CircuitBreaker(name="audit_sink")

        @breaker
        async def forward(event):
            ...
    """

    def __init__(
        self,
        name: str = "default",
        failure_threshold: Optional[int] = None,
        recovery_timeout: Optional[int] = None,
        half_open_max_calls: Optional[int] = None,
        excluded_exceptions: tuple = (),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold or settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD
        self.recovery_timeout = recovery_timeout or settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT
        self.half_open_max_calls = half_open_max_calls or settings.CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS
        self.excluded_exceptions = excluded_exceptions
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at: Optional[float] = None
        self._trial_calls = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def _recovery_elapsed(self) -> bool:
        if self._opened_at is None:
            return True
        return (self._clock() - self._opened_at) >= self.recovery_timeout

    def _transition(self, state: CircuitState) -> None:
        self._state = state
        self._success_count = 0
        self._trial_calls = 0
        if state == CircuitState.CLOSED:
            self._failure_count = 0
            self._opened_at = None
        elif state == CircuitState.OPEN:
            self._opened_at = self._clock()

    def _record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.half_open_max_calls:
                self._transition(CircuitState.CLOSED)
                logger.info(f"Circuit breaker '{self.name}' closed after successful recovery")
        else:
            self._failure_count = 0

    def _record_failure(self, exception: Exception) -> None:
        if isinstance(exception, self.excluded_exceptions):
            return

        self._failure_count += 1
        if self._state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
            logger.warning(f"Circuit breaker '{self.name}' reopened after failure in half-open state")
        elif self._failure_count >= self.failure_threshold:
            self._transition(CircuitState.OPEN)
            logger.warning(f"Circuit breaker '{self.name}' opened after {self._failure_count} failures")

    def _admit(self) -> None:
        if self._state == CircuitState.OPEN:
            if not self._recovery_elapsed():
                raise CircuitBreakerOpenException(
                    f"Circuit breaker '{self.name}' is open. Retry after {self.recovery_timeout}s"
                )
            self._transition(CircuitState.HALF_OPEN)
            logger.info(f"Circuit breaker '{self.name}' entering half-open state")

        if self._state == CircuitState.HALF_OPEN:
            if self._trial_calls >= self.half_open_max_calls:
                raise CircuitBreakerOpenException(
                    f"Circuit breaker '{self.name}' half-open call limit reached"
                )
            self._trial_calls += 1

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Run an async callable through the breaker.

        Raises:
            CircuitBreakerOpenException: if the circuit does not admit the call
            Exception: whatever func raises
        """
        self._admit()
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            self._record_failure(e)
            raise
        self._record_success()
        return result

    def __call__(self, func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            return await self.call(func, *args, **kwargs)
        return wrapper

    def reset(self) -> None:
        """Manually reset the circuit breaker to closed state."""
        self._transition(CircuitState.CLOSED)
        logger.info(f"Circuit breaker '{self.name}' manually reset")

    def get_status(self) -> dict:
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout,
        }


audit_sink_circuit_breaker = CircuitBreaker(name="audit_sink")
