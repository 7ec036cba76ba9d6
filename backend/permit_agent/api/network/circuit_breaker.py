"""
Circuit Breaker - Fail fast on dependencies that keep failing
"""

import inspect
import time
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

import structlog
from pydantic import BaseModel, Field

from permit_agent.core.exceptions import BreakerOpenError
from permit_agent.models.permit import utc_now

logger = structlog.get_logger(__name__)


class CircuitBreakerState(str, Enum):
    """Circuit breaker states"""
    CLOSED = "closed"  # Normal operation
    OPEN = "open"      # Failing, rejecting requests
    HALF_OPEN = "half_open"  # Single probe in flight


class CircuitBreakerConfig(BaseModel):
    """Configuration for circuit breaker"""
    failure_threshold: int = Field(default=5, ge=1)
    reset_timeout_seconds: float = Field(default=60.0, ge=0)


class CircuitBreakerMetrics(BaseModel):
    """Metrics for circuit breaker"""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rejected_requests: int = 0
    state_changes: int = 0
    last_failure_time: Optional[datetime] = None
    last_success_time: Optional[datetime] = None


class CircuitBreaker:
    """Circuit breaker guarding one named external dependency"""

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitBreakerState.CLOSED
        self.metrics = CircuitBreakerMetrics()
        self._clock = clock

        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.next_attempt_time: Optional[float] = None
        self._probe_in_flight = False

        logger.info("Circuit breaker initialized",
                    name=name,
                    failure_threshold=self.config.failure_threshold,
                    reset_timeout_seconds=self.config.reset_timeout_seconds)

    async def execute(self, operation: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Run an operation through the breaker

        Args:
            operation: Callable returning a value or an awaitable
            *args: Positional arguments for the operation
            **kwargs: Keyword arguments for the operation

        Returns:
            The operation's result

        Raises:
            BreakerOpenError: The breaker is open, or a half-open probe is already running
        """
        is_probe = self._admit()
        self.metrics.total_requests += 1

        try:
            result = operation(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            self._on_failure(exc)
            raise
        except BaseException:
            # Cancelled probe frees the slot
            if is_probe:
                self._probe_in_flight = False
            raise
        else:
            self._on_success()
            return result

    def _admit(self) -> bool:
        """Decide admission; returns True when the call is the half-open probe."""
        if self.state == CircuitBreakerState.CLOSED:
            return False

        now = self._clock()
        if self.state == CircuitBreakerState.OPEN:
            if self.next_attempt_time is not None and now >= self.next_attempt_time:
                self._change_state(CircuitBreakerState.HALF_OPEN)
            else:
                self._reject(now)

        # HALF_OPEN: exactly one probe at a time
        if self._probe_in_flight:
            self._reject(now)
        self._probe_in_flight = True
        return True

    def _reject(self, now: float) -> None:
        self.metrics.rejected_requests += 1
        retry_after = max(0.0, (self.next_attempt_time or now) - now)
        logger.debug("Circuit breaker rejecting request",
                     name=self.name,
                     state=self.state.value,
                     retry_after_seconds=round(retry_after, 3))
        raise BreakerOpenError(self.name, retry_after)

    def _on_success(self) -> None:
        self.metrics.successful_requests += 1
        self.metrics.last_success_time = utc_now()
        self.failure_count = 0
        self._probe_in_flight = False
        if self.state != CircuitBreakerState.CLOSED:
            self.next_attempt_time = None
            self._change_state(CircuitBreakerState.CLOSED)

    def _on_failure(self, error: Exception) -> None:
        now = self._clock()
        self.metrics.failed_requests += 1
        self.metrics.last_failure_time = utc_now()
        self.failure_count += 1
        self.last_failure_time = now
        self._probe_in_flight = False

        logger.warning("Circuit breaker recorded failure",
                       name=self.name,
                       state=self.state.value,
                       failure_count=self.failure_count,
                       error_type=type(error).__name__)

        if self.state == CircuitBreakerState.HALF_OPEN or self.failure_count >= self.config.failure_threshold:
            self.next_attempt_time = now + self.config.reset_timeout_seconds
            if self.state != CircuitBreakerState.OPEN:
                self._change_state(CircuitBreakerState.OPEN)

    def _change_state(self, new_state: CircuitBreakerState) -> None:
        old_state = self.state
        self.state = new_state
        self.metrics.state_changes += 1

        logger.info("Circuit breaker state changed",
                    name=self.name,
                    old_state=old_state.value,
                    new_state=new_state.value,
                    failure_count=self.failure_count)

    def force_open(self) -> None:
        """Manually open the breaker for a full reset timeout"""
        self.next_attempt_time = self._clock() + self.config.reset_timeout_seconds
        if self.state != CircuitBreakerState.OPEN:
            self._change_state(CircuitBreakerState.OPEN)
        logger.warning("Circuit breaker manually forced open", name=self.name)

    def reset(self) -> None:
        """Reset circuit breaker to initial state"""
        old_state = self.state
        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.last_failure_time = None
        self.next_attempt_time = None
        self._probe_in_flight = False
        logger.info("Circuit breaker reset", name=self.name, old_state=old_state.value)

    def get_status(self) -> Dict[str, Any]:
        """Get current circuit breaker status"""
        now = self._clock()
        retry_after = None
        if self.state == CircuitBreakerState.OPEN and self.next_attempt_time is not None:
            retry_after = max(0.0, self.next_attempt_time - now)

        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "retry_after_seconds": retry_after,
            "config": self.config.model_dump(),
            "metrics": self.metrics.model_dump(mode="json"),
        }
