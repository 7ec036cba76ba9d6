"""
Retry Handler - Bounded retries with per-attempt deadlines and jittered exponential backoff
"""

import asyncio
import inspect
import random
import time
from collections import OrderedDict
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import structlog
from pydantic import BaseModel, Field

from permit_agent.api.network.errors import aborted_at_deadline, classify_error
from permit_agent.core.exceptions import NetworkError
from permit_agent.models.permit import utc_now

logger = structlog.get_logger(__name__)

T = TypeVar('T')

MAX_TRACKED_RESULTS = 500


class RetryConfig(BaseModel):
    """Configuration for retry logic"""
    max_retries: int = Field(default=3, ge=0)
    initial_delay_seconds: float = Field(default=1.0, ge=0)
    max_delay_seconds: float = Field(default=30.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    jitter_factor: float = Field(default=0.1, ge=0, le=1)  # 10% jitter
    timeout_seconds: Optional[float] = Field(default=30.0, gt=0)  # per attempt

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


class RetryAttempt(BaseModel):
    """Information about a single attempt"""
    attempt_number: int
    duration_seconds: float
    delay_seconds: float = 0.0
    success: bool = False
    error_message: Optional[str] = None
    error_kind: Optional[str] = None
    http_status_code: Optional[int] = None
    timestamp: datetime = Field(default_factory=utc_now)


class RetryResult(BaseModel):
    """Summary of one logical operation"""
    request_id: Optional[str] = None
    success: bool = False
    total_attempts: int = 0
    total_time_seconds: float = 0.0
    attempts: List[RetryAttempt] = Field(default_factory=list)
    final_error: Optional[str] = None
    final_error_kind: Optional[str] = None


def calculate_delay(attempt_number: int, config: RetryConfig, rng: Optional[random.Random] = None) -> float:
    """
    Backoff before the attempt following ``attempt_number``

    ``min(initial * multiplier^(attempt-1), max)`` scaled by a uniform jitter
    in ``[1 - jitter_factor, 1 + jitter_factor]``, never negative.
    """
    rng = rng or random
    base_delay = config.initial_delay_seconds * (config.backoff_multiplier ** (attempt_number - 1))
    capped = min(base_delay, config.max_delay_seconds)
    jitter = capped * config.jitter_factor * rng.uniform(-1, 1)
    return max(0.0, capped + jitter)


class RetryHandler:
    """Executes an operation with classified retries"""

    def __init__(
        self,
        default_config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None
    ):
        self.default_config = default_config or RetryConfig()
        self._sleep = sleep
        self._clock = clock
        self._rng = rng or random.Random()
        self.results: "OrderedDict[str, RetryResult]" = OrderedDict()
        self.retry_stats: Dict[str, Any] = {
            "total_operations": 0,
            "successful_operations": 0,
            "failed_operations": 0,
            "total_attempts": 0,
            "total_retries": 0,
        }

    async def execute_with_retry(
        self,
        operation: Callable[..., Any],
        operation_args: tuple = (),
        operation_kwargs: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
        config: Optional[RetryConfig] = None,
        url: Optional[str] = None,
        before_attempt: Optional[Callable[[], Awaitable[Any]]] = None
    ) -> Any:
        """
        Execute operation with retry logic

        Args:
            operation: Callable returning a value or an awaitable
            operation_args: Arguments for the operation
            operation_kwargs: Keyword arguments for the operation
            request_id: Identifier under which the attempt history is kept
            config: Retry configuration; defaults to the handler's
            url: Target URL, used for error classification and logs
            before_attempt: Awaited ahead of every attempt, outside its deadline
                (rate-limit admission); its exceptions propagate unchanged

        Returns:
            Result of the first successful attempt

        Raises:
            NetworkError: The classified error of the terminal or last failed attempt
        """
        config = config or self.default_config
        operation_kwargs = operation_kwargs or {}
        result = RetryResult(request_id=request_id)
        started = self._clock()
        last_error: Optional[NetworkError] = None
        last_cause: Optional[BaseException] = None

        for attempt_number in range(1, config.max_attempts + 1):
            if before_attempt is not None:
                await before_attempt()
            attempt_started = self._clock()
            try:
                value = await self._run_attempt(operation, operation_args, operation_kwargs, config, url)
            except Exception as exc:
                error = classify_error(exc, url)
                duration = self._clock() - attempt_started
                attempt = RetryAttempt(
                    attempt_number=attempt_number,
                    duration_seconds=duration,
                    error_message=error.message,
                    error_kind=error.kind.value,
                    http_status_code=error.status_code,
                )
                result.attempts.append(attempt)
                last_error, last_cause = error, exc

                logger.warning("Attempt failed",
                               request_id=request_id,
                               url=url,
                               attempt=attempt_number,
                               max_attempts=config.max_attempts,
                               duration_seconds=round(duration, 3),
                               error_kind=error.kind.value,
                               http_status_code=error.status_code,
                               retryable=error.retryable)

                if not error.retryable:
                    logger.info("Not retrying terminal error",
                                request_id=request_id,
                                error_kind=error.kind.value)
                    break

                if attempt_number < config.max_attempts:
                    delay = calculate_delay(attempt_number, config, self._rng)
                    attempt.delay_seconds = delay
                    logger.info("Retrying after delay",
                                request_id=request_id,
                                next_attempt=attempt_number + 1,
                                delay_seconds=round(delay, 3))
                    await self._sleep(delay)
            else:
                duration = self._clock() - attempt_started
                result.attempts.append(RetryAttempt(
                    attempt_number=attempt_number,
                    duration_seconds=duration,
                    success=True,
                ))
                result.success = True
                self._finish(result, started)

                logger.info("Operation succeeded",
                            request_id=request_id,
                            url=url,
                            attempt=attempt_number,
                            duration_seconds=round(duration, 3))
                return value

        result.final_error = last_error.message if last_error else None
        result.final_error_kind = last_error.kind.value if last_error else None
        self._finish(result, started)

        logger.error("Operation failed",
                     request_id=request_id,
                     url=url,
                     total_attempts=result.total_attempts,
                     total_time=round(result.total_time_seconds, 3),
                     final_error_kind=result.final_error_kind)

        if last_error is None:
            raise RuntimeError("retry loop finished without an attempt")
        if last_error is last_cause:
            raise last_error
        raise last_error from last_cause

    async def _run_attempt(
        self,
        operation: Callable[..., Any],
        args: tuple,
        kwargs: Dict[str, Any],
        config: RetryConfig,
        url: Optional[str]
    ) -> Any:
        if config.timeout_seconds is None:
            return await self._invoke(operation, args, kwargs)
        try:
            return await asyncio.wait_for(self._invoke(operation, args, kwargs), config.timeout_seconds)
        except asyncio.TimeoutError:
            raise aborted_at_deadline(config.timeout_seconds, url)

    @staticmethod
    async def _invoke(operation: Callable[..., Any], args: tuple, kwargs: Dict[str, Any]) -> Any:
        value = operation(*args, **kwargs)
        if inspect.isawaitable(value):
            value = await value
        return value

    def _finish(self, result: RetryResult, started: float) -> None:
        result.total_attempts = len(result.attempts)
        result.total_time_seconds = self._clock() - started

        self.retry_stats["total_operations"] += 1
        self.retry_stats["total_attempts"] += result.total_attempts
        self.retry_stats["total_retries"] += max(0, result.total_attempts - 1)
        if result.success:
            self.retry_stats["successful_operations"] += 1
        else:
            self.retry_stats["failed_operations"] += 1

        if result.request_id:
            self.results[result.request_id] = result
            while len(self.results) > MAX_TRACKED_RESULTS:
                self.results.popitem(last=False)

    def get_result(self, request_id: str) -> Optional[RetryResult]:
        """Attempt history for a tracked request"""
        return self.results.get(request_id)

    def get_retry_stats(self) -> Dict[str, Any]:
        """Aggregate retry statistics"""
        stats = dict(self.retry_stats)
        operations = stats["total_operations"]
        stats["average_attempts"] = stats["total_attempts"] / operations if operations else 0.0
        stats["success_rate"] = stats["successful_operations"] / operations if operations else 0.0
        return stats
