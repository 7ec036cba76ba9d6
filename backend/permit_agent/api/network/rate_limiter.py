"""
Rate Limiter - Sliding-window admission control per external system
"""

import asyncio
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Mapping, Optional, Tuple

import structlog
from pydantic import BaseModel, Field

from permit_agent.core.exceptions import RateLimitTimeoutError

logger = structlog.get_logger(__name__)

SECOND = 1.0
MINUTE = 60.0
HOUR = 3600.0


class RateLimitConfig(BaseModel):
    """Rate limit configuration"""
    requests_per_second: Optional[int] = Field(default=None, ge=1)
    requests_per_minute: int = Field(default=60, ge=1)
    requests_per_hour: int = Field(default=1000, ge=1)
    max_backoff_seconds: float = 300.0  # cap on a server-requested pause


class RateLimiter:
    """
    Admission control over rolling second/minute/hour windows.

    Each window keeps the monotonic timestamps of its admissions; a window has
    capacity when fewer than its budget fall inside the trailing interval.
    The check-and-record step runs under a per-limiter lock, so concurrent
    callers cannot overshoot a budget; waiting happens outside the lock.
    """

    def __init__(
        self,
        name: str,
        config: Optional[RateLimitConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.name = name
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._paused_until = 0.0
        self.total_admitted = 0
        self.total_wait_seconds = 0.0

        self._windows: List[Tuple[float, int, Deque[float]]] = []
        if self.config.requests_per_second:
            self._windows.append((SECOND, self.config.requests_per_second, deque()))
        self._windows.append((MINUTE, self.config.requests_per_minute, deque()))
        self._windows.append((HOUR, self.config.requests_per_hour, deque()))

        logger.info("Rate limit configured",
                    name=name,
                    rps=self.config.requests_per_second,
                    rpm=self.config.requests_per_minute,
                    rph=self.config.requests_per_hour)

    async def admit(self, timeout: Optional[float] = None) -> float:
        """
        Wait until every window has capacity, then record the admission

        The lock only guards the check-and-record step; waiting happens
        outside it, so each caller measures its own deadline.

        Args:
            timeout: Longest acceptable wait; None waits as long as needed

        Returns:
            Seconds spent waiting

        Raises:
            RateLimitTimeoutError: The required wait exceeds ``timeout``
        """
        started = self._clock()
        while True:
            async with self._lock:
                now = self._clock()
                wait_time = self._required_wait(now)
                if wait_time <= 0:
                    for _, _, admissions in self._windows:
                        admissions.append(now)
                    waited = now - started
                    self.total_admitted += 1
                    self.total_wait_seconds += waited
                    return waited

            waited = now - started
            if timeout is not None and waited + wait_time > timeout:
                logger.warning("Rate limit wait exceeds timeout",
                               name=self.name,
                               wait_seconds=round(wait_time, 3),
                               timeout=timeout)
                raise RateLimitTimeoutError(self.name, wait_time)

            logger.debug("Rate limit reached, waiting",
                         name=self.name,
                         wait_seconds=round(wait_time, 3))
            await self._sleep(wait_time)

    def _required_wait(self, now: float) -> float:
        wait_time = max(0.0, self._paused_until - now)
        for window, budget, admissions in self._windows:
            while admissions and now - admissions[0] >= window:
                admissions.popleft()
            if len(admissions) >= budget:
                wait_time = max(wait_time, admissions[0] + window - now)
        return wait_time

    def note_response(self, status_code: int, headers: Optional[Mapping[str, str]] = None) -> None:
        """
        Honour a server throttling signal

        A 429 with a numeric Retry-After pauses admissions for that long.
        """
        if status_code != 429:
            return
        retry_after = (headers or {}).get("retry-after") or (headers or {}).get("Retry-After")
        try:
            pause = float(retry_after) if retry_after is not None else 0.0
        except ValueError:
            pause = 0.0
        if pause <= 0:
            return

        pause = min(pause, self.config.max_backoff_seconds)
        self._paused_until = max(self._paused_until, self._clock() + pause)
        logger.warning("Server requested backoff", name=self.name, pause_seconds=pause)

    def get_status(self) -> Dict[str, Any]:
        """Remaining budget per window"""
        now = self._clock()
        self._required_wait(now)
        labels = {SECOND: "second", MINUTE: "minute", HOUR: "hour"}
        remaining = {
            labels[window]: max(0, budget - len(admissions))
            for window, budget, admissions in self._windows
        }
        return {
            "name": self.name,
            "remaining": remaining,
            "paused_for_seconds": max(0.0, self._paused_until - now),
            "total_admitted": self.total_admitted,
            "total_wait_seconds": round(self.total_wait_seconds, 3),
        }
