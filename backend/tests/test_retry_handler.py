import asyncio
import random

import httpx
import pytest

from permit_agent.api.network.retry_handler import RetryConfig, RetryHandler, calculate_delay
from permit_agent.core.exceptions import HttpError, RequestAbortedError, RequestTimeoutError


def make_handler(clock):
    return RetryHandler(sleep=clock.sleep, clock=clock, rng=random.Random(7))


@pytest.mark.parametrize("attempt", [1, 2, 3, 4, 8])
def test_backoff_delay_stays_within_jitter_band(attempt):
    config = RetryConfig(initial_delay_seconds=1.0, backoff_multiplier=2.0, max_delay_seconds=10.0, jitter_factor=0.1)
    base = min(1.0 * 2.0 ** (attempt - 1), 10.0)
    rng = random.Random(attempt)
    for _ in range(50):
        delay = calculate_delay(attempt, config, rng)
        assert 0.9 * base <= delay <= 1.1 * base


@pytest.mark.asyncio
async def test_permanent_failure_attempted_max_retries_plus_one(clock):
    handler = make_handler(clock)
    calls = []

    async def always_503():
        calls.append(1)
        raise HttpError(503)

    with pytest.raises(HttpError):
        await handler.execute_with_retry(always_503, request_id="r1", config=RetryConfig(max_retries=3))

    assert len(calls) == 4
    result = handler.get_result("r1")
    assert result.total_attempts == 4
    assert not result.success
    assert result.final_error_kind == "http_error"
    assert len(clock.sleeps) == 3


@pytest.mark.asyncio
async def test_terminal_error_is_not_retried(clock):
    handler = make_handler(clock)
    calls = []

    async def not_found():
        calls.append(1)
        raise HttpError(404)

    with pytest.raises(HttpError) as exc_info:
        await handler.execute_with_retry(not_found, config=RetryConfig(max_retries=3))

    assert exc_info.value.status_code == 404
    assert len(calls) == 1
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_succeeds_after_transient_failures(clock):
    handler = make_handler(clock)
    outcomes = [httpx.ReadTimeout("slow"), HttpError(500)]

    async def flaky():
        if outcomes:
            raise outcomes.pop(0)
        return "ok"

    value = await handler.execute_with_retry(flaky, request_id="r2", config=RetryConfig(max_retries=3))

    assert value == "ok"
    result = handler.get_result("r2")
    assert result.success
    assert result.total_attempts == 3
    assert [attempt.error_kind for attempt in result.attempts[:2]] == ["timeout", "http_error"]


@pytest.mark.asyncio
async def test_attempt_past_deadline_is_aborted():
    handler = RetryHandler(sleep=lambda _: asyncio.sleep(0))

    async def hangs():
        await asyncio.sleep(5)

    with pytest.raises(RequestAbortedError):
        await handler.execute_with_retry(hangs, config=RetryConfig(max_retries=0, timeout_seconds=0.01))


@pytest.mark.asyncio
async def test_before_attempt_runs_once_per_attempt(clock):
    handler = make_handler(clock)
    admissions = []

    async def admit():
        admissions.append(1)

    async def fails():
        raise RequestTimeoutError("slow")

    with pytest.raises(RequestTimeoutError):
        await handler.execute_with_retry(fails, config=RetryConfig(max_retries=2), before_attempt=admit)

    assert len(admissions) == 3


def test_retry_stats(clock):
    handler = make_handler(clock)

    async def ok():
        return 1

    asyncio.run(handler.execute_with_retry(ok))
    stats = handler.get_retry_stats()
    assert stats["total_operations"] == 1
    assert stats["success_rate"] == 1.0
    assert stats["total_retries"] == 0


@pytest.mark.asyncio
async def test_cancellation_during_backoff_propagates():
    backing_off = asyncio.Event()
    calls = []

    async def long_sleep(seconds):
        backing_off.set()
        await asyncio.sleep(3600)

    async def fails():
        calls.append(1)
        raise HttpError(503)

    handler = RetryHandler(sleep=long_sleep)
    task = asyncio.create_task(handler.execute_with_retry(fails, config=RetryConfig(max_retries=3)))
    await backing_off.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert calls == [1]
    assert handler.get_retry_stats()["total_operations"] == 0
