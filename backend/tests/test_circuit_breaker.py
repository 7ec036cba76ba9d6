import asyncio

import pytest

from permit_agent.api.network.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerState
from permit_agent.core.exceptions import BreakerOpenError, HttpError


def make_breaker(clock, threshold=3, reset=30.0):
    return CircuitBreaker(
        "web_scraping",
        CircuitBreakerConfig(failure_threshold=threshold, reset_timeout_seconds=reset),
        clock=clock,
    )


async def failing():
    raise HttpError(503)


async def succeeding():
    return "ok"


@pytest.mark.asyncio
async def test_opens_exactly_on_threshold(clock):
    breaker = make_breaker(clock, threshold=3)

    for expected_count in (1, 2):
        with pytest.raises(HttpError):
            await breaker.execute(failing)
        assert breaker.state == CircuitBreakerState.CLOSED
        assert breaker.failure_count == expected_count

    with pytest.raises(HttpError):
        await breaker.execute(failing)
    assert breaker.state == CircuitBreakerState.OPEN
    assert breaker.next_attempt_time == clock.now + 30.0


@pytest.mark.asyncio
async def test_open_breaker_never_invokes_operation(clock):
    breaker = make_breaker(clock, threshold=1)
    with pytest.raises(HttpError):
        await breaker.execute(failing)

    calls = []

    async def tracked():
        calls.append(1)

    clock.advance(29.9)
    with pytest.raises(BreakerOpenError) as exc_info:
        await breaker.execute(tracked)

    assert calls == []
    assert exc_info.value.retry_after == pytest.approx(0.1)
    assert breaker.metrics.rejected_requests == 1


@pytest.mark.asyncio
async def test_successful_probe_closes_breaker(clock):
    breaker = make_breaker(clock, threshold=2)
    for _ in range(2):
        with pytest.raises(HttpError):
            await breaker.execute(failing)

    clock.advance(30.0)
    assert await breaker.execute(succeeding) == "ok"
    assert breaker.state == CircuitBreakerState.CLOSED
    assert breaker.failure_count == 0


@pytest.mark.asyncio
async def test_failed_probe_reopens_for_full_timeout(clock):
    breaker = make_breaker(clock, threshold=2)
    for _ in range(2):
        with pytest.raises(HttpError):
            await breaker.execute(failing)

    clock.advance(30.0)
    with pytest.raises(HttpError):
        await breaker.execute(failing)

    assert breaker.state == CircuitBreakerState.OPEN
    assert breaker.next_attempt_time == clock.now + 30.0


@pytest.mark.asyncio
async def test_half_open_admits_single_probe(clock):
    breaker = make_breaker(clock, threshold=1)
    with pytest.raises(HttpError):
        await breaker.execute(failing)
    clock.advance(30.0)

    release = asyncio.Event()
    calls = []

    async def slow_probe():
        calls.append(1)
        await release.wait()
        return "probed"

    probe = asyncio.create_task(breaker.execute(slow_probe))
    await asyncio.sleep(0)
    assert breaker.state == CircuitBreakerState.HALF_OPEN

    with pytest.raises(BreakerOpenError):
        await breaker.execute(slow_probe)

    release.set()
    assert await probe == "probed"
    assert calls == [1]
    assert breaker.state == CircuitBreakerState.CLOSED


@pytest.mark.asyncio
async def test_success_resets_failure_count(clock):
    breaker = make_breaker(clock, threshold=3)
    with pytest.raises(HttpError):
        await breaker.execute(failing)
    await breaker.execute(succeeding)
    assert breaker.failure_count == 0


def test_force_open_and_reset(clock):
    breaker = make_breaker(clock)
    breaker.force_open()
    status = breaker.get_status()
    assert status["state"] == "open"
    assert status["retry_after_seconds"] == 30.0

    breaker.reset()
    assert breaker.get_status()["state"] == "closed"


@pytest.mark.asyncio
async def test_cancelled_half_open_call_frees_slot(clock):
    breaker = make_breaker(clock, threshold=1)
    with pytest.raises(HttpError):
        await breaker.execute(failing)
    clock.advance(30.0)

    started = asyncio.Event()

    async def hung_call():
        started.set()
        await asyncio.sleep(3600)

    trial = asyncio.create_task(breaker.execute(hung_call))
    await started.wait()
    trial.cancel()
    with pytest.raises(asyncio.CancelledError):
        await trial

    assert breaker.state == CircuitBreakerState.HALF_OPEN
    assert breaker.failure_count == 1
    assert await breaker.execute(succeeding) == "ok"
    assert breaker.state == CircuitBreakerState.CLOSED
