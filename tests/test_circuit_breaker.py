# Tests for workspace/breaker.py
# Created: 2026-09-26

import asyncio

import pytest

from workspace_gateway.errors import CircuitOpenError, CircuitTimeoutError, UpstreamError
from workspace_gateway.workspace.breaker import (
    BreakerConfig,
    BreakerRegistry,
    CircuitBreaker,
    CircuitState,
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def changes():
    return []


@pytest.fixture
def breaker(clock, changes):
    return CircuitBreaker(
        "calendar.list_events",
        BreakerConfig(timeout=0.05, reset_timeout=30.0),
        on_state_change=lambda name, state: changes.append(state),
        clock=clock,
    )


async def _ok():
    return "ok"


async def _boom():
    raise UpstreamError(503, "backend unavailable")


async def _fail(breaker, times):
    for _ in range(times):
        with pytest.raises(UpstreamError):
            await breaker.call(_boom)


class TestOpening:
    async def test_stays_closed_below_volume(self, breaker):
        await _fail(breaker, 4)
        assert breaker.state is CircuitState.CLOSED

    async def test_opens_once_volume_and_threshold_reached(self, breaker, changes):
        await _fail(breaker, 5)
        assert breaker.state is CircuitState.OPEN
        assert changes == [CircuitState.OPEN]

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.call(_ok)
        assert exc_info.value.retry_after == 30

    async def test_exact_threshold_does_not_open(self, breaker):
        for _ in range(3):
            assert await breaker.call(_ok) == "ok"
        await _fail(breaker, 3)
        # 3 of 6 is exactly 50%
        assert breaker.state is CircuitState.CLOSED

    async def test_client_errors_do_not_count(self, breaker):
        async def not_found():
            raise UpstreamError(404, "File not found")

        for _ in range(10):
            with pytest.raises(UpstreamError):
                await breaker.call(not_found)
        assert breaker.state is CircuitState.CLOSED

    async def test_rate_limited_counts(self, breaker):
        async def throttled():
            raise UpstreamError(429, "Rate limit exceeded")

        for _ in range(5):
            with pytest.raises(UpstreamError):
                await breaker.call(throttled)
        assert breaker.state is CircuitState.OPEN

    async def test_timeout_counts_as_failure(self, breaker):
        async def slow():
            await asyncio.sleep(1)

        for _ in range(5):
            with pytest.raises(CircuitTimeoutError):
                await breaker.call(slow)
        assert breaker.state is CircuitState.OPEN

    async def test_old_failures_leave_the_window(self, breaker, clock):
        await _fail(breaker, 4)
        clock.advance(11)
        await _fail(breaker, 1)
        assert breaker.state is CircuitState.CLOSED


class TestRecovery:
    async def test_half_open_success_closes(self, breaker, clock, changes):
        await _fail(breaker, 5)
        clock.advance(30)
        assert await breaker.call(_ok) == "ok"
        assert breaker.state is CircuitState.CLOSED
        assert changes == [CircuitState.OPEN, CircuitState.HALF_OPEN, CircuitState.CLOSED]

    async def test_half_open_failure_reopens(self, breaker, clock):
        await _fail(breaker, 5)
        clock.advance(30)
        await _fail(breaker, 1)
        assert breaker.state is CircuitState.OPEN

    async def test_single_trial_in_half_open(self, breaker, clock):
        await _fail(breaker, 5)
        clock.advance(30)
        assert breaker.allow_request() is True
        assert breaker.state is CircuitState.HALF_OPEN
        assert breaker.allow_request() is False

    async def test_rejects_before_reset_timeout(self, breaker, clock):
        await _fail(breaker, 5)
        clock.advance(10)
        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.call(_ok)
        assert exc_info.value.retry_after == 20


class TestRegistry:
    async def test_one_breaker_per_name(self):
        registry = BreakerRegistry(on_state_change=None)
        assert registry.get("a") is registry.get("a")
        assert registry.get("a") is not registry.get("b")
        assert await registry.call("a", _ok) == "ok"
        assert registry.states() == {"a": "closed", "b": "closed"}
