# Circuit breaker for upstream Workspace API calls.
# Created: 2026-09-21
#
# One breaker per operation name. State lives in the process only.
#   CLOSED    -> OPEN       error % over threshold once volume is reached
#   OPEN      -> HALF_OPEN  after reset_timeout; exactly one trial call
#   HALF_OPEN -> CLOSED     trial succeeded
#   HALF_OPEN -> OPEN       trial failed
# Timeouts count as failures.

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from workspace_gateway.errors import CircuitOpenError, CircuitTimeoutError, UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


StateChangeHandler = Callable[[str, CircuitState], None]


@dataclass(frozen=True)
class BreakerConfig:
    timeout: float = 10.0
    error_threshold_percentage: float = 50.0
    reset_timeout: float = 30.0
    rolling_window: float = 10.0
    rolling_buckets: int = 10
    volume_threshold: int = 5


class RollingWindow:
    """Success/failure counts over the last ``window`` seconds, in fixed buckets."""

    def __init__(self, window: float, buckets: int):
        self.bucket_width = window / buckets
        self.size = buckets
        self._buckets: deque[list[float]] = deque()  # [start, successes, failures]

    def _current(self, now: float) -> list[float]:
        start = math.floor(now / self.bucket_width) * self.bucket_width
        if not self._buckets or self._buckets[-1][0] != start:
            self._buckets.append([start, 0, 0])
        self._prune(now)
        return self._buckets[-1]

    def _prune(self, now: float) -> None:
        horizon = now - self.bucket_width * self.size
        while self._buckets and self._buckets[0][0] <= horizon:
            self._buckets.popleft()

    def record(self, success: bool, now: float) -> None:
        bucket = self._current(now)
        bucket[1 if success else 2] += 1

    def totals(self, now: float) -> tuple[int, int]:
        """(calls, failures) inside the window."""
        self._prune(now)
        successes = sum(int(b[1]) for b in self._buckets)
        failures = sum(int(b[2]) for b in self._buckets)
        return successes + failures, failures

    def reset(self) -> None:
        self._buckets.clear()


def counts_as_failure(exc: BaseException) -> bool:
    """Caller mistakes (4xx other than 429) do not trip the breaker."""
    if isinstance(exc, UpstreamError):
        return exc.retryable or exc.status >= 500
    return True


class CircuitBreaker:
    """Explicit CLOSED/OPEN/HALF_OPEN state machine around async calls."""

    def __init__(
        self,
        name: str,
        config: BreakerConfig | None = None,
        on_state_change: StateChangeHandler | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or BreakerConfig()
        self.on_state_change = on_state_change
        self.clock = clock
        self.state = CircuitState.CLOSED
        self.opened_at: float | None = None
        self._trial_in_flight = False
        self.window = RollingWindow(self.config.rolling_window, self.config.rolling_buckets)

    # -- transitions ---------------------------------------------------------

    def _transition(self, new_state: CircuitState) -> None:
        if new_state is self.state:
            return
        old = self.state
        self.state = new_state
        if new_state is CircuitState.OPEN:
            self.opened_at = self.clock()
            logger.error("Circuit breaker opened for %s", self.name)
        elif new_state is CircuitState.HALF_OPEN:
            logger.warning("Circuit breaker half-open for %s, testing recovery", self.name)
        else:
            self.opened_at = None
            self.window.reset()
            logger.info("Circuit breaker closed for %s, upstream recovered", self.name)
        logger.debug("Circuit %s: %s -> %s", self.name, old.value, new_state.value)
        if self.on_state_change:
            self.on_state_change(self.name, new_state)

    def retry_after(self) -> int:
        if self.opened_at is None:
            return 0
        remaining = self.opened_at + self.config.reset_timeout - self.clock()
        return max(1, math.ceil(remaining))

    def allow_request(self) -> bool:
        """Admit or reject a call; may move OPEN to HALF_OPEN and claim the trial."""
        if self.state is CircuitState.CLOSED:
            return True
        if self.state is CircuitState.OPEN:
            if self.clock() - (self.opened_at or 0.0) < self.config.reset_timeout:
                return False
            self._transition(CircuitState.HALF_OPEN)
        if self._trial_in_flight:
            return False
        self._trial_in_flight = True
        return True

    def record_success(self) -> None:
        if self.state is CircuitState.HALF_OPEN:
            self._trial_in_flight = False
            self._transition(CircuitState.CLOSED)
            return
        self.window.record(True, self.clock())

    def record_failure(self) -> None:
        if self.state is CircuitState.HALF_OPEN:
            self._trial_in_flight = False
            self._transition(CircuitState.OPEN)
            return
        now = self.clock()
        self.window.record(False, now)
        calls, failures = self.window.totals(now)
        if calls < self.config.volume_threshold:
            return
        if failures * 100.0 / calls > self.config.error_threshold_percentage:
            self._transition(CircuitState.OPEN)

    def _release_trial(self) -> None:
        if self.state is CircuitState.HALF_OPEN:
            self._trial_in_flight = False

    # -- execution -----------------------------------------------------------

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        if not self.allow_request():
            logger.warning("Circuit breaker rejected request for %s", self.name)
            raise CircuitOpenError(self.name, self.retry_after() or int(self.config.reset_timeout))

        try:
            result = await asyncio.wait_for(fn(*args, **kwargs), timeout=self.config.timeout)
        except asyncio.TimeoutError as e:
            logger.error("Circuit breaker timeout for %s (%ss)", self.name, self.config.timeout)
            self.record_failure()
            raise CircuitTimeoutError(self.name, self.config.timeout) from e
        except asyncio.CancelledError:
            self._release_trial()
            raise
        except Exception as e:
            if counts_as_failure(e):
                logger.error("Circuit breaker request failed for %s: %s", self.name, e)
                self.record_failure()
            else:
                self.record_success()
            raise
        self.record_success()
        return result


def record_state_change(circuit: str, state: CircuitState) -> None:
    """Default observer: count transitions in Prometheus."""
    from workspace_gateway.metrics import circuit_breaker_state_changes_total

    circuit_breaker_state_changes_total.labels(state=state.value, circuit=circuit).inc()


class BreakerRegistry:
    """Lazily creates one breaker per upstream operation name."""

    def __init__(
        self,
        config: BreakerConfig | None = None,
        on_state_change: StateChangeHandler | None = record_state_change,
    ):
        self.config = config or BreakerConfig()
        self.on_state_change = on_state_change
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = self._breakers[name] = CircuitBreaker(
                name, self.config, self.on_state_change
            )
        return breaker

    async def call(
        self, name: str, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        return await self.get(name).call(fn, *args, **kwargs)

    def states(self) -> dict[str, str]:
        return {name: b.state.value for name, b in self._breakers.items()}
