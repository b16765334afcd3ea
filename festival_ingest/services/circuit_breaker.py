"""
Circuit breaker for external dependencies.

Each dependency (AI provider, geocoder, page fetches) owns an independent
breaker. Failures are counted in a sliding time window; once the window
holds ``failure_threshold`` failures the breaker opens and calls fail fast
until ``reset_timeout`` has passed. Then a single trial call is let
through: success closes the breaker, failure re-opens it.

No retries happen here. Callers decide what to do with a failure.
"""

import asyncio
import math
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, TypeVar

import structlog

from festival_ingest.core.config import Settings
from festival_ingest.core.exceptions import CircuitOpenError, OperationTimeoutError

logger = structlog.get_logger()

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, reject requests
    HALF_OPEN = "half_open"  # One trial call in flight


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Breaker tunables. All durations in seconds."""
    failure_threshold: int = 5
    reset_timeout: float = 60.0
    monitoring_period: float = 300.0
    request_timeout: float = 30.0


class CircuitBreaker:
    """Async circuit breaker with a sliding failure window."""

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures: deque[float] = deque()
        self._last_failure: float | None = None
        self._next_attempt: float = 0.0
        self._trial_in_flight = False
        self._lock = asyncio.Lock()
        self.log = logger.bind(component="CircuitBreaker", breaker=name)

    @property
    def state(self) -> CircuitState:
        return self._state

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` under breaker protection and the request timeout.

        Raises:
            CircuitOpenError: Breaker is open (or a trial call is already running)
            OperationTimeoutError: Operation exceeded ``request_timeout``
        """
        await self._acquire_permission()

        try:
            result = await asyncio.wait_for(operation(), timeout=self.config.request_timeout)
        except asyncio.TimeoutError as e:
            await self._on_failure()
            raise OperationTimeoutError(
                f"{self.name} request timed out after {self.config.request_timeout}s",
                details={"service": self.name},
            ) from e
        except asyncio.CancelledError:
            # Cancelled trial must not wedge the breaker in half-open
            self._trial_in_flight = False
            raise
        except Exception:
            await self._on_failure()
            raise

        await self._on_success()
        return result

    async def _acquire_permission(self) -> None:
        async with self._lock:
            now = self._clock()

            if self._state == CircuitState.OPEN:
                if now < self._next_attempt:
                    raise CircuitOpenError(self.name, math.ceil(self._next_attempt - now))
                self._state = CircuitState.HALF_OPEN
                self._trial_in_flight = True
                self.log.info("circuit_half_open")
                return

            if self._state == CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    raise CircuitOpenError(self.name, max(1, math.ceil(self.config.request_timeout)))
                self._trial_in_flight = True

    async def _on_success(self) -> None:
        async with self._lock:
            if self._state != CircuitState.CLOSED:
                self.log.info("circuit_closed")
            self._state = CircuitState.CLOSED
            self._trial_in_flight = False
            # Decay instead of forgetting the history outright
            if self._failures:
                self._failures.popleft()

    async def _on_failure(self) -> None:
        async with self._lock:
            now = self._clock()
            self._last_failure = now
            self._failures.append(now)
            self._prune(now)

            if self._state == CircuitState.HALF_OPEN:
                self._open(now)
            elif self._state == CircuitState.CLOSED and len(self._failures) >= self.config.failure_threshold:
                self._open(now)

    def _open(self, now: float) -> None:
        self._state = CircuitState.OPEN
        self._trial_in_flight = False
        self._next_attempt = now + self.config.reset_timeout
        self.log.warning(
            "circuit_opened",
            failures=len(self._failures),
            retry_after=self.config.reset_timeout,
        )

    def _prune(self, now: float) -> None:
        cutoff = now - self.config.monitoring_period
        while self._failures and self._failures[0] < cutoff:
            self._failures.popleft()

    # =========================================================================
    # Manual control / inspection
    # =========================================================================

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        self._prune(now)
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": len(self._failures),
            "last_failure": self._last_failure,
            "next_attempt": self._next_attempt if self._state == CircuitState.OPEN else None,
            "config": asdict(self.config),
        }

    def force_open(self) -> None:
        self._open(self._clock())

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failures.clear()
        self._last_failure = None
        self._next_attempt = 0.0
        self._trial_in_flight = False
        self.log.info("circuit_reset")


@dataclass
class CircuitBreakerRegistry:
    """One breaker per external dependency."""
    extraction: CircuitBreaker
    geocoding: CircuitBreaker
    http: CircuitBreaker

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        clock: Callable[[], float] = time.monotonic,
    ) -> "CircuitBreakerRegistry":
        def build(name: str) -> CircuitBreaker:
            config = CircuitBreakerConfig(
                failure_threshold=getattr(settings, f"{name}_failure_threshold"),
                reset_timeout=getattr(settings, f"{name}_reset_timeout"),
                monitoring_period=getattr(settings, f"{name}_monitoring_period"),
                request_timeout=getattr(settings, f"{name}_request_timeout"),
            )
            return CircuitBreaker(name, config, clock=clock)

        return cls(
            extraction=build("extraction"),
            geocoding=build("geocoding"),
            http=build("http"),
        )

    def stats(self) -> dict[str, dict[str, Any]]:
        return {b.name: b.stats() for b in (self.extraction, self.geocoding, self.http)}
