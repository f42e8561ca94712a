"""Async circuit breaker, one per fetch target.

Implements the standard three-state circuit breaker:

    CLOSED  →  (failure_threshold reached)  →  OPEN
    OPEN    →  (recovery_timeout elapsed)   →  HALF_OPEN
    HALF_OPEN → (probe succeeds)            →  CLOSED
    HALF_OPEN → (probe fails)               →  OPEN

Every failed attempt counts toward the threshold, including retries made
inside a single ``fetch()`` call.  Each target gets its own
``CircuitBreaker`` through ``CircuitBreakerRegistry`` so one failing
endpoint does not short-circuit the others.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from enum import Enum

from resilient_fetch.core.errors import CircuitOpenError

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Async-safe circuit breaker for a single target.

    Args:
        name:               Target key (for logging/errors).
        failure_threshold:  Consecutive failures before opening the circuit.
        recovery_timeout:   Seconds the circuit stays OPEN before probing.
        half_open_max:      Max concurrent probes in HALF_OPEN state.
        clock:              Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        half_open_max: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max = half_open_max
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float = 0.0
        self._last_transition_time: float = clock()
        self._half_open_calls = 0
        self._lock = asyncio.Lock()

        # Metrics
        self.total_calls = 0
        self.total_failures = 0
        self.total_rejections = 0
        self.total_successes = 0

    # ── Public properties ────────────────────────────────────────────

    @property
    def state(self) -> CircuitState:
        """Return the current state, auto-transitioning OPEN → HALF_OPEN."""
        if self._state == CircuitState.OPEN and self._recovery_elapsed():
            return CircuitState.HALF_OPEN
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def last_transition_time(self) -> float:
        return self._last_transition_time

    def is_open(self) -> bool:
        """True while the circuit rejects calls outright."""
        return self.state == CircuitState.OPEN

    def retry_after(self) -> float:
        """Seconds until an OPEN circuit admits a probe."""
        return self.recovery_timeout - (self._clock() - self._last_failure_time)

    def _recovery_elapsed(self) -> bool:
        return self._clock() - self._last_failure_time >= self.recovery_timeout

    def _transition(self, state: CircuitState) -> None:
        if state != self._state:
            logger.debug("Circuit '%s': %s -> %s", self.name, self._state.value, state.value)
        self._state = state
        self._last_transition_time = self._clock()

    # ── Core call wrapper ────────────────────────────────────────────

    async def pre_check(self) -> None:
        """Check whether a call is allowed; raise if circuit is open.

        Must be called **before** every network attempt.
        """
        async with self._lock:
            current = self.state

            if current == CircuitState.OPEN:
                self.total_rejections += 1
                raise CircuitOpenError(self.name, self.retry_after())

            if current == CircuitState.HALF_OPEN:
                if self._state != CircuitState.HALF_OPEN:
                    self._transition(CircuitState.HALF_OPEN)
                    self._half_open_calls = 0
                if self._half_open_calls >= self.half_open_max:
                    self.total_rejections += 1
                    raise CircuitOpenError(self.name, 0.0)
                self._half_open_calls += 1

            self.total_calls += 1

    async def record_success(self) -> None:
        """Record a successful call; close the circuit if probing."""
        async with self._lock:
            self.total_successes += 1
            if self._state in (CircuitState.HALF_OPEN, CircuitState.OPEN):
                # Probe succeeded, back to CLOSED
                logger.info("Circuit '%s' closed after successful probe", self.name)
                self._transition(CircuitState.CLOSED)
                self._half_open_calls = 0
            self._failure_count = 0

    async def record_failure(self) -> None:
        """Record a failed attempt; potentially open the circuit."""
        async with self._lock:
            self._failure_count += 1
            self.total_failures += 1
            self._last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                # Probe failed, reopen
                logger.warning("Circuit '%s' probe failed, reopening", self.name)
                self._transition(CircuitState.OPEN)
                self._half_open_calls = 0
            elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                logger.warning(
                    "Circuit '%s' opened after %d consecutive failures",
                    self.name,
                    self._failure_count,
                )
                self._transition(CircuitState.OPEN)

    async def reset(self) -> None:
        """Force-reset the circuit breaker to CLOSED state."""
        async with self._lock:
            self._transition(CircuitState.CLOSED)
            self._failure_count = 0
            self._half_open_calls = 0

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot for health/metrics."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self._failure_count,
            "total_calls": self.total_calls,
            "total_failures": self.total_failures,
            "total_rejections": self.total_rejections,
            "total_successes": self.total_successes,
        }


class CircuitBreakerRegistry:
    """Manages per-target ``CircuitBreaker`` instances.

    Usage::

        registry = CircuitBreakerRegistry(failure_threshold=5, recovery_timeout=60.0)
        cb = registry.get("https://api.example.com/v1/orders")
        await cb.pre_check()
        # ... attempt ...
        await cb.record_success()
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        half_open_max: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._threshold = failure_threshold
        self._recovery = recovery_timeout
        self._half_open_max = half_open_max
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def __len__(self) -> int:
        return len(self._breakers)

    def get(self, key: str) -> CircuitBreaker:
        """Return (or create) the circuit breaker for *key*."""
        if key not in self._breakers:
            self._breakers[key] = CircuitBreaker(
                name=key,
                failure_threshold=self._threshold,
                recovery_timeout=self._recovery,
                half_open_max=self._half_open_max,
                clock=self._clock,
            )
        return self._breakers[key]

    def is_open(self, key: str) -> bool:
        """True when *key* has a breaker that currently rejects calls."""
        breaker = self._breakers.get(key)
        return breaker is not None and breaker.is_open()

    def open_count(self) -> int:
        return sum(1 for cb in self._breakers.values() if cb.is_open())

    def all_snapshots(self) -> list[dict]:
        """Return snapshots for every registered breaker."""
        return [cb.snapshot() for cb in self._breakers.values()]

    async def reset_all(self) -> None:
        """Reset every circuit breaker to CLOSED."""
        for cb in self._breakers.values():
            await cb.reset()

    def clear(self) -> None:
        """Forget every breaker; targets start CLOSED on next use."""
        self._breakers.clear()
