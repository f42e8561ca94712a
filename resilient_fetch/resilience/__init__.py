"""Resilience patterns: circuit breaker, retry and request coalescing.

Provides per-target circuit breakers, an exponential-backoff retry
controller and an in-flight registry that lets concurrent identical
requests share one network round-trip.
"""

from resilient_fetch.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
)
from resilient_fetch.resilience.inflight import InFlightRegistry
from resilient_fetch.resilience.retry import AttemptOutcome, RetryController, RetryPolicy

__all__ = [
    "AttemptOutcome",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "InFlightRegistry",
    "RetryController",
    "RetryPolicy",
]
