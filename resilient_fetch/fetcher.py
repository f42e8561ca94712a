"""ResilientDataFetcher: cached, circuit-protected, retried HTTP fetches.

``fetch()`` resolves every call to a ``FetchResult`` in this order:

1. fresh cache hit (``cache_strategy="memory"``) → ``cached``, no I/O
2. open circuit for the target → ``error`` without touching the network
3. attempts with exponential backoff; network errors, timeouts, non-2xx
   responses and unparsable bodies all count as failed attempts, and every
   failed attempt is recorded on the target's circuit breaker
4. success → write-through to cache, breaker reset → ``success``
5. exhaustion → stale cache entry, else caller ``fallback_data``, else
   ``error`` carrying the last failure message

Concurrent calls with the same request signature share one network round
trip; each caller still resolves caching and fallback with its own options.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import httpx

from resilient_fetch.cache.store import ResponseCache, make_cache_key
from resilient_fetch.core.config import Settings
from resilient_fetch.core.errors import (
    CircuitOpenError,
    FetcherError,
    HTTPStatusError,
    RequestTimeoutError,
    ResponseParseError,
    TransportError,
    error_code,
)
from resilient_fetch.health import HealthMonitor
from resilient_fetch.models.metrics import FetchStats
from resilient_fetch.models.schemas import (
    FetchMetrics,
    FetchResult,
    FetchStatus,
    HealthCheck,
    RequestOptions,
)
from resilient_fetch.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerRegistry
from resilient_fetch.resilience.inflight import InFlightRegistry
from resilient_fetch.resilience.retry import AttemptOutcome, RetryController, RetryPolicy

logger = logging.getLogger(__name__)


class ResilientDataFetcher:
    """Fetches JSON over HTTP with cache, circuit breaker, retry and fallback.

    Each instance owns its cache, breakers, in-flight registry and health
    monitor; nothing is shared between instances and nothing persists
    across restarts.

    Args:
        settings: Fetcher configuration; defaults to ``Settings()``.
        client:   ``httpx.AsyncClient`` to send requests with.  When omitted
                  the fetcher creates (and later closes) its own.
        clock:    Monotonic time source for cache freshness and breakers.
        sleep:    Awaitable sleep used between retries.
        rng:      Random source for backoff jitter.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.settings = settings or Settings()
        self._client = client
        self._owns_client = client is None
        self._clock = clock
        self._sleep = sleep
        self._rng = rng

        self._cache = ResponseCache(max_entries=self.settings.CACHE_MAX_ENTRIES, clock=clock)
        self._cb_registry = CircuitBreakerRegistry(
            failure_threshold=self.settings.CIRCUIT_BREAKER_THRESHOLD,
            recovery_timeout=self.settings.CIRCUIT_BREAKER_RECOVERY_SECONDS,
            half_open_max=self.settings.CIRCUIT_BREAKER_HALF_OPEN_MAX,
            clock=clock,
        )
        self._inflight = InFlightRegistry()
        self._stats = FetchStats()
        self._health = HealthMonitor(
            self._get_client,
            timeout=self.settings.HEALTH_CHECK_TIMEOUT_SECONDS,
            max_age=self.settings.HEALTH_CHECK_MAX_AGE_SECONDS,
        )

    async def __aenter__(self) -> ResilientDataFetcher:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.settings.BASE_URL)
            self._owns_client = True
        return self._client

    # ── Public API ──────────────────────────────────────────────────

    async def fetch(self, options: RequestOptions | Mapping[str, Any]) -> FetchResult:
        """Fetch ``options.url`` and always return a ``FetchResult``.

        Concurrent calls with the same request signature share the network
        round trip; cache write-through and fallback resolution still use
        each caller's own options.

        Raises:
            pydantic.ValidationError: If *options* is a mapping that does not
                describe valid ``RequestOptions``.
        """
        if not isinstance(options, RequestOptions):
            options = RequestOptions.model_validate(options)

        start = self._clock()
        key = make_cache_key(options.method, options.url, options.body)

        if options.cache_strategy == "memory":
            entry = self._cache.get(key)
            if entry is not None and self._cache.is_fresh(entry):
                logger.debug("Cache hit for %s", key)
                result = FetchResult(
                    status=FetchStatus.CACHED,
                    data=entry.data,
                    from_cache=True,
                    response_time_ms=self._elapsed_ms(start),
                )
                self._stats.record(result)
                return result

        outcome, shared = await self._inflight.run(key, lambda: self._send_with_breaker(options))
        result = self._resolve(options, key, outcome, start)
        self._stats.record(
            result,
            coalesced=shared,
            rejected=result.error_code == "CIRCUIT_OPEN",
        )
        return result

    def get_metrics(self) -> FetchMetrics:
        """Return request counters and derived rates."""
        return self._stats.snapshot(open_circuits=self._cb_registry.open_count())

    def get_stats(self) -> dict:
        """Return a JSON-serializable view of internal state."""
        return {
            "cache_size": len(self._cache),
            "in_flight": len(self._inflight),
            "open_circuits": self._cb_registry.open_count(),
            "circuit_breakers": self._cb_registry.all_snapshots(),
            "health_checks": [check.model_dump(mode="json") for check in self._health.summaries()],
        }

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    @property
    def circuit_breakers(self) -> CircuitBreakerRegistry:
        """Expose circuit breaker registry for health/metrics endpoints."""
        return self._cb_registry

    @property
    def in_flight(self) -> InFlightRegistry:
        return self._inflight

    def clear_cache(self) -> None:
        self._cache.clear()
        self._inflight.clear()

    def prune_stale_cache(self) -> int:
        """Drop stale cache entries, giving up their fallback value."""
        return self._cache.sweep_stale()

    def reset_circuit_breakers(self) -> None:
        self._cb_registry.clear()

    async def perform_health_check(self, endpoint: str | None = None) -> HealthCheck:
        return await self._health.perform_health_check(endpoint or self.settings.HEALTH_CHECK_PATH)

    def is_endpoint_healthy(self, endpoint: str) -> bool:
        return self._health.is_endpoint_healthy(endpoint)

    def start_health_monitoring(self, interval: float, endpoint: str | None = None) -> None:
        """Probe *endpoint* every *interval* seconds from a background task."""
        self._health.start(interval, endpoint or self.settings.HEALTH_CHECK_PATH)

    def stop_health_monitoring(self) -> None:
        self._health.stop()

    def destroy(self) -> None:
        """Stop background work and drop all cached and breaker state.

        Safe to call any number of times, with or without prior activity.
        """
        self.stop_health_monitoring()
        self.clear_cache()
        self.reset_circuit_breakers()
        self._health.clear()

    async def close(self) -> None:
        """``destroy()`` plus closing the HTTP client if the fetcher owns it."""
        self.destroy()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ── Orchestration ───────────────────────────────────────────────

    async def _send_with_breaker(self, options: RequestOptions) -> AttemptOutcome:
        """Network phase of a fetch, shared by coalesced callers."""
        target = options.circuit_key or options.url
        cb = self._cb_registry.get(target)
        try:
            await cb.pre_check()
        except CircuitOpenError as exc:
            logger.warning("Circuit breaker open for %s, request not sent", target)
            return AttemptOutcome(rejection=exc)

        outcome = await self._attempt_with_retry(options, cb)
        if outcome.succeeded:
            await cb.record_success()
        return outcome

    def _resolve(self, options: RequestOptions, key: str, outcome: AttemptOutcome, start: float) -> FetchResult:
        """Turn a possibly shared outcome into this caller's result."""
        if outcome.succeeded:
            if options.cache_strategy == "memory":
                ttl = options.cache_ttl if options.cache_ttl is not None else self.settings.CACHE_DEFAULT_TTL_SECONDS
                self._cache.set(key, outcome.value, ttl)
            return FetchResult(
                status=FetchStatus.SUCCESS,
                data=outcome.value,
                attempts=outcome.attempts,
                response_time_ms=self._elapsed_ms(start),
            )

        if outcome.error is None and outcome.rejection is not None:
            # Rejected before any attempt; no fallback while the circuit is open.
            return self._error_result(outcome.rejection, attempts=0, start=start)

        return self._resolve_fallback(options, key, outcome, start)

    async def _attempt_with_retry(self, options: RequestOptions, cb: CircuitBreaker) -> AttemptOutcome:
        retries = options.retries if options.retries is not None else self.settings.DEFAULT_RETRIES
        policy = RetryPolicy(
            retries=retries,
            base_delay=self.settings.RETRY_BASE_DELAY,
            max_delay=self.settings.RETRY_MAX_DELAY,
            jitter=self.settings.RETRY_JITTER,
        )
        controller = RetryController(policy, sleep=self._sleep, rng=self._rng)

        async def attempt(number: int) -> Any:
            # The first attempt was admitted by the pre-check in _send_with_breaker.
            if number > 1:
                await cb.pre_check()
            return await self._perform_request(options)

        async def on_failure(exc: FetcherError, number: int) -> None:
            await cb.record_failure()

        return await controller.run(
            attempt,
            on_failure=on_failure,
            should_continue=lambda: not cb.is_open(),
            label=options.url,
        )

    def _resolve_fallback(
        self,
        options: RequestOptions,
        key: str,
        outcome: AttemptOutcome,
        start: float,
    ) -> FetchResult:
        stale = self._cache.get(key)
        if stale is not None:
            logger.warning("Serving cached data for %s after %d failed attempts", options.url, outcome.attempts)
            return FetchResult(
                status=FetchStatus.FALLBACK,
                data=stale.data,
                from_cache=True,
                attempts=outcome.attempts,
                response_time_ms=self._elapsed_ms(start),
            )

        if options.has_fallback:
            logger.warning("Serving fallback data for %s after %d failed attempts", options.url, outcome.attempts)
            return FetchResult(
                status=FetchStatus.FALLBACK,
                data=options.fallback_data,
                from_cache=False,
                attempts=outcome.attempts,
                response_time_ms=self._elapsed_ms(start),
            )

        exc = outcome.last_error or TransportError(options.url, "All retry attempts exhausted")
        return self._error_result(exc, attempts=outcome.attempts, start=start)

    def _error_result(self, exc: FetcherError, *, attempts: int, start: float) -> FetchResult:
        return FetchResult(
            status=FetchStatus.ERROR,
            error=str(exc),
            error_code=error_code(exc),
            attempts=attempts,
            response_time_ms=self._elapsed_ms(start),
        )

    # ── Transport ───────────────────────────────────────────────────

    async def _perform_request(self, options: RequestOptions) -> Any:
        """Send one attempt and return the parsed JSON body."""
        timeout = options.timeout or self.settings.REQUEST_TIMEOUT_SECONDS
        try:
            response = await self._get_client().request(
                options.method,
                options.url,
                headers=options.headers or None,
                json=options.body,
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(options.url, timeout) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransportError(options.url, str(exc) or exc.__class__.__name__) from exc
        except Exception as exc:
            # Custom transports and unserializable bodies fail outside httpx's hierarchy.
            raise TransportError(options.url, str(exc) or exc.__class__.__name__) from exc

        if not response.is_success:
            raise HTTPStatusError(options.url, response.status_code, response.reason_phrase)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ResponseParseError(options.url, str(exc)) from exc

    def _elapsed_ms(self, start: float) -> float:
        return round((self._clock() - start) * 1000, 2)
