"""Running request counters behind ``get_metrics()``.

Every ``fetch()`` call is recorded exactly once, by the status it
resolved to.  Health is derived from the ratio of live successes to
live failures; cache hits do not count either way.
"""

from __future__ import annotations

from dataclasses import dataclass

from resilient_fetch.models.schemas import FetchMetrics, FetchResult, FetchStatus

HEALTHY_SUCCESS_RATE = 0.95
DEGRADED_SUCCESS_RATE = 0.7


@dataclass
class FetchStats:
    """Per-fetcher request counters."""

    total: int = 0
    success: int = 0
    failed: int = 0
    cache_hits: int = 0
    fallbacks: int = 0
    circuit_rejections: int = 0
    coalesced: int = 0
    total_response_time_ms: float = 0.0

    def record(self, result: FetchResult, *, coalesced: bool = False, rejected: bool = False) -> None:
        self.total += 1
        self.total_response_time_ms += result.response_time_ms
        if coalesced:
            self.coalesced += 1
        if rejected:
            self.circuit_rejections += 1

        if result.status == FetchStatus.SUCCESS:
            self.success += 1
        elif result.status == FetchStatus.CACHED:
            self.cache_hits += 1
        else:
            self.failed += 1
            if result.status == FetchStatus.FALLBACK:
                self.fallbacks += 1

    def health_status(self, open_circuits: int = 0) -> str:
        """Classify as ``healthy``, ``degraded`` or ``failed``.

        Any open circuit means ``failed``.  With no live traffic yet the
        fetcher reports ``healthy``.
        """
        if open_circuits > 0:
            return "failed"
        live = self.success + self.failed
        if live == 0:
            return "healthy"
        rate = self.success / live
        if rate >= HEALTHY_SUCCESS_RATE:
            return "healthy"
        if rate >= DEGRADED_SUCCESS_RATE:
            return "degraded"
        return "failed"

    def snapshot(self, open_circuits: int = 0) -> FetchMetrics:
        total = self.total
        return FetchMetrics(
            total_requests=total,
            successful_requests=self.success,
            failed_requests=self.failed,
            cache_hits=self.cache_hits,
            fallback_responses=self.fallbacks,
            circuit_rejections=self.circuit_rejections,
            coalesced_requests=self.coalesced,
            average_response_time_ms=self.total_response_time_ms / total if total else 0.0,
            cache_hit_rate=self.cache_hits / total if total else 0.0,
            success_rate=self.success / total if total else 0.0,
            health_status=self.health_status(open_circuits),
        )

    def reset(self) -> None:
        self.total = 0
        self.success = 0
        self.failed = 0
        self.cache_hits = 0
        self.fallbacks = 0
        self.circuit_rejections = 0
        self.coalesced = 0
        self.total_response_time_ms = 0.0
