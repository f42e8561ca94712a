"""Tests for FetchStats counters and health classification."""

import pytest

from resilient_fetch.models.metrics import FetchStats
from resilient_fetch.models.schemas import FetchResult, FetchStatus


def _result(status: FetchStatus, ms: float = 10.0) -> FetchResult:
    return FetchResult(status=status, response_time_ms=ms)


class TestRecord:
    def test_each_status_counts_once(self):
        stats = FetchStats()
        stats.record(_result(FetchStatus.SUCCESS))
        stats.record(_result(FetchStatus.CACHED))
        stats.record(_result(FetchStatus.FALLBACK))
        stats.record(_result(FetchStatus.ERROR))

        assert stats.total == 4
        assert stats.success == 1
        assert stats.cache_hits == 1
        assert stats.failed == 2
        assert stats.fallbacks == 1

    def test_flags(self):
        stats = FetchStats()
        stats.record(_result(FetchStatus.SUCCESS), coalesced=True)
        stats.record(_result(FetchStatus.ERROR), rejected=True)
        assert stats.coalesced == 1
        assert stats.circuit_rejections == 1

    def test_reset(self):
        stats = FetchStats()
        stats.record(_result(FetchStatus.SUCCESS))
        stats.reset()
        assert stats == FetchStats()


class TestSnapshot:
    def test_empty(self):
        metrics = FetchStats().snapshot()
        assert metrics.total_requests == 0
        assert metrics.average_response_time_ms == 0.0
        assert metrics.cache_hit_rate == 0.0
        assert metrics.health_status == "healthy"

    def test_rates_and_average(self):
        stats = FetchStats()
        stats.record(_result(FetchStatus.SUCCESS, 10.0))
        stats.record(_result(FetchStatus.CACHED, 0.0))
        stats.record(_result(FetchStatus.CACHED, 2.0))
        stats.record(_result(FetchStatus.ERROR, 28.0))

        metrics = stats.snapshot()
        assert metrics.average_response_time_ms == pytest.approx(10.0)
        assert metrics.cache_hit_rate == pytest.approx(0.5)
        assert metrics.success_rate == pytest.approx(0.25)


class TestHealthStatus:
    @pytest.mark.parametrize(
        "success,failed,expected",
        [
            (0, 0, "healthy"),
            (95, 5, "healthy"),
            (94, 6, "degraded"),
            (70, 30, "degraded"),
            (69, 31, "failed"),
        ],
    )
    def test_thresholds(self, success, failed, expected):
        stats = FetchStats(success=success, failed=failed)
        assert stats.health_status() == expected

    def test_cache_hits_do_not_count(self):
        stats = FetchStats(success=1, cache_hits=100)
        assert stats.health_status() == "healthy"

    def test_open_circuit_means_failed(self):
        stats = FetchStats(success=100)
        assert stats.health_status(open_circuits=1) == "failed"
