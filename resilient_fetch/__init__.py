"""Resilient data fetching: response cache, circuit breakers, retry and fallback."""

from resilient_fetch.core.config import Settings
from resilient_fetch.fetcher import ResilientDataFetcher
from resilient_fetch.models.schemas import FetchMetrics, FetchResult, FetchStatus, RequestOptions

__all__ = [
    "FetchMetrics",
    "FetchResult",
    "FetchStatus",
    "RequestOptions",
    "ResilientDataFetcher",
    "Settings",
]
