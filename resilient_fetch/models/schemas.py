"""Request/result Pydantic models for the resilient fetcher.

``RequestOptions`` is what dashboard callers pass to ``fetch()``;
``FetchResult`` is what they always get back, whatever happened on the
network.  The remaining models back ``get_metrics()``, health checks and
the ops app responses.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

HTTPMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD"]
CacheStrategy = Literal["memory", "none"]
HealthStatus = Literal["healthy", "degraded", "failed"]


class RequestOptions(BaseModel):
    """Per-call options for ``ResilientDataFetcher.fetch()``.

    ``retries``, ``timeout`` and ``cache_ttl`` fall back to ``Settings``
    when left as ``None``.  ``fallback_data`` counts as supplied whenever it
    was passed explicitly, even as ``None``.
    """

    model_config = ConfigDict(extra="forbid")

    url: str = Field(..., min_length=1)
    method: HTTPMethod = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    timeout: float | None = Field(default=None, gt=0)
    retries: int | None = Field(default=None, ge=0)
    cache_strategy: CacheStrategy = "none"
    cache_ttl: float | None = Field(default=None, ge=0)
    fallback_data: Any = None
    circuit_key: str | None = Field(default=None, min_length=1)

    @field_validator("method", mode="before")
    @classmethod
    def upper_method(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v

    @property
    def has_fallback(self) -> bool:
        return "fallback_data" in self.model_fields_set


class FetchStatus(str, Enum):
    """How the data in a ``FetchResult`` was obtained."""

    SUCCESS = "success"
    CACHED = "cached"
    FALLBACK = "fallback"
    ERROR = "error"


class FetchResult(BaseModel):
    """Outcome of one ``fetch()`` call.

    ``from_cache`` separates a stale-cache fallback (``True``) from a
    caller-supplied static fallback (``False``) when ``status`` is
    ``fallback``.
    """

    status: FetchStatus
    data: Any = None
    error: str | None = None
    error_code: str | None = None
    from_cache: bool = False
    attempts: int = 0
    response_time_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status in (FetchStatus.SUCCESS, FetchStatus.CACHED)

    @property
    def is_stale(self) -> bool:
        return self.status == FetchStatus.FALLBACK and self.from_cache


class FetchMetrics(BaseModel):
    """Counters returned by ``get_metrics()``."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    cache_hits: int = 0
    fallback_responses: int = 0
    circuit_rejections: int = 0
    coalesced_requests: int = 0
    average_response_time_ms: float = 0.0
    cache_hit_rate: float = 0.0
    success_rate: float = 0.0
    health_status: HealthStatus = "healthy"


class HealthCheck(BaseModel):
    """Last known health of one endpoint."""

    endpoint: str
    method: Literal["GET", "HEAD"] = "HEAD"
    timeout: float
    healthy: bool
    last_checked: datetime
    response_time_ms: float | None = None
    error: str | None = None


class HealthResponse(BaseModel):
    """Response model for GET /health."""

    service: str
    version: str
    status: str
    uptime_seconds: float


class MetricsResponse(BaseModel):
    """Response model for GET /v1/metrics."""

    metrics: FetchMetrics
    cache_size: int
    in_flight: int
    open_circuits: int
    circuit_breakers: list[dict]
    health_checks: list[HealthCheck]
