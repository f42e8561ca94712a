"""FastAPI ops application for a shared fetcher.

Provides ``/health`` and ``/v1/metrics`` for the process-wide
``ResilientDataFetcher`` plus request-ID middleware.  The fetcher is
closed when the application shuts down.
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response

from resilient_fetch.core.config import Settings
from resilient_fetch.fetcher import ResilientDataFetcher
from resilient_fetch.models.schemas import HealthCheck, HealthResponse, MetricsResponse

logger = logging.getLogger(__name__)

settings = Settings()

fetcher = ResilientDataFetcher(settings)

_start_time = time.monotonic()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    logger.info("Shutting down, closing fetcher")
    await fetcher.close()


app = FastAPI(
    title=settings.SERVICE_NAME,
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next) -> Response:
    """Assign or preserve a unique request ID on every request."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Return service health with name, version, status, and uptime."""
    return HealthResponse(
        service=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
        status=fetcher.get_metrics().health_status,
        uptime_seconds=round(time.monotonic() - _start_time, 2),
    )


@app.get("/v1/metrics", response_model=MetricsResponse)
async def metrics() -> MetricsResponse:
    """Return fetch counters, breaker snapshots and health check results."""
    stats = fetcher.get_stats()
    return MetricsResponse(
        metrics=fetcher.get_metrics(),
        cache_size=stats["cache_size"],
        in_flight=stats["in_flight"],
        open_circuits=stats["open_circuits"],
        circuit_breakers=stats["circuit_breakers"],
        health_checks=[HealthCheck.model_validate(check) for check in stats["health_checks"]],
    )
