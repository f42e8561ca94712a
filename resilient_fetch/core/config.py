"""Settings for the resilient fetcher.

Centralized configuration for retry, circuit breaker, cache and health
check behaviour.  All settings are loaded from environment variables with
the RESILIENT_FETCH_ prefix.  Durations are seconds.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Fetcher configuration.

    All fields can be overridden by environment variables prefixed with
    ``RESILIENT_FETCH_``.  For example, ``RESILIENT_FETCH_DEFAULT_RETRIES=1``
    lowers the default retry count.
    """

    # ── Service identity ────────────────────────────────────────────
    SERVICE_NAME: str = "resilient-fetch"
    SERVICE_VERSION: str = "0.1.0"

    # ── Transport ───────────────────────────────────────────────────
    BASE_URL: str = ""  # Prepended to relative request URLs
    REQUEST_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)

    # ── Retry ───────────────────────────────────────────────────────
    DEFAULT_RETRIES: int = Field(default=3, ge=0)
    RETRY_BASE_DELAY: float = Field(default=1.0, ge=0)  # Wait after the first failure
    RETRY_MAX_DELAY: float = Field(default=30.0, ge=0)
    RETRY_JITTER: bool = False

    # ── Circuit breaker ─────────────────────────────────────────────
    CIRCUIT_BREAKER_THRESHOLD: int = Field(default=5, ge=1)  # Consecutive failures before OPEN
    CIRCUIT_BREAKER_RECOVERY_SECONDS: float = Field(default=60.0, ge=0)  # Seconds before HALF_OPEN probe
    CIRCUIT_BREAKER_HALF_OPEN_MAX: int = Field(default=1, ge=1)

    # ── Response cache ──────────────────────────────────────────────
    CACHE_DEFAULT_TTL_SECONDS: float = Field(default=300.0, ge=0)
    CACHE_MAX_ENTRIES: int = Field(default=1000, ge=1)

    # ── Health checks ───────────────────────────────────────────────
    HEALTH_CHECK_PATH: str = "/api/health-check"
    HEALTH_CHECK_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)
    HEALTH_CHECK_MAX_AGE_SECONDS: float = Field(default=300.0, ge=0)

    model_config = {
        "env_prefix": "RESILIENT_FETCH_",
    }
