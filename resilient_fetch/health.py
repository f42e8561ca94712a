"""Endpoint health checks.

``HealthMonitor`` probes endpoints with HEAD requests, remembers the last
result per endpoint and can run the probe periodically in a background
asyncio task.  Probes never raise; transport failures are recorded as an
unhealthy ``HealthCheck``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import httpx

from resilient_fetch.models.schemas import HealthCheck

logger = logging.getLogger(__name__)


class HealthMonitor:
    """Tracks endpoint health for one fetcher.

    Args:
        client_getter: Returns the ``httpx.AsyncClient`` to probe with.
        timeout:       Per-probe timeout in seconds.
        max_age:       Seconds after which a healthy result stops counting.
        now:           Wall-clock source, injectable for tests.
    """

    def __init__(
        self,
        client_getter: Callable[[], httpx.AsyncClient],
        timeout: float = 5.0,
        max_age: float = 300.0,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._client_getter = client_getter
        self.timeout = timeout
        self.max_age = max_age
        self._now = now
        self._checks: dict[str, HealthCheck] = {}
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def perform_health_check(self, endpoint: str) -> HealthCheck:
        """HEAD *endpoint* and record whether it answered with a 2xx."""
        start = time.monotonic()
        try:
            response = await self._client_getter().head(endpoint, timeout=self.timeout)
        except Exception as exc:
            # Custom transports and malformed URLs fail outside httpx.HTTPError.
            check = HealthCheck(
                endpoint=endpoint,
                timeout=self.timeout,
                healthy=False,
                last_checked=self._now(),
                error=str(exc) or exc.__class__.__name__,
            )
        else:
            check = HealthCheck(
                endpoint=endpoint,
                timeout=self.timeout,
                healthy=response.is_success,
                last_checked=self._now(),
                response_time_ms=round((time.monotonic() - start) * 1000, 2),
            )
        logger.debug("Health check %s: healthy=%s", endpoint, check.healthy)
        self._checks[endpoint] = check
        return check

    def get(self, endpoint: str) -> HealthCheck | None:
        return self._checks.get(endpoint)

    def is_endpoint_healthy(self, endpoint: str) -> bool:
        """Unknown endpoints count as healthy; known ones must be fresh and healthy."""
        check = self._checks.get(endpoint)
        if check is None:
            return True
        cutoff = self._now() - timedelta(seconds=self.max_age)
        return check.healthy and check.last_checked > cutoff

    def summaries(self) -> list[HealthCheck]:
        return list(self._checks.values())

    def start(self, interval: float, endpoint: str) -> None:
        """Probe *endpoint* every *interval* seconds until ``stop()``.

        Must be called from inside a running event loop.  Restarts the loop
        if one is already running.
        """
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.stop()
        self._task = asyncio.get_running_loop().create_task(self._monitor(interval, endpoint))

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def clear(self) -> None:
        self._checks.clear()

    async def _monitor(self, interval: float, endpoint: str) -> None:
        while True:
            try:
                await self.perform_health_check(endpoint)
            except Exception:
                logger.exception("Health check for %s failed", endpoint)
            await asyncio.sleep(interval)
