"""Shared fixtures for unit tests.

HTTP is faked with ``httpx.MockTransport`` driven by a scriptable
``FakeBackend``; time is faked with ``FakeClock`` and retry waits are
recorded by ``SleepRecorder`` instead of actually sleeping.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import httpx
import pytest

from resilient_fetch.core.config import Settings
from resilient_fetch.fetcher import ResilientDataFetcher

Step = Callable[[httpx.Request], httpx.Response]


# ── Response steps ──────────────────────────────────────────────────────


def ok(payload=None, status_code: int = 200) -> Step:
    body = {} if payload is None else payload
    return lambda request: httpx.Response(status_code, json=body)


def http_status(status_code: int, payload=None) -> Step:
    return ok(payload if payload is not None else {"error": "failed"}, status_code)


def invalid_json() -> Step:
    return lambda request: httpx.Response(
        200,
        content=b"{not json",
        headers={"content-type": "application/json"},
    )


def connect_error(message: str = "Connection refused") -> Step:
    def _raise(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError(message, request=request)

    return _raise


def read_timeout() -> Step:
    def _raise(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    return _raise


# ── Fakes ───────────────────────────────────────────────────────────────


class FakeBackend:
    """Plays scripted steps in order, then repeats ``default`` forever."""

    def __init__(self, default: Step | None = None, latency: float = 0.0) -> None:
        self.default = default or ok()
        self.latency = latency
        self.script: list[Step] = []
        self.requests: list[httpx.Request] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def then(self, *steps: Step) -> FakeBackend:
        self.script.extend(steps)
        return self

    def always(self, step: Step) -> FakeBackend:
        self.default = step
        return self

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.script.pop(0) if self.script else self.default
        if self.latency:
            await asyncio.sleep(self.latency)
        return step(request)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Stands in for ``asyncio.sleep`` and records every requested delay."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
async def http_client(backend: FakeBackend):
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(backend.handler),
        base_url="http://testserver",
    ) as client:
        yield client


@pytest.fixture
async def fetcher(settings, http_client, clock, sleeper):
    f = ResilientDataFetcher(settings, client=http_client, clock=clock, sleep=sleeper)
    yield f
    f.destroy()
