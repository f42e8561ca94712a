"""Tests for InFlightRegistry request coalescing."""

import asyncio

import pytest

from resilient_fetch.resilience.inflight import InFlightRegistry


class TestInFlightRegistry:
    async def test_concurrent_callers_share_one_execution(self):
        registry = InFlightRegistry()
        started = 0
        release = asyncio.Event()

        async def work():
            nonlocal started
            started += 1
            await release.wait()
            return "payload"

        tasks = [asyncio.create_task(registry.run("GET /api/test", work)) for _ in range(5)]
        await asyncio.sleep(0)
        assert len(registry) == 1
        release.set()
        results = await asyncio.gather(*tasks)

        assert started == 1
        assert [value for value, _ in results] == ["payload"] * 5
        assert sum(1 for _, shared in results if shared) == 4
        assert registry.coalesced == 4
        assert len(registry) == 0

    async def test_different_keys_run_independently(self):
        registry = InFlightRegistry()
        started = []

        async def work(key):
            started.append(key)
            await asyncio.sleep(0)
            return key

        results = await asyncio.gather(
            registry.run("a", lambda: work("a")),
            registry.run("b", lambda: work("b")),
        )
        assert sorted(started) == ["a", "b"]
        assert [value for value, _ in results] == ["a", "b"]

    async def test_entry_removed_after_failure(self):
        registry = InFlightRegistry()

        async def boom():
            raise RuntimeError("bug")

        with pytest.raises(RuntimeError):
            await registry.run("a", boom)
        assert "a" not in registry

    async def test_sequential_calls_are_not_coalesced(self):
        registry = InFlightRegistry()
        calls = 0

        async def work():
            nonlocal calls
            calls += 1
            return calls

        first, _ = await registry.run("a", work)
        second, shared = await registry.run("a", work)
        assert (first, second) == (1, 2)
        assert shared is False

    def test_clear_is_safe_when_empty(self):
        registry = InFlightRegistry()
        registry.clear()
        registry.clear()
        assert len(registry) == 0
