"""In-flight request registry.

Concurrent callers asking for the same request signature share a single
pending task instead of each hitting the network.  Keys are the same
signatures the response cache uses.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class InFlightRegistry:
    """Maps request signature → shared pending task."""

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Future] = {}
        self.coalesced = 0

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, key: str) -> bool:
        return key in self._pending

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> tuple[Any, bool]:
        """Await the outcome for *key*, starting *factory* only if nobody has.

        Returns ``(value, shared)`` where *shared* is ``True`` when the value
        came from a call another coroutine had already started.  The shared
        task is shielded so one caller being cancelled does not cancel it for
        the others.
        """
        pending = self._pending.get(key)
        if pending is not None:
            self.coalesced += 1
            logger.debug("Joining in-flight request %s", key)
            return await asyncio.shield(pending), True

        task = asyncio.ensure_future(factory())
        self._pending[key] = task
        try:
            return await asyncio.shield(task), False
        finally:
            if self._pending.get(key) is task:
                del self._pending[key]

    def clear(self) -> None:
        """Forget every pending entry; running tasks finish for their waiters."""
        self._pending.clear()
