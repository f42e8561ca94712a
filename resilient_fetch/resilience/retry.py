"""Retry controller with exponential backoff.

Runs an attempt function up to ``retries + 1`` times, strictly one after
another, sleeping ``base_delay * multiplier ** (n - 1)`` after the n-th
failed attempt.  With the defaults that is 1s after the first failure and
2s after the second.  Failures never propagate out of ``run()``; the caller
receives an ``AttemptOutcome`` and decides how to resolve it.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from resilient_fetch.core.errors import CircuitOpenError, FetcherError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff schedule for one ``fetch()`` call.

    Attributes:
        retries:    Extra attempts after the first one.
        base_delay: Seconds to wait after the first failed attempt.
        max_delay:  Upper bound for any single wait.
        multiplier: Growth factor between consecutive waits.
        jitter:     Spread each wait by +/-25% to de-synchronize callers.
    """

    retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: bool = False

    def __post_init__(self) -> None:
        if self.retries < 0:
            raise ValueError("retries must be >= 0")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")

    @property
    def attempts(self) -> int:
        return self.retries + 1

    def delay_for(self, attempt: int, rng: Callable[[], float] = random.random) -> float:
        """Seconds to wait after failed attempt number *attempt* (1-based)."""
        delay = min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)
        if self.jitter:
            delay *= 0.75 + rng() * 0.5
        return delay


@dataclass
class AttemptOutcome:
    """Result of a retry sequence.

    Attributes:
        value:     Return value of the successful attempt.
        error:     Last attempt failure, ``None`` on success.
        attempts:  Number of attempts actually started.
        rejection: Circuit rejection that cut the sequence short, if any.
        delays:    Backoff waits performed, in order.
    """

    value: Any = None
    error: FetcherError | None = None
    attempts: int = 0
    rejection: CircuitOpenError | None = None
    succeeded: bool = False
    delays: list[float] = field(default_factory=list)

    @property
    def last_error(self) -> FetcherError | None:
        return self.error or self.rejection


class RetryController:
    """Executes attempts under a ``RetryPolicy``.

    Args:
        policy: Backoff schedule.
        sleep:  Awaitable sleep, injectable so tests can record waits.
        rng:    Random source for jitter.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.policy = policy
        self._sleep = sleep
        self._rng = rng

    async def run(
        self,
        operation: Callable[[int], Awaitable[Any]],
        *,
        on_failure: Callable[[FetcherError, int], Awaitable[None]] | None = None,
        should_continue: Callable[[], bool] | None = None,
        label: str = "request",
    ) -> AttemptOutcome:
        """Call ``operation(attempt)`` until it succeeds or attempts run out.

        ``FetcherError`` from *operation* marks a failed attempt and is passed
        to *on_failure*.  ``CircuitOpenError`` ends the sequence at once
        without counting as a failure.  When *should_continue* returns
        ``False`` after a failed attempt, the sequence ends without waiting
        out the backoff.
        """
        outcome = AttemptOutcome()
        attempts = self.policy.attempts

        for attempt in range(1, attempts + 1):
            outcome.attempts = attempt
            try:
                outcome.value = await operation(attempt)
            except CircuitOpenError as exc:
                outcome.attempts = attempt - 1
                outcome.rejection = exc
                logger.warning("%s: circuit opened mid-sequence, giving up after %d attempts", label, attempt - 1)
                break
            except FetcherError as exc:
                outcome.error = exc
                if on_failure is not None:
                    await on_failure(exc, attempt)
                if attempt < attempts:
                    if should_continue is not None and not should_continue():
                        logger.warning("%s: giving up after %d attempts, retries halted", label, attempt)
                        break
                    outcome.delays.append(await self._backoff(attempt, attempts, label, exc))
                continue
            outcome.error = None
            outcome.succeeded = True
            break

        return outcome

    async def _backoff(self, attempt: int, attempts: int, label: str, exc: FetcherError) -> float:
        """Log a warning and sleep for exponential backoff."""
        delay = self.policy.delay_for(attempt, self._rng)
        logger.warning(
            "%s for %s (attempt %d/%d), retrying in %.1fs",
            exc,
            label,
            attempt,
            attempts,
            delay,
        )
        await self._sleep(delay)
        return delay
