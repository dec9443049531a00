from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator, Awaitable
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    expires_at: float


def _consume_exception(task: asyncio.Task[Any]) -> None:
    # every waiter may have been cancelled, mark a failure as retrieved so asyncio does not report it
    if not task.cancelled():
        task.exception()


@dataclass
class ResultCache(Generic[T]):
    """
    A single slot holding the latest result until `ttl` seconds have passed.

    Misses are single-flight: while one computation is running every other caller
    awaits that same computation and sees its result or its exception. Failures are
    never stored. A `ttl` of zero or less keeps nothing, but concurrent misses still
    share one computation.
    """

    ttl: float
    check_period: float = 0
    clock: Callable[[], float] = time.monotonic
    _entry: Optional[CacheEntry[T]] = field(default=None, init=False)
    _in_flight: Optional[asyncio.Task[T]] = field(default=None, init=False)

    def get(self) -> Optional[T]:
        entry = self._entry
        if entry is None or self.clock() >= entry.expires_at:
            return None
        return entry.value

    def set(self, value: T) -> None:
        if self.ttl <= 0:
            return
        self._entry = CacheEntry(value=value, expires_at=self.clock() + self.ttl)

    def clear(self) -> None:
        self._entry = None

    def sweep(self) -> bool:
        """Drop the entry if it has expired, returns True when something was dropped."""
        entry = self._entry
        if entry is not None and self.clock() >= entry.expires_at:
            self._entry = None
            return True
        return False

    async def get_or_compute(self, compute: Callable[[], Awaitable[T]]) -> T:
        value = self.get()
        if value is not None:
            return value

        if self._in_flight is None:
            task = asyncio.create_task(self._compute_and_store(compute))
            task.add_done_callback(_consume_exception)
            self._in_flight = task
        else:
            log.debug("Joining in-flight computation")
        # a cancelled caller must not cancel the computation the others are waiting on
        return await asyncio.shield(self._in_flight)

    async def _compute_and_store(self, compute: Callable[[], Awaitable[T]]) -> T:
        try:
            value = await compute()
            self.set(value)
            return value
        finally:
            self._in_flight = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.check_period)
            if self.sweep():
                log.debug("Swept expired cache entry")

    @contextlib.asynccontextmanager
    async def manage(self) -> AsyncIterator[ResultCache[T]]:
        if self.check_period <= 0:
            yield self
            return

        task = asyncio.create_task(self._sweep_loop())
        try:
            yield self
        finally:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
