from __future__ import annotations

import asyncio
import gc
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import pytest

from blended_fee.estimator.result_cache import ResultCache


@dataclass
class FakeClock:
    now: float = 1000

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class Counter:
    calls: int = 0
    gate: Optional[asyncio.Event] = None
    fail: bool = False

    async def compute(self) -> str:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise ValueError(f"failure {self.calls}")
        return f"result {self.calls}"


def test_get_and_set_expire_with_ttl() -> None:
    clock = FakeClock()
    cache: ResultCache[str] = ResultCache(ttl=15, clock=clock)
    assert cache.get() is None

    cache.set("value")
    clock.advance(14.9)
    assert cache.get() == "value"
    clock.advance(0.1)
    assert cache.get() is None


@pytest.mark.parametrize("ttl", [0, -1])
def test_non_positive_ttl_keeps_nothing(ttl: float) -> None:
    cache: ResultCache[str] = ResultCache(ttl=ttl, clock=FakeClock())
    cache.set("value")
    assert cache.get() is None


def test_sweep_and_clear() -> None:
    clock = FakeClock()
    cache: ResultCache[str] = ResultCache(ttl=10, clock=clock)
    assert not cache.sweep()
    cache.set("value")
    assert not cache.sweep()
    clock.advance(10)
    assert cache.sweep()
    assert not cache.sweep()

    cache.set("value")
    cache.clear()
    assert cache.get() is None


@pytest.mark.anyio
async def test_get_or_compute_uses_cached_value() -> None:
    clock = FakeClock()
    cache: ResultCache[str] = ResultCache(ttl=15, clock=clock)
    counter = Counter()

    assert await cache.get_or_compute(counter.compute) == "result 1"
    assert await cache.get_or_compute(counter.compute) == "result 1"
    assert counter.calls == 1

    clock.advance(15)
    assert await cache.get_or_compute(counter.compute) == "result 2"
    assert counter.calls == 2


@pytest.mark.anyio
async def test_concurrent_misses_share_one_computation() -> None:
    cache: ResultCache[str] = ResultCache(ttl=15, clock=FakeClock())
    gate = asyncio.Event()
    counter = Counter(gate=gate)

    tasks = [asyncio.create_task(cache.get_or_compute(counter.compute)) for _ in range(5)]
    await asyncio.sleep(0)
    gate.set()
    results = await asyncio.gather(*tasks)

    assert results == ["result 1"] * 5
    assert counter.calls == 1


@pytest.mark.anyio
async def test_concurrent_misses_share_one_computation_without_retention() -> None:
    cache: ResultCache[str] = ResultCache(ttl=0, clock=FakeClock())
    gate = asyncio.Event()
    counter = Counter(gate=gate)

    tasks = [asyncio.create_task(cache.get_or_compute(counter.compute)) for _ in range(3)]
    await asyncio.sleep(0)
    gate.set()
    assert await asyncio.gather(*tasks) == ["result 1"] * 3

    counter.gate = None
    assert await cache.get_or_compute(counter.compute) == "result 2"


@pytest.mark.anyio
async def test_failures_reach_every_waiter_and_are_not_stored() -> None:
    cache: ResultCache[str] = ResultCache(ttl=15, clock=FakeClock())
    gate = asyncio.Event()
    counter = Counter(gate=gate, fail=True)

    tasks = [asyncio.create_task(cache.get_or_compute(counter.compute)) for _ in range(3)]
    await asyncio.sleep(0)
    gate.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)

    assert counter.calls == 1
    assert all(isinstance(result, ValueError) for result in results)
    assert cache.get() is None

    counter.fail = False
    assert await cache.get_or_compute(counter.compute) == "result 2"


@pytest.mark.anyio
async def test_cancelled_caller_does_not_cancel_shared_computation() -> None:
    cache: ResultCache[str] = ResultCache(ttl=15, clock=FakeClock())
    gate = asyncio.Event()
    counter = Counter(gate=gate)

    first = asyncio.create_task(cache.get_or_compute(counter.compute))
    second = asyncio.create_task(cache.get_or_compute(counter.compute))
    await asyncio.sleep(0)
    first.cancel()
    with pytest.raises(asyncio.CancelledError):
        await first

    gate.set()
    assert await second == "result 1"
    assert counter.calls == 1


@pytest.mark.anyio
async def test_failure_after_every_caller_left_is_not_reported() -> None:
    loop = asyncio.get_running_loop()
    reported: List[Dict[str, Any]] = []
    loop.set_exception_handler(lambda _loop, context: reported.append(context))
    try:
        cache: ResultCache[str] = ResultCache(ttl=15, clock=FakeClock())
        gate = asyncio.Event()
        counter = Counter(gate=gate, fail=True)

        caller = asyncio.create_task(cache.get_or_compute(counter.compute))
        await asyncio.sleep(0)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        gate.set()
        while cache._in_flight is not None:
            await asyncio.sleep(0)
        # let the done callbacks of the finished computation run
        for _ in range(3):
            await asyncio.sleep(0)
        del caller
        gc.collect()

        assert counter.calls == 1
        assert reported == []
        assert cache.get() is None
    finally:
        loop.set_exception_handler(None)

@pytest.mark.anyio
async def test_manage_sweeps_expired_entries() -> None:
    clock = FakeClock()
    cache: ResultCache[str] = ResultCache(ttl=10, check_period=0.01, clock=clock)

    async with cache.manage():
        cache.set("value")
        clock.advance(10)
        for _ in range(100):
            if cache._entry is None:
                break
            await asyncio.sleep(0.01)
        assert cache._entry is None


@pytest.mark.anyio
async def test_manage_without_check_period() -> None:
    cache: ResultCache[str] = ResultCache(ttl=10, clock=FakeClock())
    async with cache.manage() as managed:
        assert managed is cache
