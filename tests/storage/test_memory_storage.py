from __future__ import annotations

import anyio
import pytest

from telemetra.exceptions import NilCounterDelta, NilGaugeValue
from telemetra.models import Metric
from telemetra.storage.memory import InMemoryStorage

pytestmark = pytest.mark.anyio


async def test_concurrent_counter_updates_are_not_lost():
    storage = InMemoryStorage()

    async def bump() -> None:
        for _ in range(50):
            await storage.set(Metric.counter("hits", 1))

    async with anyio.create_task_group() as tg:
        for _ in range(10):
            tg.start_soon(bump)

    assert (await storage.get("counter", "hits")).delta == 500


async def test_missing_payload_never_mutates():
    storage = InMemoryStorage()

    with pytest.raises(NilGaugeValue):
        await storage.set_many([Metric.gauge("ok", 1.0), Metric.gauge("x", None)])

    with pytest.raises(NilCounterDelta):
        await storage.set(Metric.counter("c", None))

    assert await storage.get_all() == []


async def test_metrics_counters():
    storage = InMemoryStorage()

    await storage.set(Metric.counter("hits", 1))
    await storage.set_many([Metric.gauge("a", 1.0), Metric.gauge("b", 2.0)])
    await storage.get("counter", "hits")
    await storage.get_all()

    snap = storage.metrics.snapshot()
    assert snap["writes"] == 3
    assert snap["reads"] == 2
    assert snap["write_errors"] == 0

    storage.metrics.reset()
    assert storage.metrics.snapshot()["writes"] == 0
