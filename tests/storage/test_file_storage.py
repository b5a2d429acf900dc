from __future__ import annotations

from pathlib import Path

import pytest

from telemetra.exceptions import SnapshotError
from telemetra.models import Metric, MetricKey
from telemetra.snapshot import load_snapshot
from telemetra.storage.file import FileStorage

pytestmark = pytest.mark.anyio


async def test_sync_mode_writes_after_every_set(snapshot_path: Path):
    storage = FileStorage(snapshot_path, sync_write=True)

    await storage.set(Metric.counter("hits", 5))
    assert await load_snapshot(snapshot_path) == {MetricKey("counter", "hits"): 5}

    await storage.set(Metric.counter("hits", 3))
    await storage.set(Metric.gauge("temp", 36.6))

    assert await load_snapshot(snapshot_path) == {
        MetricKey("counter", "hits"): 8,
        MetricKey("gauge", "temp"): 36.6,
    }
    assert storage.metrics.snapshots == 3


async def test_sync_mode_writes_once_per_batch(snapshot_path: Path):
    storage = FileStorage(snapshot_path, sync_write=True)

    await storage.set_many([Metric.counter("a", 1), Metric.counter("b", 2)])

    assert storage.metrics.snapshots == 1
    assert len(await load_snapshot(snapshot_path)) == 2


async def test_deferred_mode_never_touches_the_file(snapshot_path: Path):
    storage = FileStorage(snapshot_path, sync_write=False)

    await storage.set(Metric.counter("hits", 5))
    await storage.set_many([Metric.gauge("temp", 1.0)])

    assert not snapshot_path.exists()
    assert (await storage.get("counter", "hits")).delta == 5


async def test_reads_come_from_memory(snapshot_path: Path):
    storage = FileStorage(snapshot_path, sync_write=True)
    await storage.set(Metric.gauge("temp", 36.6))

    snapshot_path.write_text("[]", encoding="utf-8")

    assert (await storage.get("gauge", "temp")).value == 36.6
    assert len(await storage.get_all()) == 1


async def test_failed_sync_write_raises_and_keeps_memory(tmp_path: Path):
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory")
    storage = FileStorage(blocker / "metrics.json", sync_write=True)

    with pytest.raises(SnapshotError):
        await storage.set(Metric.counter("hits", 1))

    assert (await storage.get("counter", "hits")).delta == 1
    assert storage.metrics.snapshot_errors == 1
    assert storage.metrics.write_errors == 1
