from __future__ import annotations

import json
import math
from pathlib import Path

import anyio
import pytest

from telemetra.exceptions import SnapshotError
from telemetra.models import INT64_MAX, Metric, MetricKey
from telemetra.snapshot import decode, encode, load_snapshot, metric_list, metric_set, save_snapshot

pytestmark = pytest.mark.anyio

HITS = MetricKey(type="counter", id="hits")
TEMP = MetricKey(type="gauge", id="temp")


def test_encode_produces_a_list_of_records():
    data = encode({TEMP: 37.1, HITS: 8})

    assert json.loads(data) == [
        {"id": "hits", "type": "counter", "delta": 8},
        {"id": "temp", "type": "gauge", "value": 37.1},
    ]


def test_round_trip_is_exact():
    values = {
        HITS: 2**63 - 1,
        TEMP: 0.1 + 0.2,
        MetricKey(type="gauge", id="neg"): -1e-300,
        MetricKey(type="counter", id="ünïcode"): -5,
        MetricKey(type="gauge", id="hits"): 1.5,
    }

    assert decode(encode(values)) == values


def test_empty_set_round_trips():
    assert decode(encode({})) == {}


@pytest.mark.parametrize("data", [None, b"", b"   \n"])
def test_empty_stream_is_an_empty_set(data):
    assert decode(data) == {}


def test_records_without_payload_are_dropped():
    data = json.dumps(
        [
            {"id": "hits", "type": "counter", "delta": 3},
            {"id": "ghost", "type": "gauge"},
            {"id": "ghost2", "type": "counter", "value": 1.0},
            {"id": "alien", "type": "histogram", "value": 1.0},
            {"type": "gauge", "value": 1.0},
            "garbage",
            {"id": "flag", "type": "counter", "delta": True},
        ]
    ).encode()

    assert decode(data) == {HITS: 3}


def test_malformed_stream_raises():
    with pytest.raises(SnapshotError):
        decode(b'[{"id": "hits"')

    with pytest.raises(SnapshotError):
        decode(b'{"id": "hits"}')


def test_metric_set_and_list_conversions():
    metrics = [Metric.counter("hits", 1), Metric.gauge("temp", 36.6), Metric.counter("hits", 4)]

    values = metric_set(metrics)

    assert values == {HITS: 4, TEMP: 36.6}
    assert metric_list(values) == [Metric.counter("hits", 4), Metric.gauge("temp", 36.6)]



async def test_missing_file_loads_as_empty(tmp_path: Path):
    assert await load_snapshot(tmp_path / "absent.json") == {}


async def test_save_then_load(tmp_path: Path):
    path = tmp_path / "nested" / "dir" / "metrics.json"

    written = await save_snapshot(path, {HITS: 8, TEMP: 37.1})

    assert written == path.stat().st_size
    assert await load_snapshot(path) == {HITS: 8, TEMP: 37.1}
    assert [p.name for p in path.parent.iterdir()] == ["metrics.json"]


async def test_save_replaces_previous_snapshot(tmp_path: Path):
    path = tmp_path / "metrics.json"

    await save_snapshot(path, {HITS: 1, TEMP: 1.0})
    await save_snapshot(path, {HITS: 2})

    assert await load_snapshot(path) == {HITS: 2}


async def test_save_into_unwritable_location_raises(tmp_path: Path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")

    with pytest.raises(SnapshotError):
        await save_snapshot(blocker / "metrics.json", {HITS: 1})


async def test_load_corrupted_file_raises(tmp_path: Path):
    path = tmp_path / "metrics.json"
    path.write_text("not json", encoding="utf-8")

    with pytest.raises(SnapshotError):
        await load_snapshot(path)


def test_out_of_range_counters_are_dropped():
    data = json.dumps(
        [
            {"id": "big", "type": "counter", "delta": INT64_MAX + 1},
            {"id": "max", "type": "counter", "delta": INT64_MAX},
        ]
    ).encode()

    assert decode(data) == {MetricKey("counter", "max"): INT64_MAX}


def test_non_finite_gauges_round_trip():
    values = decode(encode({TEMP: math.nan, MetricKey("gauge", "up"): math.inf}))

    assert math.isnan(values[TEMP])
    assert values[MetricKey("gauge", "up")] == math.inf


async def test_concurrent_saves_leave_one_valid_snapshot(tmp_path: Path):
    path = tmp_path / "metrics.json"
    sets = [{MetricKey("counter", f"c{n}"): n for n in range(size)} for size in range(1, 30)]

    async with anyio.create_task_group() as tg:
        for values in sets:
            tg.start_soon(save_snapshot, path, values)

    assert await load_snapshot(path) in sets
    assert [p.name for p in tmp_path.iterdir()] == ["metrics.json"]
