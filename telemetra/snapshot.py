from __future__ import annotations

import contextlib
import json
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import anyio

from .exceptions import SnapshotError
from .models import INT64_MAX, INT64_MIN, Metric, MetricKey, MetricKind, MetricSet, Payload


def encode(metric_set: MetricSet) -> bytes:
    """
    Serialize a full Metric Set to bytes.

    The output is a UTF-8 JSON list of records, one per key, sorted by
    `(type, id)` so that equal sets always produce identical bytes:

        [{"id": "hits", "type": "counter", "delta": 8},
         {"id": "temp", "type": "gauge", "value": 37.1}]

    A list (not a mapping keyed by metric) keeps the file legible and lets
    `decode` drop individual foreign records.
    """
    records: list[dict[str, Any]] = []
    for key in sorted(metric_set, key=lambda k: (k.type, k.id)):
        payload = metric_set[key]
        if key.type == MetricKind.COUNTER:
            records.append({"id": key.id, "type": MetricKind.COUNTER.value, "delta": int(payload)})
        elif key.type == MetricKind.GAUGE:
            records.append({"id": key.id, "type": MetricKind.GAUGE.value, "value": float(payload)})
    return json.dumps(records, ensure_ascii=False).encode("utf-8")


def decode(data: bytes | None) -> MetricSet:
    """
    Rebuild a Metric Set from bytes produced by `encode`.

    An empty or missing stream yields an empty set (first run). Records that
    are not objects, carry an unknown kind, lack the payload of their kind or
    hold a counter outside the signed 64-bit range are dropped silently:
    they come from partially written or foreign files.

    Raises
    ------
    SnapshotError
        If the stream is not valid JSON or its top level is not a list.
    """
    if not data or not data.strip():
        return {}

    try:
        rows = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SnapshotError(f"Snapshot is not valid JSON: {e}") from e

    if not isinstance(rows, list):
        raise SnapshotError("Snapshot must contain a list of metric records")

    out: MetricSet = {}
    for row in rows:
        parsed = _parse_record(row)
        if parsed is None:
            continue
        key, payload = parsed
        out[key] = payload
    return out


def _parse_record(row: Any) -> tuple[MetricKey, Payload] | None:
    if not isinstance(row, dict):
        return None

    metric_id = row.get("id")
    kind = row.get("type")
    if not isinstance(metric_id, str):
        return None

    if kind == MetricKind.COUNTER:
        delta = row.get("delta")
        if isinstance(delta, bool) or not isinstance(delta, int) or not INT64_MIN <= delta <= INT64_MAX:
            return None
        return MetricKey(type=MetricKind.COUNTER.value, id=metric_id), delta

    if kind == MetricKind.GAUGE:
        value = row.get("value")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return MetricKey(type=MetricKind.GAUGE.value, id=metric_id), float(value)

    return None


def metric_set(metrics: Iterable[Metric]) -> MetricSet:
    """Collapse a list of metrics into a Metric Set. Later entries win."""
    out: MetricSet = {}
    for metric in metrics:
        payload = metric.payload
        if payload is None:
            continue
        out[metric.key] = payload
    return out


def metric_list(values: MetricSet) -> list[Metric]:
    """Expand a Metric Set into metrics, sorted by `(type, id)`."""
    return [Metric.from_payload(key, values[key]) for key in sorted(values, key=lambda k: (k.type, k.id))]


async def save_snapshot(path: str | Path, values: MetricSet) -> int:
    """
    Write a Metric Set to `path`, replacing any previous snapshot.

    The bytes go to a uniquely named temporary sibling first and are moved
    into place with `os.replace()`, so a crash mid-write never leaves a
    truncated snapshot and concurrent writers never share a temporary file.

    Returns
    -------
    int
        The number of bytes written.

    Raises
    ------
    SnapshotError
        If the file cannot be written.
    """
    target = Path(path)
    data = encode(values)
    tmp_path: Path | None = None

    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        tmp_path = Path(name)
        async with await anyio.open_file(fd, mode="wb") as f:
            await f.write(data)
            await f.flush()
        os.replace(tmp_path, target)
    except OSError as e:
        if tmp_path is not None:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
        raise SnapshotError(f"Failed to write snapshot {target}: {e}") from e

    return len(data)


async def load_snapshot(path: str | Path) -> MetricSet:
    """
    Read the Metric Set stored at `path`.

    A missing file is not an error and yields an empty set.

    Raises
    ------
    SnapshotError
        If the file exists but cannot be read or decoded.
    """
    source = Path(path)
    if not source.exists():
        return {}

    try:
        async with await anyio.open_file(source, mode="rb") as f:
            data = await f.read()
    except OSError as e:
        raise SnapshotError(f"Failed to read snapshot {source}: {e}") from e

    return decode(data)
