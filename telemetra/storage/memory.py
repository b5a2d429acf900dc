from __future__ import annotations

from typing import Sequence

import anyio
import anyio.abc

from telemetra.exceptions import ItemNotFound
from telemetra.models import (
    Metric,
    MetricKey,
    MetricKind,
    MetricSet,
    Payload,
    add_delta,
    ensure_known_kind,
    validate_metric,
)

from .metrics import StorageMetricsMixin


class InMemoryStorage(StorageMetricsMixin):
    """
    A volatile metric store keeping the Metric Set in a plain dictionary.

    This class is the reference implementation of the `MetricStorage` contract:
    every other backend must reproduce its `get`/`set`/`get_all` results exactly.

    Concurrency
    -----------
    One `anyio.Lock` is held for the whole duration of each operation, reads
    included. Operations on the same instance never overlap, trading
    throughput for simplicity.

    Batches
    -------
    `set_many` validates every item and computes every resulting payload,
    counter overflow included, before mutating anything. A rejected batch
    leaves the store untouched and an accepted one is applied in full.

    Attributes
    ----------
    _lock : anyio.abc.Lock
        Guards `_values`.
    _values : MetricSet
        Stored payload per metric key.
    """

    def __init__(self) -> None:
        super().__init__()
        self._lock: anyio.abc.Lock = anyio.Lock()
        self._values: MetricSet = {}

    async def get(self, kind: str, id: str) -> Metric:
        kind = ensure_known_kind(kind)
        key = MetricKey(type=kind, id=id)
        async with self._lock:
            try:
                payload = self._values[key]
            except KeyError:
                raise ItemNotFound(f"Metric {kind}/{id} not found") from None
            self.metrics.reads += 1
            return Metric.from_payload(key, payload)

    async def set(self, metric: Metric) -> Metric:
        return (await self.set_many([metric]))[0]

    async def set_many(self, metrics: Sequence[Metric]) -> list[Metric]:
        for metric in metrics:
            validate_metric(metric)
        async with self._lock:
            try:
                staged = self._stage(metrics)
            except Exception:
                self.metrics.write_errors += 1
                raise
            for key, payload in staged:
                self._values[key] = payload
            self.metrics.writes += len(staged)
            await self._after_write()
            return [Metric.from_payload(key, payload) for key, payload in staged]

    async def get_all(self) -> list[Metric]:
        async with self._lock:
            self.metrics.reads += 1
            return [Metric.from_payload(key, payload) for key, payload in self._values.items()]

    async def ping(self) -> None:
        return None

    async def aclose(self) -> None:
        return None

    def _stage(self, metrics: Sequence[Metric]) -> list[tuple[MetricKey, Payload]]:
        """
        Compute the payload each metric leaves behind, in order, without
        touching `_values`. The caller must hold `_lock`.
        """
        pending: MetricSet = {}
        staged: list[tuple[MetricKey, Payload]] = []
        for metric in metrics:
            key = metric.key
            if metric.type == MetricKind.COUNTER:
                current = pending.get(key, self._values.get(key))
                payload: Payload = add_delta(metric.id, current, metric.delta)  # type: ignore[arg-type]
            else:
                payload = float(metric.value)  # type: ignore[arg-type]
            pending[key] = payload
            staged.append((key, payload))
        return staged

    async def _after_write(self) -> None:
        """Hook run under `_lock` after each successful mutation."""
        return None
