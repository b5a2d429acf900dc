from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from telemetra.models import Metric

from .metrics import StorageMetrics


@runtime_checkable
class MetricStorage(Protocol):
    """
    Capability contract shared by every metric storage backend.

    A backend owns the current Metric Set and applies the merge rules on
    every write:
    1. **Counters accumulate**: the incoming `delta` is added to the stored one.
    2. **Gauges are replaced**: the incoming `value` overwrites the stored one.
    3. **One entry per key**: a write for an existing `(type, id)` key mutates
       that entry in place.

    Payload presence (a gauge without `value`, a counter without `delta`) is
    validated by `MetricService` before a backend is reached. Backends check
    it again for every item of a batch before mutating anything.
    """

    @property
    def metrics(self) -> StorageMetrics: ...

    async def get(self, kind: str, id: str) -> Metric:
        """
        Return the current state of one metric.

        Raises
        ------
        ItemNotFound
            If the key was never set.
        IncorrectMetricType
            If `kind` is not a supported metric kind.
        """
        ...

    async def set(self, metric: Metric) -> Metric:
        """
        Apply one update and return the metric as stored afterwards.

        For counters the returned `delta` is the accumulated total, not the
        delta that was just added.
        """
        ...

    async def set_many(self, metrics: Sequence[Metric]) -> list[Metric]:
        """
        Apply a batch of updates with the same per-item semantics as `set`.

        Transactional backends apply the batch atomically.
        """
        ...

    async def get_all(self) -> list[Metric]:
        """Return the full current Metric Set, one entry per distinct key."""
        ...

    async def ping(self) -> None:
        """Raise if the backend is not reachable. No-op for local backends."""
        ...

    async def aclose(self) -> None:
        """Release any resources held by the backend."""
        ...
