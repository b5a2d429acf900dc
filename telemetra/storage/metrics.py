from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping


@dataclass(slots=True)
class StorageMetrics:
    """
    Operational counters of a storage backend.

    These describe the backend itself (how often it was read, written,
    snapshotted or retried), not the telemetry it stores.

    Attributes:
        reads (int): Successful `get`/`get_all` calls.
        writes (int): Metrics applied through `set`/`set_many`.
        write_errors (int): `set`/`set_many` calls that raised.
        snapshots (int): Full Metric Set files written.
        snapshot_errors (int): Snapshot writes that failed.
        retries (int): Attempts repeated by the resilience proxy.
    """

    reads: int = 0
    writes: int = 0
    write_errors: int = 0

    snapshots: int = 0
    snapshot_errors: int = 0

    retries: int = 0

    def reset(self) -> None:
        """Reset all counters to zero."""
        self.reads = 0
        self.writes = 0
        self.write_errors = 0
        self.snapshots = 0
        self.snapshot_errors = 0
        self.retries = 0

    def snapshot(self) -> Mapping[str, int]:
        """Return a read-only copy of the current counters."""
        return {
            "reads": self.reads,
            "writes": self.writes,
            "write_errors": self.write_errors,
            "snapshots": self.snapshots,
            "snapshot_errors": self.snapshot_errors,
            "retries": self.retries,
        }


class StorageMetricsMixin:
    """
    Equips a storage backend with a `StorageMetrics` container.

    The service never depends on these counters; they exist for inspection by
    operators and tests.
    """

    def __init__(self) -> None:
        self._metrics = StorageMetrics()

    @property
    def metrics(self) -> StorageMetrics:
        return self._metrics
