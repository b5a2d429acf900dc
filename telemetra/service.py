"""
MetricService: validation, delegation and snapshot lifecycle.

The service is the only entry point request handlers use. It owns:
- input validation (nothing invalid ever reaches a backend),
- restore-on-start from the snapshot file,
- the periodic snapshot task and the final snapshot on shutdown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import anyio
import anyio.abc

from .exceptions import SnapshotError
from .models import (
    Metric,
    MetricUpdate,
    ensure_known_kind,
    format_payload,
    parse_metric,
    validate_metric,
)
from .snapshot import load_snapshot, metric_set, save_snapshot
from .storage.base import MetricStorage

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SnapshotConfig:
    """
    Snapshot behaviour of a `MetricService`.

    Attributes:
        path (Path | None): Snapshot file. `None` disables snapshots entirely.
        interval (float): Seconds between periodic snapshots. `0` disables the
            timer (file storage then writes synchronously on every mutation).
        restore (bool): Replay the snapshot into the backend on `start()`.
    """

    path: Path | None = None
    interval: float = 0
    restore: bool = False


class MetricService:
    """Backend-agnostic business rules for metric updates and reads."""

    def __init__(
        self,
        storage: MetricStorage,
        snapshot: SnapshotConfig | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._storage = storage
        self._snapshot = snapshot or SnapshotConfig()
        self._logger = logger or log

        self._tg: anyio.abc.TaskGroup | None = None
        self._snapshot_scope: anyio.CancelScope | None = None
        self._started = False
        self._closed = False

    @property
    def storage(self) -> MetricStorage:
        return self._storage

    @property
    def snapshot_config(self) -> SnapshotConfig:
        return self._snapshot

    async def start(self) -> None:
        """
        Restore from the snapshot (if enabled) and start periodic snapshots.

        A failed restore is fatal: the error propagates and the service does
        not start.
        """
        if self._closed:
            raise RuntimeError("MetricService is closed.")
        if self._started:
            return

        if self._snapshot.restore and self._snapshot.path is not None:
            restored = await self.restore()
            self._logger.info("Restored %d metrics from %s", restored, self._snapshot.path)

        if self._snapshot.interval > 0 and self._snapshot.path is not None:
            self._tg = await anyio.create_task_group().__aenter__()
            await self._tg.start(self._snapshot_loop, self._snapshot.interval)

        self._started = True

    async def _snapshot_loop(
        self,
        interval: float,
        *,
        task_status: anyio.abc.TaskStatus[None] = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        """Save a snapshot every `interval` seconds until cancelled."""
        with anyio.CancelScope() as scope:
            self._snapshot_scope = scope
            task_status.started()
            while True:
                await anyio.sleep(interval)
                try:
                    await self.save_snapshot()
                except Exception:
                    # A failed periodic snapshot must not take the service down.
                    self._logger.exception("Failed to save metrics snapshot")
                    continue
                self._logger.info("Metrics saved to file after %s seconds", interval)

    async def get_metric(self, kind: str, id: str) -> Metric:
        return await self._storage.get(kind, id)

    async def get_metric_value(self, kind: str, id: str) -> str:
        """Return the current value of a metric rendered as text."""
        kind = ensure_known_kind(kind)
        metric = await self._storage.get(kind, id)
        return format_payload(metric)

    async def set_metric(self, metric: Metric) -> Metric:
        """
        Validate and apply one update.

        Raises
        ------
        NilGaugeValue
            A gauge without `value`.
        NilCounterDelta
            A counter without `delta`.
        IncorrectMetricType
            An unknown kind.
        """
        validate_metric(metric)
        return await self._storage.set(metric)

    async def set_metrics(self, metrics: Sequence[Metric]) -> list[Metric]:
        """
        Validate every item, then apply the batch.

        A single invalid item rejects the whole batch before the backend is
        called.
        """
        for metric in metrics:
            validate_metric(metric)
        return await self._storage.set_many(list(metrics))

    async def set_metric_value(self, update: MetricUpdate) -> Metric:
        """
        Parse a textual update and apply it.

        Raises
        ------
        IncorrectMetricValue
            If the value does not parse for the declared kind.
        IncorrectMetricType
            If the kind is unknown.
        """
        metric = parse_metric(update)
        return await self._storage.set(metric)

    async def get_all_metrics(self) -> list[Metric]:
        return await self._storage.get_all()

    async def ping(self) -> None:
        await self._storage.ping()

    async def save_snapshot(self) -> None:
        """
        Write the backend's full Metric Set to the snapshot file.

        The backend is only locked while `get_all` reads it; the file write
        happens afterwards, so a concurrent update may land between the two.
        """
        path = self._require_path()
        values = metric_set(await self._storage.get_all())
        try:
            await save_snapshot(path, values)
        except SnapshotError:
            self._storage.metrics.snapshot_errors += 1
            raise
        self._storage.metrics.snapshots += 1

    async def restore(self) -> int:
        """
        Replay the snapshot file into the backend through `set`.

        Snapshots hold accumulated totals, so replaying one entry per counter
        reproduces the counter exactly on an empty backend.

        Returns
        -------
        int
            The number of metrics replayed.
        """
        path = self._require_path()
        values = await load_snapshot(path)
        for key, payload in values.items():
            await self._storage.set(Metric.from_payload(key, payload))
        return len(values)

    def _require_path(self) -> Path:
        if self._snapshot.path is None:
            raise SnapshotError("No snapshot file configured")
        return self._snapshot.path

    async def aclose(self) -> None:
        """
        Stop periodic snapshots, save a final snapshot and close the backend.

        The final snapshot runs after the periodic task has fully stopped, so
        the two never overlap.
        """
        if self._closed:
            return
        self._closed = True

        if self._snapshot_scope is not None:
            self._snapshot_scope.cancel()
            self._snapshot_scope = None

        if self._tg is not None:
            tg = self._tg
            self._tg = None
            await tg.__aexit__(None, None, None)

        try:
            if self._started and self._snapshot.path is not None:
                await self.save_snapshot()
                self._logger.info("Metrics saved to %s on shutdown", self._snapshot.path)
        finally:
            await self._storage.aclose()

    async def __aenter__(self) -> MetricService:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
