from __future__ import annotations

import logging
from pathlib import Path

from telemetra.exceptions import SnapshotError
from telemetra.snapshot import save_snapshot

from .memory import InMemoryStorage

log = logging.getLogger(__name__)


class FileStorage(InMemoryStorage):
    """
    An in-memory metric store made durable by writing snapshots to a file.

    Reads are always served from memory. The file is a write-behind target
    only; it is read once, at startup, when `MetricService` restores from it.

    Modes
    -----
    - **Synchronous** (`sync_write=True`): every `set`/`set_many`, after
      mutating the map and while still holding the lock, serializes the
      entire Metric Set to `path` before returning.
    - **Deferred** (`sync_write=False`): writes never touch the file. The
      owning service snapshots on a fixed timer and once more on shutdown.

    A failed synchronous write raises `SnapshotError`. The in-memory mutation
    is already applied at that point and is not undone.

    Attributes
    ----------
    _path : Path
        Snapshot file location.
    _sync_write : bool
        Whether each mutation is followed by a snapshot.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        sync_write: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__()
        self._path = Path(path)
        self._sync_write = sync_write
        self._logger = logger or log

    @property
    def path(self) -> Path:
        return self._path

    @property
    def sync_write(self) -> bool:
        return self._sync_write

    async def _after_write(self) -> None:
        if not self._sync_write:
            return
        try:
            await save_snapshot(self._path, dict(self._values))
        except SnapshotError:
            self.metrics.write_errors += 1
            self.metrics.snapshot_errors += 1
            self._logger.error("Failed to write metrics snapshot to %s", self._path)
            raise
        self.metrics.snapshots += 1
