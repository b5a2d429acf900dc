from __future__ import annotations

from pathlib import Path

from sayer import error

from telemetra.conf import Settings
from telemetra.service import MetricService, SnapshotConfig
from telemetra.storage.config import RelationalStorageConfig, build_storage
from telemetra.storage.database import DatabaseStorageConfig


def resolve_path(path: Path | None) -> Path:
    """
    Return the snapshot path to operate on.

    An explicit `--path` wins; otherwise `FILE_STORAGE_PATH` (or its default)
    is used.
    """
    if path is not None:
        return path
    configured = Settings().file_storage_path
    if not configured:
        error("No snapshot path given and FILE_STORAGE_PATH is empty.")
        raise SystemExit(1)
    return Path(configured)


def resolve_dsn(dsn: str | None) -> str:
    """Return `--dsn` or, when omitted, `DATABASE_DSN`."""
    if dsn:
        return dsn
    configured = Settings().database_dsn
    if not configured:
        error("No database DSN given and DATABASE_DSN is empty.")
        raise SystemExit(1)
    return configured


async def database_service(dsn: str, path: Path | None = None) -> MetricService:
    """
    Build a service over the relational store at `dsn`.

    The service is not started: no restore runs and no periodic task is
    scheduled, so closing it only releases the connections.
    """
    storage = await build_storage(RelationalStorageConfig(database=DatabaseStorageConfig(dsn=dsn)))
    return MetricService(storage, SnapshotConfig(path=path))
