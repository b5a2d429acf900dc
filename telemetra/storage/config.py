from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from .base import MetricStorage
from .database import DatabaseStorage, DatabaseStorageConfig
from .file import FileStorage
from .memory import InMemoryStorage
from .retry import RetryingStorage, RetryPolicy

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MemoryStorageConfig:
    """Volatile storage. Carries no settings."""


@dataclass(frozen=True, slots=True)
class FileStorageConfig:
    """
    File-backed storage.

    Attributes:
        path (Path): Snapshot file.
        sync_write (bool): Write the snapshot after every mutation instead of
            leaving it to the service timer.
    """

    path: Path
    sync_write: bool = True


@dataclass(frozen=True, slots=True)
class RelationalStorageConfig:
    """
    Relational storage wrapped in the resilience proxy.

    Attributes:
        database (DatabaseStorageConfig): Connection and pool settings.
        retry (RetryPolicy): Retry schedule for connection-level failures.
    """

    database: DatabaseStorageConfig
    retry: RetryPolicy = field(default_factory=RetryPolicy)


StorageConfig = Union[MemoryStorageConfig, FileStorageConfig, RelationalStorageConfig]


async def build_storage(
    config: StorageConfig,
    *,
    logger: logging.Logger | None = None,
) -> MetricStorage:
    """
    Construct the backend selected by `config`.

    Exactly one backend is built per process. The relational backend is
    returned wrapped in `RetryingStorage`.

    Raises
    ------
    StorageError
        If the relational backend cannot be reached or migrated.
    TypeError
        If `config` is not one of the storage variants.
    """
    logger = logger or log

    if isinstance(config, RelationalStorageConfig):
        storage = await DatabaseStorage.connect(config.database, logger=logger)
        logger.info("Initialized database storage")
        return RetryingStorage(storage, config.retry, logger=logger)

    if isinstance(config, FileStorageConfig):
        logger.info("Initialized file storage at %s (sync_write=%s)", config.path, config.sync_write)
        return FileStorage(config.path, sync_write=config.sync_write, logger=logger)

    if isinstance(config, MemoryStorageConfig):
        logger.info("Initialized memory storage")
        return InMemoryStorage()

    raise TypeError(f"Unsupported storage configuration: {type(config).__name__}")
