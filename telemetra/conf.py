from __future__ import annotations

import logging
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .service import MetricService, SnapshotConfig
from .storage.config import (
    FileStorageConfig,
    MemoryStorageConfig,
    RelationalStorageConfig,
    StorageConfig,
    build_storage,
)
from .storage.database import DatabaseStorageConfig

DEFAULT_STORE_INTERVAL = 300
DEFAULT_FILE_STORAGE_PATH = "/tmp/metrics-db.json"


class Settings(BaseSettings):
    """
    Process-level configuration of the metric server.

    Every field is read from the environment variable of the same name in
    upper case (`STORE_INTERVAL`, `FILE_STORAGE_PATH`, `DATABASE_DSN`,
    `RESTORE`, `LOG_LEVEL`), except `pool_size`, which reads
    `DATABASE_POOL_SIZE`. Keyword arguments override the environment.

    Attributes:
        store_interval (int): Seconds between periodic snapshots. `0` makes
            file storage write synchronously on every mutation.
        file_storage_path (str): Snapshot file. Empty selects memory storage.
        database_dsn (str): Relational DSN. Non-empty selects relational
            storage and takes precedence over the file path.
        restore (bool): Replay the snapshot on startup.
        log_level (str): Root logging level name.
        pool_size (int): Relational connection pool size.
        acquire_timeout (float): Seconds to wait for a pooled connection.

    Raises:
        pydantic.ValidationError: If a variable holds a malformed value.
    """

    model_config = SettingsConfigDict(extra="ignore")

    store_interval: int = Field(default=DEFAULT_STORE_INTERVAL, ge=0)
    file_storage_path: str = DEFAULT_FILE_STORAGE_PATH
    database_dsn: str = ""
    restore: bool = True
    log_level: str = "info"
    pool_size: int = Field(default=4, ge=1, validation_alias=AliasChoices("DATABASE_POOL_SIZE", "pool_size"))
    acquire_timeout: float = Field(default=5.0, gt=0)

    def storage_config(self) -> StorageConfig:
        """
        Select the storage backend.

        A DSN selects relational storage; otherwise an empty file path selects
        memory storage; otherwise file storage, synchronous when
        `store_interval` is `0`.
        """
        if self.database_dsn:
            return RelationalStorageConfig(
                database=DatabaseStorageConfig(
                    dsn=self.database_dsn,
                    pool_size=self.pool_size,
                    acquire_timeout=self.acquire_timeout,
                )
            )
        if not self.file_storage_path:
            return MemoryStorageConfig()
        return FileStorageConfig(
            path=Path(self.file_storage_path),
            sync_write=self.store_interval == 0,
        )

    def snapshot_config(self) -> SnapshotConfig:
        path = Path(self.file_storage_path) if self.file_storage_path else None
        return SnapshotConfig(path=path, interval=self.store_interval, restore=self.restore)


def configure_logging(level: str = "info") -> None:
    """Install a root handler at `level` (a name such as `"debug"`)."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level!r}")
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def build_service(
    settings: Settings | None = None,
    *,
    logger: logging.Logger | None = None,
) -> MetricService:
    """
    Build the storage selected by `settings` and wrap it in a service.

    The returned service is not started yet; use `async with` or `start()`.
    """
    settings = settings or Settings()
    storage = await build_storage(settings.storage_config(), logger=logger)
    return MetricService(storage, settings.snapshot_config(), logger=logger)
