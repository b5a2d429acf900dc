from .base import MetricStorage
from .config import (
    FileStorageConfig,
    MemoryStorageConfig,
    RelationalStorageConfig,
    StorageConfig,
    build_storage,
)
from .database import DatabaseStorage, DatabaseStorageConfig
from .file import FileStorage
from .memory import InMemoryStorage
from .retry import RetryingStorage, RetryPolicy

__all__ = [
    "DatabaseStorage",
    "DatabaseStorageConfig",
    "FileStorage",
    "FileStorageConfig",
    "InMemoryStorage",
    "MemoryStorageConfig",
    "MetricStorage",
    "RelationalStorageConfig",
    "RetryPolicy",
    "RetryingStorage",
    "StorageConfig",
    "build_storage",
]
