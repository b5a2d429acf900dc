from __future__ import annotations

from pathlib import Path

import pytest
from sayer.testing import SayerTestClient

from telemetra.cli.app import app
from telemetra.storage.database import DatabaseStorage, DatabaseStorageConfig


@pytest.fixture(scope="module")
def anyio_backend():
    # aiosqlite is asyncio-only
    return "asyncio"


@pytest.fixture
def snapshot_path(tmp_path: Path) -> Path:
    return tmp_path / "metrics-db.json"


@pytest.fixture
def db_config(tmp_path: Path) -> DatabaseStorageConfig:
    return DatabaseStorageConfig(dsn=f"sqlite:///{tmp_path / 'metrics.db'}")


@pytest.fixture
async def database(db_config: DatabaseStorageConfig):
    storage = await DatabaseStorage.connect(db_config)
    try:
        yield storage
    finally:
        await storage.aclose()


@pytest.fixture()
def cli() -> SayerTestClient:
    return SayerTestClient(app)
