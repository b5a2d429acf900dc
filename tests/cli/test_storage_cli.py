from __future__ import annotations

from pathlib import Path

import anyio
import pytest

from telemetra.models import Metric
from telemetra.storage.database import DatabaseStorage, DatabaseStorageConfig


@pytest.fixture(autouse=True)
def workdir(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DATABASE_DSN", raising=False)
    return tmp_path


def test_ping_reports_metric_count(cli):
    async def seed() -> None:
        storage = await DatabaseStorage.connect(DatabaseStorageConfig(dsn="sqlite:///metrics.db"))
        try:
            await storage.set(Metric.counter("hits", 1))
            await storage.set(Metric.gauge("temp", 1.0))
        finally:
            await storage.aclose()

    anyio.run(seed)

    result = cli.invoke("storage ping --dsn sqlite:///metrics.db")

    assert result.exit_code == 0
    assert "Storage is reachable." in result.output
    assert "2 metrics stored." in result.output


def test_ping_creates_schema_on_fresh_database(cli, workdir: Path):
    result = cli.invoke("storage ping --dsn sqlite:///fresh.db")

    assert result.exit_code == 0
    assert "0 metrics stored." in result.output
    assert (workdir / "fresh.db").exists()


def test_ping_uses_environment_dsn(cli, monkeypatch):
    monkeypatch.setenv("DATABASE_DSN", "sqlite:///env.db")

    result = cli.invoke("storage ping")

    assert result.exit_code == 0


def test_ping_unreachable_database(cli):
    result = cli.invoke("storage ping --dsn sqlite:///missing/dir/metrics.db")

    assert result.exit_code == 1


def test_ping_without_dsn(cli):
    result = cli.invoke("storage ping")

    assert result.exit_code == 1
