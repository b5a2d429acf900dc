from __future__ import annotations

import contextlib
import logging
import math
import sqlite3
import time
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass

import aiosqlite
import anyio

from telemetra.exceptions import ItemNotFound, StorageError
from telemetra.models import Metric, MetricKey, MetricKind, Payload, add_delta, ensure_known_kind, validate_metric

from .metrics import StorageMetricsMixin
from .migrations import apply_migrations

log = logging.getLogger(__name__)

MEMORY_DSN = ":memory:"

SELECT_LATEST = """
SELECT delta, value FROM metrics
WHERE name = ? AND type = ?
ORDER BY id DESC
LIMIT 1;
"""

SELECT_ALL_LATEST = """
SELECT m.name, m.type, m.delta, m.value
FROM metrics AS m
JOIN (SELECT MAX(id) AS id FROM metrics GROUP BY name, type) AS latest ON latest.id = m.id
ORDER BY m.type, m.name;
"""

INSERT_COUNTER = "INSERT INTO metrics (name, type, delta, created_at) VALUES (?, ?, ?, ?);"
INSERT_GAUGE = "INSERT INTO metrics (name, type, value, created_at) VALUES (?, ?, ?, ?);"


def _row_payload(kind: str, delta: int | None, value: float | None) -> Payload:
    if kind == MetricKind.COUNTER:
        return int(delta)  # type: ignore[arg-type]
    # SQLite stores a NaN REAL as NULL; gauge rows are never written without a value.
    return math.nan if value is None else float(value)


@dataclass(frozen=True, slots=True)
class DatabaseStorageConfig:
    """
    Configuration of the relational metric store.

    Attributes:
        dsn (str): `sqlite:///path/to/db`, a bare file path, or `:memory:`.
        pool_size (int): Number of pooled connections. Forced to 1 for
            `:memory:`, where every connection would see its own database.
        acquire_timeout (float): Seconds an operation waits for a pooled
            connection before failing with `StorageError`.
    """

    dsn: str
    pool_size: int = 4
    acquire_timeout: float = 5.0

    @property
    def database(self) -> str:
        """The filesystem path (or `:memory:`) the DSN points at."""
        dsn = self.dsn
        for prefix in ("sqlite:///", "sqlite://"):
            if dsn.startswith(prefix):
                dsn = dsn[len(prefix):]
                break
        return dsn or MEMORY_DSN

    @property
    def effective_pool_size(self) -> int:
        if self.database == MEMORY_DSN:
            return 1
        return max(1, self.pool_size)


class _ConnectionPool:
    """
    A bounded pool of SQLite connections backed by an AnyIO memory object
    stream. Idle connections sit in the stream; `acquire` takes one out and
    puts it back when the caller is done.
    """

    def __init__(self, connections: Sequence[aiosqlite.Connection]) -> None:
        self._connections = list(connections)
        send, recv = anyio.create_memory_object_stream[aiosqlite.Connection](len(self._connections))
        self._send = send
        self._recv = recv
        for conn in self._connections:
            self._send.send_nowait(conn)

    @asynccontextmanager
    async def acquire(self, timeout: float) -> AsyncIterator[aiosqlite.Connection]:
        try:
            with anyio.fail_after(timeout):
                conn = await self._recv.receive()
        except TimeoutError:
            raise StorageError(f"No database connection available within {timeout}s") from None
        except (anyio.ClosedResourceError, anyio.EndOfStream):
            raise StorageError("Database storage is closed") from None
        try:
            yield conn
        finally:
            with contextlib.suppress(anyio.ClosedResourceError, anyio.BrokenResourceError):
                self._send.send_nowait(conn)

    async def aclose(self) -> None:
        await self._send.aclose()
        await self._recv.aclose()
        for conn in self._connections:
            try:
                await conn.close()
            except (sqlite3.Error, ValueError):
                log.warning("Failed to close database connection", exc_info=True)
        self._connections.clear()


class DatabaseStorage(StorageMetricsMixin):
    """
    A relational metric store keeping an append-only log in SQLite.

    Every `set` appends a row `(name, type, delta | value, created_at)`; the
    current value of a key is its most recent row. The log is an
    implementation detail and is never exposed as history.

    Counter merge
    -------------
    On `set` for a counter, the latest stored total is read (a missing row
    counts as zero), the incoming delta is added, and the accumulated total is
    appended. The read and the append run inside one `BEGIN IMMEDIATE`
    transaction, which takes SQLite's write lock up front: two concurrent
    counter updates for the same key are serialized and no increment is lost.
    A total leaving the signed 64-bit range raises `IncorrectMetricValue` and
    nothing is appended.

    Batches
    -------
    `set_many` runs the whole batch in a single transaction. Any failing item
    rolls back every row written by the batch.

    Construction
    ------------
    Use `await DatabaseStorage.connect(config)`. It opens the pool, pings the
    database and applies pending migrations, and refuses to return a backend
    if any of those steps fails.
    """

    def __init__(
        self,
        pool: _ConnectionPool,
        config: DatabaseStorageConfig,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__()
        self._pool = pool
        self._cfg = config
        self._logger = logger or log
        self._closed = False

    @classmethod
    async def connect(
        cls,
        config: DatabaseStorageConfig,
        *,
        logger: logging.Logger | None = None,
    ) -> DatabaseStorage:
        """
        Open, check and migrate the database, then return a ready backend.

        Raises
        ------
        StorageError
            If a connection cannot be opened, the liveness probe fails or a
            migration fails.
        """
        logger = logger or log
        connections: list[aiosqlite.Connection] = []
        try:
            for _ in range(config.effective_pool_size):
                # Autocommit mode: transactions are opened explicitly.
                connections.append(await aiosqlite.connect(config.database, isolation_level=None))
            await connections[0].execute("SELECT 1")
            await apply_migrations(connections[0], logger=logger)
        except (sqlite3.Error, OSError, ValueError) as e:
            for conn in connections:
                try:
                    await conn.close()
                except (sqlite3.Error, ValueError):
                    logger.warning("Failed to close database connection", exc_info=True)
            raise StorageError(f"Failed to initialize database storage: {e}") from e

        logger.info("Database storage ready (%s, pool size %d)", config.database, len(connections))
        return cls(_ConnectionPool(connections), config, logger=logger)

    @property
    def config(self) -> DatabaseStorageConfig:
        return self._cfg

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[aiosqlite.Connection]:
        if self._closed:
            raise StorageError("Database storage is closed")
        async with self._pool.acquire(self._cfg.acquire_timeout) as conn:
            yield conn

    @asynccontextmanager
    async def _transaction(self, conn: aiosqlite.Connection) -> AsyncIterator[aiosqlite.Connection]:
        await conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            try:
                with anyio.CancelScope(shield=True):
                    await conn.execute("ROLLBACK")
            except (sqlite3.Error, ValueError):
                self._logger.error("Failed to roll back the transaction", exc_info=True)
            raise
        await conn.execute("COMMIT")

    async def _latest(self, conn: aiosqlite.Connection, kind: str, id: str) -> Metric | None:
        async with conn.execute(SELECT_LATEST, (id, kind)) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        delta, value = row
        return Metric.from_payload(MetricKey(type=kind, id=id), _row_payload(kind, delta, value))

    async def _insert(self, conn: aiosqlite.Connection, metric: Metric) -> Metric:
        """Append one row for `metric`. The caller owns the transaction."""
        now = time.time()
        if metric.type == MetricKind.COUNTER:
            current = await self._latest(conn, metric.type, metric.id)
            total = add_delta(metric.id, current.delta if current is not None else None, metric.delta)  # type: ignore[arg-type]
            await conn.execute(INSERT_COUNTER, (metric.id, metric.type, total, now))
            stored = Metric.counter(metric.id, total)
        else:
            value = float(metric.value)  # type: ignore[arg-type]
            await conn.execute(INSERT_GAUGE, (metric.id, metric.type, value, now))
            stored = Metric.gauge(metric.id, value)
        self.metrics.writes += 1
        return stored

    async def get(self, kind: str, id: str) -> Metric:
        kind = ensure_known_kind(kind)
        async with self._connection() as conn:
            metric = await self._latest(conn, kind, id)
        if metric is None:
            raise ItemNotFound(f"Metric {kind}/{id} not found")
        self.metrics.reads += 1
        return metric

    async def set(self, metric: Metric) -> Metric:
        validate_metric(metric)
        try:
            async with self._connection() as conn:
                if metric.type == MetricKind.COUNTER:
                    async with self._transaction(conn):
                        return await self._insert(conn, metric)
                return await self._insert(conn, metric)
        except Exception:
            self.metrics.write_errors += 1
            raise

    async def set_many(self, metrics: Sequence[Metric]) -> list[Metric]:
        for metric in metrics:
            validate_metric(metric)
        try:
            async with self._connection() as conn:
                async with self._transaction(conn):
                    return [await self._insert(conn, metric) for metric in metrics]
        except Exception:
            self.metrics.write_errors += 1
            raise

    async def get_all(self) -> list[Metric]:
        async with self._connection() as conn:
            rows = await conn.execute_fetchall(SELECT_ALL_LATEST)
        out: list[Metric] = []
        for name, kind, delta, value in rows:
            out.append(Metric.from_payload(MetricKey(type=kind, id=name), _row_payload(kind, delta, value)))
        self.metrics.reads += 1
        return out

    async def ping(self) -> None:
        async with self._connection() as conn:
            await conn.execute("SELECT 1")

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._pool.aclose()

    @property
    def closed(self) -> bool:
        return self._closed
