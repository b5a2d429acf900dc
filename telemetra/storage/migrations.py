"""
Ordered, idempotent schema migrations for the relational metric store.

Each migration runs in its own transaction and is recorded in the
`schema_migrations` table. Versions already recorded are skipped, so running
the whole list again is a no-op.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Sequence
from dataclasses import dataclass

import aiosqlite

log = logging.getLogger(__name__)

CREATE_MIGRATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    applied_at REAL NOT NULL
);
"""


@dataclass(frozen=True, slots=True)
class Migration:
    """A numbered group of DDL statements."""

    version: int
    name: str
    statements: tuple[str, ...]


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        version=1,
        name="create metrics log",
        statements=(
            """
            CREATE TABLE IF NOT EXISTS metrics (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                type TEXT NOT NULL,
                delta INTEGER,
                value REAL,
                created_at REAL NOT NULL
            );
            """,
        ),
    ),
    Migration(
        version=2,
        name="index latest row per key",
        statements=("CREATE INDEX IF NOT EXISTS idx_metrics_key ON metrics(name, type, id);",),
    ),
)


async def applied_versions(conn: aiosqlite.Connection) -> set[int]:
    """Return the migration versions already recorded in the database."""
    await conn.execute(CREATE_MIGRATIONS_TABLE)
    rows = await conn.execute_fetchall("SELECT version FROM schema_migrations")
    return {int(row[0]) for row in rows}


async def apply_migrations(
    conn: aiosqlite.Connection,
    migrations: Sequence[Migration] = MIGRATIONS,
    *,
    logger: logging.Logger | None = None,
) -> list[int]:
    """
    Bring the schema up to date.

    The connection must be in autocommit mode (`isolation_level=None`); each
    pending migration is wrapped in an explicit `BEGIN IMMEDIATE`/`COMMIT`.

    Returns
    -------
    list[int]
        Versions applied by this call, in order. Empty when the schema was
        already current.

    Raises
    ------
    ValueError
        If two migrations share a version.
    sqlite3.Error
        If a statement fails. The failing migration is rolled back.
    """
    logger = logger or log
    ordered = sorted(migrations, key=lambda m: m.version)
    versions = [m.version for m in ordered]
    if len(set(versions)) != len(versions):
        raise ValueError("Duplicate migration versions")

    done = await applied_versions(conn)
    applied: list[int] = []

    for migration in ordered:
        if migration.version in done:
            continue

        await conn.execute("BEGIN IMMEDIATE")
        try:
            for statement in migration.statements:
                await conn.execute(statement)
            await conn.execute(
                "INSERT INTO schema_migrations (version, name, applied_at) VALUES (?, ?, ?)",
                (migration.version, migration.name, time.time()),
            )
        except sqlite3.Error:
            await conn.execute("ROLLBACK")
            raise
        await conn.execute("COMMIT")

        logger.info("Applied migration %d (%s)", migration.version, migration.name)
        applied.append(migration.version)

    return applied
