from __future__ import annotations

from pathlib import Path
from typing import Annotated

from sayer import Option, error, group, info, success

from telemetra.cli._utils import database_service, resolve_dsn, resolve_path
from telemetra.exceptions import SnapshotError, StorageError
from telemetra.models import format_payload
from telemetra.snapshot import load_snapshot, metric_list

help = """
Snapshot Management CLI Module.

**Inspect, back up and restore metric snapshots**

A snapshot is the JSON file the file-backed store and the metric service write
the full Metric Set to. These commands read it directly, export a relational
store into it, or replay it into a relational store.
"""


snapshot = group(
    name="snapshot",
    help=help,
)


@snapshot.command()
async def show(
    path: Annotated[Path | None, Option(None, help="Snapshot file path")],
) -> None:
    """
    Print every metric stored in a snapshot file.

    A missing file is reported as an empty snapshot, the same way the service
    treats it on restore.

    Exit Codes:
        0: The snapshot was read (possibly empty).
        2: The snapshot exists but cannot be decoded.
    """
    target = resolve_path(path)

    try:
        values = await load_snapshot(target)
    except SnapshotError as e:
        error(f"Cannot read snapshot: {e}")
        raise SystemExit(2) from None

    if not values:
        info(f"Snapshot {target} is empty.")
        return

    info(f"Snapshot {target} holds {len(values)} metrics:")
    for metric in metric_list(values):
        info(f"  {metric.type} {metric.id} = {format_payload(metric)}")


@snapshot.command()
async def export(
    dsn: Annotated[str | None, Option(None, help="Database DSN")],
    path: Annotated[Path | None, Option(None, help="Snapshot file path")],
) -> None:
    """
    Back up the current Metric Set of a relational store into a snapshot file.

    Exit Codes:
        0: The snapshot was written.
        1: The database could not be reached.
        2: The snapshot could not be written.
    """
    target = resolve_path(path)

    try:
        service = await database_service(resolve_dsn(dsn), target)
    except StorageError as e:
        error(str(e))
        raise SystemExit(1) from None

    try:
        await service.save_snapshot()
        count = len(await service.get_all_metrics())
    except SnapshotError as e:
        error(f"Cannot write snapshot: {e}")
        raise SystemExit(2) from None
    finally:
        await service.aclose()

    success(f"Exported {count} metrics to {target}")


@snapshot.command()
async def restore(
    dsn: Annotated[str | None, Option(None, help="Database DSN")],
    path: Annotated[Path | None, Option(None, help="Snapshot file path")],
) -> None:
    """
    Replay a snapshot file into a relational store.

    Counters are replayed additively: restoring into a store that already
    holds totals for the same keys adds the snapshot totals on top.

    Exit Codes:
        0: The snapshot was replayed.
        1: The database could not be reached.
        2: The snapshot could not be read.
    """
    target = resolve_path(path)

    try:
        service = await database_service(resolve_dsn(dsn), target)
    except StorageError as e:
        error(str(e))
        raise SystemExit(1) from None

    try:
        count = await service.restore()
    except SnapshotError as e:
        error(f"Cannot read snapshot: {e}")
        raise SystemExit(2) from None
    finally:
        await service.aclose()

    success(f"Restored {count} metrics from {target}")
