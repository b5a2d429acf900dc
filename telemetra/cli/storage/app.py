from __future__ import annotations

from typing import Annotated

from sayer import Option, error, group, info, success

from telemetra.cli._utils import database_service, resolve_dsn
from telemetra.exceptions import StorageError

help = """
Storage CLI Module.

**Check the relational metric store**
"""


storage = group(
    name="storage",
    help=help,
)


@storage.command()
async def ping(
    dsn: Annotated[str | None, Option(None, help="Database DSN")],
) -> None:
    """
    Open the relational store, run pending migrations and probe it.

    Exit Codes:
        0: The store is reachable and its schema is current.
        1: The store could not be opened, migrated or probed.
    """
    try:
        service = await database_service(resolve_dsn(dsn))
    except StorageError as e:
        error(str(e))
        raise SystemExit(1) from None

    try:
        await service.ping()
        metrics = await service.get_all_metrics()
    except StorageError as e:
        error(str(e))
        raise SystemExit(1) from None
    finally:
        await service.aclose()

    success("Storage is reachable.")
    info(f"{len(metrics)} metrics stored.")
