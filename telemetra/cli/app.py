from __future__ import annotations

from sayer import Sayer

from telemetra.cli.snapshot.app import snapshot
from telemetra.cli.storage.app import storage

help = """
Telemetra maintenance CLI.

Inspect metric snapshots and operate on the relational metric store.
Defaults come from `FILE_STORAGE_PATH` and `DATABASE_DSN`.
"""

app = Sayer(
    name="telemetra",
    help=help,
)

app.add_command(snapshot)
app.add_command(storage)
