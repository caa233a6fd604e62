"""SQLite connection helper shared by the repositories."""
from __future__ import annotations

import contextlib
import sqlite3
from pathlib import Path
from typing import Iterator

from podcraft.core.logging import debug, get_logger

_LOG = get_logger("podcraft.db")


@contextlib.contextmanager
def connect(db_path: str | Path, immediate: bool = False) -> Iterator[sqlite3.Connection]:
    """
    Open a connection, commit on success, roll back on error, always close.

    A file path is required; every call opens a fresh connection, so
    ":memory:" would give each call its own empty database.

    With `immediate`, the block runs in a BEGIN IMMEDIATE transaction: the
    write lock is taken before the first read, so read-check-update
    sequences from concurrent requests run one after another (waiting up
    to the busy timeout) instead of interleaving.
    """
    path = Path(db_path)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)

    connection = sqlite3.connect(str(path), timeout=10.0)
    connection.row_factory = sqlite3.Row
    debug(_LOG, "db_connect", path=str(path), immediate=immediate)
    try:
        with connection:
            if immediate:
                connection.execute("BEGIN IMMEDIATE")
            yield connection
    finally:
        connection.close()


def column_names(connection: sqlite3.Connection, table: str) -> set[str]:
    return {row["name"] for row in connection.execute(f"PRAGMA table_info({table})")}
