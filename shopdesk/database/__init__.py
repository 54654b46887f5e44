# shopdesk/database/__init__.py
from __future__ import annotations

import sqlite3
from pathlib import Path

from ..config import BUSY_TIMEOUT, DB_PATH
from ..constants import SCHEMA_VERSION, TABLE_SCHEMA_VERSION
from . import schema as schema_module
from .transactions import immediate_tx, run_in_write_tx


def schema_version(conn: sqlite3.Connection) -> str | None:
    """Version stamped on the file, or None before the first stamp."""
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (TABLE_SCHEMA_VERSION,)
    ).fetchone()
    if row is None:
        return None
    row = conn.execute(f"SELECT version FROM {TABLE_SCHEMA_VERSION} WHERE id=1;").fetchone()
    return row["version"] if row else None


def _stamp_schema_version(conn: sqlite3.Connection) -> None:
    conn.execute(f"""
        CREATE TABLE IF NOT EXISTS {TABLE_SCHEMA_VERSION}(
            id INTEGER PRIMARY KEY CHECK (id=1),
            version TEXT NOT NULL
        );
    """)
    conn.execute(
        f"INSERT INTO {TABLE_SCHEMA_VERSION}(id, version) VALUES (1, ?) "
        "ON CONFLICT(id) DO UPDATE SET version=excluded.version;",
        (SCHEMA_VERSION,),
    )


def get_connection(
    db_path: Path | str | None = None,
    *,
    apply_schema: bool = True,
) -> sqlite3.Connection:
    """
    Returns a sqlite3.Connection with:
      - WAL mode
      - foreign_keys ON
      - row_factory = sqlite3.Row (so rows behave like dicts and tuples)
      - autocommit mode; writes go through database.transactions.immediate_tx
    Ensures the schema is applied idempotently unless apply_schema=False
    (worker threads opening an already-initialized file).

    A connection must not be shared across threads; open one per thread.
    """
    path = Path(db_path) if db_path is not None else DB_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    if apply_schema:
        # Always apply the schema (idempotent: CREATE IF NOT EXISTS)
        schema_module.init_schema(path)

    conn = sqlite3.connect(path, timeout=BUSY_TIMEOUT, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA journal_mode = WAL;")

    if apply_schema and schema_version(conn) != SCHEMA_VERSION:
        _stamp_schema_version(conn)

    return conn


__all__ = [
    "get_connection",
    "immediate_tx",
    "run_in_write_tx",
    "schema_version",
]
