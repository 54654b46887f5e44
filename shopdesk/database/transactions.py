"""
Write-transaction helpers shared by the repositories and engine services.

Connections are opened in autocommit mode (isolation_level=None), so every
mutation the engine performs goes through `immediate_tx`: BEGIN IMMEDIATE takes
the database write lock up front, commit on success, rollback on error.
`run_in_write_tx` adds the bounded retry used for contended critical sections.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from contextlib import contextmanager
from typing import Callable, TypeVar

from ..constants import MAX_WRITE_RETRIES, RETRY_BACKOFF_SEC
from ..errors import ConcurrentStockConflict

_log = logging.getLogger(__name__)

T = TypeVar("T")


class StaleWrite(Exception):
    """A compare-and-set update matched no row: the value changed since it was read."""
    pass


def is_busy_error(exc: BaseException) -> bool:
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    msg = str(exc).lower()
    return "locked" in msg or "busy" in msg


@contextmanager
def immediate_tx(conn: sqlite3.Connection):
    """
    Start an IMMEDIATE transaction, commit on success, rollback on error.
    Joins the caller's transaction when one is already open.
    """
    if conn.in_transaction:
        yield conn
        return
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
        conn.commit()
    except BaseException:
        if conn.in_transaction:
            conn.rollback()
        raise


def run_in_write_tx(
    conn: sqlite3.Connection,
    fn: Callable[[], T],
    *,
    attempts: int = MAX_WRITE_RETRIES,
    backoff: float = RETRY_BACKOFF_SEC,
    label: str = "write",
) -> T:
    """
    Run `fn` inside an IMMEDIATE transaction, retrying on lock contention or a
    compare-and-set miss. Raises ConcurrentStockConflict once `attempts` are used up.

    Domain errors raised by `fn` roll back and propagate immediately.
    """
    if conn.in_transaction:
        # nested inside a caller-owned transaction: the caller owns retries
        return fn()

    last_exc: BaseException | None = None
    for attempt in range(1, attempts + 1):
        try:
            with immediate_tx(conn):
                return fn()
        except StaleWrite as e:
            last_exc = e
        except sqlite3.OperationalError as e:
            if not is_busy_error(e):
                raise
            last_exc = e
        _log.warning("%s: contention on attempt %d/%d (%s)", label, attempt, attempts, last_exc)
        if attempt < attempts:
            time.sleep(backoff * attempt)

    raise ConcurrentStockConflict(attempts) from last_exc
