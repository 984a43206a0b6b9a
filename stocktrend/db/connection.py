"""
SQLite connection management.

``get_connection()`` is a context manager that:
  - retries opening the database a bounded number of times,
  - sets a busy timeout and (optionally) WAL journal mode,
  - uses ``sqlite3.Row`` so rows can be read by column name,
  - commits on clean exit and rolls back on exception.

Usage::

    from stocktrend.db.connection import get_connection

    with get_connection("data/db/stocktrend.db") as conn:
        conn.execute("SELECT 1")
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Generator, Optional

from stocktrend.utils.retry import retry

if TYPE_CHECKING:
    from stocktrend.config import DatabaseConfig

logger = logging.getLogger(__name__)


@contextmanager
def get_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
    retries: int = 1,
    retry_interval_s: float = 0.0,
    should_stop: Optional[Callable[[], bool]] = None,
) -> Generator[sqlite3.Connection, None, None]:
    """Context manager yielding a configured SQLite connection.

    Args:
        db_path: Database file, or ``":memory:"``. Parent directories are
            created for file paths.
        wal_mode: Enable WAL journal mode.
        busy_timeout_ms: How long to wait on a locked database.
        retries: Attempts at opening the database before giving up.
        retry_interval_s: Seconds between attempts.
        should_stop: Cancellation check consulted between attempts.

    Yields:
        An open ``sqlite3.Connection``.

    Raises:
        sqlite3.Error: If the database cannot be opened after ``retries``
            attempts.
        RetryCancelled: If ``should_stop`` turned true while retrying.
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    def _open() -> sqlite3.Connection:
        conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)
        try:
            conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms};")
            if wal_mode and db_path != ":memory:":
                conn.execute("PRAGMA journal_mode = WAL;")
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    conn = retry(_open, limit=retries, interval_s=retry_interval_s, should_stop=should_stop)
    conn.row_factory = sqlite3.Row
    logger.debug("Opened database %s", db_path)

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def connection_from_config(
    config: "DatabaseConfig",
    db_path: Optional[str] = None,
    should_stop: Optional[Callable[[], bool]] = None,
    busy_timeout_ms: Optional[int] = None,
):
    """``get_connection()`` with settings taken from ``[database]``.

    ``busy_timeout_ms`` replaces the configured lock wait when given.
    """
    return get_connection(
        db_path or config.db_path,
        wal_mode=config.wal_mode,
        busy_timeout_ms=config.busy_timeout_ms if busy_timeout_ms is None else busy_timeout_ms,
        retries=config.connect_retries,
        retry_interval_s=config.connect_retry_interval_s,
        should_stop=should_stop,
    )
