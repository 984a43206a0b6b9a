"""
SQLite schema DDL.

Every statement uses ``IF NOT EXISTS``, so ``apply_schema()`` is idempotent.

Tables
------
  daily         scraped daily prices, key (code, date), insert-ignore
  movingavg     moving averages, key (code, date), upsert
  trend         trend signals, key (code, date), upsert
  run_metadata  pipeline stage audit log

The three data tables keep every value as TEXT: rows travel through the
``RowStore`` as flat string tuples and the pipeline does its own conversion.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_DAILY = """
CREATE TABLE IF NOT EXISTS daily (
    code        TEXT NOT NULL,
    date        TEXT NOT NULL,
    open        TEXT,
    high        TEXT,
    low         TEXT,
    close       TEXT,
    turnover    TEXT,
    modified    TEXT,
    PRIMARY KEY (code, date)
);
"""

_DDL_MOVINGAVG = """
CREATE TABLE IF NOT EXISTS movingavg (
    code        TEXT NOT NULL,
    date        TEXT NOT NULL,
    moving3     TEXT,
    moving5     TEXT,
    moving7     TEXT,
    moving10    TEXT,
    moving20    TEXT,
    moving60    TEXT,
    moving100   TEXT,
    PRIMARY KEY (code, date)
);
"""

_DDL_TREND = """
CREATE TABLE IF NOT EXISTS trend (
    code              TEXT NOT NULL,
    date              TEXT NOT NULL,
    trend             TEXT,
    trendTurn         TEXT,
    growthRate        TEXT,
    crossMoving5      TEXT,
    continuationDays  TEXT,
    PRIMARY KEY (code, date)
);
CREATE INDEX IF NOT EXISTS idx_trend_date ON trend (date);
"""

_DDL_RUN_METADATA = """
CREATE TABLE IF NOT EXISTS run_metadata (
    run_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    run_slug        TEXT    NOT NULL UNIQUE,
    pipeline_stage  TEXT    NOT NULL,
    status          TEXT    NOT NULL,
    target_date     TEXT,
    config_snapshot TEXT    NOT NULL,
    rows_processed  INTEGER NOT NULL DEFAULT 0,
    error_message   TEXT,
    started_at      TEXT    NOT NULL,
    finished_at     TEXT
);
CREATE INDEX IF NOT EXISTS idx_run_metadata_stage ON run_metadata (pipeline_stage, started_at);
"""

_ALL_DDL = [_DDL_DAILY, _DDL_MOVINGAVG, _DDL_TREND, _DDL_RUN_METADATA]

# Column count of each row-store table, used to validate writes.
DATA_TABLE_COLUMNS: dict[str, int] = {
    "daily": 8,
    "movingavg": 9,
    "trend": 7,
}

ALL_TABLE_NAMES = [*DATA_TABLE_COLUMNS, "run_metadata"]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Create every table and index that does not exist yet."""
    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)
    conn.commit()
    logger.info("Schema applied: %d tables created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Table names present in the database, sorted."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row[0] for row in rows]
