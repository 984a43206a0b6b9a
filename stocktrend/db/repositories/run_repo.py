"""
Repository for the ``run_metadata`` audit table.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Any, Optional

from stocktrend.models.meta import RunMetadata

# Columns written on insert, in statement order. ``run_id`` is assigned by SQLite.
_INSERT_COLUMNS = (
    "run_slug", "pipeline_stage", "status", "target_date", "config_snapshot",
    "rows_processed", "error_message", "started_at", "finished_at",
)
# Columns that change after the first write.
_OUTCOME_COLUMNS = ("status", "rows_processed", "error_message", "finished_at")

_INSERT_SQL = (
    f"INSERT INTO run_metadata ({', '.join(_INSERT_COLUMNS)}) "
    f"VALUES ({', '.join('?' * len(_INSERT_COLUMNS))});"
)
_UPDATE_SQL = (
    "UPDATE run_metadata SET "
    + ", ".join(f"{col} = ?" for col in _OUTCOME_COLUMNS)
    + " WHERE run_id = ?;"
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _column_values(run: RunMetadata, columns: tuple[str, ...]) -> list[Any]:
    stored = {
        "config_snapshot": json.dumps(run.config_snapshot, default=str),
        "started_at": _iso(run.started_at),
        "finished_at": _iso(run.finished_at),
    }
    return [stored[col] if col in stored else getattr(run, col) for col in columns]


class RunMetadataRepository:
    """Read/write access to ``run_metadata`` over an open connection.

    Writes are committed by the ``get_connection`` context that owns ``conn``.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def insert_run(self, run: RunMetadata) -> int:
        """Insert ``run`` and return its new ``run_id``."""
        cursor = self.conn.execute(_INSERT_SQL, _column_values(run, _INSERT_COLUMNS))
        return int(cursor.lastrowid)

    def update_run(self, run: RunMetadata) -> None:
        """Write back the outcome of a run that was already inserted.

        Raises:
            ValueError: If ``run.run_id`` is ``None``.
        """
        if run.run_id is None:
            raise ValueError("Cannot update RunMetadata without a run_id.")
        self.conn.execute(
            _UPDATE_SQL, [*_column_values(run, _OUTCOME_COLUMNS), run.run_id]
        )

    def get_run_by_slug(self, run_slug: str) -> Optional[RunMetadata]:
        row = self.conn.execute(
            "SELECT * FROM run_metadata WHERE run_slug = ?;", (run_slug,)
        ).fetchone()
        return _row_to_run(row) if row else None

    def get_recent_runs(
        self, pipeline_stage: Optional[str] = None, limit: int = 20
    ) -> list[RunMetadata]:
        """Most recent runs first, optionally for one stage only."""
        where, params = "", []
        if pipeline_stage:
            where, params = "WHERE pipeline_stage = ? ", [pipeline_stage]
        rows = self.conn.execute(
            f"SELECT * FROM run_metadata {where}ORDER BY started_at DESC, run_id DESC LIMIT ?;",
            [*params, limit],
        ).fetchall()
        return [_row_to_run(r) for r in rows]


def _row_to_run(row: sqlite3.Row) -> RunMetadata:
    data = dict(row)
    data["config_snapshot"] = json.loads(data["config_snapshot"])
    data["started_at"] = datetime.fromisoformat(data["started_at"])
    if data["finished_at"]:
        data["finished_at"] = datetime.fromisoformat(data["finished_at"])
    return RunMetadata(**data)
