"""
Audit records for pipeline runs.

A ``RunMetadata`` row is written when a stage starts and rewritten when it
ends. The ``AppConfig`` dump taken at start is stored with it, so the row
alone says which settings produced a given set of moving/trend rows.

Unlike the domain models, ``RunMetadata`` can be changed in place; field
assignments are still validated.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional, get_args
from uuid import uuid4

from pydantic import BaseModel, ConfigDict

from stocktrend.utils.time_utils import utcnow

PipelineStageName = Literal["fetch", "moving_trend", "sheet_report", "orchestrator"]
RunStatus = Literal["started", "success", "partial", "failed", "skipped"]

VALID_PIPELINE_STAGES = frozenset(get_args(PipelineStageName))
VALID_RUN_STATUSES = frozenset(get_args(RunStatus))


class RunMetadata(BaseModel):
    """One execution of a stage or of the daily orchestrator.

    ``run_id`` stays ``None`` until the row is inserted. ``target_date`` is
    the business date (``YYYY/MM/DD``) the run worked on, when it has one.
    ``error_message`` holds the failure text, or the failed tickers of a
    ``partial`` fetch.
    """

    model_config = ConfigDict(validate_assignment=True)

    run_id: Optional[int] = None
    run_slug: str
    pipeline_stage: PipelineStageName
    status: RunStatus = "started"
    target_date: Optional[str] = None
    config_snapshot: dict[str, Any]
    rows_processed: int = 0
    error_message: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None

    @classmethod
    def begin(
        cls,
        pipeline_stage: str,
        config_snapshot: dict[str, Any],
        target_date: Optional[str] = None,
        started_at: Optional[datetime] = None,
    ) -> "RunMetadata":
        """A fresh ``started`` record with a new UUID4 slug."""
        return cls(
            run_slug=str(uuid4()),
            pipeline_stage=pipeline_stage,
            target_date=target_date,
            config_snapshot=config_snapshot,
            started_at=started_at or utcnow(),
        )

    def close(
        self,
        status: str,
        rows_processed: Optional[int] = None,
        error_message: Optional[str] = None,
        finished_at: Optional[datetime] = None,
    ) -> None:
        """Stamp the final outcome. ``None`` arguments keep the current value."""
        self.status = status
        if rows_processed is not None:
            self.rows_processed = rows_processed
        if error_message is not None:
            self.error_message = error_message
        self.finished_at = finished_at or utcnow()
