"""
Stage base class: run bookkeeping around a unit of pipeline work.

A subclass names itself with ``stage_name`` and implements ``_execute()``,
which returns how many rows it wrote. ``run()`` wraps that call: it opens a
``RunMetadata`` record, closes it as ``success`` (or ``partial``, when
``_execute()`` said so) or ``failed``, and saves it to ``run_metadata``. A
failure is re-raised after it has been recorded.

Price and trend rows go through a ``RowStore``. Tests inject
``store=InMemoryRowStore()``; without one the stage opens the configured
SQLite file only while ``_execute()`` runs::

    class CountStage(PipelineStage):
        stage_name = "fetch"

        def _execute(self, run: RunMetadata, **kwargs) -> int:
            with self._open_store() as store:
                return len(store.select("SELECT code FROM daily;"))

    CountStage(config=app_config).run(target_date="2024/09/17")
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from stocktrend.config import AppConfig
from stocktrend.db.store import RowStore, SQLiteRowStore
from stocktrend.models.meta import RunMetadata

logger = logging.getLogger(__name__)


class PipelineStage(ABC):
    """Abstract base for all pipeline stages.

    Attributes:
        stage_name: A valid ``RunMetadata.pipeline_stage``.
        config: Application configuration.
        db_path: SQLite path (defaults to ``config.database.db_path``).
        store: Injected ``RowStore``; ``None`` means open ``db_path``.
        should_stop: Cancellation check, consulted where the stage can stop
            cleanly.
    """

    stage_name: str

    def __init__(
        self,
        config: AppConfig,
        db_path: Optional[str] = None,
        store: Optional[RowStore] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.config = config
        self.db_path = db_path or config.database.db_path
        self.store = store
        self.should_stop = should_stop or (lambda: False)

    def run(self, target_date: Optional[str] = None, **kwargs) -> RunMetadata:
        """Execute this stage and return its finalized run record.

        Args:
            target_date: Business date recorded on the run (``YYYY/MM/DD``).
            **kwargs: Passed through to ``_execute()``.

        Raises:
            Exception: Whatever ``_execute()`` raised, after the run has been
                recorded as ``failed``.
        """
        run = RunMetadata.begin(
            self.stage_name, self.config.model_dump(), target_date=target_date
        )
        logger.info(
            "Stage [%s] starting | run_slug=%s", self.stage_name, run.run_slug,
            extra={"run_slug": run.run_slug},
        )

        try:
            rows = self._execute(run=run, **kwargs)
        except Exception as exc:
            run.close("failed", error_message=str(exc))
            logger.error(
                "Stage [%s] FAILED: %s | run_slug=%s",
                self.stage_name, exc, run.run_slug,
                extra={"run_slug": run.run_slug},
            )
            self._persist_run(run)
            raise

        # _execute() may already have marked the run partial.
        run.close("success" if run.status == "started" else run.status, rows_processed=rows)
        logger.info(
            "Stage [%s] %s | rows=%d | run_slug=%s",
            self.stage_name, run.status, rows, run.run_slug,
            extra={"run_slug": run.run_slug},
        )
        self._persist_run(run)
        return run

    @abstractmethod
    def _execute(self, run: RunMetadata, **kwargs) -> int:
        """Stage-specific work; returns the number of rows written."""
        ...

    def _open_store(self):
        return open_row_store(self.config, self.db_path, self.store, self.should_stop)

    def _persist_run(self, run: RunMetadata) -> None:
        """Write or update the run record.

        Errors are logged rather than raised so a broken audit table never
        hides the stage's own outcome.
        """
        try:
            from stocktrend.db.connection import connection_from_config
            from stocktrend.db.repositories.run_repo import RunMetadataRepository

            with connection_from_config(self.config.database, self.db_path) as conn:
                repo = RunMetadataRepository(conn)
                if run.run_id is None:
                    run.run_id = repo.insert_run(run)
                else:
                    repo.update_run(run)
        except Exception as exc:
            logger.error(
                "Failed to persist RunMetadata for run_slug=%s: %s",
                run.run_slug, exc,
            )


@contextmanager
def open_row_store(
    config: AppConfig,
    db_path: Optional[str] = None,
    store: Optional[RowStore] = None,
    should_stop: Optional[Callable[[], bool]] = None,
    busy_timeout_ms: Optional[int] = None,
) -> Iterator[RowStore]:
    """Yield ``store`` if given, else a ``SQLiteRowStore`` over the configured database."""
    if store is not None:
        yield store
        return

    from stocktrend.db.connection import connection_from_config

    with connection_from_config(
        config.database,
        db_path or config.database.db_path,
        should_stop=should_stop,
        busy_timeout_ms=busy_timeout_ms,
    ) as conn:
        yield SQLiteRowStore(conn)
