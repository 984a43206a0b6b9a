"""
Daily run orchestration.

``DailyOrchestrator.run(target)`` executes, in order:

  Step 1: Day-off check.  Skip the run when the previous day was a weekend
          day or is listed in the holiday sheet.
  Step 2: Tickers.        Load the ticker universe from the ticker sheet.
  Step 3: Fetch.          ``FetchStage``: scrape and store today's pages.
  Step 4: Moving/trend.   ``MovingTrendStage`` over the codes present on the
                          latest stored date, for
                          ``[latest - lookback_days, latest]``.
  Step 5: Report.         ``SheetReportStage``: trend rows for the latest
                          date, written to the report sheet.

Failure policy
--------------
- Soft fetch failures are listed on the result; the run continues and ends
  ``partial``.
- Any stage exception (storage failure, every fetch failing, a missing trend
  row, cancellation) ends the run ``failed`` at that step; later steps do
  not run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Optional

import httpx

from stocktrend.config import AppConfig
from stocktrend.db.repositories.price_repo import PriceRepository
from stocktrend.db.store import RowStore
from stocktrend.models.meta import RunMetadata
from stocktrend.models.price import FailedFetch
from stocktrend.pipeline.base import open_row_store
from stocktrend.pipeline.fetch import FetchStage
from stocktrend.pipeline.moving_trend import MovingTrendJob, MovingTrendStage
from stocktrend.pipeline.sheet_report import SheetReportStage
from stocktrend.reporting.trend_sheet import check_day_off, load_tickers
from stocktrend.sheets.sheet import CsvSheet, Sheet
from stocktrend.utils.time_utils import format_storage_date, parse_storage_date, utcnow

logger = logging.getLogger(__name__)


# ── Result types ──────────────────────────────────────────────────────────────

@dataclass
class DailyRunResult:
    """Outcome of one daily run.

    Attributes:
        target_date:     Date the run was started for.
        status:          "success", "partial", "failed" or "skipped".
        skipped_reason:  Why the run was skipped (day off).
        tickers:         Ticker universe loaded from the sheet.
        failed_fetches:  Soft fetch failures.
        trend_date:      Latest stored date the trends were computed up to.
        trend_tickers:   Codes recomputed and reported.
        rows_fetched:    Rows sent to ``daily``.
        rows_computed:   ``movingavg`` + ``trend`` rows upserted.
        rows_reported:   Tickers written to the report sheet.
        errors:          Accumulated error messages.
        error:           The exception that failed the run, if any.
    """

    target_date:     date
    started_at:      Optional[datetime]  = None
    finished_at:     Optional[datetime]  = None
    status:          str                 = "started"
    skipped_reason:  Optional[str]       = None
    tickers:         list[str]           = field(default_factory=list)
    failed_fetches:  list[FailedFetch]   = field(default_factory=list)
    trend_date:      Optional[str]       = None
    trend_tickers:   list[str]           = field(default_factory=list)
    rows_fetched:    int                 = 0
    rows_computed:   int                 = 0
    rows_reported:   int                 = 0
    errors:          list[str]           = field(default_factory=list)
    error:           Optional[BaseException] = None
    run_id:          Optional[int]       = None


@dataclass
class DailySheets:
    tickers: Sheet
    holidays: Sheet
    report: Sheet

    @classmethod
    def from_config(cls, config: AppConfig) -> "DailySheets":
        return cls(
            tickers=CsvSheet(config.sheets.tickers_csv),
            holidays=CsvSheet(config.sheets.holidays_csv),
            report=CsvSheet(config.sheets.trend_report_csv),
        )


# ── Orchestrator ──────────────────────────────────────────────────────────────

class DailyOrchestrator:
    """Coordinates the daily fetch → moving/trend → report pipeline.

    Args:
        config:      AppConfig for this run.
        db_path:     Override DB path.
        store:       Injected ``RowStore`` shared by every stage.
        sheets:      Injected sheets (default: CSV files from config).
        transport:   Optional ``httpx`` transport for the fetch stage.
        should_stop: Cancellation check.
    """

    def __init__(
        self,
        config: AppConfig,
        db_path: Optional[str] = None,
        store: Optional[RowStore] = None,
        sheets: Optional[DailySheets] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.config = config
        self.db_path = db_path or config.database.db_path
        self.store = store
        self.sheets = sheets or DailySheets.from_config(config)
        self.transport = transport
        self.should_stop = should_stop

    def run(self, target: date) -> DailyRunResult:
        """Execute the daily pipeline for ``target``."""
        result = DailyRunResult(target_date=target, started_at=utcnow())
        target_str = format_storage_date(target)
        run = RunMetadata.begin(
            "orchestrator", self.config.model_dump(),
            target_date=target_str, started_at=result.started_at,
        )
        logger.info("DailyOrchestrator | run_slug=%s | target=%s", run.run_slug, target_str)

        # ── Step 1: Day-off check ─────────────────────────────────────────────
        logger.info("[1/5] Day-off check ...")
        day_off = check_day_off(target, self.sheets.holidays)
        if day_off.day_off:
            logger.info("Day off, nothing to do: %s", day_off.reason)
            result.status = "skipped"
            result.skipped_reason = day_off.reason
            return self._finish(result, run)

        try:
            self._run_steps(target, target_str, result)
        except Exception as exc:
            result.status = "failed"
            result.error = exc
            result.errors.append(str(exc))
            logger.error("DailyOrchestrator failed: %s", exc)
            return self._finish(result, run)

        result.status = "partial" if result.failed_fetches else "success"
        return self._finish(result, run)

    # ── Steps ─────────────────────────────────────────────────────────────────

    def _run_steps(self, target: date, target_str: str, result: DailyRunResult) -> None:
        stage_kwargs = dict(
            config=self.config,
            db_path=self.db_path,
            store=self.store,
            should_stop=self.should_stop,
        )

        logger.info("[2/5] Loading tickers ...")
        result.tickers = load_tickers(self.sheets.tickers)
        if not result.tickers:
            raise ValueError("no target company codes in ticker sheet.")

        logger.info("[3/5] FetchStage for %d codes ...", len(result.tickers))
        fetch = FetchStage(transport=self.transport, **stage_kwargs)
        try:
            fetch_run = fetch.run(target_date=target_str, tickers=result.tickers, as_of=target)
        finally:
            if fetch.last_result is not None:
                result.failed_fetches = list(fetch.last_result.failures)
                result.errors.extend(f.error for f in fetch.last_result.failures)
        result.rows_fetched = fetch_run.rows_processed

        with open_row_store(self.config, self.db_path, self.store) as store:
            prices = PriceRepository(store)
            latest = prices.latest_date()
            if latest is None:
                raise RuntimeError("daily table is empty after fetch.")
            result.trend_date = latest
            result.trend_tickers = prices.tickers_on(latest)

        logger.info(
            "[4/5] MovingTrendStage for %d codes up to %s ...",
            len(result.trend_tickers), latest,
        )
        from_date = parse_storage_date(latest) - timedelta(days=self.config.trend.lookback_days)
        job = MovingTrendJob.create(
            result.trend_tickers,
            from_date=format_storage_date(from_date),
            to_date=latest,
            batch_size=self.config.trend.batch_size,
            threshold=self.config.trend.long_term_threshold_days,
        )
        result.rows_computed = MovingTrendStage(**stage_kwargs).run(
            target_date=latest, job=job
        ).rows_processed

        logger.info("[5/5] SheetReportStage for %s ...", latest)
        result.rows_reported = SheetReportStage(**stage_kwargs).run(
            target_date=latest,
            sheet=self.sheets.report,
            tickers=result.trend_tickers,
            report_date=latest,
        ).rows_processed

    # ── Private helpers ───────────────────────────────────────────────────────

    def _finish(self, result: DailyRunResult, run: RunMetadata) -> DailyRunResult:
        result.finished_at = utcnow()
        run.close(
            result.status,
            rows_processed=result.rows_fetched + result.rows_computed + result.rows_reported,
            error_message="; ".join(result.errors) or result.skipped_reason,
            finished_at=result.finished_at,
        )
        result.run_id = self._persist_run(run)

        logger.info(
            "DailyOrchestrator finished | status=%s | codes=%d | failed_fetches=%d | "
            "trend_codes=%d | rows=%d",
            result.status, len(result.tickers), len(result.failed_fetches),
            len(result.trend_tickers), run.rows_processed,
        )
        return result

    def _persist_run(self, run: RunMetadata) -> Optional[int]:
        try:
            from stocktrend.db.connection import connection_from_config
            from stocktrend.db.repositories.run_repo import RunMetadataRepository

            with connection_from_config(self.config.database, self.db_path) as conn:
                return RunMetadataRepository(conn).insert_run(run)
        except Exception as exc:
            logger.error("Failed to persist orchestrator run record: %s", exc)
            return None
