"""
SheetReportStage — publish one date's trend rows to the report sheet.
"""

from __future__ import annotations

from stocktrend.db.repositories.trend_repo import MovingTrendRepository
from stocktrend.models.meta import RunMetadata
from stocktrend.pipeline.base import PipelineStage
from stocktrend.reporting.trend_sheet import write_trend_report
from stocktrend.sheets.sheet import Sheet
from stocktrend.utils.time_utils import normalize_storage_date


class SheetReportStage(PipelineStage):
    """Read trends for ``report_date`` and clear-then-write ``sheet``.

    Raises ``TrendCountMismatchError`` when some ticker has no trend row for
    the date.
    """

    stage_name = "sheet_report"

    def _execute(  # type: ignore[override]
        self,
        run: RunMetadata,
        sheet: Sheet,
        tickers: list[str],
        report_date: str,
    ) -> int:
        if not tickers:
            raise ValueError("tickers must not be empty.")
        report_date = normalize_storage_date(report_date)
        with self._open_store() as store:
            trends = MovingTrendRepository(store).fetch_trends_on(report_date, tickers)
        return write_trend_report(sheet, trends, report_date)
