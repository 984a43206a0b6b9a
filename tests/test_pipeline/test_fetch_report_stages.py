"""Tests for FetchStage and SheetReportStage under the PipelineStage contract."""

from __future__ import annotations

from datetime import date

import pytest

from stocktrend.db.connection import connection_from_config
from stocktrend.db.repositories.run_repo import RunMetadataRepository
from stocktrend.db.repositories.trend_repo import MovingTrendRepository, TrendCountMismatchError
from stocktrend.ingestion.fetch_pipeline import FetchCancelledError, FetchStatus
from stocktrend.models.trend import TrendRecord
from stocktrend.config import AppConfig, DatabaseConfig, FetchConfig
from stocktrend.pipeline.fetch import AllFetchesFailedError, FetchStage, write_busy_timeout_ms
from stocktrend.pipeline.sheet_report import SheetReportStage
from stocktrend.sheets.sheet import InMemorySheet
from stocktrend.taxonomy.trend_taxonomy import CrossSignal, TrendLabel, TrendTurn

_AS_OF = date(2024, 9, 18)
_TICKERS = ["1001", "1002", "1003"]


@pytest.fixture
def pages(price_page, daily_rows) -> dict[str, tuple[int, str]]:
    html = price_page(daily_rows(date(2024, 9, 17), 10))
    return {t: (200, html) for t in _TICKERS}


def _last_run(config, stage: str):
    with connection_from_config(config.database) as conn:
        return RunMetadataRepository(conn).get_recent_runs(stage, limit=1)[0]


# ── FetchStage ────────────────────────────────────────────────────────────────

class TestFetchStage:
    def test_success(self, store, app_config, pages, page_transport):
        stage = FetchStage(config=app_config, store=store, transport=page_transport(pages))
        run = stage.run(tickers=_TICKERS, as_of=_AS_OF)

        assert run.status == "success"
        assert run.rows_processed == 30
        assert stage.last_result.status == FetchStatus.SUCCESS

    def test_some_failures_mark_the_run_partial(self, store, app_config, pages, page_transport):
        pages["1002"] = (500, "boom")
        stage = FetchStage(config=app_config, store=store, transport=page_transport(pages))
        run = stage.run(target_date="2024/09/18", tickers=_TICKERS, as_of=_AS_OF)

        assert run.status == "partial"
        assert run.error_message == "failed codes: 1002"
        assert [f.ticker for f in stage.last_result.failures] == ["1002"]
        assert _last_run(app_config, "fetch").status == "partial"

    def test_every_failure_raises(self, store, app_config, page_transport):
        stage = FetchStage(config=app_config, store=store, transport=page_transport({}))
        with pytest.raises(AllFetchesFailedError) as excinfo:
            stage.run(tickers=_TICKERS, as_of=_AS_OF)

        assert len(excinfo.value.failures) == 3
        assert _last_run(app_config, "fetch").status == "failed"

    def test_stop_before_start_is_cancelled(self, store, app_config, pages, page_transport):
        calls: list[str] = []
        stage = FetchStage(
            config=app_config,
            store=store,
            transport=page_transport(pages, calls),
            should_stop=lambda: True,
        )
        with pytest.raises(FetchCancelledError):
            stage.run(tickers=_TICKERS, as_of=_AS_OF)
        assert calls == []

    def test_empty_ticker_list_raises(self, store, app_config, page_transport):
        with pytest.raises(ValueError):
            FetchStage(config=app_config, store=store, transport=page_transport({})).run(
                tickers=[], as_of=_AS_OF
            )

    def test_configured_database_is_opened_with_short_lock_wait(
        self, app_config, pages, page_transport, monkeypatch
    ):
        import stocktrend.db.connection as connection

        waits: list = []
        original = connection.connection_from_config

        def recording(*args, **kwargs):
            waits.append(kwargs.get("busy_timeout_ms"))
            return original(*args, **kwargs)

        monkeypatch.setattr(connection, "connection_from_config", recording)
        run = FetchStage(config=app_config, transport=page_transport(pages)).run(
            tickers=_TICKERS, as_of=_AS_OF
        )

        assert run.status == "success"
        assert waits[0] == write_busy_timeout_ms(app_config) == 50


class TestWriteBusyTimeout:
    @pytest.mark.parametrize("interval_ms,configured,expected", [
        (1000, 5000, 500),
        (0, 5000, 50),
        (20000, 5000, 5000),
        (1000, 30, 30),
    ])
    def test_lock_wait_stays_under_a_tick(self, interval_ms, configured, expected):
        config = AppConfig(
            database=DatabaseConfig(busy_timeout_ms=configured),
            fetch=FetchConfig(interval_ms=interval_ms),
        )
        assert write_busy_timeout_ms(config) == expected


# ── SheetReportStage ──────────────────────────────────────────────────────────

def _seed_trends(store, codes_and_labels):
    repo = MovingTrendRepository(store)
    for code, label, growth in codes_and_labels:
        record = TrendRecord(
            date="2024/09/17",
            trend=label,
            turn=TrendTurn.NONE,
            growth_rate=growth,
            cross=CrossSignal.NONE,
            streak_days=3,
        )
        repo.upsert_results([], repo.trend_rows(code, [record]))


class TestSheetReportStage:
    def test_writes_sorted_report(self, store, app_config):
        _seed_trends(store, [
            ("1001", TrendLabel.NEUTRAL, 1.0),
            ("1002", TrendLabel.LONG_TERM_ADVANCE, 1.01),
        ])
        sheet = InMemorySheet([["old"]])

        run = SheetReportStage(config=app_config, store=store).run(
            sheet=sheet, tickers=["1001", "1002"], report_date="2024/09/17"
        )

        assert run.rows_processed == 2
        assert sheet.rows[0][-1] == "20240917"
        assert [r[0] for r in sheet.rows[1:]] == ["1002", "1001"]

    def test_missing_trend_row_fails(self, store, app_config):
        _seed_trends(store, [("1001", TrendLabel.NEUTRAL, 1.0)])
        sheet = InMemorySheet([["old"]])

        with pytest.raises(TrendCountMismatchError):
            SheetReportStage(config=app_config, store=store).run(
                sheet=sheet, tickers=["1001", "1002"], report_date="2024/09/17"
            )
        assert sheet.rows == [["old"]]
