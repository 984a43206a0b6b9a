"""
Tests for MovingTrendJob and MovingTrendStage.

Stages read and write through an injected ``InMemoryRowStore``; run records
go to the SQLite file configured by the ``app_config`` fixture.
"""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from stocktrend.db.connection import connection_from_config
from stocktrend.db.repositories.price_repo import (
    NoPriceHistoryError,
    PriceHistoryMismatchError,
    PriceRepository,
)
from stocktrend.db.repositories.run_repo import RunMetadataRepository
from stocktrend.db.repositories.trend_repo import MovingTrendRepository
from stocktrend.db.store import InMemoryRowStore, StorageError
from stocktrend.models.price import DailyPriceRow
from stocktrend.pipeline.moving_trend import (
    MovingTrendCancelledError,
    MovingTrendJob,
    MovingTrendStage,
)
from stocktrend.taxonomy.trend_taxonomy import TrendLabel
from stocktrend.utils.time_utils import format_storage_date

_START = date(2024, 6, 1)
_DAYS = 30
_END = format_storage_date(_START + timedelta(days=_DAYS - 1))


# ── Helpers ───────────────────────────────────────────────────────────────────

def _seed(store: InMemoryRowStore, ticker: str, step: float = 1.0) -> None:
    rows = []
    for i in range(_DAYS):
        close = str(1000 + step * i)
        rows.append(DailyPriceRow(
            date=format_storage_date(_START + timedelta(days=i)),
            open=close, high=close, low=close, close=close,
            turnover="1000", modified_close=close,
        ))
    PriceRepository(store).insert_daily(ticker, rows)


def _job(tickers, **kwargs) -> MovingTrendJob:
    return MovingTrendJob.create(
        tickers, from_date=format_storage_date(_START), to_date=_END, **kwargs
    )


def _count(store: InMemoryRowStore, table: str) -> int:
    return int(store.select(f"SELECT COUNT(*) FROM {table};")[0][0])


def _runs(config, stage: str):
    with connection_from_config(config.database) as conn:
        return RunMetadataRepository(conn).get_recent_runs(stage)


class _TrendWriteFails(InMemoryRowStore):
    def upsert(self, table, rows):
        if table == "trend":
            raise StorageError("upsert", table, "database is locked")
        return super().upsert(table, rows)


class _CountingStore(InMemoryRowStore):
    def __init__(self) -> None:
        super().__init__()
        self.history_queries = 0

    def select(self, query, params=()):
        if "FROM daily" in query and "close" in query:
            self.history_queries += 1
        return super().select(query, params)


# ── MovingTrendJob ────────────────────────────────────────────────────────────

class TestMovingTrendJob:
    def test_tickers_sorted_and_dates_normalised(self):
        job = MovingTrendJob.create(["1003", "1001"], from_date="2024/6/1", to_date="2024/06/30")
        assert job.tickers == ("1001", "1003")
        assert job.from_date == "2024/06/01"

    def test_default_range_is_last_ten_days(self):
        job = MovingTrendJob.create(["1001"], today=date(2024, 9, 17))
        assert (job.from_date, job.to_date) == ("2024/09/07", "2024/09/17")

    def test_groups_by_batch_size(self):
        job = MovingTrendJob.create(
            ["1005", "1004", "1003", "1002", "1001"], batch_size=2, today=date(2024, 9, 17)
        )
        assert job.groups() == [["1001", "1002"], ["1003", "1004"], ["1005"]]

    @pytest.mark.parametrize("kwargs,match", [
        (dict(tickers=[]), "tickers"),
        (dict(tickers=["1001"], batch_size=0), "batch_size"),
        (dict(tickers=["1001"], threshold=0), "threshold"),
        (dict(tickers=["1001"], from_date="2024-06-01"), "YYYY/MM/DD"),
        (dict(tickers=["1001"], from_date="2024/07/01", to_date="2024/06/01"), "after"),
    ])
    def test_invalid_inputs_rejected(self, kwargs, match):
        with pytest.raises(ValueError, match=match):
            MovingTrendJob.create(**kwargs)


# ── MovingTrendStage ──────────────────────────────────────────────────────────

class TestMovingTrendStage:
    def test_writes_one_row_per_ticker_and_date(self, store, app_config):
        _seed(store, "1001")
        _seed(store, "1002", step=-1.0)

        run = MovingTrendStage(config=app_config, store=store).run(
            target_date=_END, job=_job(["1001", "1002"])
        )

        assert run.status == "success"
        assert run.rows_processed == 4 * _DAYS
        assert _count(store, "movingavg") == 2 * _DAYS
        assert _count(store, "trend") == 2 * _DAYS

        trends = dict(MovingTrendRepository(store).fetch_trends_on(_END, ["1001", "1002"]))
        assert trends["1001"].trend == TrendLabel.SHORT_TERM_ADVANCE
        assert trends["1002"].trend == TrendLabel.SHORT_TERM_DECLINE

    def test_rerun_overwrites_instead_of_duplicating(self, store, app_config):
        _seed(store, "1001")
        stage = MovingTrendStage(config=app_config, store=store)
        stage.run(job=_job(["1001"]))
        stage.run(job=_job(["1001"]))
        assert _count(store, "trend") == _DAYS

    def test_ticker_without_rows_fails_the_group(self, store, app_config):
        _seed(store, "1001")
        with pytest.raises(PriceHistoryMismatchError, match="9999"):
            MovingTrendStage(config=app_config, store=store).run(
                job=_job(["1001", "9999"], batch_size=2)
            )

        [run] = _runs(app_config, "moving_trend")
        assert run.status == "failed"
        assert "9999" in run.error_message
        assert _count(store, "trend") == 0
        assert _count(store, "movingavg") == 0

    def test_group_without_rows_fails_the_run(self, store, app_config):
        with pytest.raises(NoPriceHistoryError):
            MovingTrendStage(config=app_config, store=store).run(job=_job(["1001"]))

        [run] = _runs(app_config, "moving_trend")
        assert run.status == "failed"
        assert "No rows in 'daily'" in run.error_message

    def test_batch_size_sets_history_query_count(self, app_config):
        store = _CountingStore()
        try:
            for code in ("1001", "1002", "1003", "1004", "1005"):
                _seed(store, code)
            MovingTrendStage(config=app_config, store=store).run(
                job=_job(["1001", "1002", "1003", "1004", "1005"], batch_size=2)
            )
            assert store.history_queries == 3
        finally:
            store.close()

    def test_failed_group_writes_nothing(self, app_config):
        store = _TrendWriteFails()
        try:
            _seed(store, "1001")
            with pytest.raises(StorageError):
                MovingTrendStage(config=app_config, store=store).run(job=_job(["1001"]))
            assert _count(store, "movingavg") == 0
        finally:
            store.close()

    def test_stop_request_halts_between_groups(self, store, app_config):
        _seed(store, "1001")
        _seed(store, "1002")
        checks = iter([False, True])

        with pytest.raises(MovingTrendCancelledError):
            MovingTrendStage(
                config=app_config, store=store, should_stop=lambda: next(checks)
            ).run(job=_job(["1001", "1002"], batch_size=1))

        assert store.select("SELECT DISTINCT code FROM trend;") == [("1001",)]

    def test_run_record_is_persisted(self, store, app_config):
        _seed(store, "1001")
        run = MovingTrendStage(config=app_config, store=store).run(
            target_date=_END, job=_job(["1001"])
        )
        [persisted] = _runs(app_config, "moving_trend")
        assert persisted.run_slug == run.run_slug
        assert persisted.status == "success"
        assert persisted.target_date == _END
