"""
Repository for the ``movingavg`` and ``trend`` tables.

Both tables are keyed by ``(code, date)`` and written with upsert, so
recomputing a date overwrites the previous result.
"""

from __future__ import annotations


from stocktrend.db.store import Row, RowStore, StorageError, in_placeholders
from stocktrend.models.trend import MovingAverageSet, TrendRecord


class TrendCountMismatchError(RuntimeError):
    """The trend rows found for a date do not match the tickers asked for."""

    def __init__(self, date: str, expected: int, found: int) -> None:
        self.date = date
        self.expected = expected
        self.found = found
        super().__init__(
            f"trend rows for {date}: expected {expected} codes, found {found}."
        )


class MovingTrendRepository:
    """Read/write access to ``movingavg`` and ``trend`` through a ``RowStore``."""

    def __init__(self, store: RowStore) -> None:
        self.store = store

    def upsert_results(
        self,
        moving_avg_rows: list[Row],
        trend_rows: list[Row],
    ) -> int:
        """Write both tables in one transaction; returns rows written."""
        with self.store.transaction():
            written = self.store.upsert("movingavg", moving_avg_rows)
            written += self.store.upsert("trend", trend_rows)
        return written

    @staticmethod
    def moving_avg_rows(ticker: str, sets: list[MovingAverageSet]) -> list[Row]:
        return [s.to_storage_row(ticker) for s in sets]

    @staticmethod
    def trend_rows(ticker: str, records: list[TrendRecord]) -> list[Row]:
        return [r.to_storage_row(ticker) for r in records]

    def fetch_trends_on(self, date: str, tickers: list[str]) -> list[tuple[str, TrendRecord]]:
        """Trend records for ``tickers`` on ``date``, ordered by code.

        Raises:
            TrendCountMismatchError: If the number of rows differs from
                ``len(tickers)``.
            StorageError: If the query fails or a row does not parse.
        """
        rows = self.store.select(
            f"""
            SELECT code, date, trend, trendTurn, growthRate, crossMoving5, continuationDays
            FROM trend
            WHERE code IN ({in_placeholders(tickers)}) AND date = ?
            ORDER BY code;
            """,
            [*tickers, date],
        )
        if len(rows) != len(tickers):
            raise TrendCountMismatchError(date, len(tickers), len(rows))
        try:
            return [TrendRecord.from_storage_row(row) for row in rows]
        except ValueError as exc:
            raise StorageError("select", "trend", str(exc)) from exc
