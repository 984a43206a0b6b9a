"""
Repository for the ``daily`` price table.

Reads return per-ticker ``NewestFirst`` close series, ready for the
moving-average engine.
"""

from __future__ import annotations

import logging
from collections import defaultdict


from stocktrend.db.store import RowStore, StorageError, in_placeholders
from stocktrend.models.price import DailyPriceRow, PriceObservation
from stocktrend.models.series import NewestFirst

logger = logging.getLogger(__name__)

# Close value the price page shows on days without trading.
MISSING_CLOSE = "--"


class NoPriceHistoryError(RuntimeError):
    """The history query for a group of tickers returned no rows."""

    def __init__(self, tickers: list[str], from_date: str, to_date: str) -> None:
        self.tickers = tickers
        self.from_date = from_date
        self.to_date = to_date
        super().__init__(
            f"No rows in 'daily' for codes={tickers} between {from_date} and {to_date}."
        )


class PriceHistoryMismatchError(RuntimeError):
    """Some requested tickers have no rows in the range while others do."""

    def __init__(
        self, missing: list[str], tickers: list[str], from_date: str, to_date: str
    ) -> None:
        self.missing = missing
        self.tickers = tickers
        self.from_date = from_date
        self.to_date = to_date
        super().__init__(
            f"History for {len(tickers) - len(missing)} of {len(tickers)} codes "
            f"between {from_date} and {to_date}; no rows for codes={missing}."
        )


class PriceRepository:
    """Read/write access to ``daily`` through a ``RowStore``."""

    def __init__(self, store: RowStore) -> None:
        self.store = store

    def insert_daily(self, ticker: str, rows: list[DailyPriceRow]) -> int:
        """Insert scraped rows; rows already stored for ``(code, date)`` are kept."""
        return self.store.insert_ignore(
            "daily", [row.to_storage_row(ticker) for row in rows]
        )

    def fetch_close_history(
        self,
        tickers: list[str],
        from_date: str,
        to_date: str,
    ) -> dict[str, NewestFirst[PriceObservation]]:
        """Closes for ``tickers`` within ``[from_date, to_date]``, newest first.

        A ``--`` close is replaced with the close of the row before it in query
        order (the next newer day), or ``1`` for a ticker's first row.
        Every requested ticker must have at least one row in the range.

        Raises:
            NoPriceHistoryError: If no ticker has any row in the range.
            PriceHistoryMismatchError: If only some tickers have rows.
            StorageError: If the query fails or returns a malformed row.
        """
        rows = self.store.select(
            f"""
            SELECT code, date, close FROM daily
            WHERE code IN ({in_placeholders(tickers)}) AND date >= ? AND date <= ?
            ORDER BY code, date DESC;
            """,
            [*tickers, from_date, to_date],
        )
        if not rows:
            raise NoPriceHistoryError(tickers, from_date, to_date)

        grouped: dict[str, list[PriceObservation]] = defaultdict(list)
        previous: dict[str, float] = {}
        for row in rows:
            if len(row) != 3:
                raise StorageError("select", "daily", f"expected 3 columns, got {row}")
            code, day, close_text = row
            if close_text == MISSING_CLOSE:
                close = previous.get(code, 1.0)
                logger.warning(
                    "close is '%s' for code=%s date=%s; using %s",
                    MISSING_CLOSE, code, day, close,
                    extra={"ticker": code},
                )
            else:
                try:
                    close = float(close_text)
                except ValueError as exc:
                    raise StorageError(
                        "select", "daily",
                        f"unparseable close {close_text!r} for code={code} date={day}",
                    ) from exc
            try:
                observation = PriceObservation(date=day, close=close)
            except ValueError as exc:
                raise StorageError("select", "daily", str(exc)) from exc
            previous[code] = close
            grouped[code].append(observation)

        missing = sorted(set(tickers) - set(grouped))
        if missing:
            raise PriceHistoryMismatchError(missing, sorted(set(tickers)), from_date, to_date)

        return {code: NewestFirst.of(obs) for code, obs in grouped.items()}

    def latest_date(self) -> str | None:
        """Most recent date in ``daily``, or ``None`` if the table is empty."""
        rows = self.store.select("SELECT MAX(date) FROM daily;")
        if not rows or not rows[0][0]:
            return None
        return rows[0][0]

    def tickers_on(self, date: str) -> list[str]:
        """Codes with a row on ``date``, ascending."""
        rows = self.store.select(
            "SELECT code FROM daily WHERE date = ? ORDER BY code;", [date]
        )
        return [row[0] for row in rows]
