"""
Shared pytest fixtures for the stocktrend test suite.

Provides:
  - ``store``: a fresh ``InMemoryRowStore`` with the schema applied.
  - ``sqlite_conn``: a raw in-memory SQLite connection with the schema applied.
  - ``app_config``: an ``AppConfig`` pointing at a schema-initialised database
    under ``tmp_path`` and a fake price URL, with no fetch interval.
  - ``make_series``: builds a ``NewestFirst[PriceObservation]`` from closes.
  - ``price_page``: renders a daily price page the parser understands.
  - ``page_transport``: an ``httpx.MockTransport`` serving one page per ticker.
"""

from __future__ import annotations

import sqlite3
from datetime import date, timedelta
from typing import Callable, Generator, Optional

import httpx
import pytest

from stocktrend.config import AppConfig, DatabaseConfig, FetchConfig, LoggingConfig
from stocktrend.db.connection import get_connection
from stocktrend.db.schema import apply_schema
from stocktrend.db.store import InMemoryRowStore
from stocktrend.models.price import PriceObservation
from stocktrend.models.series import NewestFirst
from stocktrend.utils.time_utils import format_storage_date

PRICE_URL = "https://prices.test/stock/price"


# ── Database fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def store() -> Generator[InMemoryRowStore, None, None]:
    """Yield a fresh in-memory row store; closed after the test."""
    row_store = InMemoryRowStore()
    yield row_store
    row_store.close()


@pytest.fixture
def sqlite_conn() -> Generator[sqlite3.Connection, None, None]:
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    apply_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    """Config with a real SQLite file (for run records) and no dispatch delay."""
    config = AppConfig(
        database=DatabaseConfig(
            db_path=str(tmp_path / "stocktrend.db"),
            wal_mode=False,
            connect_retries=1,
            connect_retry_interval_s=0.0,
        ),
        fetch=FetchConfig(price_url=PRICE_URL, interval_ms=0, timeout_s=5.0),
        logging=LoggingConfig(log_file=""),
    )
    with get_connection(config.database.db_path, wal_mode=False) as conn:
        apply_schema(conn)
    return config


# ── Series factory ────────────────────────────────────────────────────────────

@pytest.fixture
def make_series() -> Callable[..., NewestFirst[PriceObservation]]:
    """Build a close series from oldest-first closes on consecutive days.

    ``make_series([1, 2, 3])`` gives closes 3, 2, 1 (newest first) dated
    2024/01/03, 2024/01/02, 2024/01/01.
    """
    def _make(closes: list[float], start: date = date(2024, 1, 1)) -> NewestFirst[PriceObservation]:
        oldest_first = [
            PriceObservation(date=format_storage_date(start + timedelta(days=i)), close=c)
            for i, c in enumerate(closes)
        ]
        return NewestFirst.of(reversed(oldest_first))

    return _make


# ── Price page fixtures ───────────────────────────────────────────────────────

def render_price_page(rows: list[tuple[str, list[str]]]) -> str:
    """Render ``(month/day cell, [six price cells])`` rows as a price page."""
    body = "\n".join(
        "<tr><th class=\"a-taC\">{}</th>{}</tr>".format(
            day, "".join(f"<td class=\"a-taR\">{p}</td>" for p in prices)
        )
        for day, prices in rows
    )
    return (
        "<html><body><div class=\"m-tableType01_table\"><table>"
        "<thead><tr><th>date</th></tr></thead>"
        f"<tbody>{body}</tbody></table></div></body></html>"
    )


def daily_page_rows(last_day: date, days: int, base: float = 1000.0, step: float = 1.0):
    """``days`` rows ending on ``last_day``, newest first, closes rising by ``step``."""
    rows = []
    for offset in range(days):
        day = last_day - timedelta(days=offset)
        close = base + step * (days - 1 - offset)
        rows.append((
            f"{day.month}/{day.day}",
            [f"{close:,.0f}", f"{close + 10:,.0f}", f"{close - 10:,.0f}",
             f"{close:,.0f}", "1,200,000", f"{close:,.0f}"],
        ))
    return rows


@pytest.fixture
def price_page() -> Callable[[list[tuple[str, list[str]]]], str]:
    return render_price_page


@pytest.fixture
def page_transport() -> Callable[..., httpx.MockTransport]:
    """Factory for a transport serving ``pages[ticker] = (status, html)``.

    Every requested ticker is appended to ``calls`` when a list is given.
    Unknown tickers get a 404.
    """
    def _make(
        pages: dict[str, tuple[int, str]],
        calls: Optional[list[str]] = None,
        on_request: Optional[Callable[[str], None]] = None,
    ) -> httpx.MockTransport:
        def handler(request: httpx.Request) -> httpx.Response:
            ticker = request.url.params["scode"]
            if calls is not None:
                calls.append(ticker)
            if on_request is not None:
                on_request(ticker)
            status, html = pages.get(ticker, (404, "not found"))
            return httpx.Response(status, text=html)

        return httpx.MockTransport(handler)

    return _make


@pytest.fixture
def daily_rows() -> Callable[..., list]:
    return daily_page_rows
