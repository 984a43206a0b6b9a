"""
Rate-limited fetch/write pipeline.

For each ticker, in order, the pipeline fetches today's price page, parses it
and inserts the rows into ``daily``. Dispatch is gated: the first ticker
starts immediately and each further ticker waits one ``interval_s`` tick.
Fetches run concurrently; how many are in flight depends only on how fast
they finish relative to the tick.

Failure handling
----------------
  - ``PriceFetchError`` (bad status, timeout, malformed page) is soft: the
    ticker is recorded as a ``FailedFetch`` and the batch carries on.
  - Anything raised while storing (``StorageError``) or any unexpected error
    is fatal: no more tickers are dispatched, in-flight tasks are cancelled
    and the result carries the error.
  - Setting ``cancel_event`` stops dispatch; tasks already started are
    awaited, and the result carries a ``FetchCancelledError``.

Writes to ``daily`` are synchronous and run on the event loop. While one
waits on a locked database nothing else progresses, so callers should keep
the store's lock wait short (``FetchStage`` holds it under one tick).

The outcome is a ``FetchResult`` whose ``status`` says which of these
happened, so soft and hard failures cannot be confused by the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum
from typing import Optional

from stocktrend.db.repositories.price_repo import PriceRepository
from stocktrend.ingestion.price_client import PriceClient, PriceFetchError
from stocktrend.models.price import FailedFetch

logger = logging.getLogger(__name__)


class FetchStatus(StrEnum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FetchCancelledError(RuntimeError):
    """The batch was cancelled before every ticker was dispatched."""


@dataclass
class FetchResult:
    """Outcome of one fetch batch.

    Attributes:
        status: ``SUCCESS`` (no failures), ``PARTIAL`` (some soft failures),
            ``FAILED`` (fatal error, or every ticker failed softly) or
            ``CANCELLED``.
        succeeded: Tickers whose rows were stored, in completion order.
        failures: Soft per-ticker failures.
        fatal_error: The error that stopped the batch (``FAILED`` with a
            fatal cause, or ``CANCELLED``).
        rows_written: Rows newly stored in ``daily``; keys already stored are
            skipped and not counted.
    """

    status: FetchStatus
    succeeded: list[str] = field(default_factory=list)
    failures: list[FailedFetch] = field(default_factory=list)
    fatal_error: Optional[BaseException] = None
    rows_written: int = 0

    @property
    def failed_tickers(self) -> list[str]:
        return [f.ticker for f in self.failures]

    def raise_for_fatal(self) -> None:
        """Re-raise the fatal or cancellation error, if there is one."""
        if self.fatal_error is not None:
            raise self.fatal_error


@dataclass
class _BatchState:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    fatal: asyncio.Event = field(default_factory=asyncio.Event)
    fatal_error: Optional[BaseException] = None
    succeeded: list[str] = field(default_factory=list)
    failures: list[FailedFetch] = field(default_factory=list)
    rows_written: int = 0


class FetchPipeline:
    """Fetch price pages and store them, one dispatch per tick.

    Args:
        client: Page fetcher.
        repo: Destination for the scraped rows.
        interval_s: Dispatch gate interval in seconds.
    """

    def __init__(self, client: PriceClient, repo: PriceRepository, interval_s: float) -> None:
        if interval_s < 0:
            raise ValueError(f"interval_s must be >= 0, got {interval_s}.")
        self.client = client
        self.repo = repo
        self.interval_s = interval_s

    async def run(
        self,
        tickers: list[str],
        as_of: date,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> FetchResult:
        """Fetch and store every ticker.

        Args:
            tickers: Ticker codes, dispatched in this order.
            as_of: Reference date for giving scraped ``M/D`` dates a year.
            cancel_event: Set to stop dispatching further tickers.

        Returns:
            ``FetchResult`` for the batch.

        Raises:
            ValueError: If ``tickers`` is empty.
        """
        if not tickers:
            raise ValueError("tickers must not be empty.")
        if cancel_event is None:
            cancel_event = asyncio.Event()

        state = _BatchState()
        tasks: list[asyncio.Task] = []
        cancel_wait = asyncio.create_task(cancel_event.wait())
        fatal_wait = asyncio.create_task(state.fatal.wait())
        dispatched = 0

        try:
            for ticker in tickers:
                if dispatched:
                    await asyncio.wait(
                        {cancel_wait, fatal_wait},
                        timeout=self.interval_s,
                        return_when=asyncio.FIRST_COMPLETED,
                    )
                if cancel_event.is_set() or state.fatal.is_set():
                    break
                tasks.append(
                    asyncio.create_task(
                        self._fetch_and_store(ticker, as_of, state, tasks),
                        name=f"fetch-{ticker}",
                    )
                )
                dispatched += 1

            await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            cancel_wait.cancel()
            fatal_wait.cancel()

        return self._result(state, tickers, dispatched, cancel_event)

    async def _fetch_and_store(
        self,
        ticker: str,
        as_of: date,
        state: _BatchState,
        siblings: list[asyncio.Task],
    ) -> None:
        start = time.monotonic()
        try:
            rows = await self.client.fetch_daily_prices(ticker, as_of)
            with self.repo.store.transaction():
                written = self.repo.insert_daily(ticker, rows)
        except PriceFetchError as exc:
            logger.warning("failed to fetch code=%s: %s", ticker, exc, extra={"ticker": ticker})
            async with state.lock:
                state.failures.append(FailedFetch(ticker=ticker, error=str(exc)))
            return
        except Exception as exc:
            logger.error("stopping batch at code=%s: %s", ticker, exc, extra={"ticker": ticker})
            async with state.lock:
                if state.fatal_error is None:
                    state.fatal_error = exc
                state.fatal.set()
            current = asyncio.current_task()
            for task in siblings:
                if task is not current:
                    task.cancel()
            return

        async with state.lock:
            state.succeeded.append(ticker)
            state.rows_written += written
        logger.info(
            "stored code=%s rows=%d in %.2fs",
            ticker, written, time.monotonic() - start,
            extra={"ticker": ticker},
        )

    @staticmethod
    def _result(
        state: _BatchState,
        tickers: list[str],
        dispatched: int,
        cancel_event: asyncio.Event,
    ) -> FetchResult:
        result = FetchResult(
            status=FetchStatus.SUCCESS,
            succeeded=list(state.succeeded),
            failures=list(state.failures),
            rows_written=state.rows_written,
        )
        if state.fatal_error is not None:
            result.status = FetchStatus.FAILED
            result.fatal_error = state.fatal_error
        elif cancel_event.is_set() and dispatched < len(tickers):
            result.status = FetchStatus.CANCELLED
            result.fatal_error = FetchCancelledError(
                f"fetch cancelled after dispatching {dispatched}/{len(tickers)} codes."
            )
        elif result.failures and not result.succeeded:
            result.status = FetchStatus.FAILED
        elif result.failures:
            result.status = FetchStatus.PARTIAL

        logger.info(
            "fetch batch %s | succeeded=%d failed=%d rows=%d",
            result.status, len(result.succeeded), len(result.failures), result.rows_written,
        )
        return result
