"""
FetchStage — scrape today's price pages and store them in ``daily``.

Wraps ``FetchPipeline`` in the stage contract:

  - a fatal storage error or a cancellation is re-raised (run ``failed``),
  - every ticker failing softly raises ``AllFetchesFailedError``,
  - some tickers failing marks the run ``partial`` and lists them in
    ``error_message``.

The full ``FetchResult`` is kept on ``last_result`` for the caller.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Optional

import httpx

from stocktrend.config import AppConfig
from stocktrend.db.repositories.price_repo import PriceRepository
from stocktrend.ingestion.fetch_pipeline import FetchPipeline, FetchResult, FetchStatus
from stocktrend.ingestion.price_client import PriceClient
from stocktrend.models.meta import RunMetadata
from stocktrend.models.price import FailedFetch
from stocktrend.pipeline.base import PipelineStage, open_row_store
from stocktrend.utils.time_utils import format_storage_date

logger = logging.getLogger(__name__)

# How often the stop flag is checked while a batch is running.
_STOP_POLL_S = 0.1

# Floor for the write lock wait while fetching.
_MIN_WRITE_BUSY_MS = 50


def write_busy_timeout_ms(config: AppConfig) -> int:
    """SQLite lock wait for fetch-time writes.

    Writes run on the event loop, so a lock wait blocks the dispatch gate and
    every in-flight request. The wait is held to half a dispatch tick, and
    never above ``[database] busy_timeout_ms``.
    """
    half_tick = max(config.fetch.interval_ms // 2, _MIN_WRITE_BUSY_MS)
    return min(config.database.busy_timeout_ms, half_tick)


class AllFetchesFailedError(RuntimeError):
    """Every ticker in the batch failed; nothing was fetched."""

    def __init__(self, failures: list[FailedFetch]) -> None:
        self.failures = failures
        detail = "; ".join(f.error for f in failures[:5])
        more = f" (+{len(failures) - 5} more)" if len(failures) > 5 else ""
        super().__init__(f"all {len(failures)} fetches failed: {detail}{more}")


class FetchStage(PipelineStage):
    """Fetch and store daily prices for a list of tickers.

    Args:
        transport: Optional ``httpx`` transport (tests pass a ``MockTransport``).
    """

    stage_name = "fetch"

    def __init__(self, *args, transport: Optional[httpx.AsyncBaseTransport] = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.transport = transport
        self.last_result: Optional[FetchResult] = None

    def _execute(self, run: RunMetadata, tickers: list[str], as_of: date) -> int:  # type: ignore[override]
        if not tickers:
            raise ValueError("tickers must not be empty.")

        logger.info(
            "fetching %d codes as of %s | interval=%dms timeout=%.1fs",
            len(tickers), format_storage_date(as_of),
            self.config.fetch.interval_ms, self.config.fetch.timeout_s,
        )
        with open_row_store(
            self.config, self.db_path, self.store, self.should_stop,
            busy_timeout_ms=write_busy_timeout_ms(self.config),
        ) as store:
            result = asyncio.run(self._fetch(PriceRepository(store), tickers, as_of))
        self.last_result = result

        result.raise_for_fatal()
        if result.status == FetchStatus.FAILED:
            raise AllFetchesFailedError(result.failures)
        if result.status == FetchStatus.PARTIAL:
            run.status = "partial"
            run.error_message = "failed codes: " + ", ".join(result.failed_tickers)
        return result.rows_written

    async def _fetch(
        self,
        repo: PriceRepository,
        tickers: list[str],
        as_of: date,
    ) -> FetchResult:
        cancel_event = asyncio.Event()
        if self.should_stop():
            cancel_event.set()
        watcher = asyncio.create_task(self._watch_stop(cancel_event))
        try:
            async with httpx.AsyncClient(transport=self.transport) as http:
                client = PriceClient(
                    http, self.config.fetch.price_url, self.config.fetch.timeout_s
                )
                pipeline = FetchPipeline(
                    client, repo, interval_s=self.config.fetch.interval_ms / 1000
                )
                return await pipeline.run(tickers, as_of, cancel_event=cancel_event)
        finally:
            watcher.cancel()

    async def _watch_stop(self, cancel_event: asyncio.Event) -> None:
        while not self.should_stop():
            await asyncio.sleep(_STOP_POLL_S)
        logger.warning("stop requested; no further codes will be fetched")
        cancel_event.set()
