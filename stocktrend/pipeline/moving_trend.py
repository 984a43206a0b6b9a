"""
MovingTrendStage — recompute moving averages and trends for a ticker set.

A ``MovingTrendJob`` fixes the work up front and validates it before any I/O:
tickers sorted ascending, a ``[from_date, to_date]`` range, the group size
(``batch_size``) and the hysteresis lookback.

Per group of ``batch_size`` tickers, strictly one group after another:

  1. one ``daily`` query for the whole group's closes in the date range,
  2. moving-average engine + sequential trend driver per ticker,
  3. one transaction upserting the group's ``movingavg`` and ``trend`` rows.

``batch_size`` only bounds how many tickers share a history query; nothing
runs in parallel. A failing group writes nothing and stops the stage. The
stop flag is checked between groups.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Optional

from stocktrend.db.repositories.price_repo import PriceRepository
from stocktrend.db.repositories.trend_repo import MovingTrendRepository
from stocktrend.db.store import Row
from stocktrend.features.moving_average import compute_moving_averages
from stocktrend.features.trend_driver import compute_trends
from stocktrend.models.meta import RunMetadata
from stocktrend.pipeline.base import PipelineStage
from stocktrend.utils.time_utils import (
    default_date_range,
    format_storage_date,
    normalize_storage_date,
)

logger = logging.getLogger(__name__)

# Range used when neither date is given.
DEFAULT_RANGE_DAYS = 10


class MovingTrendCancelledError(RuntimeError):
    """Stop was requested before every group was processed."""


@dataclass(frozen=True)
class MovingTrendJob:
    """A validated moving-average/trend recomputation request.

    Build it with ``MovingTrendJob.create()``.
    """

    tickers: tuple[str, ...]
    from_date: str
    to_date: str
    batch_size: int = 1
    threshold: int = 2

    @classmethod
    def create(
        cls,
        tickers: list[str],
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
        batch_size: int = 1,
        threshold: int = 2,
        today: Optional[date] = None,
    ) -> "MovingTrendJob":
        """Validate inputs and fill in defaults.

        Missing dates default to ``[today - 10 days, today]``.

        Raises:
            ValueError: For an empty ticker list, a date not in
                ``YYYY/MM/DD`` form, ``from_date`` after ``to_date``, or a
                ``batch_size``/``threshold`` below 1.
        """
        if not tickers:
            raise ValueError("tickers must not be empty.")
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}.")
        if threshold < 1:
            raise ValueError(f"threshold must be >= 1, got {threshold}.")

        default_from, default_to = default_date_range(
            today or date.today(), DEFAULT_RANGE_DAYS
        )
        start = normalize_storage_date(from_date) if from_date else format_storage_date(default_from)
        end = normalize_storage_date(to_date) if to_date else format_storage_date(default_to)
        if start > end:
            raise ValueError(f"from_date {start} is after to_date {end}.")

        return cls(
            tickers=tuple(sorted(tickers)),
            from_date=start,
            to_date=end,
            batch_size=batch_size,
            threshold=threshold,
        )

    def groups(self) -> list[list[str]]:
        """Tickers split into consecutive groups of at most ``batch_size``."""
        return [
            list(self.tickers[i:i + self.batch_size])
            for i in range(0, len(self.tickers), self.batch_size)
        ]


class MovingTrendStage(PipelineStage):
    """Run a ``MovingTrendJob`` against the row store."""

    stage_name = "moving_trend"

    def _execute(self, run: RunMetadata, job: MovingTrendJob) -> int:  # type: ignore[override]
        groups = job.groups()
        logger.info(
            "moving/trend for %d codes | %s..%s | %d groups of <=%d | threshold=%d",
            len(job.tickers), job.from_date, job.to_date,
            len(groups), job.batch_size, job.threshold,
        )

        written = 0
        with self._open_store() as store:
            prices = PriceRepository(store)
            trends = MovingTrendRepository(store)
            for index, group in enumerate(groups, start=1):
                if self.should_stop():
                    raise MovingTrendCancelledError(
                        f"stopped before group {index}/{len(groups)}; "
                        f"{written} rows written so far."
                    )
                start = time.monotonic()
                written += self._process_group(group, job, prices, trends)
                logger.info(
                    "group %d/%d %s done in %.2fs",
                    index, len(groups), group, time.monotonic() - start,
                )
        return written

    @staticmethod
    def _process_group(
        group: list[str],
        job: MovingTrendJob,
        prices: PriceRepository,
        trends: MovingTrendRepository,
    ) -> int:
        history = prices.fetch_close_history(group, job.from_date, job.to_date)

        moving_avg_rows: list[Row] = []
        trend_rows: list[Row] = []
        for ticker in group:
            observations = history[ticker]
            averages = compute_moving_averages(observations)
            records = compute_trends(averages, observations, job.threshold)
            moving_avg_rows.extend(MovingTrendRepository.moving_avg_rows(ticker, list(averages)))
            trend_rows.extend(MovingTrendRepository.trend_rows(ticker, list(records)))

        return trends.upsert_results(moving_avg_rows, trend_rows)
