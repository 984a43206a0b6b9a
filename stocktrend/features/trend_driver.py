"""
Sequential trend driver.

Hysteresis makes each day's label depend on the labels of the days before it,
so a ticker's history has to be classified oldest → newest. The driver:

  1. walks the moving-average sets from the earliest date forward,
  2. hands the classifier the last ``threshold`` labels (yesterday first) and
     the closes dated on or before the current date (newest first, at most
     ``CLOSE_WINDOW``),
  3. appends the resulting label to the running history,
  4. reverses the collected records once at the end so callers get them
     newest first like every other series in the pipeline.

The earliest date has no prior label and therefore always gets
``TrendTurn.UNKNOWN``.
"""

from __future__ import annotations

from bisect import bisect_right

from stocktrend.features.trend_classifier import CLOSE_WINDOW, classify_day
from stocktrend.models.price import PriceObservation
from stocktrend.models.series import NewestFirst, OldestFirst
from stocktrend.models.trend import MovingAverageSet, TrendRecord
from stocktrend.taxonomy.trend_taxonomy import TrendLabel


def compute_trends(
    moving_averages: NewestFirst[MovingAverageSet],
    observations: NewestFirst[PriceObservation],
    threshold: int,
) -> NewestFirst[TrendRecord]:
    """Classify every date of one ticker's history.

    Args:
        moving_averages: Output of ``compute_moving_averages``, newest first.
        observations: The closes the averages were computed from, newest first.
        threshold: Hysteresis lookback (``long_term_threshold_days``).

    Returns:
        One ``TrendRecord`` per moving-average date, newest first.
    """
    history = observations.reversed()
    history_dates = [obs.date for obs in history]

    labels: list[TrendLabel] = []
    records: list[TrendRecord] = []

    for ma in moving_averages.reversed():
        past = OldestFirst.of(labels).tail(threshold).reversed()
        record = classify_day(
            date=ma.date,
            avgs=ma.trend_avgs(),
            past_trends=past,
            closes=_closes_until(history, history_dates, ma.date),
            threshold=threshold,
        )
        records.append(record)
        labels.append(record.trend)

    return OldestFirst.of(records).reversed()


def _closes_until(
    history: OldestFirst[PriceObservation],
    history_dates: list[str],
    day: str,
) -> NewestFirst[float]:
    """Closes dated on or before ``day``, newest first, capped at ``CLOSE_WINDOW``."""
    end = bisect_right(history_dates, day)
    window = history[max(0, end - CLOSE_WINDOW):end]
    return OldestFirst.of(obs.close for obs in window).reversed()
