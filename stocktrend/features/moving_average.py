"""
Moving-average engine.

Input is one ticker's ``PriceObservation`` series, newest first. For every
position ``i`` (0 = most recent) and every window ``w`` in
``MOVING_AVERAGE_WINDOWS`` the average is taken over positions
``i .. i+w-1``. Near the oldest end fewer than ``w`` observations remain, and
the window simply narrows to what is left: no padding, no error.

The function is pure. An empty series gives an empty result; a single
observation gives one set with every window equal to its close.
"""

from __future__ import annotations

from stocktrend.models.price import PriceObservation
from stocktrend.models.series import NewestFirst
from stocktrend.models.trend import MOVING_AVERAGE_WINDOWS, MovingAverageSet


def compute_moving_averages(
    observations: NewestFirst[PriceObservation],
) -> NewestFirst[MovingAverageSet]:
    """Compute one ``MovingAverageSet`` per observation date.

    Args:
        observations: Closes for a single ticker, newest first.

    Returns:
        Moving-average sets aligned with ``observations`` (same order, same
        dates).
    """
    closes = [obs.close for obs in observations]
    per_window = {w: _window_averages(closes, w) for w in MOVING_AVERAGE_WINDOWS}

    return NewestFirst.of(
        MovingAverageSet(
            date=obs.date,
            averages={w: per_window[w][i] for w in MOVING_AVERAGE_WINDOWS},
        )
        for i, obs in enumerate(observations)
    )


def _window_averages(closes: list[float], window: int) -> list[float]:
    """Average of ``closes[i:i+window]`` for every ``i``, narrowing at the end."""
    result: list[float] = []
    for i in range(len(closes)):
        span = closes[i:i + window]
        result.append(sum(span) / len(span))
    return result
