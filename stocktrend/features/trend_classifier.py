"""
Trend classification engine.

One call classifies one date. Inputs:

  - the date's ``TrendMovingAvgs`` (M5, M20, M60, M100),
  - ``past_trends``: the labels of the preceding days, newest first
    (position 0 is yesterday), at most ``threshold`` of them are consulted,
  - ``closes``: up to ``CLOSE_WINDOW`` closes ending on the date, newest first,
  - ``threshold``: the hysteresis lookback (``long_term_threshold_days``).

Classification
--------------
``M5 > M20 > M60`` is a short-term advance. It is promoted to a long-term
advance only when ``M60 > M100`` as well AND the previous ``threshold`` labels
all rank at least ``SHORT_TERM_ADVANCE``. ``M60 > M20 > M5`` mirrors this for
declines. Anything else is ``NEUTRAL``.

Requiring the previous labels to already be short-term stops a single large
move from flipping a flat series straight to a long-term label.

The engine does no I/O and raises nothing; NaN inputs flow through the
comparisons and simply fail them.
"""

from __future__ import annotations

from stocktrend.models.series import NewestFirst
from stocktrend.models.trend import TrendMovingAvgs, TrendRecord
from stocktrend.taxonomy.trend_taxonomy import CrossSignal, TrendLabel, TrendTurn

MAX_STREAK_DAYS = 10
CLOSE_WINDOW = MAX_STREAK_DAYS + 2


def _strictly_decreasing(*values: float) -> bool:
    return all(a > b for a, b in zip(values, values[1:]))


def classify_trend(
    avgs: TrendMovingAvgs,
    past_trends: NewestFirst[TrendLabel],
    threshold: int,
) -> TrendLabel:
    """Label the date from the ordering of its moving averages."""
    recent = past_trends.head(threshold)

    if _strictly_decreasing(avgs.m5, avgs.m20, avgs.m60):
        if not avgs.m60 > avgs.m100:
            return TrendLabel.SHORT_TERM_ADVANCE
        if len(recent) < threshold:
            return TrendLabel.SHORT_TERM_ADVANCE
        if any(t.rank() < TrendLabel.SHORT_TERM_ADVANCE.rank() for t in recent):
            return TrendLabel.SHORT_TERM_ADVANCE
        return TrendLabel.LONG_TERM_ADVANCE

    if _strictly_decreasing(avgs.m60, avgs.m20, avgs.m5):
        if not avgs.m100 > avgs.m60:
            return TrendLabel.SHORT_TERM_DECLINE
        if len(recent) < threshold:
            return TrendLabel.SHORT_TERM_DECLINE
        if any(t.rank() > TrendLabel.SHORT_TERM_DECLINE.rank() for t in recent):
            return TrendLabel.SHORT_TERM_DECLINE
        return TrendLabel.LONG_TERM_DECLINE

    return TrendLabel.NEUTRAL


def detect_turn(today: TrendLabel, past_trends: NewestFirst[TrendLabel]) -> TrendTurn:
    """Compare today's label with yesterday's by rank."""
    if not past_trends or past_trends[0] == TrendLabel.UNKNOWN:
        return TrendTurn.UNKNOWN
    yesterday = past_trends[0]
    if today.rank() > yesterday.rank():
        return TrendTurn.UPWARD
    if today.rank() < yesterday.rank():
        return TrendTurn.DOWNWARD
    return TrendTurn.NONE


def growth_rate(closes: NewestFirst[float]) -> float:
    """Latest close ÷ previous close; 0 with fewer than two closes or a zero divisor."""
    if len(closes) < 2 or closes[1] == 0:
        return 0.0
    return closes[0] / closes[1]


def cross_signal(closes: NewestFirst[float], m5: float) -> CrossSignal:
    """Did the last two closes straddle the 5-day average?"""
    if len(closes) < 2:
        return CrossSignal.NONE
    today, yesterday = closes[0], closes[1]
    if today > m5 > yesterday:
        return CrossSignal.UPWARD
    if yesterday > m5 > today:
        return CrossSignal.DOWNWARD
    return CrossSignal.NONE


def streak_days(closes: NewestFirst[float]) -> int:
    """Consecutive days the close moved in the same direction, capped at ``MAX_STREAK_DAYS``.

    The direction comes from the latest pair; a flat latest pair gives 0.
    """
    if len(closes) < 2:
        return 0
    if closes[0] > closes[1]:
        rising = True
    elif closes[0] < closes[1]:
        rising = False
    else:
        return 0

    streak = 1
    for i in range(1, MAX_STREAK_DAYS):
        if len(closes) < i + 2:
            break
        newer, older = closes[i], closes[i + 1]
        if (rising and newer > older) or (not rising and newer < older):
            streak += 1
        else:
            break
    return streak


def classify_day(
    date: str,
    avgs: TrendMovingAvgs,
    past_trends: NewestFirst[TrendLabel],
    closes: NewestFirst[float],
    threshold: int,
) -> TrendRecord:
    """Produce the full ``TrendRecord`` for one date.

    Args:
        date: ``YYYY/MM/DD`` of the date being classified.
        avgs: Moving averages for that date.
        past_trends: Labels of the preceding days, newest first.
        closes: Closes on or before ``date``, newest first, at most
            ``CLOSE_WINDOW`` of them.
        threshold: Hysteresis lookback in days.

    Returns:
        The ``TrendRecord`` for ``date``.
    """
    closes = closes.head(CLOSE_WINDOW)
    trend = classify_trend(avgs, past_trends, threshold)
    return TrendRecord(
        date=date,
        trend=trend,
        turn=detect_turn(trend, past_trends),
        growth_rate=growth_rate(closes),
        cross=cross_signal(closes, avgs.m5),
        streak_days=streak_days(closes),
    )
