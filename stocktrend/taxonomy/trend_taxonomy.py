"""
Trend taxonomy — the three closed enumerations a ``TrendRecord`` carries.

  - ``TrendLabel``  — ranked category from the ordering of M5/M20/M60/M100.
  - ``TrendTurn``   — today's label rank vs. the previous day's.
  - ``CrossSignal`` — whether the last two closes straddled the 5-day average.

The integer values are the persisted ordinals. Comparisons between labels go
through ``rank()`` rather than the raw value, and rendering goes through
``display_name()``, so the storage ordinals and the human-readable names are
each declared in exactly one place.

This module has NO imports from any other ``stocktrend`` package.
"""

from enum import IntEnum


class TrendLabel(IntEnum):
    """Trend classification, ranked low → high."""

    UNKNOWN = 0
    """No classification possible."""

    LONG_TERM_DECLINE = 1
    """M100 > M60 > M20 > M5, sustained for the hysteresis lookback."""

    SHORT_TERM_DECLINE = 2
    """M60 > M20 > M5."""

    NEUTRAL = 3
    """Any other ordering."""

    SHORT_TERM_ADVANCE = 4
    """M5 > M20 > M60."""

    LONG_TERM_ADVANCE = 5
    """M5 > M20 > M60 > M100, sustained for the hysteresis lookback."""

    def rank(self) -> int:
        return _LABEL_RANKS[self]

    def display_name(self) -> str:
        return _LABEL_NAMES[self]


_LABEL_RANKS: dict[TrendLabel, int] = {
    TrendLabel.UNKNOWN: 0,
    TrendLabel.LONG_TERM_DECLINE: 1,
    TrendLabel.SHORT_TERM_DECLINE: 2,
    TrendLabel.NEUTRAL: 3,
    TrendLabel.SHORT_TERM_ADVANCE: 4,
    TrendLabel.LONG_TERM_ADVANCE: 5,
}

_LABEL_NAMES: dict[TrendLabel, str] = {
    TrendLabel.UNKNOWN: "unknown",
    TrendLabel.LONG_TERM_DECLINE: "longTermDecline",
    TrendLabel.SHORT_TERM_DECLINE: "shortTermDecline",
    TrendLabel.NEUTRAL: "non",
    TrendLabel.SHORT_TERM_ADVANCE: "shortTermAdvance",
    TrendLabel.LONG_TERM_ADVANCE: "longTermAdvance",
}


class TrendTurn(IntEnum):
    """Direction of today's label relative to the previous day's label."""

    UNKNOWN = 0
    DOWNWARD = 1
    NONE = 2
    UPWARD = 3

    def display_name(self) -> str:
        return _TURN_NAMES[self]


_TURN_NAMES: dict[TrendTurn, str] = {
    TrendTurn.UNKNOWN: "unknownTurn",
    TrendTurn.DOWNWARD: "downwardTurn",
    TrendTurn.NONE: "noTurn",
    TrendTurn.UPWARD: "upwardTurn",
}


class CrossSignal(IntEnum):
    """Whether the two most recent closes crossed the 5-day moving average."""

    UNKNOWN = 0
    DOWNWARD = 1
    NONE = 2
    UPWARD = 3

    def display_name(self) -> str:
        return _CROSS_NAMES[self]


_CROSS_NAMES: dict[CrossSignal, str] = {
    CrossSignal.UNKNOWN: "unknownCross",
    CrossSignal.DOWNWARD: "downwardCross",
    CrossSignal.NONE: "noCross",
    CrossSignal.UPWARD: "upwardCross",
}
