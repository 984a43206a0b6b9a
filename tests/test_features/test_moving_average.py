"""Tests for the moving-average engine — window alignment and narrowing."""

from __future__ import annotations

import pytest

from stocktrend.features.moving_average import compute_moving_averages
from stocktrend.models.series import NewestFirst
from stocktrend.models.trend import MOVING_AVERAGE_WINDOWS


class TestComputeMovingAverages:
    def test_empty_series_gives_empty_result(self):
        assert len(compute_moving_averages(NewestFirst())) == 0

    def test_single_observation_every_window_equals_close(self, make_series):
        result = compute_moving_averages(make_series([42.0]))
        assert len(result) == 1
        for w in MOVING_AVERAGE_WINDOWS:
            assert result[0].window(w) == 42.0

    def test_constant_series_all_averages_equal_the_close(self, make_series):
        result = compute_moving_averages(make_series([1000.0] * 150))
        assert len(result) == 150
        for ma in result:
            for w in MOVING_AVERAGE_WINDOWS:
                assert ma.window(w) == 1000.0

    def test_dates_and_order_match_input(self, make_series):
        series = make_series([10.0, 11.0, 12.0, 13.0])
        result = compute_moving_averages(series)
        assert [ma.date for ma in result] == [obs.date for obs in series]
        assert result[0].date == "2024/01/04"

    def test_window_narrows_near_the_oldest_end(self, make_series):
        # Newest first: 4, 3, 2, 1
        result = compute_moving_averages(make_series([1.0, 2.0, 3.0, 4.0]))

        assert result[0].window(3) == pytest.approx(3.0)     # (4+3+2)/3
        assert result[0].window(5) == pytest.approx(2.5)     # only 4 closes left
        assert result[0].window(100) == pytest.approx(2.5)
        assert result[2].window(3) == pytest.approx(1.5)     # (2+1)/2
        for w in MOVING_AVERAGE_WINDOWS:
            assert result[3].window(w) == pytest.approx(1.0)

    def test_full_window_uses_exactly_w_closes(self, make_series):
        closes = [float(c) for c in range(1, 31)]            # newest is 30
        result = compute_moving_averages(make_series(closes))
        assert result[0].window(5) == pytest.approx((30 + 29 + 28 + 27 + 26) / 5)
        assert result[0].window(20) == pytest.approx(sum(range(11, 31)) / 20)
        assert result[0].window(60) == pytest.approx(sum(range(1, 31)) / 30)

    def test_trend_avgs_pick_the_classifier_windows(self, make_series):
        ma = compute_moving_averages(make_series([float(c) for c in range(1, 121)]))[0]
        avgs = ma.trend_avgs()
        assert avgs.m5 == ma.window(5)
        assert avgs.m20 == ma.window(20)
        assert avgs.m60 == ma.window(60)
        assert avgs.m100 == ma.window(100)
