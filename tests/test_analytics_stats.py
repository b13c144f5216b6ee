"""Tests for analytics statistics helpers."""

import pytest

from marketfee.analytics.stats import (
    TimeSeriesPoint,
    autocorrelation,
    change_percentage,
    correlation,
    detect_anomalies,
    detect_change_points,
    detect_seasonality,
    forecast,
    mean,
    median,
    moving_average,
    percentile,
    standard_deviation,
    trend_direction,
)


def _series(values: list, start_day: int = 1) -> list:
    return [
        TimeSeriesPoint(date=f"2026-02-{start_day + i:02d}", value=v)
        for i, v in enumerate(values)
    ]


class TestDescriptive:
    def test_mean(self) -> None:
        assert mean([1, 2, 3, 4]) == 2.5
        assert mean([]) == 0.0

    def test_median_odd_and_even(self) -> None:
        assert median([5, 1, 3]) == 3
        assert median([4, 1, 3, 2]) == 2.5
        assert median([]) == 0.0

    def test_percentile_nearest_rank(self) -> None:
        values = list(range(1, 11))
        assert percentile(values, 90) == 9
        assert percentile(values, 100) == 10
        assert percentile([4, 3, 2, 1], 50) == 2
        assert percentile([], 50) == 0.0

    def test_percentile_zero_clamps_to_minimum(self) -> None:
        assert percentile([7, 3, 9], 0) == 3

    def test_standard_deviation_population(self) -> None:
        assert standard_deviation([2, 4, 4, 4, 5, 5, 7, 9]) == pytest.approx(2.0)
        assert standard_deviation([5, 5, 5]) == 0.0
        assert standard_deviation([]) == 0.0


class TestChange:
    def test_change_percentage(self) -> None:
        assert change_percentage(110, 100) == 10.0
        assert change_percentage(50, 200) == -75.0

    def test_change_rounded(self) -> None:
        assert change_percentage(4, 3) == 33.33

    def test_change_half_rounds_up(self) -> None:
        # 1/32 × 100 = 3.125 exactly; banker's rounding would give 3.12
        assert change_percentage(33, 32) == 3.13
        assert change_percentage(9, 8) == 12.5

    def test_change_from_zero(self) -> None:
        assert change_percentage(5, 0) == 100.0
        assert change_percentage(0, 0) == 0.0

    def test_trend_direction(self) -> None:
        assert trend_direction(110, 100) == "up"
        assert trend_direction(90, 100) == "down"
        assert trend_direction(104, 100) == "stable"
        assert trend_direction(96, 100) == "stable"

    def test_trend_from_zero(self) -> None:
        assert trend_direction(0, 0) == "stable"
        assert trend_direction(3, 0) == "up"


class TestMovingAverage:
    def test_trailing_window(self) -> None:
        result = moving_average(_series([1, 2, 3, 4]), window=2)
        assert [p.value for p in result] == [1.0, 1.5, 2.5, 3.5]
        assert [p.date for p in result] == ["2026-02-01", "2026-02-02", "2026-02-03", "2026-02-04"]

    def test_label(self) -> None:
        result = moving_average(_series([1, 2]), window=2)
        assert result[1].label == "1.5 (2-period avg)"

    def test_halves_round_up(self) -> None:
        # mean 0.125 is exact in binary; banker's rounding would give 0.12
        result = moving_average(_series([0.25, 0]), window=2)
        assert result[1].value == 0.13
        assert result[1].label == "0.13 (2-period avg)"

    def test_window_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            moving_average(_series([1, 2]), window=0)

    def test_empty(self) -> None:
        assert moving_average([], window=3) == []


class TestChangePoints:
    def test_jump_detected_on_both_sides(self) -> None:
        assert detect_change_points(_series([100, 100, 150, 150, 150])) == [1, 2]

    def test_flat_series_has_none(self) -> None:
        assert detect_change_points(_series([10, 10, 10, 10])) == []

    def test_zero_neighbours_skipped(self) -> None:
        assert detect_change_points(_series([0, 0, 0])) == []


class TestCorrelation:
    def test_perfect_positive(self) -> None:
        assert correlation([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)

    def test_perfect_negative(self) -> None:
        assert correlation([1, 2, 3], [3, 2, 1]) == pytest.approx(-1.0)

    def test_degenerate_input(self) -> None:
        assert correlation([1, 2], [1, 2, 3]) == 0.0
        assert correlation([], []) == 0.0
        assert correlation([1, 1, 1], [1, 2, 3]) == 0.0

    def test_autocorrelation_bounds(self) -> None:
        assert autocorrelation([1, 2, 3], 0) == 0.0
        assert autocorrelation([1, 2, 3], 3) == 0.0
        assert autocorrelation([4, 4, 4, 4], 1) == 0.0


class TestSeasonality:
    def test_weekly_pattern(self) -> None:
        week = [10, 0, 0, 0, 0, 0, 0]
        result = detect_seasonality(_series(week * 2))
        assert result.kind == "weekly"
        assert result.period == 7
        assert result.strength == pytest.approx(0.5)

    def test_short_series(self) -> None:
        result = detect_seasonality(_series([1, 2, 3]))
        assert result.kind == "none"
        assert result.period == 0

    def test_no_pattern(self) -> None:
        result = detect_seasonality(_series([5] * 14))
        assert result.kind == "none"


class TestForecast:
    def test_flat_series(self) -> None:
        result = forecast(_series([10, 10, 10]), periods=3)
        assert [p.value for p in result] == [10.0, 10.0, 10.0]
        assert [p.date for p in result] == ["2026-02-04", "2026-02-05", "2026-02-06"]
        assert result[0].label == "Forecast: 10.0"

    def test_default_periods(self) -> None:
        assert len(forecast(_series([1, 2, 3]))) == 7

    def test_never_negative(self) -> None:
        result = forecast(_series([10, 5, 0]), periods=3)
        assert result[0].value == 2.62
        assert result[1].value == 0.0
        assert all(p.value >= 0 for p in result)

    def test_too_short(self) -> None:
        assert forecast(_series([1, 2])) == []

    def test_rising_trend_continues(self) -> None:
        result = forecast(_series([10, 20, 30, 40]), periods=2)
        assert result[1].value > result[0].value


class TestAnomalies:
    def test_high_severity(self) -> None:
        values = [10] * 20 + [100]
        anomalies = detect_anomalies(values)
        assert len(anomalies) == 1
        assert anomalies[0].index == 20
        assert anomalies[0].value == 100
        assert anomalies[0].severity == "high"

    def test_low_severity(self) -> None:
        # z-score of the outlier is exactly 3.0
        anomalies = detect_anomalies([10] * 9 + [100])
        assert len(anomalies) == 1
        assert anomalies[0].zscore == pytest.approx(3.0)
        assert anomalies[0].severity == "low"

    def test_constant_series(self) -> None:
        assert detect_anomalies([3, 3, 3, 3]) == []

    def test_too_short(self) -> None:
        assert detect_anomalies([1, 100]) == []

    def test_custom_threshold(self) -> None:
        anomalies = detect_anomalies([10] * 9 + [100], threshold=1.8)
        assert anomalies[0].severity == "medium"
