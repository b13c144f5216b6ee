"""Statistical helpers for fee analytics.

Small, independent numeric functions over plain floats and daily time
series. None of them mutate their input. Empty or degenerate input
returns a neutral value (0, an empty list, or "stable") rather than
raising, because dashboards call these on sparse data.

Rounding mirrors what the reports display: two decimal places where a
value is shown to a user, full precision otherwise.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Sequence


STABLE_BAND = 0.05
CHANGE_POINT_THRESHOLD = 0.2
SEASONALITY_PERIODS = ((7, "weekly"), (30, "monthly"), (365, "yearly"))
SEASONALITY_MIN_STRENGTH = 0.3
SMOOTHING_ALPHA = 0.3


@dataclass(frozen=True)
class TimeSeriesPoint:
    """One point of a daily series. `date` is ISO formatted (YYYY-MM-DD)."""
    date: str
    value: float
    label: str = ""


@dataclass(frozen=True)
class Seasonality:
    period: int
    strength: float
    kind: str  # weekly | monthly | yearly | none


@dataclass(frozen=True)
class Anomaly:
    index: int
    value: float
    zscore: float
    severity: str  # low | medium | high


def _round2(value: float) -> float:
    """Round to 2 places, halves towards positive infinity (not banker's)."""
    return math.floor(value * 100 + 0.5) / 100


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def percentile(values: Sequence[float], pct: float) -> float:
    """Nearest-rank percentile: the value at ceil(pct/100 × n) − 1."""
    if not values:
        return 0.0
    ordered = sorted(values)
    index = math.ceil((pct / 100) * len(ordered)) - 1
    return ordered[min(max(0, index), len(ordered) - 1)]


def median(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def standard_deviation(values: Sequence[float]) -> float:
    """Population standard deviation."""
    if not values:
        return 0.0
    mu = mean(values)
    return math.sqrt(sum((v - mu) ** 2 for v in values) / len(values))


def change_percentage(current: float, previous: float) -> float:
    """Percent change from previous to current, rounded to 2 places.

    From a zero baseline any growth counts as 100%.
    """
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return _round2((current - previous) / previous * 100)


def trend_direction(current: float, previous: float) -> str:
    """'up', 'down', or 'stable' (relative change under 5%)."""
    if previous == 0:
        if current == 0:
            return "stable"
        return "up" if current > 0 else "down"
    if abs((current - previous) / previous) < STABLE_BAND:
        return "stable"
    return "up" if current > previous else "down"


def moving_average(
    data: Sequence[TimeSeriesPoint], window: int,
) -> list[TimeSeriesPoint]:
    """Trailing moving average; early points average what is available."""
    if window <= 0:
        raise ValueError("window must be positive")
    result = []
    for i, point in enumerate(data):
        start = max(0, i - window + 1)
        avg = _round2(mean([p.value for p in data[start:i + 1]]))
        result.append(TimeSeriesPoint(
            date=point.date,
            value=avg,
            label=f"{avg} ({window}-period avg)",
        ))
    return result


def detect_change_points(data: Sequence[TimeSeriesPoint]) -> list[int]:
    """Indices whose value jumps more than 20% from a neighbour.

    Zero-valued neighbours are skipped as a denominator.
    """
    points = []
    for i in range(1, len(data) - 1):
        prev, cur, nxt = data[i - 1].value, data[i].value, data[i + 1].value
        change_prev = abs((cur - prev) / prev) if prev else 0.0
        change_next = abs((nxt - cur) / cur) if cur else 0.0
        if change_prev > CHANGE_POINT_THRESHOLD or change_next > CHANGE_POINT_THRESHOLD:
            points.append(i)
    return points


def correlation(xs: Sequence[float], ys: Sequence[float]) -> float:
    """Pearson correlation. Mismatched, empty, or constant input gives 0."""
    if len(xs) != len(ys) or not xs:
        return 0.0
    n = len(xs)
    sum_x, sum_y = sum(xs), sum(ys)
    sum_xy = sum(x * y for x, y in zip(xs, ys))
    sum_xx = sum(x * x for x in xs)
    sum_yy = sum(y * y for y in ys)
    numerator = n * sum_xy - sum_x * sum_y
    denominator = math.sqrt(
        max(0.0, (n * sum_xx - sum_x ** 2) * (n * sum_yy - sum_y ** 2))
    )
    return 0.0 if denominator == 0 else numerator / denominator


def autocorrelation(values: Sequence[float], lag: int) -> float:
    if lag <= 0 or lag >= len(values):
        return 0.0
    mu = mean(values)
    numerator = sum(
        (values[i] - mu) * (values[i + lag] - mu)
        for i in range(len(values) - lag)
    )
    denominator = sum((v - mu) ** 2 for v in values)
    return 0.0 if denominator == 0 else numerator / denominator


def detect_seasonality(data: Sequence[TimeSeriesPoint]) -> Seasonality:
    """Strongest weekly/monthly/yearly autocorrelation.

    A period is only tested when the series covers it twice. Strength at
    or below 0.3 reports kind 'none'.
    """
    if len(data) < 7:
        return Seasonality(period=0, strength=0.0, kind="none")
    values = [p.value for p in data]
    best_period, best_strength, best_kind = 0, 0.0, "none"
    for period, kind in SEASONALITY_PERIODS:
        if len(values) < period * 2:
            continue
        strength = autocorrelation(values, period)
        if strength > best_strength:
            best_period, best_strength, best_kind = period, strength, kind
    return Seasonality(
        period=best_period,
        strength=best_strength,
        kind=best_kind if best_strength > SEASONALITY_MIN_STRENGTH else "none",
    )


def forecast(
    data: Sequence[TimeSeriesPoint], periods: int = 7,
) -> list[TimeSeriesPoint]:
    """Project the series forward by `periods` days.

    Simple exponential smoothing (alpha 0.3) plus the average per-step
    drift of the series. Forecasts never go below zero. Fewer than three
    points yield no forecast.
    """
    if len(data) < 3:
        return []
    values = [p.value for p in data]
    smoothed = values[0]
    for v in values[1:]:
        smoothed = SMOOTHING_ALPHA * v + (1 - SMOOTHING_ALPHA) * smoothed
    drift = (values[-1] - values[0]) / len(values)

    last = date.fromisoformat(data[-1].date[:10])
    result = []
    for step in range(1, periods + 1):
        value = max(0.0, _round2(smoothed + drift * step))
        result.append(TimeSeriesPoint(
            date=(last + timedelta(days=step)).isoformat(),
            value=value,
            label=f"Forecast: {value}",
        ))
    return result


def detect_anomalies(
    values: Sequence[float], threshold: float = 2.0,
) -> list[Anomaly]:
    """Flag values whose |z-score| exceeds `threshold`.

    Severity: high above 2× threshold, medium above 1.5×, else low.
    A constant series has no anomalies.
    """
    if len(values) < 3:
        return []
    mu = mean(values)
    sigma = standard_deviation(values)
    if sigma == 0:
        return []
    anomalies = []
    for i, v in enumerate(values):
        z = abs((v - mu) / sigma)
        if z <= threshold:
            continue
        if z > threshold * 2:
            severity = "high"
        elif z > threshold * 1.5:
            severity = "medium"
        else:
            severity = "low"
        anomalies.append(Anomaly(index=i, value=v, zscore=z, severity=severity))
    return anomalies
