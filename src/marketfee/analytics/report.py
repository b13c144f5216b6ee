"""Fee analytics report — summarises fee transactions over a period.

Money totals (revenue, fees, commissions) count only transactions that
were not refunded. Rates are percentages of every transaction in the
period:

    refund_rate  = refunded / transaction_count × 100
    dispute_rate = ever disputed / transaction_count × 100
"""

from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Sequence

from marketfee.analytics.stats import TimeSeriesPoint
from marketfee.models.fees import CommissionType, FeeType, ProjectType, UserTier
from marketfee.models.transactions import FeeTransaction, TransactionState


@dataclass(frozen=True)
class AnalyticsTrend:
    """Per-day totals."""
    date: str
    revenue: Decimal
    fees: Decimal
    commissions: Decimal
    transaction_count: int


@dataclass(frozen=True)
class FeeAnalytics:
    period_start: date
    period_end: date
    total_revenue: Decimal
    total_fees: Decimal
    total_commissions: Decimal
    fees_by_type: Dict[str, Decimal]
    commissions_by_type: Dict[str, Decimal]
    revenue_by_user_tier: Dict[str, Decimal]
    revenue_by_project_type: Dict[str, Decimal]
    average_fee_percentage: Decimal
    transaction_count: int
    refund_rate: Decimal
    dispute_rate: Decimal
    trends: List[AnalyticsTrend] = field(default_factory=list)


def _pct(part: int, whole: int) -> Decimal:
    if whole == 0:
        return Decimal("0")
    return (Decimal(part) / Decimal(whole) * 100).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP,
    )


def _zeroed(enum_cls: Any) -> Dict[str, Decimal]:
    return {m.value: Decimal("0") for m in enum_cls}


def build_fee_analytics(
    transactions: Iterable[FeeTransaction],
    start: date,
    end: date,
) -> FeeAnalytics:
    """Summarise transactions processed between start and end (inclusive)."""
    if start > end:
        raise ValueError(f"Invalid period: {start} is after {end}")

    in_period = [
        t for t in transactions
        if t.processed_utc is not None and start <= t.processed_utc.date() <= end
    ]
    settled = [t for t in in_period if t.state != TransactionState.REFUNDED]

    fees_by_type = _zeroed(FeeType)
    commissions_by_type = _zeroed(CommissionType)
    revenue_by_tier = _zeroed(UserTier)
    revenue_by_project = _zeroed(ProjectType)
    daily: Dict[str, Dict[str, Any]] = {}

    for tx in in_period:
        day = daily.setdefault(tx.processed_utc.date().isoformat(), {
            "revenue": Decimal("0"),
            "fees": Decimal("0"),
            "commissions": Decimal("0"),
            "count": 0,
        })
        day["count"] += 1

    for tx in settled:
        calc = tx.calculation
        for fee in calc.fees:
            fees_by_type[fee.fee_type.value] += fee.amount
        for commission in tx.commissions:
            commissions_by_type[commission.commission_type.value] += commission.amount
        revenue_by_tier[calc.request.user_tier.value] += calc.total_amount
        revenue_by_project[calc.request.project_type.value] += calc.total_amount

        day = daily[tx.processed_utc.date().isoformat()]
        day["revenue"] += calc.total_amount
        day["fees"] += calc.total_fees
        day["commissions"] += calc.total_commissions

    if settled:
        average_fee_percentage = (
            sum((t.calculation.breakdown.fee_percentage for t in settled), Decimal("0"))
            / len(settled)
        ).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    else:
        average_fee_percentage = Decimal("0")

    trends = [
        AnalyticsTrend(
            date=day_key,
            revenue=values["revenue"],
            fees=values["fees"],
            commissions=values["commissions"],
            transaction_count=values["count"],
        )
        for day_key, values in sorted(daily.items())
    ]

    return FeeAnalytics(
        period_start=start,
        period_end=end,
        total_revenue=sum(revenue_by_tier.values(), Decimal("0")),
        total_fees=sum(fees_by_type.values(), Decimal("0")),
        total_commissions=sum(commissions_by_type.values(), Decimal("0")),
        fees_by_type=fees_by_type,
        commissions_by_type=commissions_by_type,
        revenue_by_user_tier=revenue_by_tier,
        revenue_by_project_type=revenue_by_project,
        average_fee_percentage=average_fee_percentage,
        transaction_count=len(in_period),
        refund_rate=_pct(len(in_period) - len(settled), len(in_period)),
        dispute_rate=_pct(
            sum(1 for t in in_period if t.disputed_utc is not None), len(in_period),
        ),
        trends=trends,
    )


def trend_series(analytics: FeeAnalytics, metric: str) -> List[TimeSeriesPoint]:
    """Turn one trend metric (revenue, fees, commissions, transaction_count)
    into a time series for the stats helpers."""
    if metric not in ("revenue", "fees", "commissions", "transaction_count"):
        raise ValueError(f"Unknown trend metric: {metric}")
    return [
        TimeSeriesPoint(date=t.date, value=float(getattr(t, metric)))
        for t in analytics.trends
    ]


def trend_records(analytics: FeeAnalytics) -> List[Dict[str, Any]]:
    return [
        {
            "date": t.date,
            "revenue": t.revenue,
            "fees": t.fees,
            "commissions": t.commissions,
            "transaction_count": t.transaction_count,
        }
        for t in analytics.trends
    ]


def export_records(records: Sequence[Dict[str, Any]], fmt: str) -> str:
    """Serialise flat records as 'json' or 'csv'.

    CSV columns follow the keys of the first record; strings are quoted.
    """
    if fmt == "json":
        return json.dumps(list(records), indent=2, default=str)
    if fmt == "csv":
        if not records:
            return ""
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
        headers = list(records[0].keys())
        writer.writerow(headers)
        for row in records:
            writer.writerow([
                float(v) if isinstance(v, Decimal) else v
                for v in (row.get(h) for h in headers)
            ])
        return buffer.getvalue().rstrip("\n")
    raise ValueError(f"Unsupported export format: {fmt}")
