"""
Profit time series

Folds income/cost rows into calendar buckets and fills every gap with a zero
row, so charts always get a contiguous axis.
"""
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Optional

from app.services.period_utils import (
    DEFAULT_GRANULARITY,
    list_periods,
    normalize_date,
    period_key,
)
from app.utils.money import margin_pct, to_money, to_number


def aggregate_by_period(
    rows: Iterable[Mapping[str, Any]],
    from_: Optional[str] = None,
    to: Optional[str] = None,
    granularity: str = DEFAULT_GRANULARITY,
) -> List[Dict[str, Any]]:
    """
    Aggregate ``{date, income, cost}`` rows into period rows.

    Missing bounds are inferred from the earliest/latest row date. Each output
    row is ``{period, income, cost, profit, margin}``; margin is 0 whenever
    income is not positive.
    """
    rows = list(rows)

    if not from_ or not to:
        dates = sorted(d for d in (normalize_date(r.get("date")) for r in rows) if d)
        if not dates:
            return []
        from_ = from_ or dates[0]
        to = to or dates[-1]

    periods = list_periods(from_, to, granularity)
    if not periods:
        return []

    buckets: Dict[str, Dict[str, float]] = defaultdict(lambda: {"income": 0.0, "cost": 0.0})
    for row in rows:
        key = period_key(row.get("date"), granularity)
        if not key:
            continue
        buckets[key]["income"] += to_number(row.get("income"))
        buckets[key]["cost"] += to_number(row.get("cost"))

    result = []
    for period in periods:
        bucket = buckets.get(period, {"income": 0.0, "cost": 0.0})
        income = to_money(bucket["income"])
        cost = to_money(bucket["cost"])
        profit = to_money(income - cost)
        result.append({
            "period": period,
            "income": income,
            "cost": cost,
            "profit": profit,
            "margin": margin_pct(profit, income),
        })
    return result
