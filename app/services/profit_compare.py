"""
Period-over-period profit comparison

Derives the "previous" window for a date range, computes deltas between two
metric snapshots and turns them into a short list of ranked insights.
"""
import calendar
from datetime import date, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence

from app.services.period_utils import parse_date
from app.utils.money import safe_pct, to_money, to_number

MAX_INSIGHTS = 7
TOP_CONCENTRATION_SIZE = 3

LEVEL_SUCCESS = "success"
LEVEL_WARNING = "warning"
LEVEL_INFO = "info"


def _last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _month_index_to_date(index: int, day: Optional[int] = None) -> date:
    year, month0 = divmod(index, 12)
    month = month0 + 1
    return date(year, month, day if day is not None else _last_day_of_month(year, month))


def is_whole_month_range(start: date, end: date) -> bool:
    return (
        start.day == 1
        and end.day == _last_day_of_month(end.year, end.month)
        and (start.year, start.month) <= (end.year, end.month)
    )


def compute_previous_range(from_: Any, to: Any) -> Optional[Dict[str, str]]:
    """
    Range to compare ``[from_, to]`` against.

    Whole calendar months compare against the same number of whole months
    immediately before (Nov 1-30 -> Oct 1-31). Anything else compares
    against a trailing window of the same length ending the day before
    ``from_``. Returns None when a bound does not parse.
    """
    start = parse_date(from_)
    end = parse_date(to)
    if start is None or end is None:
        return None

    if is_whole_month_range(start, end):
        start_idx = start.year * 12 + (start.month - 1)
        end_idx = end.year * 12 + (end.month - 1)
        months = end_idx - start_idx + 1
        prev_from = _month_index_to_date(start_idx - months, day=1)
        prev_to = _month_index_to_date(start_idx - 1)
        return {"from": prev_from.isoformat(), "to": prev_to.isoformat()}

    days = (end - start).days + 1
    prev_end = start - timedelta(days=1)
    prev_start = prev_end - timedelta(days=days - 1)
    return {"from": prev_start.isoformat(), "to": prev_end.isoformat()}


def compute_deltas(current: Mapping[str, Any], previous: Mapping[str, Any]) -> Dict[str, Any]:
    """Absolute and relative change per metric; margin in percentage points."""
    income_c, income_p = to_number(current.get("income")), to_number(previous.get("income"))
    cost_c, cost_p = to_number(current.get("cost")), to_number(previous.get("cost"))
    profit_c, profit_p = to_number(current.get("profit")), to_number(previous.get("profit"))
    margin_c, margin_p = to_number(current.get("margin")), to_number(previous.get("margin"))
    orders_c, orders_p = to_number(current.get("orders")), to_number(previous.get("orders"))
    ticket_c, ticket_p = to_number(current.get("avg_ticket")), to_number(previous.get("avg_ticket"))

    return {
        "income_abs": to_money(income_c - income_p),
        "income_pct": safe_pct(income_c, income_p),
        "cost_abs": to_money(cost_c - cost_p),
        "cost_pct": safe_pct(cost_c, cost_p),
        "profit_abs": to_money(profit_c - profit_p),
        "profit_pct": safe_pct(profit_c, profit_p),
        "margin_pp": to_money(margin_c - margin_p),
        "orders_abs": int(orders_c - orders_p),
        "orders_pct": safe_pct(orders_c, orders_p),
        "avg_ticket_abs": to_money(ticket_c - ticket_p),
        "avg_ticket_pct": safe_pct(ticket_c, ticket_p),
    }


def _fmt(value: float) -> str:
    """12.0 -> '12', 12.5 -> '12.5', 12345.67 -> '12345.67'"""
    return f"{abs(value):.2f}".rstrip("0").rstrip(".")


def _trend(pct: float, metric: str) -> Dict[str, str]:
    up = pct >= 0
    return {
        "level": LEVEL_SUCCESS if up else LEVEL_WARNING,
        "text": f"{metric} {'rose' if up else 'fell'} {_fmt(pct)}% vs the previous period.",
    }


def build_insights(
    current: Mapping[str, Any],
    previous: Mapping[str, Any],
    delta: Mapping[str, Any],
    top_groups: Optional[Sequence[Mapping[str, Any]]] = None,
) -> List[Dict[str, str]]:
    """
    Natural-language highlights of a comparison, most significant first.

    Order: profit, margin, cost vs income growth, orders, average ticket,
    profit concentration in the top groups, best group, and a "no activity"
    note when nothing else could be said about an empty period.
    """
    top_groups = list(top_groups or [])
    insights: List[Dict[str, str]] = []

    profit_pct = delta.get("profit_pct")
    if profit_pct is not None:
        insights.append(_trend(profit_pct, "Profit"))

    margin_pp = to_number(delta.get("margin_pp"))
    if margin_pp != 0:
        insights.append({
            "level": LEVEL_SUCCESS if margin_pp >= 0 else LEVEL_WARNING,
            "text": f"Margin {'rose' if margin_pp >= 0 else 'fell'} {_fmt(margin_pp)} pp.",
        })

    cost_pct, income_pct = delta.get("cost_pct"), delta.get("income_pct")
    if cost_pct is not None and income_pct is not None:
        if cost_pct > income_pct:
            insights.append({"level": LEVEL_WARNING, "text": "Costs grew faster than income."})
        elif cost_pct < income_pct:
            insights.append({"level": LEVEL_SUCCESS, "text": "Income grew faster than costs."})

    if current.get("orders") is not None and delta.get("orders_pct") is not None:
        insights.append(_trend(delta["orders_pct"], "Orders"))

    if current.get("avg_ticket") is not None and delta.get("avg_ticket_pct") is not None:
        insights.append(_trend(delta["avg_ticket_pct"], "Average ticket"))

    if top_groups:
        total_profit = sum(to_number(g.get("profit")) for g in top_groups)
        leaders = top_groups[:TOP_CONCENTRATION_SIZE]
        leaders_profit = sum(to_number(g.get("profit")) for g in leaders)
        if total_profit > 0:
            share = to_money(leaders_profit / total_profit * 100)
            insights.append({
                "level": LEVEL_INFO,
                "text": f"{_fmt(share)}% of the profit comes from the top {len(leaders)} groups.",
            })
        insights.append({
            "level": LEVEL_INFO,
            "text": f"{top_groups[0].get('name')} contributed the most profit.",
        })

    if not current.get("orders") and len(insights) < 2:
        insights.append({"level": LEVEL_INFO, "text": "There were no sales in the current period."})

    return insights[:MAX_INSIGHTS]
