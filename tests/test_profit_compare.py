"""
Period comparison tests.

Guards against:
1. Whole-month ranges being compared against arbitrary 30-day shifts
2. Growth from zero being reported as 0% or infinity
3. Insight ordering / cap regressions
"""
import pytest

from app.services.profit_compare import (
    MAX_INSIGHTS,
    build_insights,
    compute_deltas,
    compute_previous_range,
)


def _metrics(income=0, cost=0, orders=0):
    profit = income - cost
    return {
        "income": income,
        "cost": cost,
        "profit": profit,
        "margin": round(profit / income * 100, 2) if income > 0 else 0,
        "orders": orders,
        "avg_ticket": round(income / orders, 2) if orders else 0,
    }


# ---------------------------------------------------------------------------
# compute_previous_range
# ---------------------------------------------------------------------------

class TestPreviousRange:

    def test_whole_month(self):
        assert compute_previous_range("2026-01-01", "2026-01-31") == {"from": "2025-12-01", "to": "2025-12-31"}

    def test_whole_month_uses_previous_month_length(self):
        assert compute_previous_range("2025-11-01", "2025-11-30") == {"from": "2025-10-01", "to": "2025-10-31"}
        assert compute_previous_range("2024-03-01", "2024-03-31") == {"from": "2024-02-01", "to": "2024-02-29"}

    def test_multiple_whole_months(self):
        assert compute_previous_range("2025-04-01", "2025-06-30") == {"from": "2025-01-01", "to": "2025-03-31"}

    def test_partial_month_same_length(self):
        assert compute_previous_range("2026-02-10", "2026-02-20") == {"from": "2026-01-30", "to": "2026-02-09"}

    def test_single_day(self):
        assert compute_previous_range("2025-03-01", "2025-03-01") == {"from": "2025-02-28", "to": "2025-02-28"}

    def test_unparsable(self):
        assert compute_previous_range("soon", "2025-01-01") is None


# ---------------------------------------------------------------------------
# compute_deltas
# ---------------------------------------------------------------------------

class TestDeltas:

    def test_growth_from_zero_is_undefined(self):
        delta = compute_deltas(_metrics(income=100, cost=60, orders=1), _metrics())
        assert delta["income_pct"] is None
        assert delta["income_abs"] == 100
        assert delta["orders_abs"] == 1

    def test_both_zero_is_zero_pct(self):
        delta = compute_deltas(_metrics(), _metrics())
        assert delta["income_pct"] == 0
        assert delta["profit_pct"] == 0
        assert delta["orders_pct"] == 0

    def test_relative_change_and_margin_points(self):
        current = _metrics(income=150, cost=90, orders=3)    # margin 40
        previous = _metrics(income=100, cost=70, orders=2)   # margin 30
        delta = compute_deltas(current, previous)
        assert delta["income_pct"] == 50
        assert delta["cost_pct"] == pytest.approx(28.57)
        assert delta["profit_pct"] == 100
        assert delta["margin_pp"] == 10
        assert delta["avg_ticket_abs"] == 0
        assert delta["avg_ticket_pct"] == 0

    def test_decline(self):
        delta = compute_deltas(_metrics(income=80, cost=40, orders=1), _metrics(income=100, cost=40, orders=2))
        assert delta["income_pct"] == -20
        assert delta["orders_pct"] == -50


# ---------------------------------------------------------------------------
# build_insights
# ---------------------------------------------------------------------------

class TestInsights:

    def test_order_and_levels(self):
        current = _metrics(income=150, cost=90, orders=3)
        previous = _metrics(income=100, cost=70, orders=2)
        delta = compute_deltas(current, previous)
        groups = [{"name": "Macbook Air", "profit": 40}, {"name": "Iphone", "profit": 20}]

        insights = build_insights(current, previous, delta, groups)
        texts = [i["text"] for i in insights]

        assert texts[0].startswith("Profit rose 100%")
        assert texts[1].startswith("Margin rose 10")
        assert texts[2] == "Income grew faster than costs."
        assert texts[3].startswith("Orders rose 50%")
        assert texts[4].startswith("Average ticket")
        assert "top 2 groups" in texts[5]
        assert texts[6] == "Macbook Air contributed the most profit."
        assert insights[0]["level"] == "success"
        assert insights[5]["level"] == "info"

    def test_cost_outgrowing_income_is_warning(self):
        current = _metrics(income=110, cost=100, orders=1)
        previous = _metrics(income=100, cost=50, orders=1)
        delta = compute_deltas(current, previous)
        insights = build_insights(current, previous, delta, [])
        assert {"level": "warning", "text": "Costs grew faster than income."} in insights
        assert insights[0]["level"] == "warning"

    def test_capped(self):
        current = _metrics(income=150, cost=90, orders=3)
        previous = _metrics(income=100, cost=70, orders=2)
        delta = compute_deltas(current, previous)
        groups = [{"name": f"G{i}", "profit": 10} for i in range(5)]
        assert len(build_insights(current, previous, delta, groups)) <= MAX_INSIGHTS

    def test_no_concentration_when_group_profit_not_positive(self):
        current = _metrics(income=100, cost=120, orders=1)
        previous = _metrics(income=100, cost=120, orders=1)
        delta = compute_deltas(current, previous)
        insights = build_insights(current, previous, delta, [{"name": "Ipad", "profit": -20}])
        assert not any("of the profit comes from" in i["text"] for i in insights)
        assert insights[-1]["text"] == "Ipad contributed the most profit."

    def test_no_activity_fallback(self):
        # Order and ticket figures unknown: only the profit trend can be stated
        current = {"income": 0, "cost": 0, "profit": 0, "margin": 0}
        previous = {"income": 0, "cost": 0, "profit": 0, "margin": 0}
        delta = compute_deltas(current, previous)
        insights = build_insights(current, previous, delta, [])
        assert len(insights) == 2
        assert insights[-1] == {"level": "info", "text": "There were no sales in the current period."}

    def test_no_fallback_once_two_insights_exist(self):
        current = _metrics()
        delta = compute_deltas(current, _metrics())
        insights = build_insights(current, _metrics(), delta, [])
        assert not any("no sales" in i["text"] for i in insights)

    def test_large_percentages_keep_their_digits(self):
        delta = {"profit_pct": 12345.67, "margin_pp": -0.5}
        insights = build_insights(_metrics(), _metrics(), delta, [])
        assert insights[0]["text"] == "Profit rose 12345.67% vs the previous period."
        assert insights[1]["text"] == "Margin fell 0.5 pp."
