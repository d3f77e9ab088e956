"""
Period bucketing and profit series tests.

Guards against:
1. Gaps in period axes (missing months render as broken charts)
2. Year rollover / month length bugs in period iteration
3. NaN margins on zero-income periods
"""
from datetime import date, datetime, timezone

import pytest

from app.services.period_utils import (
    days_between,
    list_periods,
    normalize_date,
    period_key,
)
from app.services.profit_series import aggregate_by_period


# ---------------------------------------------------------------------------
# normalize_date
# ---------------------------------------------------------------------------

def test_normalize_iso_prefix():
    assert normalize_date("2025-11-03T10:15:00Z") == "2025-11-03"


def test_normalize_date_objects():
    assert normalize_date(date(2025, 1, 2)) == "2025-01-02"
    assert normalize_date(datetime(2025, 1, 2, 23, 59)) == "2025-01-02"


def test_normalize_free_text_date():
    assert normalize_date("March 5, 2024") == "2024-03-05"


@pytest.mark.parametrize("value", [None, "", "   ", "not a date", "2025-13-45"])
def test_normalize_unparsable_is_none(value):
    assert normalize_date(value) is None


# ---------------------------------------------------------------------------
# list_periods
# ---------------------------------------------------------------------------

def test_list_periods_days():
    assert list_periods("2025-11-01", "2025-11-03", "day") == ["2025-11-01", "2025-11-02", "2025-11-03"]


def test_list_periods_months_cross_year():
    assert list_periods("2025-10-01", "2026-01-10", "month") == ["2025-10", "2025-11", "2025-12", "2026-01"]


def test_list_periods_days_over_month_end():
    periods = list_periods("2024-02-27", "2024-03-01", "day")
    assert periods == ["2024-02-27", "2024-02-28", "2024-02-29", "2024-03-01"]


def test_list_periods_years():
    assert list_periods("2023-06-01", "2025-01-01", "year") == ["2023", "2024", "2025"]


def test_list_periods_bad_bound_is_empty():
    assert list_periods("garbage", "2025-01-01", "month") == []
    assert list_periods("2025-01-01", None, "day") == []


def test_list_periods_inverted_is_empty():
    assert list_periods("2025-03-01", "2025-01-01", "month") == []


def test_period_key_formats():
    assert period_key("2025-11-05", "day") == "2025-11-05"
    assert period_key("2025-11-05", "month") == "2025-11"
    assert period_key("2025-11-05", "year") == "2025"
    assert period_key("nope", "month") is None


# ---------------------------------------------------------------------------
# days_between
# ---------------------------------------------------------------------------

def test_days_between_dates():
    assert days_between("2025-01-01", "2025-01-31") == 30
    assert days_between(date(2025, 1, 31), "2025-01-01") == -30


def test_days_between_rounds_half_up():
    start = datetime(2025, 1, 1, 0, 0)
    assert days_between(start, datetime(2025, 1, 2, 12, 0)) == 2
    assert days_between(start, datetime(2025, 1, 2, 11, 59)) == 1


def test_days_between_timezone_aware():
    start = datetime(2025, 1, 1, 23, 0, tzinfo=timezone.utc)
    assert days_between(start, datetime(2025, 1, 3, 23, 0, tzinfo=timezone.utc)) == 2


def test_days_between_missing_endpoint():
    assert days_between(None, "2025-01-01") is None
    assert days_between("2025-01-01", "bad") is None


# ---------------------------------------------------------------------------
# aggregate_by_period
# ---------------------------------------------------------------------------

def test_aggregate_monthly_example():
    rows = [
        {"date": "2025-11-01", "income": 100, "cost": 70},
        {"date": "2025-11-05", "income": 50, "cost": 20},
        {"date": "2025-12-01", "income": 10, "cost": 5},
    ]
    result = aggregate_by_period(rows, "2025-11-01", "2025-12-31", "month")
    assert result == [
        {"period": "2025-11", "income": 150, "cost": 90, "profit": 60, "margin": 40},
        {"period": "2025-12", "income": 10, "cost": 5, "profit": 5, "margin": 50},
    ]


@pytest.mark.parametrize("from_,to,granularity", [
    ("2025-11-01", "2025-11-07", "day"),
    ("2025-01-15", "2025-12-02", "month"),
    ("2020-01-01", "2025-01-01", "year"),
])
def test_aggregate_empty_rows_fills_every_period(from_, to, granularity):
    result = aggregate_by_period([], from_, to, granularity)
    assert [r["period"] for r in result] == list_periods(from_, to, granularity)
    for row in result:
        assert row == {"period": row["period"], "income": 0, "cost": 0, "profit": 0, "margin": 0}


def test_aggregate_infers_bounds_from_rows():
    rows = [
        {"date": "2025-03-10", "income": 10, "cost": 4},
        {"date": "2025-01-02", "income": 20, "cost": 10},
    ]
    result = aggregate_by_period(rows, granularity="month")
    assert [r["period"] for r in result] == ["2025-01", "2025-02", "2025-03"]
    assert result[1]["income"] == 0


def test_aggregate_no_rows_no_bounds():
    assert aggregate_by_period([]) == []


def test_aggregate_coerces_non_finite_values():
    rows = [
        {"date": "2025-05-01", "income": float("nan"), "cost": 5},
        {"date": "2025-05-02", "income": "abc", "cost": float("inf")},
        {"date": "2025-05-03", "income": "30.5", "cost": None},
    ]
    result = aggregate_by_period(rows, "2025-05-01", "2025-05-31", "month")
    assert result == [{"period": "2025-05", "income": 30.5, "cost": 5, "profit": 25.5, "margin": 83.61}]


def test_aggregate_negative_income_margin_is_zero():
    rows = [{"date": "2025-05-01", "income": -10, "cost": 5}]
    result = aggregate_by_period(rows, "2025-05-01", "2025-05-01", "day")
    assert result[0]["profit"] == -15
    assert result[0]["margin"] == 0


def test_aggregate_rounds_money_half_up():
    rows = [{"date": "2025-05-01", "income": 0.125, "cost": 0}]
    result = aggregate_by_period(rows, "2025-05-01", "2025-05-01", "day")
    assert result[0]["income"] == pytest.approx(0.13)
