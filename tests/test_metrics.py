from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from services.metrics import CalendarMonth, Metrics, SingleDay, TrailingDays, aggregate, pct_change, source_today

from conftest import TODAY, rec


def test_aggregate_sums_records():
    records = [
        rec("A", cost=100, revenue=300, conversions=2, clicks=10),
        rec("B", cost=50, revenue=25, conversions=1, clicks=5),
    ]
    metrics = aggregate(records)

    assert metrics.spend == 150
    assert metrics.revenue == 325
    assert metrics.profit == 175
    assert metrics.conversions == 3
    assert metrics.clicks == 15
    assert metrics.roas == pytest.approx(325 / 150)
    assert metrics.cpa == pytest.approx(50)
    assert metrics.cvr == pytest.approx(0.2)


def test_roas_is_undefined_without_spend():
    metrics = aggregate([rec("A", cost=0, revenue=500)])
    assert metrics.roas is None
    assert metrics.cpa is None
    assert metrics.cvr is None
    assert metrics.profit == 500


def test_empty_aggregate_is_zero():
    metrics = aggregate([])
    assert metrics.is_empty
    assert metrics.profit == 0
    assert metrics.roas is None


def test_partial_aggregates_merge_in_any_order():
    a = rec("A", cost=100.5, revenue=20.25, clicks=3)
    b = rec("B", cost=40, revenue=80.5, conversions=1)
    c = rec("C", cost=0.25, revenue=1000, impressions=99)

    whole = aggregate([a, b, c])
    assert aggregate([a, b]) + aggregate([c]) == whole
    assert aggregate([c]) + aggregate([b, a]) == whole
    assert aggregate([c, a, b]) == whole


def test_trailing_window_is_inclusive_of_evaluation_day():
    window = TrailingDays(7)
    assert window.bounds(TODAY) == (date(2024, 12, 4), date(2024, 12, 10))
    assert window.contains(date(2024, 12, 4), TODAY)
    assert window.contains(TODAY, TODAY)
    assert not window.contains(date(2024, 12, 3), TODAY)
    assert not window.contains(date(2024, 12, 11), TODAY)


def test_trailing_window_needs_a_day():
    with pytest.raises(ValueError):
        TrailingDays(0)


def test_aggregate_filters_by_window():
    records = [
        rec("A", date(2024, 12, 10), cost=100),
        rec("A", date(2024, 12, 4), cost=10),
        rec("A", date(2024, 12, 3), cost=1),
        rec("A", date(2024, 11, 30), cost=1000),
    ]
    assert aggregate(records, SingleDay(), TODAY).spend == 100
    assert aggregate(records, TrailingDays(7), TODAY).spend == 110
    assert aggregate(records, CalendarMonth(), TODAY).spend == 111


def test_calendar_month_bounds():
    month = CalendarMonth()
    assert month.bounds(TODAY) == (date(2024, 12, 1), TODAY)
    assert CalendarMonth.days_in_month(date(2024, 2, 10)) == 29


def test_metrics_to_dict_carries_derived_values():
    data = Metrics(spend=200, revenue=100).to_dict()
    assert data["profit"] == -100
    assert data["roas"] == 0.5
    assert data["cpa"] is None


def test_pct_change():
    assert pct_change(150, 100) == 50.0
    assert pct_change(50, -100) == 150.0
    assert pct_change(10, 0) is None


def test_source_today_uses_japan_time_across_utc_midnight():
    # 2024-11-30 16:00 UTC is already 2024-12-01 in Tokyo
    late_utc = datetime(2024, 11, 30, 16, 0, tzinfo=timezone.utc)
    assert source_today(now=late_utc) == date(2024, 12, 1)
    assert source_today(ZoneInfo("UTC"), now=late_utc) == date(2024, 11, 30)
    assert source_today(now=datetime(2024, 11, 30, 14, 59, tzinfo=timezone.utc)) == date(2024, 11, 30)
