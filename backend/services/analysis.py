"""
Read-side views assembled from normalized records.

Each builder is a pure function of (current records, historical records,
evaluation date, config) so the engine can cache its output per team.
Tabular rollups go through pandas.
"""

from datetime import date, timedelta
from typing import Iterable, Optional, Sequence

import pandas as pd

from services.config import EngineConfig
from services.judgment import explain, judgment_summary
from services.metrics import CalendarMonth, Metrics, SingleDay, aggregate, pct_change
from services.records import CampaignRecord, parse_ownership
from services.window_joiner import ComparisonPair, join

UNKNOWN_GROUP = "その他"

ROLLUP_COLUMNS = ["spend", "revenue", "conversions", "micro_conversions", "clicks", "impressions"]
COMPARED_METRICS = ["spend", "revenue", "profit", "conversions", "micro_conversions", "clicks"]


def merge_periods(
    current: Iterable[CampaignRecord],
    historical: Iterable[CampaignRecord],
) -> list[CampaignRecord]:
    """Current rows plus historical rows for (campaign, day) pairs the current sheet does not cover."""
    current = list(current)
    covered = {(r.campaign_name, r.date) for r in current}
    return current + [r for r in historical if (r.campaign_name, r.date) not in covered]


def rollup(records: Sequence[CampaignRecord], by: str) -> list[dict]:
    """
    Group records by a field ("date", "project_name", "media_name", ...)
    and sum the metric columns. Empty group names become UNKNOWN_GROUP.
    """
    if not records:
        return []

    frame = pd.DataFrame([
        {
            "group": (r.date.isoformat() if by == "date" else getattr(r, by)) or UNKNOWN_GROUP,
            "spend": r.cost,
            "revenue": r.revenue,
            "conversions": r.conversions,
            "micro_conversions": r.micro_conversions,
            "clicks": r.clicks,
            "impressions": r.impressions,
        }
        for r in records
    ])
    grouped = frame.groupby("group", as_index=False, sort=True)[ROLLUP_COLUMNS].sum()

    rows = []
    for row in grouped.itertuples(index=False):
        metrics = Metrics(
            spend=float(row.spend),
            revenue=float(row.revenue),
            conversions=int(row.conversions),
            micro_conversions=int(row.micro_conversions),
            clicks=int(row.clicks),
            impressions=int(row.impressions),
        )
        rows.append({by: row.group, **metrics.to_dict()})
    return rows


def pair_row(pair: ComparisonPair, config: EngineConfig, department: str) -> dict:
    """One campaign line of the analysis table."""
    judgment, reasons = explain(pair, config)
    ownership = parse_ownership(pair.campaign_name, department)
    return {
        "campaign_name": pair.campaign_name,
        "team": ownership.team if ownership else None,
        "creative_id": ownership.creative_id if ownership else None,
        "media_name": pair.media_name,
        "project_name": pair.project_name,
        "account_name": pair.account_name,
        "has_current": pair.has_current,
        "current": pair.current.to_dict(),
        "trailing": pair.trailing.to_dict(),
        "trailing_days": pair.trailing_days,
        "consecutive_loss_days": pair.consecutive_loss_days,
        "cost_delta_pct": pair.cost_delta_pct,
        "profit_delta_pct": pair.profit_delta_pct,
        "judgment": judgment.value,
        "reasons": reasons,
    }


def build_full_analysis(
    current: Sequence[CampaignRecord],
    historical: Sequence[CampaignRecord],
    evaluation_date: date,
    config: EngineConfig,
    department: str,
) -> dict:
    pairs = join(current, historical, evaluation_date=evaluation_date, window=config.window)
    campaigns = [pair_row(pair, config, department) for pair in pairs]
    campaigns.sort(key=lambda c: (-c["current"]["profit"], c["campaign_name"]))

    window_start, window_end = config.window.bounds(evaluation_date)
    return {
        "evaluation_date": evaluation_date.isoformat(),
        "window": {"start": window_start.isoformat(), "end": window_end.isoformat()},
        "summary": aggregate(current).to_dict(),
        "campaigns": campaigns,
        "projects": sorted(rollup(current, "project_name"), key=lambda p: -p["profit"]),
        "media": sorted(rollup(current, "media_name"), key=lambda m: -m["profit"]),
        "judgment_summary": judgment_summary(c["judgment"] for c in campaigns),
    }


def build_comparison(
    current: Sequence[CampaignRecord],
    historical: Sequence[CampaignRecord],
    evaluation_date: date,
) -> dict:
    """Evaluation day vs the previous day and the same weekday a week earlier."""
    records = merge_periods(current, historical)
    today = aggregate(records, SingleDay(), evaluation_date)
    yesterday = aggregate(records, SingleDay(), evaluation_date - timedelta(days=1))
    last_week = aggregate(records, SingleDay(), evaluation_date - timedelta(days=7))

    def changes(baseline: Metrics) -> dict[str, Optional[float]]:
        now, then = today.to_dict(), baseline.to_dict()
        return {name: pct_change(now[name], then[name]) for name in COMPARED_METRICS}

    return {
        "date": evaluation_date.isoformat(),
        "today": today.to_dict(),
        "yesterday": yesterday.to_dict(),
        "last_week": last_week.to_dict(),
        "day_over_day": changes(yesterday),
        "week_over_week": changes(last_week),
    }


def _this_month(records: Iterable[CampaignRecord], evaluation_date: date) -> list[CampaignRecord]:
    month = CalendarMonth()
    return [r for r in records if month.contains(r.date, evaluation_date)]


def build_monthly_profit(
    current: Sequence[CampaignRecord],
    historical: Sequence[CampaignRecord],
    evaluation_date: date,
) -> dict:
    month_records = _this_month(merge_periods(current, historical), evaluation_date)
    metrics = aggregate(month_records)
    start, end = CalendarMonth().bounds(evaluation_date)
    return {
        "month": evaluation_date.strftime("%Y-%m"),
        "start": start.isoformat(),
        "end": end.isoformat(),
        "profit": metrics.profit,
        "spend": metrics.spend,
        "revenue": metrics.revenue,
        "roas": metrics.roas,
    }


def build_daily_trend(
    current: Sequence[CampaignRecord],
    historical: Sequence[CampaignRecord],
    evaluation_date: date,
) -> list[dict]:
    """Per-day totals for the evaluation month, oldest first."""
    return rollup(_this_month(merge_periods(current, historical), evaluation_date), "date")


def build_project_monthly(
    current: Sequence[CampaignRecord],
    historical: Sequence[CampaignRecord],
    evaluation_date: date,
) -> list[dict]:
    """Per-project totals for the evaluation month, most profitable first."""
    rows = rollup(_this_month(merge_periods(current, historical), evaluation_date), "project_name")
    return sorted(rows, key=lambda p: -p["profit"])
