"""
Window joiner: lines up current-period rows with the historical window for
the same campaign.

The current sheet is authoritative for the days it covers, so historical
rows dated on a current day are left out of the trailing window rather than
counted twice.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from services.metrics import Metrics, TrailingDays, Window, aggregate, pct_change, source_today
from services.records import CampaignRecord

DEFAULT_WINDOW = TrailingDays(7)


@dataclass(frozen=True)
class ComparisonPair:
    """Current-day rows and in-window history for one campaign."""
    campaign_name: str
    evaluation_date: date
    current_records: tuple[CampaignRecord, ...] = ()
    historical_records: tuple[CampaignRecord, ...] = ()
    current: Metrics = field(default_factory=Metrics)
    trailing: Metrics = field(default_factory=Metrics)
    trailing_days: int = 0
    daily_profit: tuple[tuple[date, float], ...] = ()

    @property
    def has_current(self) -> bool:
        return bool(self.current_records)

    @property
    def profit(self) -> float:
        return self.current.profit

    @property
    def roas(self) -> Optional[float]:
        return self.current.roas

    @property
    def baseline(self) -> Optional[Metrics]:
        """Average day of the historical side, or None without history."""
        days = {r.date for r in self.historical_records}
        if not days:
            return None
        total = aggregate(self.historical_records)
        n = len(days)
        return Metrics(
            spend=total.spend / n,
            revenue=total.revenue / n,
            conversions=round(total.conversions / n),
            micro_conversions=round(total.micro_conversions / n),
            clicks=round(total.clicks / n),
            impressions=round(total.impressions / n),
        )

    @property
    def cost_delta_pct(self) -> Optional[float]:
        baseline = self.baseline
        if baseline is None or not self.has_current:
            return None
        return pct_change(self.current.spend, baseline.spend)

    @property
    def profit_delta_pct(self) -> Optional[float]:
        baseline = self.baseline
        if baseline is None or not self.has_current:
            return None
        return pct_change(self.current.profit, baseline.profit)

    @property
    def consecutive_loss_days(self) -> int:
        """Loss-making days in a row, counting back from the latest day."""
        count = 0
        expected = None
        for day, profit in sorted(self.daily_profit, reverse=True):
            if expected is not None and (expected - day).days != 1:
                break
            if profit >= 0:
                break
            count += 1
            expected = day
        return count

    @property
    def media_name(self) -> str:
        for record in self.current_records + self.historical_records:
            if record.media_name:
                return record.media_name
        return ""

    @property
    def project_name(self) -> str:
        for record in self.current_records + self.historical_records:
            if record.project_name:
                return record.project_name
        return ""

    @property
    def account_name(self) -> str:
        for record in self.current_records + self.historical_records:
            if record.account_name:
                return record.account_name
        return ""


def _group_by_name(records: Iterable[CampaignRecord]) -> dict[str, list[CampaignRecord]]:
    grouped: dict[str, list[CampaignRecord]] = {}
    for record in records:
        grouped.setdefault(record.campaign_name, []).append(record)
    return grouped


def _daily_profit(records: Iterable[CampaignRecord]) -> tuple[tuple[date, float], ...]:
    by_day: dict[date, float] = {}
    for record in records:
        by_day[record.date] = by_day.get(record.date, 0.0) + record.profit
    return tuple(sorted(by_day.items()))


def build_pair(
    campaign_name: str,
    current: list[CampaignRecord],
    historical: list[CampaignRecord],
    evaluation_date: date,
    window: Window = DEFAULT_WINDOW,
) -> ComparisonPair:
    current = [r for r in current if window.contains(r.date, evaluation_date)]
    current_days = {r.date for r in current}
    in_window = tuple(
        r for r in historical
        if window.contains(r.date, evaluation_date) and r.date not in current_days
    )
    trailing_records = list(current) + list(in_window)

    return ComparisonPair(
        campaign_name=campaign_name,
        evaluation_date=evaluation_date,
        current_records=tuple(current),
        historical_records=in_window,
        current=aggregate(current),
        trailing=aggregate(trailing_records),
        trailing_days=len({r.date for r in trailing_records}),
        daily_profit=_daily_profit(trailing_records),
    )


def join(
    current_records: Iterable[CampaignRecord],
    historical_records: Iterable[CampaignRecord],
    evaluation_date: Optional[date] = None,
    window: Window = DEFAULT_WINDOW,
) -> list[ComparisonPair]:
    """
    Build one ComparisonPair per campaign.

    Both sides are cut to the window; rows dated after the evaluation day
    never count. Every campaign with in-window current rows gets a pair
    (same-name rows are summed). Campaigns that only have in-window history
    get a pair with an empty current side so they stay visible for the stop
    judgment.
    """
    if evaluation_date is None:
        evaluation_date = source_today()

    current_by_name = _group_by_name(current_records)
    history_by_name = _group_by_name(historical_records)

    pairs = []
    for name, rows in current_by_name.items():
        pair = build_pair(name, rows, history_by_name.get(name, []), evaluation_date, window)
        if pair.current_records or pair.historical_records:
            pairs.append(pair)

    for name, rows in history_by_name.items():
        if name in current_by_name:
            continue
        pair = build_pair(name, [], rows, evaluation_date, window)
        if pair.historical_records:
            pairs.append(pair)

    return pairs
