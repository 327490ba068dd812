"""
Metrics aggregation over campaign records.

Sums are plain additions so partial aggregates can be merged with `+` in any
order. ROAS is a ratio (revenue / spend) and is None whenever spend is 0;
callers must not treat that as a real 0.
"""

from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from services.records import CampaignRecord

# Sheet dates are written in Japan time
SOURCE_TIMEZONE = ZoneInfo("Asia/Tokyo")


def source_today(tz: ZoneInfo = SOURCE_TIMEZONE, now: Optional[datetime] = None) -> date:
    """Calendar day in the source timezone, independent of the host clock zone."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now.astimezone(tz).date()


@dataclass(frozen=True)
class SingleDay:
    """Only the evaluation day itself."""

    def bounds(self, evaluation_date: date) -> tuple[date, date]:
        return evaluation_date, evaluation_date

    def contains(self, day: date, evaluation_date: date) -> bool:
        return day == evaluation_date


@dataclass(frozen=True)
class TrailingDays:
    """The last `days` calendar days, including the evaluation day."""
    days: int = 7

    def __post_init__(self):
        if self.days < 1:
            raise ValueError(f"TrailingDays needs at least 1 day, got {self.days}")

    def bounds(self, evaluation_date: date) -> tuple[date, date]:
        return evaluation_date - timedelta(days=self.days - 1), evaluation_date

    def contains(self, day: date, evaluation_date: date) -> bool:
        start, end = self.bounds(evaluation_date)
        return start <= day <= end


@dataclass(frozen=True)
class CalendarMonth:
    """From the first of the evaluation month up to the evaluation day."""

    def bounds(self, evaluation_date: date) -> tuple[date, date]:
        return evaluation_date.replace(day=1), evaluation_date

    def contains(self, day: date, evaluation_date: date) -> bool:
        start, end = self.bounds(evaluation_date)
        return start <= day <= end

    @staticmethod
    def days_in_month(evaluation_date: date) -> int:
        return monthrange(evaluation_date.year, evaluation_date.month)[1]


Window = SingleDay | TrailingDays | CalendarMonth


@dataclass(frozen=True)
class Metrics:
    """Derived financial/conversion metrics for a set of records."""
    spend: float = 0.0
    revenue: float = 0.0
    conversions: int = 0
    micro_conversions: int = 0
    clicks: int = 0
    impressions: int = 0

    @property
    def profit(self) -> float:
        return self.revenue - self.spend

    @property
    def roas(self) -> Optional[float]:
        if self.spend > 0:
            return self.revenue / self.spend
        return None

    @property
    def cpa(self) -> Optional[float]:
        if self.conversions > 0:
            return self.spend / self.conversions
        return None

    @property
    def cvr(self) -> Optional[float]:
        if self.clicks > 0:
            return self.conversions / self.clicks
        return None

    @property
    def is_empty(self) -> bool:
        return self == Metrics()

    def __add__(self, other: "Metrics") -> "Metrics":
        if not isinstance(other, Metrics):
            return NotImplemented
        return Metrics(
            spend=self.spend + other.spend,
            revenue=self.revenue + other.revenue,
            conversions=self.conversions + other.conversions,
            micro_conversions=self.micro_conversions + other.micro_conversions,
            clicks=self.clicks + other.clicks,
            impressions=self.impressions + other.impressions,
        )

    @classmethod
    def from_record(cls, record: CampaignRecord) -> "Metrics":
        return cls(
            spend=record.cost,
            revenue=record.revenue,
            conversions=record.conversions,
            micro_conversions=record.micro_conversions,
            clicks=record.clicks,
            impressions=record.impressions,
        )

    def to_dict(self) -> dict:
        return {
            "spend": self.spend,
            "revenue": self.revenue,
            "profit": self.profit,
            "roas": self.roas,
            "conversions": self.conversions,
            "micro_conversions": self.micro_conversions,
            "clicks": self.clicks,
            "impressions": self.impressions,
            "cpa": self.cpa,
            "cvr": self.cvr,
        }


def aggregate(
    records: Iterable[CampaignRecord],
    window: Optional[Window] = None,
    evaluation_date: Optional[date] = None,
) -> Metrics:
    """
    Fold records into Metrics.

    With a window, only records inside it (relative to evaluation_date,
    default today in the source timezone) are counted.
    """
    if window is not None and evaluation_date is None:
        evaluation_date = source_today()

    total = Metrics()
    for record in records:
        if window is not None and not window.contains(record.date, evaluation_date):
            continue
        total = total + Metrics.from_record(record)
    return total


def pct_change(current: float, baseline: float) -> Optional[float]:
    """Percentage change vs baseline; None when there is no baseline."""
    if baseline == 0:
        return None
    return (current - baseline) / abs(baseline) * 100
