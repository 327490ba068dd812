"""
Record normalizer.

Turns raw sheet rows (lists of text cells) into CampaignRecord values using
a position-based column map. Header rows upstream are decorative and drift
between sheets, so nothing here looks at header text except the sentinel
check on the campaign name column.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field, fields
from datetime import date
from typing import Any, Optional, Sequence

from services.errors import MalformedRow
from services.records import CampaignRecord

logger = logging.getLogger(__name__)

# Values that show up in the campaign column on repeated header rows
HEADER_SENTINELS = ("キャンペーン名", "CPN名", "Campaign", "campaign_name")

MEDIA_ALIASES = {
    "fb": "Meta",
    "facebook": "Meta",
    "meta": "Meta",
    "tiktok": "TikTok",
    "pangle": "Pangle",
    "youtube": "YouTube",
    "yt": "YouTube",
    "line": "LINE",
}

_DATE_RE = re.compile(r"^(\d{4})([/-])(\d{1,2})\2(\d{1,2})(?:[ T].*)?$")
_NUMBER_DECORATIONS = re.compile(r"[,¥￥円%\s]")
_MINUS_MARKERS = ("-", "−", "▲")


@dataclass(frozen=True)
class ColumnMap:
    """Zero-based column positions for one source sheet."""
    campaign_name: int
    date: int
    cost: int
    revenue: int
    media_name: Optional[int] = None
    clicks: Optional[int] = None
    conversions: Optional[int] = None
    micro_conversions: Optional[int] = None
    unit_price: Optional[int] = None
    impressions: Optional[int] = None
    project_name: Optional[int] = None
    account_name: Optional[int] = None
    first_data_row: int = 1

    def positions(self) -> dict[str, int]:
        """Mapped column positions keyed by field name."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "first_data_row" and getattr(self, f.name) is not None
        }

    def validate(self) -> "ColumnMap":
        """Fail fast on layouts that would silently misread columns."""
        if self.first_data_row < 0:
            raise ValueError(f"first_data_row must be >= 0, got {self.first_data_row}")

        positions = self.positions()
        negative = [name for name, idx in positions.items() if idx < 0]
        if negative:
            raise ValueError(f"Negative column index for: {', '.join(sorted(negative))}")

        seen: dict[int, str] = {}
        for name, idx in positions.items():
            if idx in seen:
                raise ValueError(f"Columns '{seen[idx]}' and '{name}' both map to index {idx}")
            seen[idx] = name
        return self


# Sheet layouts: B=1 date+campaign key, C=2 date, D=3 campaign, E=4 cost,
# F=5 imp, G=6 clicks, I=8 MCV, J=9 CV, K=10 unit price, M=12 media,
# P=15 project, R=17 revenue, S=18 account
CURRENT_COLUMNS = ColumnMap(
    campaign_name=3,
    date=2,
    cost=4,
    revenue=17,
    media_name=12,
    clicks=6,
    conversions=9,
    micro_conversions=8,
    unit_price=10,
    impressions=5,
    project_name=15,
    account_name=18,
)

HISTORICAL_COLUMNS = CURRENT_COLUMNS


@dataclass
class NormalizeResult:
    """Records plus diagnostics from one normalize pass."""
    records: list[CampaignRecord] = field(default_factory=list)
    skipped: int = 0  # malformed rows (bad date)
    ignored: int = 0  # blank or header rows
    errors: list[str] = field(default_factory=list)

    def __iter__(self):
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)


def parse_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_number(value: Any) -> float:
    """Locale-tolerant number parse; anything unreadable becomes 0."""
    text = unicodedata.normalize("NFKC", parse_text(value))
    text = _NUMBER_DECORATIONS.sub("", text)
    if not text:
        return 0.0

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]
    if text.startswith(_MINUS_MARKERS):
        negative = True
        text = text[1:]

    try:
        number = float(text)
    except ValueError:
        return 0.0
    if number != number or number in (float("inf"), float("-inf")):
        return 0.0
    return -number if negative else number


def parse_count(value: Any) -> int:
    return max(0, int(round(parse_number(value))))


def parse_date(value: Any) -> Optional[date]:
    """Accept YYYY/MM/DD or YYYY-MM-DD, optionally followed by a time."""
    match = _DATE_RE.match(parse_text(value))
    if not match:
        return None
    year, _, month, day = match.groups()
    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        return None


def normalize_media_name(media: str) -> str:
    return MEDIA_ALIASES.get(media.lower(), media)


def _cell(row: Sequence[Any], index: Optional[int]) -> Any:
    if index is None or index >= len(row):
        return None
    return row[index]


def _parse_row(row: Sequence[Any], row_index: int, columns: ColumnMap, campaign_name: str) -> CampaignRecord:
    day = parse_date(_cell(row, columns.date))
    if day is None:
        raise MalformedRow(row_index, f"unparsable date {_cell(row, columns.date)!r}")

    return CampaignRecord(
        campaign_name=campaign_name,
        date=day,
        media_name=normalize_media_name(parse_text(_cell(row, columns.media_name))),
        cost=max(0.0, parse_number(_cell(row, columns.cost))),
        clicks=parse_count(_cell(row, columns.clicks)),
        conversions=parse_count(_cell(row, columns.conversions)),
        micro_conversions=parse_count(_cell(row, columns.micro_conversions)),
        revenue=parse_number(_cell(row, columns.revenue)),
        unit_price=parse_number(_cell(row, columns.unit_price)),
        impressions=parse_count(_cell(row, columns.impressions)),
        project_name=parse_text(_cell(row, columns.project_name)),
        account_name=parse_text(_cell(row, columns.account_name)),
    )


def normalize(
    raw_rows: Sequence[Sequence[Any]],
    columns: ColumnMap,
    header_sentinels: Sequence[str] = HEADER_SENTINELS,
) -> NormalizeResult:
    """
    Map raw rows to CampaignRecords.

    Never raises on row content: rows before columns.first_data_row are
    skipped, blank or header campaign names are ignored, rows whose date
    does not parse are dropped and counted in `skipped`.
    """
    result = NormalizeResult()

    for row_index, row in enumerate(raw_rows or []):
        if row_index < columns.first_data_row:
            continue
        if not row:
            result.ignored += 1
            continue

        campaign_name = parse_text(_cell(row, columns.campaign_name))
        if not campaign_name or campaign_name in header_sentinels:
            result.ignored += 1
            continue

        try:
            result.records.append(_parse_row(row, row_index, columns, campaign_name))
        except MalformedRow as e:
            result.skipped += 1
            result.errors.append(str(e))

    if result.skipped:
        logger.info("[Normalize] Dropped %d malformed rows (%d ignored)", result.skipped, result.ignored)

    return result
