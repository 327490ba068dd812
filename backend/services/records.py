"""
Canonical campaign records and the ownership naming convention.

Campaign names encode ownership as "<department>_<team>_<creative id>",
e.g. "新規グロース部_悠太_LP3_Re". Everything that cares about ownership goes
through parse_ownership / is_owned_by instead of ad hoc substring checks.
"""

from dataclasses import dataclass, asdict
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class CampaignRecord:
    """One observed row of performance for one campaign on one date."""
    campaign_name: str
    date: date
    media_name: str = ""
    cost: float = 0.0
    clicks: int = 0
    conversions: int = 0  # CV
    micro_conversions: int = 0  # MCV
    revenue: float = 0.0
    unit_price: float = 0.0
    impressions: int = 0
    project_name: str = ""
    account_name: str = ""

    @property
    def profit(self) -> float:
        return self.revenue - self.cost

    def to_dict(self) -> dict:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        data["profit"] = self.profit
        return data


@dataclass(frozen=True)
class Ownership:
    """Structured view of the ownership prefix inside a campaign name."""
    department: str
    team: str
    creative_id: str


def ownership_marker(department: str, team: str) -> str:
    """The literal substring that marks a campaign as owned by a team."""
    return f"{department}_{team}_"


def parse_ownership(campaign_name: str, department: str) -> Optional[Ownership]:
    """
    Parse "<department>_<team>_<creative id>" out of a campaign name.

    The department may appear anywhere in the name (upstream names are often
    prefixed with a date). Returns None when the name does not carry a
    department, a non-empty team and a trailing separator.
    """
    if not campaign_name or not department:
        return None

    head = f"{department}_"
    start = campaign_name.find(head)
    while start != -1:
        rest = campaign_name[start + len(head):]
        team, sep, creative_id = rest.partition("_")
        if team and sep:
            return Ownership(department=department, team=team, creative_id=creative_id)
        start = campaign_name.find(head, start + 1)

    return None


def is_owned_by(campaign_name: str, department: str, team: str) -> bool:
    """Case-sensitive substring match of the team's ownership marker."""
    if not team:
        return False
    return ownership_marker(department, team) in campaign_name
