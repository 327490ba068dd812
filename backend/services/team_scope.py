"""Team scoping of campaign records by the ownership naming convention."""

from typing import Optional, Sequence

from services.records import CampaignRecord, is_owned_by

DEFAULT_DEPARTMENT = "新規グロース部"


def scope_to_team(
    records: Sequence[CampaignRecord],
    team_name: Optional[str],
    department: str = DEFAULT_DEPARTMENT,
) -> Sequence[CampaignRecord]:
    """
    Keep only records owned by `team_name`.

    None means an administrator view and returns the input unchanged.
    Matches the literal "<department>_<team>_" marker rather than the
    parse_ownership result, so team names containing "_" still match.
    """
    if team_name is None:
        return records
    return [r for r in records if is_owned_by(r.campaign_name, department, team_name)]
