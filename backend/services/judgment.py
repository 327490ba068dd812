"""
Judgment classifier.

Deterministic decision table over a ComparisonPair, first match wins:

1. stop     - trailing profit < 0 and trailing spend >= min_spend
2. replace  - trailing ROAS defined and < roas_floor, with >= min_sample_days
3. check    - current-day data present but < min_sample_days of history
4. continue - everything else

Thresholds come from EngineConfig; nothing here reads settings or clocks.
"""

from enum import Enum
from typing import Iterable, Protocol

from services.window_joiner import ComparisonPair


class Judgment(str, Enum):
    CONTINUE = "continue"
    CHECK = "check"
    REPLACE = "replace"
    STOP = "stop"


# Reason tags attached to each rule, shown in the UI and chat reports
REASON_LOSS_OVER_MIN_SPEND = "trailing_loss_over_min_spend"
REASON_ROAS_BELOW_FLOOR = "trailing_roas_below_floor"
REASON_INSUFFICIENT_HISTORY = "insufficient_history"
REASON_HEALTHY = "healthy"

REASON_LABELS = {
    REASON_LOSS_OVER_MIN_SPEND: "期間赤字+消化額が下限以上",
    REASON_ROAS_BELOW_FLOOR: "期間ROASが下限未満",
    REASON_INSUFFICIENT_HISTORY: "データ日数不足",
    REASON_HEALTHY: "条件該当なし",
}


class Thresholds(Protocol):
    min_spend: float
    roas_floor: float
    min_sample_days: int


def explain(pair: ComparisonPair, config: Thresholds) -> tuple[Judgment, list[str]]:
    """Classify a pair and return the reason tag(s) of the rule that fired."""
    trailing = pair.trailing

    if trailing.profit < 0 and trailing.spend >= config.min_spend:
        return Judgment.STOP, [REASON_LOSS_OVER_MIN_SPEND]

    roas = trailing.roas
    if roas is not None and roas < config.roas_floor and pair.trailing_days >= config.min_sample_days:
        return Judgment.REPLACE, [REASON_ROAS_BELOW_FLOOR]

    if pair.has_current and pair.trailing_days < config.min_sample_days:
        return Judgment.CHECK, [REASON_INSUFFICIENT_HISTORY]

    return Judgment.CONTINUE, [REASON_HEALTHY]


def classify(pair: ComparisonPair, config: Thresholds) -> Judgment:
    return explain(pair, config)[0]


def judgment_summary(judgments: Iterable[Judgment]) -> dict[str, int]:
    """Count labels for dashboards and chat reports."""
    summary = {label.value: 0 for label in (Judgment.STOP, Judgment.REPLACE, Judgment.CHECK, Judgment.CONTINUE)}
    total = 0
    for judgment in judgments:
        summary[Judgment(judgment).value] += 1
        total += 1
    summary["total"] = total
    return summary
