"""
Judgment report notifications.

Builds a short summary of the day's judgments and fans it out to every
configured sender. Delivery is best-effort and at-least-once: failures are
logged and reported per sender, never raised to the caller.
"""

import logging
from typing import Optional, Protocol, Sequence

from services.judgment import Judgment
from services.metrics import source_today
from services.settings_store import ExecutionLog

logger = logging.getLogger(__name__)

SECTION_TITLES = {
    Judgment.STOP.value: "■ 停止",
    Judgment.REPLACE.value: "■ 作り替え",
    Judgment.CHECK.value: "■ 要確認",
    Judgment.CONTINUE.value: "■ 継続",
}


class NotificationSender(Protocol):
    name: str

    def send(self, message: str) -> bool:
        ...


def format_currency(value: Optional[float]) -> str:
    if value is None:
        return "-"
    sign = "-" if value < 0 else ""
    return f"{sign}¥{abs(round(value)):,}"


def format_roas(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{value * 100:.0f}%"


def build_judgment_summary(analysis: dict) -> dict:
    """Profit, spend, ROAS and best/worst campaigns from a full analysis view."""
    summary = analysis.get("summary", {})
    campaigns = [c for c in analysis.get("campaigns", []) if c.get("has_current")]

    best = max(campaigns, key=lambda c: c["current"]["profit"], default=None)
    losing = [c for c in campaigns if c["current"]["profit"] < 0]
    worst = min(losing, key=lambda c: c["current"]["profit"], default=None)

    return {
        "date": analysis.get("evaluation_date"),
        "profit": summary.get("profit", 0.0),
        "spend": summary.get("spend", 0.0),
        "roas": summary.get("roas"),
        "best_campaign": best["campaign_name"] if best else None,
        "worst_campaign": worst["campaign_name"] if worst else None,
        "counts": analysis.get("judgment_summary", {}),
    }


def format_judgment_message(analysis: dict, include_continue: bool = True) -> str:
    """Plain-text report grouped by judgment label."""
    summary = build_judgment_summary(analysis)
    lines = [
        f"【本日のCPN仕分け】{summary['date'] or source_today().isoformat()}",
        f"利益 {format_currency(summary['profit'])} / 消化 {format_currency(summary['spend'])}"
        f" / ROAS {format_roas(summary['roas'])}",
    ]
    if summary["best_campaign"]:
        lines.append(f"TOP: {summary['best_campaign']}")
    if summary["worst_campaign"]:
        lines.append(f"WORST: {summary['worst_campaign']}")

    for label, title in SECTION_TITLES.items():
        if label == Judgment.CONTINUE.value and not include_continue:
            continue
        rows = [c for c in analysis.get("campaigns", []) if c["judgment"] == label]
        if not rows:
            continue
        lines.append("")
        lines.append(title)
        for c in rows:
            lines.append(
                f"{c['campaign_name']}｜{format_currency(c['current']['profit'])}"
                f"｜{format_currency(c['trailing']['profit'])}｜{format_roas(c['trailing']['roas'])}"
            )

    return "\n".join(lines)


def send_judgment_report(
    analysis: dict,
    senders: Sequence[NotificationSender],
    log: Optional[ExecutionLog] = None,
    executed_by: str = "system",
    include_continue: bool = True,
) -> dict:
    """Send the report to every sender; returns per-sender delivery results."""
    message = format_judgment_message(analysis, include_continue=include_continue)
    results: dict[str, bool] = {}

    for sender in senders:
        try:
            delivered = bool(sender.send(message))
        except Exception as e:
            logger.warning("[Notify] %s raised while sending: %s", sender.name, e)
            delivered = False
        if not delivered:
            logger.warning("[Notify] %s delivery failed", sender.name)
        results[sender.name] = delivered

    summary = build_judgment_summary(analysis)
    if log is not None:
        failed = [name for name, ok in results.items() if not ok]
        log.append(
            action_type="notify",
            status="success" if not failed else ("partial" if len(failed) < len(results) else "error"),
            executed_by=executed_by,
            target_count=len(analysis.get("campaigns", [])),
            error_message=f"failed: {', '.join(failed)}" if failed else None,
            details={"results": results},
        )

    return {"summary": summary, "results": results, "message": message}
