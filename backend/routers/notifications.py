"""
Judgment run and report delivery endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from routers.deps import get_engine, get_execution_log, get_senders, unwrap
from services.engine import CampaignEngine
from services.notifications import build_judgment_summary, format_judgment_message, send_judgment_report
from services.settings_store import ExecutionLog

router = APIRouter()


class JudgmentRunRequest(BaseModel):
    """Request body for running judgments."""
    team: Optional[str] = None
    executed_by: str = "system"


class SendReportRequest(BaseModel):
    """Request body for sending the judgment report."""
    team: Optional[str] = None
    executed_by: str = "system"
    include_continue: bool = True


@router.post("/judgment")
def run_judgment(
    request: JudgmentRunRequest,
    engine: CampaignEngine = Depends(get_engine),
    log: ExecutionLog = Depends(get_execution_log),
):
    """Judge every campaign for a team and record the run."""
    result = engine.get_full_analysis_data(request.team)
    if not result.success:
        log.append(
            action_type="judgment",
            status="error",
            executed_by=request.executed_by,
            error_message=result.error,
        )
        return unwrap(result)

    analysis = result.data
    log.append(
        action_type="judgment",
        executed_by=request.executed_by,
        target_count=len(analysis["campaigns"]),
        details={"summary": analysis["judgment_summary"], "stale": result.stale},
    )
    return {
        "success": True,
        "stale": result.stale,
        "summary": analysis["judgment_summary"],
        "results": [
            {k: c[k] for k in ("campaign_name", "judgment", "reasons", "consecutive_loss_days")}
            for c in analysis["campaigns"]
        ],
    }


@router.get("/preview")
def preview_report(team: Optional[str] = None, engine: CampaignEngine = Depends(get_engine)):
    """The report text and summary that would be sent."""
    body = unwrap(engine.get_full_analysis_data(team))
    analysis = body["data"]
    return {
        "success": True,
        "summary": build_judgment_summary(analysis),
        "message": format_judgment_message(analysis),
    }


@router.post("/send")
def send_report(
    request: SendReportRequest,
    engine: CampaignEngine = Depends(get_engine),
    log: ExecutionLog = Depends(get_execution_log),
    senders: list = Depends(get_senders),
):
    """Send the judgment report to every configured channel (best effort)."""
    body = unwrap(engine.get_full_analysis_data(request.team))
    outcome = send_judgment_report(
        body["data"],
        senders,
        log=log,
        executed_by=request.executed_by,
        include_continue=request.include_continue,
    )
    return {"success": True, "summary": outcome["summary"], "results": outcome["results"]}
