"""
Settings and execution log endpoints.

Any settings change invalidates the whole cache so the next read is judged
with the new thresholds.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from routers.deps import get_engine, get_execution_log
from services.config import EngineConfig, RECOMMENDED_SETTINGS, REQUIRED_SETTINGS
from services.engine import CampaignEngine
from services.errors import ConfigMissing
from services.settings_store import ExecutionLog

router = APIRouter()


class UpdateSettingsRequest(BaseModel):
    """Request body for updating settings."""
    settings: dict[str, Any]
    executed_by: str = "admin"


@router.get("")
def get_settings(engine: CampaignEngine = Depends(get_engine)):
    """All settings, plus whether the judgment thresholds are complete."""
    settings = engine.settings.get_all()
    try:
        EngineConfig.from_settings(settings)
        missing = []
    except ConfigMissing as e:
        missing = e.keys
    return {
        "success": True,
        "settings": settings,
        "required": REQUIRED_SETTINGS,
        "missing": missing,
    }


@router.put("")
def update_settings(
    request: UpdateSettingsRequest,
    engine: CampaignEngine = Depends(get_engine),
    log: ExecutionLog = Depends(get_execution_log),
):
    """Upsert settings; values are stored as strings."""
    if not request.settings:
        raise HTTPException(status_code=400, detail="No settings provided")

    settings = engine.settings.upsert_many(request.settings)
    engine.invalidate()
    log.append(
        action_type="settings_update",
        executed_by=request.executed_by,
        target_count=len(request.settings),
        details={"keys": sorted(request.settings)},
    )
    return {"success": True, "settings": settings}


@router.post("/seed")
def seed_settings(
    engine: CampaignEngine = Depends(get_engine),
    log: ExecutionLog = Depends(get_execution_log),
):
    """Write recommended values for any settings not yet present."""
    added = engine.settings.seed()
    if added:
        engine.invalidate()
        log.append(action_type="settings_seed", target_count=len(added), details={"keys": added})
    return {"success": True, "added": added, "recommended": RECOMMENDED_SETTINGS}


@router.get("/logs")
def get_logs(limit: int = 50, log: ExecutionLog = Depends(get_execution_log)):
    """Most recent execution log entries."""
    entries = log.recent(limit=limit)
    return {"success": True, "logs": entries, "count": len(entries)}
