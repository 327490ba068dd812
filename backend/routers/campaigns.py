"""
Campaign read endpoints.

Every view takes an optional `team` query parameter; without it the
administrator (all teams) view is returned.
"""

from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from routers.deps import get_engine, unwrap
from services.engine import FULL_ANALYSIS, VIEWS, CampaignEngine
from services.errors import SourceUnavailable

router = APIRouter()


@router.get("/comparison")
def get_comparison(team: Optional[str] = None, engine: CampaignEngine = Depends(get_engine)):
    """Today vs yesterday vs the same weekday last week."""
    return unwrap(engine.get_comparison_data(team))


@router.get("/analysis")
def get_analysis(team: Optional[str] = None, engine: CampaignEngine = Depends(get_engine)):
    """Per-campaign metrics, judgments and project/media breakdowns."""
    return unwrap(engine.get_full_analysis_data(team))


@router.get("/monthly-profit")
def get_monthly_profit(team: Optional[str] = None, engine: CampaignEngine = Depends(get_engine)):
    """Profit for the current calendar month."""
    return unwrap(engine.get_monthly_profit(team))


@router.get("/daily-trend")
def get_daily_trend(team: Optional[str] = None, engine: CampaignEngine = Depends(get_engine)):
    """Per-day totals for the current month."""
    return unwrap(engine.get_daily_trend_data(team))


@router.get("/project-monthly")
def get_project_monthly(team: Optional[str] = None, engine: CampaignEngine = Depends(get_engine)):
    """Per-project totals for the current month."""
    return unwrap(engine.get_project_monthly_data(team))


@router.post("/preload")
def preload(team: Optional[str] = None, engine: CampaignEngine = Depends(get_engine)):
    """Refetch the sheets and republish every view before the cache expires."""
    result = engine.preload(team)
    body = unwrap(result)
    ttl = result.data["ttl_seconds"]
    body["cached_until"] = (datetime.now() + timedelta(seconds=ttl)).isoformat()
    return body


@router.get("/preload")
def preload_status(team: Optional[str] = None, view: str = FULL_ANALYSIS, engine: CampaignEngine = Depends(get_engine)):
    """Cache state for one view."""
    if view not in VIEWS:
        raise HTTPException(status_code=400, detail=f"Invalid view. Valid options: {VIEWS}")
    return engine.cache_status(view, team)


@router.delete("/cache")
def clear_cache(view: Optional[str] = None, team: Optional[str] = None, engine: CampaignEngine = Depends(get_engine)):
    """Drop one cached view, or everything."""
    if view is not None and view not in VIEWS:
        raise HTTPException(status_code=400, detail=f"Invalid view. Valid options: {VIEWS}")
    engine.invalidate(view, team)
    return {"success": True}


@router.get("/diagnostics")
def diagnostics(engine: CampaignEngine = Depends(get_engine)):
    """Last pipeline run, last error and cache keys."""
    return engine.diagnostics()


@router.get("/sheets")
def list_sheets(engine: CampaignEngine = Depends(get_engine)):
    """Connection check: sheet titles of the current and historical spreadsheets."""
    if not hasattr(engine.source, "list_sheets"):
        raise HTTPException(status_code=501, detail="Row source does not support listing sheets")
    try:
        return {
            "success": True,
            "current": engine.source.list_sheets(engine.current.source_id),
            "historical": engine.source.list_sheets(engine.historical.source_id),
        }
    except SourceUnavailable as e:
        raise HTTPException(status_code=503, detail={"success": False, "error": str(e)})
