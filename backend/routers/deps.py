"""Shared dependencies for the API routers."""

from fastapi import HTTPException, Request

from services.engine import CampaignEngine, EngineResult
from services.settings_store import ExecutionLog

SOURCE_ERRORS = {"SourceUnavailable", "RangeNotFound"}


def get_engine(request: Request) -> CampaignEngine:
    return request.app.state.engine


def get_execution_log(request: Request) -> ExecutionLog:
    return request.app.state.execution_log


def get_senders(request: Request) -> list:
    return request.app.state.senders


def unwrap(result: EngineResult) -> dict:
    """Turn an engine result into a response body or an HTTP error."""
    if result.success:
        return result.to_dict()
    status_code = 503 if result.error_type in SOURCE_ERRORS else 500
    raise HTTPException(status_code=status_code, detail={"success": False, "error": result.error})
