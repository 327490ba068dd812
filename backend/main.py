"""
GrowthDeck Campaign API

FastAPI backend for the campaign judgment dashboard.
Serves reconciled campaign metrics and stop/replace/check/continue
judgments from the current-day and historical sheets.
"""

import logging
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Add backend directory for imports
sys.path.insert(0, str(Path(__file__).parent))

from connectors.chatwork import ChatworkSender
from connectors.google_sheets import GoogleSheetsConnector
from connectors.line_notify import LineNotifySender
from routers import campaigns, notifications, settings
from services.cache import AggregationCache
from services.config import AppConfig
from services.engine import CampaignEngine, SourceSpec
from services.normalizer import CURRENT_COLUMNS, HISTORICAL_COLUMNS
from services.settings_store import ExecutionLog, SettingsStore

logger = logging.getLogger(__name__)


def get_allowed_origins():
    """Get CORS allowed origins from environment or defaults."""
    origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Add custom origins if provided (comma-separated)
    custom_origins = os.environ.get("CORS_ORIGINS", "")
    if custom_origins:
        origins.extend([o.strip() for o in custom_origins.split(",") if o.strip()])

    frontend_url = os.environ.get("FRONTEND_URL")
    if frontend_url:
        origins.append(frontend_url)

    return origins


def build_engine(config: AppConfig, cache: AggregationCache) -> CampaignEngine:
    """Wire the sheet connector, column maps and settings store into an engine."""
    source = GoogleSheetsConnector(
        client_id=config.google_client_id,
        client_secret=config.google_client_secret,
        refresh_token=config.google_refresh_token,
        timeout=config.request_timeout,
    )
    return CampaignEngine(
        source=source,
        current=SourceSpec(config.current_spreadsheet_id, config.current_range, CURRENT_COLUMNS),
        historical=SourceSpec(config.historical_spreadsheet_id, config.historical_range, HISTORICAL_COLUMNS),
        settings=SettingsStore(config.data_dir),
        cache=cache,
        department=config.department,
        timezone=config.source_timezone,
    )


def build_senders(config: AppConfig) -> list:
    senders = [
        ChatworkSender(config.chatwork_token, config.chatwork_room_id),
        LineNotifySender(config.line_notify_token),
    ]
    return [s for s in senders if s.configured]


def create_app(
    engine: Optional[CampaignEngine] = None,
    execution_log: Optional[ExecutionLog] = None,
    senders: Optional[list] = None,
) -> FastAPI:
    """Build the app; tests pass their own engine, log and senders."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        config = None
        if engine is None or execution_log is None or senders is None:
            config = AppConfig.from_env()

        # One cache per process, cleared on settings changes
        app.state.engine = engine or build_engine(config, AggregationCache())
        app.state.execution_log = execution_log or ExecutionLog(config.data_dir)
        app.state.senders = senders if senders is not None else build_senders(config)

        logger.info("Starting GrowthDeck Campaign API...")
        logger.info("CORS allowed origins: %s", get_allowed_origins())
        logger.info("Notification channels: %s", [s.name for s in app.state.senders] or "none")
        yield
        app.state.engine.cache.clear()
        logger.info("Shutting down...")

    app = FastAPI(
        title="GrowthDeck Campaign API",
        description="Campaign reconciliation and judgment API for the operations dashboard",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_allowed_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(campaigns.router, prefix="/api/campaigns", tags=["Campaigns"])
    app.include_router(settings.router, prefix="/api/settings", tags=["Settings"])
    app.include_router(notifications.router, prefix="/api/notifications", tags=["Notifications"])

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"status": "healthy", "service": "GrowthDeck Campaign API"}

    @app.get("/api/health")
    async def health_check():
        """Detailed health check."""
        return {
            "status": "healthy",
            "version": "1.0.0",
            "endpoints": [
                "/api/campaigns",
                "/api/settings",
                "/api/notifications",
            ],
        }

    return app


logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
