"""
Campaign judgment engine.

Fetches the current and historical sheets, normalizes them, and serves the
read views (comparison, full analysis, monthly profit, daily trend, project
monthly) through the aggregation cache. Team scoping is applied on read;
the fetched snapshot is shared by every team.

Read methods never raise engine errors. They return an EngineResult; when a
refresh fails and an expired value is still around, that value is served
with stale=True and the failure is kept in diagnostics.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Optional, Protocol
from zoneinfo import ZoneInfo

from services import analysis
from services.cache import AggregationCache
from services.config import EngineConfig
from services.errors import ConfigMissing, EngineError, SourceUnavailable
from services.metrics import source_today
from services.normalizer import ColumnMap, NormalizeResult, normalize
from services.records import CampaignRecord
from services.settings_store import SettingsStore
from services.team_scope import DEFAULT_DEPARTMENT, scope_to_team

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "snapshot"

COMPARISON = "comparison"
FULL_ANALYSIS = "full_analysis"
MONTHLY_PROFIT = "monthly_profit"
DAILY_TREND = "daily_trend"
PROJECT_MONTHLY = "project_monthly"

VIEWS = [COMPARISON, FULL_ANALYSIS, MONTHLY_PROFIT, DAILY_TREND, PROJECT_MONTHLY]


class RowSource(Protocol):
    def fetch_range(self, source_id: str, range_spec: str) -> list[list[str]]:
        ...


@dataclass(frozen=True)
class SourceSpec:
    """Where one period's rows live and how to read them."""
    source_id: Optional[str]
    range_spec: str
    columns: ColumnMap


@dataclass(frozen=True)
class Snapshot:
    """Normalized records from one fetch of both sources."""
    current: tuple[CampaignRecord, ...]
    historical: tuple[CampaignRecord, ...]
    evaluation_date: date
    fetched_at: str
    current_skipped: int = 0
    historical_skipped: int = 0


@dataclass
class EngineResult:
    success: bool
    data: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    cached: bool = False
    stale: bool = False

    def to_dict(self) -> dict:
        out = {"success": self.success, "cached": self.cached, "stale": self.stale}
        if self.success:
            out["data"] = self.data
        if self.error:
            out["error"] = self.error
            out["error_type"] = self.error_type
        return out


def view_key(view: str, team_name: Optional[str]) -> str:
    return f"{view}:{team_name if team_name is not None else '*'}"


class CampaignEngine:
    """Cached, team-scoped read API over the two campaign sheets."""

    def __init__(
        self,
        source: RowSource,
        current: SourceSpec,
        historical: SourceSpec,
        settings: SettingsStore,
        cache: AggregationCache,
        department: str = DEFAULT_DEPARTMENT,
        today: Optional[Callable[[], date]] = None,
        timezone: str = "Asia/Tokyo",
    ):
        current.columns.validate()
        historical.columns.validate()

        self.source = source
        self.current = current
        self.historical = historical
        self.settings = settings
        self.cache = cache
        self.department = department
        self.timezone = ZoneInfo(timezone)
        # Evaluation day in the source timezone unless a clock is injected
        self.today = today or (lambda: source_today(self.timezone))

        self._diag_lock = threading.Lock()
        self._diagnostics: dict[str, Any] = {"last_run": None, "last_error": None}

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def load_config(self) -> EngineConfig:
        return EngineConfig.from_settings(self.settings.get_all())

    def _fetch(self, spec: SourceSpec) -> NormalizeResult:
        if not spec.source_id:
            raise ConfigMissing([f"source id for {spec.range_spec}"])
        rows = self.source.fetch_range(spec.source_id, spec.range_spec)
        return normalize(rows, spec.columns)

    def _build_snapshot(self) -> Snapshot:
        started = time.monotonic()
        with ThreadPoolExecutor(max_workers=2) as pool:
            current_future = pool.submit(self._fetch, self.current)
            historical_future = pool.submit(self._fetch, self.historical)
            current = current_future.result()
            historical = historical_future.result()

        snapshot = Snapshot(
            current=tuple(current.records),
            historical=tuple(historical.records),
            evaluation_date=self.today(),
            fetched_at=datetime.now().isoformat(),
            current_skipped=current.skipped,
            historical_skipped=historical.skipped,
        )

        duration_ms = round((time.monotonic() - started) * 1000)
        logger.info(
            "[Engine] Fetched %d current / %d historical records in %dms (skipped %d / %d)",
            len(snapshot.current), len(snapshot.historical), duration_ms,
            snapshot.current_skipped, snapshot.historical_skipped,
        )
        with self._diag_lock:
            self._diagnostics["last_run"] = {
                "fetched_at": snapshot.fetched_at,
                "duration_ms": duration_ms,
                "current_records": len(snapshot.current),
                "historical_records": len(snapshot.historical),
                "current_skipped": snapshot.current_skipped,
                "historical_skipped": snapshot.historical_skipped,
                "current_errors": current.errors[:20],
                "historical_errors": historical.errors[:20],
            }
        return snapshot

    def snapshot(self, config: EngineConfig, force: bool = False) -> Snapshot:
        return self.cache.get_or_compute(SNAPSHOT_KEY, config.cache_ttl_seconds, self._build_snapshot, force=force)

    def _scoped(self, snapshot: Snapshot, team_name: Optional[str]) -> tuple[list, list]:
        return (
            list(scope_to_team(snapshot.current, team_name, self.department)),
            list(scope_to_team(snapshot.historical, team_name, self.department)),
        )

    def _build_view(self, view: str, team_name: Optional[str], config: EngineConfig) -> Any:
        snapshot = self.snapshot(config)
        current, historical = self._scoped(snapshot, team_name)
        day = snapshot.evaluation_date

        if view == COMPARISON:
            return analysis.build_comparison(current, historical, day)
        if view == FULL_ANALYSIS:
            return analysis.build_full_analysis(current, historical, day, config, self.department)
        if view == MONTHLY_PROFIT:
            return analysis.build_monthly_profit(current, historical, day)
        if view == DAILY_TREND:
            return analysis.build_daily_trend(current, historical, day)
        if view == PROJECT_MONTHLY:
            return analysis.build_project_monthly(current, historical, day)
        raise ValueError(f"Unknown view: {view}")

    def _record_error(self, key: str, error: Exception) -> None:
        with self._diag_lock:
            self._diagnostics["last_error"] = {
                "key": key,
                "type": type(error).__name__,
                "message": str(error),
                "at": datetime.now().isoformat(),
            }

    def _read(self, view: str, team_name: Optional[str], force: bool = False) -> EngineResult:
        key = view_key(view, team_name)

        try:
            config = self.load_config()
        except ConfigMissing as e:
            logger.error("[Engine] %s: %s", key, e)
            self._record_error(key, e)
            return EngineResult(success=False, error=str(e), error_type="ConfigMissing")

        was_cached = not force and self.cache.get(key) is not None
        try:
            data = self.cache.get_or_compute(
                key,
                config.cache_ttl_seconds,
                lambda: self._build_view(view, team_name, config),
                force=force,
            )
        except EngineError as e:
            self._record_error(key, e)
            stale = self.cache.stale(key) if isinstance(e, SourceUnavailable) else None
            if stale is not None:
                logger.warning("[Engine] %s refresh failed, serving stale data: %s", key, e)
                return EngineResult(success=True, data=stale, error=str(e), error_type=type(e).__name__, stale=True)
            logger.error("[Engine] %s failed: %s", key, e)
            return EngineResult(success=False, error=str(e), error_type=type(e).__name__)

        return EngineResult(success=True, data=data, cached=was_cached)

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def get_comparison_data(self, team_name: Optional[str] = None) -> EngineResult:
        return self._read(COMPARISON, team_name)

    def get_full_analysis_data(self, team_name: Optional[str] = None) -> EngineResult:
        return self._read(FULL_ANALYSIS, team_name)

    def get_monthly_profit(self, team_name: Optional[str] = None) -> EngineResult:
        return self._read(MONTHLY_PROFIT, team_name)

    def get_daily_trend_data(self, team_name: Optional[str] = None) -> EngineResult:
        return self._read(DAILY_TREND, team_name)

    def get_project_monthly_data(self, team_name: Optional[str] = None) -> EngineResult:
        return self._read(PROJECT_MONTHLY, team_name)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def preload(self, team_name: Optional[str] = None) -> EngineResult:
        """Refetch the sheets and republish every view for a team before expiry."""
        started = time.monotonic()
        try:
            config = self.load_config()
            self.snapshot(config, force=True)
        except EngineError as e:
            self._record_error(SNAPSHOT_KEY, e)
            logger.error("[Preload] failed: %s", e)
            return EngineResult(success=False, error=str(e), error_type=type(e).__name__)

        results = {view: self._read(view, team_name, force=True) for view in VIEWS}
        failed = {view: r.error for view, r in results.items() if not r.success}
        duration_ms = round((time.monotonic() - started) * 1000)
        logger.info("[Preload] %d views refreshed in %dms", len(VIEWS) - len(failed), duration_ms)

        if failed:
            return EngineResult(
                success=False,
                error="; ".join(f"{view}: {err}" for view, err in failed.items()),
                error_type="PreloadFailed",
            )
        return EngineResult(
            success=True,
            data={
                "duration_ms": duration_ms,
                "views": VIEWS,
                "ttl_seconds": config.cache_ttl_seconds,
            },
        )

    def invalidate(self, view: Optional[str] = None, team_name: Optional[str] = None) -> None:
        """Drop one view for a team, or the whole cache."""
        if view is None:
            self.cache.clear()
        else:
            self.cache.clear(view_key(view, team_name))

    def cache_status(self, view: str = FULL_ANALYSIS, team_name: Optional[str] = None) -> dict:
        return self.cache.status(view_key(view, team_name))

    def diagnostics(self) -> dict:
        with self._diag_lock:
            out = dict(self._diagnostics)
        out["snapshot"] = self.cache.status(SNAPSHOT_KEY)
        out["cached_keys"] = self.cache.keys()
        return out
