"""
Configuration for the campaign judgment service.

Process settings (sheet ids, credentials, chat tokens) come from the
environment via .env. Judgment thresholds and the cache TTL live in the
settings store so they can be changed without a redeploy; they are read on
every pipeline run and never defaulted silently.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from services.errors import ConfigMissing
from services.metrics import TrailingDays

load_dotenv()

DATA_DIR = Path(__file__).parent.parent.parent / "data"

# Settings store keys
MIN_SPEND = "minSpend"
ROAS_FLOOR = "roasFloor"
MIN_SAMPLE_DAYS = "minSampleDays"
JUDGMENT_WINDOW_DAYS = "judgmentWindowDays"
CACHE_TTL_SECONDS = "cacheTtlSeconds"

REQUIRED_SETTINGS = [MIN_SPEND, ROAS_FLOOR, MIN_SAMPLE_DAYS, JUDGMENT_WINDOW_DAYS, CACHE_TTL_SECONDS]

# Written only by the explicit seed operation
RECOMMENDED_SETTINGS = {
    MIN_SPEND: "3000",
    ROAS_FLOOR: "1.0",
    MIN_SAMPLE_DAYS: "3",
    JUDGMENT_WINDOW_DAYS: "7",
    CACHE_TTL_SECONDS: "900",
}


@dataclass(frozen=True)
class EngineConfig:
    """Thresholds and TTL for one pipeline run."""
    min_spend: float
    roas_floor: float
    min_sample_days: int
    judgment_window_days: int
    cache_ttl_seconds: float

    @property
    def window(self) -> TrailingDays:
        return TrailingDays(self.judgment_window_days)

    @classmethod
    def from_settings(cls, settings: Mapping[str, str]) -> "EngineConfig":
        """Build from settings-store strings; raises ConfigMissing naming every bad key."""
        bad: list[str] = []

        def read(key: str, cast, minimum):
            raw = settings.get(key)
            if raw is None or str(raw).strip() == "":
                bad.append(key)
                return None
            try:
                value = cast(str(raw).strip())
            except ValueError:
                bad.append(key)
                return None
            if value < minimum:
                bad.append(key)
                return None
            return value

        min_spend = read(MIN_SPEND, float, 0)
        roas_floor = read(ROAS_FLOOR, float, 0)
        min_sample_days = read(MIN_SAMPLE_DAYS, int, 1)
        window_days = read(JUDGMENT_WINDOW_DAYS, int, 1)
        ttl = read(CACHE_TTL_SECONDS, float, 1)

        if bad:
            raise ConfigMissing(bad)

        return cls(
            min_spend=min_spend,
            roas_floor=roas_floor,
            min_sample_days=min_sample_days,
            judgment_window_days=window_days,
            cache_ttl_seconds=ttl,
        )


@dataclass(frozen=True)
class AppConfig:
    """Environment-level configuration."""
    current_spreadsheet_id: Optional[str]
    historical_spreadsheet_id: Optional[str]
    current_range: str
    historical_range: str
    google_client_id: Optional[str]
    google_client_secret: Optional[str]
    google_refresh_token: Optional[str]
    chatwork_token: Optional[str]
    chatwork_room_id: Optional[str]
    line_notify_token: Optional[str]
    department: str
    data_dir: Path
    request_timeout: float = 30.0
    source_timezone: str = "Asia/Tokyo"

    @classmethod
    def from_env(cls) -> "AppConfig":
        current_id = os.getenv("GOOGLE_SHEETS_SPREADSHEET_ID")
        return cls(
            current_spreadsheet_id=current_id,
            historical_spreadsheet_id=os.getenv("GOOGLE_SHEETS_HISTORICAL_SPREADSHEET_ID") or current_id,
            current_range=os.getenv("CURRENT_RANGE", "CSV_当日精査用!A:W"),
            historical_range=os.getenv("HISTORICAL_RANGE", "CSV抽出!A:AZ"),
            google_client_id=os.getenv("GOOGLE_CLIENT_ID"),
            google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET"),
            google_refresh_token=os.getenv("GOOGLE_REFRESH_TOKEN"),
            chatwork_token=os.getenv("CHATWORK_API_TOKEN"),
            chatwork_room_id=os.getenv("CHATWORK_ROOM_ID"),
            line_notify_token=os.getenv("LINE_NOTIFY_TOKEN"),
            department=os.getenv("DEPARTMENT_PREFIX", "新規グロース部"),
            data_dir=Path(os.getenv("DATA_DIR", str(DATA_DIR))),
            request_timeout=float(os.getenv("SOURCE_TIMEOUT_SECONDS", "30")),
            source_timezone=os.getenv("SOURCE_TIMEZONE", "Asia/Tokyo"),
        )
