from datetime import date

import pytest

from services.cache import AggregationCache
from services.config import EngineConfig
from services.engine import CampaignEngine, SourceSpec
from services.errors import SourceUnavailable
from services.normalizer import CURRENT_COLUMNS, HISTORICAL_COLUMNS
from services.records import CampaignRecord
from services.settings_store import ExecutionLog, SettingsStore

TODAY = date(2024, 12, 10)
DEPARTMENT = "Dept"

SETTINGS = {
    "minSpend": "500",
    "roasFloor": "1.0",
    "minSampleDays": "3",
    "judgmentWindowDays": "7",
    "cacheTtlSeconds": "60",
}


def rec(name, day=TODAY, cost=0.0, revenue=0.0, **kwargs) -> CampaignRecord:
    return CampaignRecord(campaign_name=name, date=day, cost=cost, revenue=revenue, **kwargs)


def config(**overrides) -> EngineConfig:
    values = dict(min_spend=500, roas_floor=1.0, min_sample_days=3, judgment_window_days=7, cache_ttl_seconds=60)
    values.update(overrides)
    return EngineConfig(**values)


def sheet_row(name, day, cost="0", revenue="0", media="fb", project="", clicks="0", cv="0", mcv="0"):
    """A raw row laid out like the current/historical sheets (A..S)."""
    row = [""] * 19
    row[1] = f"{day}{name}"
    row[2] = day
    row[3] = name
    row[4] = cost
    row[6] = clicks
    row[8] = mcv
    row[9] = cv
    row[12] = media
    row[15] = project
    row[17] = revenue
    return row


HEADER = [""] * 19
HEADER[3] = "キャンペーン名"


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeSource:
    """In-memory row source keyed by (source id, range)."""

    def __init__(self, ranges=None):
        self.ranges = ranges or {}
        self.calls = []
        self.error = None

    def fetch_range(self, source_id, range_spec):
        self.calls.append((source_id, range_spec))
        if self.error is not None:
            raise self.error
        return self.ranges.get((source_id, range_spec), [])

    def fail(self, message="sheets down"):
        self.error = SourceUnavailable(message)


class RecordingSender:
    def __init__(self, name="recorder", result=True):
        self.name = name
        self.result = result
        self.messages = []

    def send(self, message):
        self.messages.append(message)
        return self.result


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings_store(tmp_path):
    store = SettingsStore(tmp_path)
    store.upsert_many(SETTINGS)
    return store


@pytest.fixture
def execution_log(tmp_path):
    return ExecutionLog(tmp_path)


@pytest.fixture
def source():
    current_rows = [
        HEADER,
        sheet_row("Dept_Yuta_A", "2024/12/10", cost="1,000", revenue="500", project="P1"),
        sheet_row("Dept_Yuta_B", "2024/12/10", cost="200", revenue="600", project="P2", media="tiktok"),
        sheet_row("Dept_Hana_C", "2024/12/10", cost="300", revenue="900", project="P1"),
    ]
    historical_rows = [
        HEADER,
        sheet_row("Dept_Yuta_A", "2024/12/09", cost="1000", revenue="400", project="P1"),
        sheet_row("Dept_Yuta_A", "2024/12/08", cost="1000", revenue="300", project="P1"),
        sheet_row("Dept_Yuta_B", "2024/12/09", cost="200", revenue="500", project="P2"),
        sheet_row("Dept_Yuta_B", "2024/12/03", cost="100", revenue="100", project="P2"),
        sheet_row("Dept_Hana_C", "2024/12/03", cost="100", revenue="50", project="P1"),
        sheet_row("Dept_Yuta_OLD", "2024/11/20", cost="100", revenue="0", project="P3"),
        sheet_row("Dept_Hana_D", "2024/12/01", cost="50", revenue="10", project=""),
        sheet_row("Dept_Hana_E", "2024/12/07", cost="100", revenue="300", project=""),
    ]
    return FakeSource({
        ("current-sheet", "today!A:W"): current_rows,
        ("history-sheet", "history!A:AZ"): historical_rows,
    })


@pytest.fixture
def engine(source, settings_store, clock):
    return CampaignEngine(
        source=source,
        current=SourceSpec("current-sheet", "today!A:W", CURRENT_COLUMNS),
        historical=SourceSpec("history-sheet", "history!A:AZ", HISTORICAL_COLUMNS),
        settings=settings_store,
        cache=AggregationCache(clock=clock),
        department=DEPARTMENT,
        today=lambda: TODAY,
    )
