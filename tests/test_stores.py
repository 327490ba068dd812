import json

import pytest

from services.config import RECOMMENDED_SETTINGS, AppConfig, EngineConfig
from services.errors import ConfigMissing
from services.metrics import TrailingDays
from services.settings_store import ExecutionLog, SettingsStore

from conftest import SETTINGS


def test_settings_are_stored_as_strings(tmp_path):
    store = SettingsStore(tmp_path)
    store.upsert("minSpend", 3000)
    store.upsert_many({"roasFloor": 1.2, "memo": "テスト"})

    assert store.get_all() == {"minSpend": "3000", "roasFloor": "1.2", "memo": "テスト"}
    raw = (tmp_path / "settings.json").read_text(encoding="utf-8")
    assert "テスト" in raw


def test_unreadable_settings_file_reads_as_empty(tmp_path):
    (tmp_path / "settings.json").write_text("{not json", encoding="utf-8")
    assert SettingsStore(tmp_path).get_all() == {}


def test_seed_only_fills_missing_keys(tmp_path):
    store = SettingsStore(tmp_path)
    store.upsert("minSpend", "100")

    added = store.seed()

    assert "minSpend" not in added
    assert set(added) == set(RECOMMENDED_SETTINGS) - {"minSpend"}
    assert store.get_all()["minSpend"] == "100"
    assert store.seed() == []


def test_engine_config_from_settings():
    config = EngineConfig.from_settings(SETTINGS)

    assert config.min_spend == 500
    assert config.roas_floor == 1.0
    assert config.min_sample_days == 3
    assert config.cache_ttl_seconds == 60
    assert config.window == TrailingDays(7)


def test_engine_config_lists_every_bad_key():
    settings = dict(SETTINGS, minSpend="", minSampleDays="0", cacheTtlSeconds="soon")
    del settings["roasFloor"]

    with pytest.raises(ConfigMissing) as excinfo:
        EngineConfig.from_settings(settings)

    assert excinfo.value.keys == ["minSpend", "roasFloor", "minSampleDays", "cacheTtlSeconds"]


def test_recommended_settings_are_valid():
    EngineConfig.from_settings(RECOMMENDED_SETTINGS)


def test_execution_log_appends_with_increasing_ids(tmp_path):
    log = ExecutionLog(tmp_path)
    first = log.append("judgment", target_count=4)
    second = log.append("notify", status="partial", error_message="failed: line")

    assert (first["id"], second["id"]) == (1, 2)
    assert [e["action_type"] for e in log.recent()] == ["notify", "judgment"]
    assert log.recent(limit=1)[0]["status"] == "partial"

    stored = json.loads((tmp_path / "execution_log.json").read_text(encoding="utf-8"))
    assert len(stored) == 2


def test_app_config_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("GOOGLE_SHEETS_SPREADSHEET_ID", "sheet-1")
    monkeypatch.delenv("GOOGLE_SHEETS_HISTORICAL_SPREADSHEET_ID", raising=False)
    monkeypatch.setenv("CURRENT_RANGE", "today!A:W")
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("DEPARTMENT_PREFIX", "Dept")
    monkeypatch.delenv("SOURCE_TIMEZONE", raising=False)

    config = AppConfig.from_env()

    assert config.current_spreadsheet_id == "sheet-1"
    assert config.historical_spreadsheet_id == "sheet-1"
    assert config.current_range == "today!A:W"
    assert config.department == "Dept"
    assert config.data_dir == tmp_path
    assert config.source_timezone == "Asia/Tokyo"
