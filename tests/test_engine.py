from datetime import datetime, timezone

import pytest

from services import metrics
from services.cache import AggregationCache
from services.engine import FULL_ANALYSIS, CampaignEngine, SourceSpec, view_key
from services.normalizer import CURRENT_COLUMNS, ColumnMap
from services.settings_store import SettingsStore

from conftest import TODAY


def names(campaigns):
    return [c["campaign_name"] for c in campaigns]


def test_full_analysis_judges_every_campaign(engine):
    result = engine.get_full_analysis_data()

    assert result.success
    data = result.data
    assert data["evaluation_date"] == "2024-12-10"
    assert data["window"] == {"start": "2024-12-04", "end": "2024-12-10"}
    assert names(data["campaigns"]) == ["Dept_Hana_C", "Dept_Yuta_B", "Dept_Hana_E", "Dept_Yuta_A"]

    judgments = {c["campaign_name"]: c["judgment"] for c in data["campaigns"]}
    assert judgments == {
        "Dept_Yuta_A": "stop",
        "Dept_Yuta_B": "check",
        "Dept_Hana_C": "check",
        "Dept_Hana_E": "continue",
    }
    assert data["judgment_summary"] == {"stop": 1, "replace": 0, "check": 2, "continue": 1, "total": 4}
    assert data["summary"]["spend"] == 1500
    assert data["summary"]["profit"] == 500


def test_full_analysis_row_details(engine):
    campaigns = {c["campaign_name"]: c for c in engine.get_full_analysis_data().data["campaigns"]}
    a = campaigns["Dept_Yuta_A"]

    assert a["team"] == "Yuta"
    assert a["creative_id"] == "A"
    assert a["media_name"] == "Meta"
    assert a["trailing"]["spend"] == 3000
    assert a["trailing"]["profit"] == -1800
    assert a["trailing_days"] == 3
    assert a["consecutive_loss_days"] == 3
    assert a["cost_delta_pct"] == pytest.approx(0.0)

    assert campaigns["Dept_Yuta_B"]["media_name"] == "TikTok"
    assert campaigns["Dept_Hana_E"]["has_current"] is False


def test_team_scope_is_applied_on_read(engine, source):
    admin = engine.get_full_analysis_data()
    yuta = engine.get_full_analysis_data("Yuta")

    assert names(yuta.data["campaigns"]) == ["Dept_Yuta_B", "Dept_Yuta_A"]
    assert yuta.data["judgment_summary"]["total"] == 2
    assert admin.data["judgment_summary"]["total"] == 4
    # One snapshot shared by both views
    assert len(source.calls) == 2


def test_reads_within_ttl_hit_the_cache(engine, source):
    first = engine.get_full_analysis_data()
    second = engine.get_full_analysis_data()

    assert not first.cached
    assert second.cached
    assert second.data is first.data
    assert len(source.calls) == 2


def test_reads_after_ttl_refetch(engine, source, clock):
    engine.get_full_analysis_data()
    clock.advance(61)
    result = engine.get_full_analysis_data()

    assert result.success
    assert not result.cached
    assert len(source.calls) == 4


def test_missing_settings_fail_without_fetching(source, clock, tmp_path):
    engine = CampaignEngine(
        source=source,
        current=SourceSpec("current-sheet", "today!A:W", CURRENT_COLUMNS),
        historical=SourceSpec("history-sheet", "history!A:AZ", CURRENT_COLUMNS),
        settings=SettingsStore(tmp_path / "empty"),
        cache=AggregationCache(clock=clock),
        department="Dept",
        today=lambda: TODAY,
    )
    result = engine.get_full_analysis_data()

    assert not result.success
    assert result.error_type == "ConfigMissing"
    assert "minSpend" in result.error
    assert source.calls == []


def test_invalid_setting_value_is_config_missing(engine, settings_store):
    settings_store.upsert("roasFloor", "high")
    result = engine.get_comparison_data()

    assert not result.success
    assert result.error_type == "ConfigMissing"
    assert "roasFloor" in result.error


def test_missing_source_id_is_config_missing(source, settings_store, clock):
    engine = CampaignEngine(
        source=source,
        current=SourceSpec(None, "today!A:W", CURRENT_COLUMNS),
        historical=SourceSpec("history-sheet", "history!A:AZ", CURRENT_COLUMNS),
        settings=settings_store,
        cache=AggregationCache(clock=clock),
        department="Dept",
        today=lambda: TODAY,
    )
    result = engine.get_full_analysis_data()
    assert not result.success
    assert result.error_type == "ConfigMissing"


def test_source_failure_is_reported_and_not_cached(engine, source):
    source.fail()
    result = engine.get_full_analysis_data()

    assert not result.success
    assert result.error_type == "SourceUnavailable"
    assert result.error == "sheets down"
    assert engine.cache.get(view_key(FULL_ANALYSIS, None)) is None
    assert engine.diagnostics()["last_error"]["type"] == "SourceUnavailable"

    source.error = None
    assert engine.get_full_analysis_data().success


def test_expired_value_is_served_stale_while_source_is_down(engine, source, clock):
    fresh = engine.get_full_analysis_data()
    clock.advance(61)
    source.fail()

    result = engine.get_full_analysis_data()
    assert result.success
    assert result.stale
    assert result.data == fresh.data
    assert result.error_type == "SourceUnavailable"


def test_comparison(engine):
    data = engine.get_comparison_data().data

    assert data["today"]["spend"] == 1500
    assert data["yesterday"]["spend"] == 1200
    assert data["last_week"]["spend"] == 200
    assert data["day_over_day"]["spend"] == pytest.approx(25.0)
    assert data["day_over_day"]["profit"] == pytest.approx(800 / 300 * 100)
    assert data["week_over_week"]["spend"] == pytest.approx(650.0)


def test_monthly_profit(engine):
    data = engine.get_monthly_profit().data
    assert data["month"] == "2024-12"
    assert data["start"] == "2024-12-01"
    assert data["spend"] == 4050
    assert data["revenue"] == 3660
    assert data["profit"] == -390

    yuta = engine.get_monthly_profit("Yuta").data
    assert yuta["profit"] == -1100


def test_daily_trend(engine):
    rows = engine.get_daily_trend_data().data
    assert [r["date"] for r in rows] == [
        "2024-12-01", "2024-12-03", "2024-12-07", "2024-12-08", "2024-12-09", "2024-12-10",
    ]
    assert rows[-1]["spend"] == 1500


def test_project_monthly(engine):
    rows = engine.get_project_monthly_data().data
    assert [(r["project_name"], r["profit"]) for r in rows] == [
        ("P2", 700),
        ("その他", 160),
        ("P1", -1250),
    ]


def test_preload_refetches_and_warms_every_view(engine, source):
    engine.get_full_analysis_data()
    result = engine.preload()

    assert result.success
    assert result.data["ttl_seconds"] == 60
    assert len(source.calls) == 4
    for view in result.data["views"]:
        assert engine.cache_status(view)["exists"]


def test_invalidate(engine):
    engine.get_full_analysis_data()
    engine.get_comparison_data()

    engine.invalidate(FULL_ANALYSIS)
    assert not engine.cache_status(FULL_ANALYSIS)["exists"]
    assert engine.cache_status("comparison")["exists"]

    engine.invalidate()
    assert engine.cache.keys() == []


def test_diagnostics_after_a_run(engine):
    engine.get_full_analysis_data()
    diag = engine.diagnostics()

    assert diag["last_run"]["current_records"] == 3
    assert diag["last_run"]["historical_records"] == 8
    assert diag["snapshot"]["exists"]


def test_bad_column_layout_fails_at_construction(source, settings_store, clock):
    bad = ColumnMap(campaign_name=0, date=0, cost=1, revenue=2)
    with pytest.raises(ValueError):
        CampaignEngine(
            source=source,
            current=SourceSpec("a", "x", bad),
            historical=SourceSpec("b", "y", CURRENT_COLUMNS),
            settings=settings_store,
            cache=AggregationCache(clock=clock),
        )


@pytest.mark.parametrize("tz,expected", [("Asia/Tokyo", "2024-12-01"), ("UTC", "2024-11-30")])
def test_evaluation_day_follows_the_source_timezone(monkeypatch, source, settings_store, clock, tz, expected):
    late_utc = datetime(2024, 11, 30, 16, 0, tzinfo=timezone.utc)
    monkeypatch.setattr("services.engine.source_today", lambda zone: metrics.source_today(zone, now=late_utc))
    engine = CampaignEngine(
        source=source,
        current=SourceSpec("current-sheet", "today!A:W", CURRENT_COLUMNS),
        historical=SourceSpec("history-sheet", "history!A:AZ", CURRENT_COLUMNS),
        settings=settings_store,
        cache=AggregationCache(clock=clock),
        department="Dept",
        timezone=tz,
    )

    assert engine.get_comparison_data().data["date"] == expected
    assert engine.get_monthly_profit().data["month"] == expected[:7]
