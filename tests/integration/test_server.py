"""Integration tests for the vitalog MCP server."""

from __future__ import annotations

import asyncio
import json

import pytest
from fastmcp import Client

from vitalog.core.config.settings import Settings
from vitalog.core.server.app import create_app
from vitalog.core.storage.encryption import FieldEncryptor


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _payload(result) -> dict:
    """Decode the JSON text a tool returned."""
    content = getattr(result, "content", result)
    return json.loads(content[0].text)


ALL_EXPECTED_TOOLS = [
    "health_check",
    "log_metric",
    "log_batch",
    "show_metrics",
    "detect_anomalies",
    "metric_trend",
    "correlate_metrics",
    "daily_status",
    "health_report",
    "health_context",
    "med_add",
    "med_take",
    "med_stop",
    "med_remove",
    "med_list",
    "med_status",
    "goal_set",
    "goal_status",
    "goal_remove",
    "export_metrics",
    "import_metrics",
    "delete_all_health_data",
    "audit_summary",
]


@pytest.fixture
def settings() -> Settings:
    return Settings(encryption_key=FieldEncryptor.generate_key(), db_path=":memory:")


@pytest.fixture
def client(settings):
    return Client(create_app(settings_override=settings))


def _call(client, tool: str, args: dict | None = None) -> dict:
    async def _go():
        async with client:
            return _payload(await client.call_tool(tool, args or {}))
    return _run(_go())


def _calls(client, *steps: tuple[str, dict]) -> list[dict]:
    """Run several tool calls over one client session."""
    async def _go():
        results = []
        async with client:
            for tool, args in steps:
                results.append(_payload(await client.call_tool(tool, args)))
        return results
    return _run(_go())


class TestServer:
    def test_server_starts_and_lists_tools(self, client):
        async def _check():
            async with client:
                tools = await client.list_tools()
                tool_names = [t.name for t in tools]
                for expected in ALL_EXPECTED_TOOLS:
                    assert expected in tool_names, f"Missing tool: {expected}"
        _run(_check())

    def test_health_check_reports_storage(self, client):
        status = _call(client, "health_check")
        assert status["status"] == "ok"
        assert status["storage_enabled"] is True
        assert status["entries_stored"] == 0

    def test_without_key_only_health_check(self):
        bare = Client(create_app(settings_override=Settings(db_path=":memory:")))

        async def _check():
            async with bare:
                names = [t.name for t in await bare.list_tools()]
                status = _payload(await bare.call_tool("health_check", {}))
            return names, status

        names, status = _run(_check())
        assert names == ["health_check"]
        assert status["storage_enabled"] is False

    def test_repository_override(self, health_repository, audit_logger, add_obs):
        add_obs("weight", 80)
        app = create_app(
            settings_override=Settings(),
            repository_override=health_repository,
            audit_logger_override=audit_logger,
        )
        status = _call(Client(app), "health_check")
        assert status["entries_stored"] == 1


class TestMetricTools:
    def test_log_and_show(self, client):
        saved, shown = _calls(
            client,
            ("log_metric", {"metric_type": "w", "value": 82.4, "note": "after run"}),
            ("show_metrics", {"metric_type": "weight"}),
        )
        assert saved["status"] == "saved"
        assert saved["entry"]["type"] == "weight"
        assert shown["entries"][0]["value"] == 82.4
        assert shown["entries"][0]["note"] == "after run"

    def test_invalid_date_is_reported(self, client):
        result = _call(client, "log_metric", {"metric_type": "pain", "value": 3, "date": "today"})
        assert result["status"] == "error"
        assert result["error_type"] == "invalid_parameter"

    def test_batch(self, client):
        entries = '[{"type": "pain", "value": 2}, {"type": "w", "value": 80}]'
        result = _call(client, "log_batch", {"entries": entries})
        assert [e["type"] for e in result["entries"]] == ["pain", "weight"]


class TestAnalyticsTools:
    def test_trend_no_data(self, client):
        result = _call(client, "metric_trend", {"metric_type": "weight"})
        assert result["status"] == "no_data"

    def test_trend_with_history(self, client):
        results = _calls(
            client,
            ("log_metric", {"metric_type": "weight", "value": 84, "date": "2026-03-02"}),
            ("log_metric", {"metric_type": "weight", "value": 83, "date": "2026-03-09"}),
            ("log_metric", {"metric_type": "weight", "value": 82, "date": "2026-03-16"}),
            ("metric_trend", {"metric_type": "weight", "period": "weekly"}),
        )
        trend = results[-1]
        assert trend["status"] == "ok"
        assert trend["trend"]["direction"] == "decreasing"
        assert trend["trend"]["rate"] == -1.0
        assert [d["label"] for d in trend["data"]] == ["2026-W10", "2026-W11", "2026-W12"]

    def test_invalid_period(self, client):
        result = _call(client, "metric_trend", {"metric_type": "weight", "period": "hourly"})
        assert result["status"] == "error"
        assert "daily/weekly/monthly" in result["message"]

    def test_trend_reports_display_unit(self):
        imperial = Settings(
            encryption_key=FieldEncryptor.generate_key(),
            db_path=":memory:",
            unit_system="imperial",
        )
        _, _, trend = _calls(
            Client(create_app(settings_override=imperial)),
            ("log_metric", {"metric_type": "weight", "value": 180, "date": "2026-03-09"}),
            ("log_metric", {"metric_type": "weight", "value": 178, "date": "2026-03-16"}),
            ("metric_trend", {"metric_type": "weight", "period": "weekly"}),
        )
        assert trend["unit"] == "lbs"
        assert trend["trend"]["direction"] == "decreasing"

    def test_trend_rejects_zero_periods(self, client):
        result = _call(client, "metric_trend", {"metric_type": "weight", "last": 0})
        assert result["status"] == "error"
        assert result["error_type"] == "invalid_parameter"

    def test_invalid_threshold(self, client):
        result = _call(client, "detect_anomalies", {"threshold": "extreme"})
        assert result["error_type"] == "invalid_parameter"

    def test_anomalies_on_empty_store(self, client):
        result = _call(client, "detect_anomalies")
        assert result["anomalies"] == []
        assert result["threshold"] == "moderate"

    def test_correlation_insufficient(self, client):
        result = _call(client, "correlate_metrics", {"metric_a": "sl", "metric_b": "p"})
        assert result["metric_a"] == "sleep_hours"
        assert result["metric_b"] == "pain"
        assert result["interpretation"] == "insufficient data"

    def test_daily_status_and_report(self, client):
        _, overview, report = _calls(
            client,
            ("log_metric", {"metric_type": "pain", "value": 7}),
            ("daily_status", {}),
            ("health_report", {}),
        )
        assert overview["today"]["logged"] == ["pain"]
        assert overview["today"]["pain_alerts"][0]["value"] == 7.0
        assert report["total_entries"] == 1

    def test_report_rejects_reversed_range(self, client):
        result = _call(
            client, "health_report", {"from_date": "2026-03-10", "to_date": "2026-03-01"}
        )
        assert result["status"] == "error"


    def test_health_context_empty(self, client):
        briefing = _call(client, "health_context")
        assert briefing["status"] == "ok"
        assert briefing["period"]["days"] == 7
        assert briefing["metrics"] == {}
        assert briefing["summary"] == "No metrics tracked in this period."

    def test_health_context_briefing(self, client):
        _, _, briefing, filtered = _calls(
            client,
            ("log_metric", {"metric_type": "pain", "value": 7}),
            ("log_metric", {"metric_type": "weight", "value": 82}),
            ("health_context", {"days": 14}),
            ("health_context", {"types": "w"}),
        )
        assert set(briefing["metrics"]) == {"pain", "weight"}
        assert [a["type"] for a in briefing["alerts"]] == ["pain_elevated"]
        assert briefing["streaks"] == {"logging_days": 1}
        assert list(filtered["metrics"]) == ["weight"]

    def test_health_context_rejects_bad_window(self, client):
        result = _call(client, "health_context", {"days": 0})
        assert result["error_type"] == "invalid_parameter"

class TestMedicationTools:
    def test_add_take_status(self, client):
        added, _, _, status, listed = _calls(
            client,
            ("med_add", {"name": "ibuprofen", "frequency": "2x_daily", "dose": "400mg"}),
            ("med_take", {"name": "ibuprofen"}),
            ("med_take", {"name": "ibuprofen"}),
            ("med_status", {"name": "ibuprofen"}),
            ("med_list", {}),
        )
        assert added["medication"]["dose_value"] == 400.0
        med = status["medications"][0]
        assert med["taken_today"] == 2
        assert med["adherent_today"] is True
        assert med["schedule"] == "fixed"
        assert [m["name"] for m in listed["medications"]] == ["ibuprofen"]

    def test_duplicate_and_not_found(self, client):
        _, duplicate, missing = _calls(
            client,
            ("med_add", {"name": "ibuprofen", "frequency": "daily"}),
            ("med_add", {"name": "ibuprofen", "frequency": "daily"}),
            ("med_take", {"name": "aspirin"}),
        )
        assert duplicate["error_type"] == "duplicate"
        assert missing["error_type"] == "not_found"

    def test_take_after_stop_warns(self, client):
        _, stopped, taken = _calls(
            client,
            ("med_add", {"name": "ibuprofen", "frequency": "daily", "dose": "400mg"}),
            ("med_stop", {"name": "ibuprofen", "reason": "done"}),
            ("med_take", {"name": "ibuprofen"}),
        )
        assert stopped["status"] == "stopped"
        assert "warning" in taken
        assert taken["entry"]["note"] == "400mg (stopped)"


class TestGoalTools:
    def test_goal_flow(self, client):
        saved, _, status, removed, after = _calls(
            client,
            ("goal_set", {"metric_type": "wa", "target": 2000, "direction": "above"}),
            ("log_metric", {"metric_type": "water", "value": 2500}),
            ("goal_status", {}),
            ("goal_remove", {"goal": "water"}),
            ("goal_status", {}),
        )
        assert saved["goal"]["metric_type"] == "water"
        assert status["goals"][0]["is_met"] is True
        assert status["goals"][0]["progress"] == "target met (2500 >= 2000)"
        assert removed["status"] == "removed"
        assert after["goals"] == []

    def test_invalid_direction(self, client):
        result = _call(
            client, "goal_set", {"metric_type": "water", "target": 1, "direction": "over"}
        )
        assert result["error_type"] == "invalid_parameter"


class TestDataManagementTools:
    def test_export_import_round_trip(self, client):
        # Import needs the exported content, so run the steps in one session.
        async def _go():
            async with client:
                await client.call_tool(
                    "log_metric", {"metric_type": "weight", "value": 80.5, "date": "2026-03-18"}
                )
                exported = _payload(await client.call_tool("export_metrics", {"format": "json"}))
                deleted = _payload(
                    await client.call_tool("delete_all_health_data", {"confirm": "DELETE_ALL"})
                )
                imported = _payload(await client.call_tool(
                    "import_metrics", {"content": exported["content"], "format": "json"}
                ))
                shown = _payload(await client.call_tool("show_metrics", {"date": "2026-03-18"}))
                return deleted, imported, shown

        deleted, imported, shown = _run(_go())
        assert deleted["entries_deleted"] == 1
        assert imported["imported"] == 1
        assert shown["entries"][0]["value"] == 80.5

    def test_delete_requires_confirmation(self, client):
        result = _call(client, "delete_all_health_data", {"confirm": "yes"})
        assert result["status"] == "cancelled"

    def test_bad_import_is_rejected(self, client):
        result = _call(client, "import_metrics", {"content": "nope", "format": "csv"})
        assert result["error_type"] == "invalid_import"

    def test_unknown_format(self, client):
        result = _call(client, "export_metrics", {"format": "xml"})
        assert result["error_type"] == "invalid_parameter"

    def test_audit_summary_counts_calls(self, client):
        _, _, summary = _calls(
            client,
            ("log_metric", {"metric_type": "pain", "value": 3}),
            ("metric_trend", {"metric_type": "pain", "period": "hourly"}),
            ("audit_summary", {}),
        )
        assert summary["total_events"] == 2
        assert summary["failed_calls"] == 1
        assert summary["calls_by_tool"] == {"log_metric": 1, "metric_trend": 1}
        assert "note" in summary

    def test_audit_summary_rejects_bad_window(self, client):
        result = _call(client, "audit_summary", {"days": 0})
        assert result["error_type"] == "invalid_parameter"
