"""Unit tests for the daily recovery log MCP tools."""

from __future__ import annotations

import asyncio
import json

import pytest
from fastmcp import Client

from crp.core.server.app import create_app


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _call(client: Client, tool: str, arguments: dict | None = None) -> dict:
    result = await client.call_tool(tool, arguments or {})
    return json.loads(result.content[0].text)


@pytest.fixture
def client(recovery_repository):
    """Client for a server backed by the in-memory recovery log."""
    return Client(create_app(repository_override=recovery_repository))


class TestSaveDailyMetrics:
    def test_clean_save(self, client, full_scenario_metrics):
        async def _check():
            async with client:
                saved = await _call(client, "save_daily_metrics", {
                    "metrics": full_scenario_metrics, "entry_date": "2025-01-15",
                })
                fetched = await _call(client, "get_daily_metrics", {"entry_date": "2025-01-15"})
                return saved, fetched
        saved, fetched = _run(_check())
        assert saved["status"] == "saved"
        assert saved["crps"]["total"] == 91
        assert saved["risk_level"] == 1
        assert fetched["status"] == "ok"
        assert fetched["crps_score"] == 91
        assert fetched["hr_sessions"] == []

    def test_alert_confirmation_round_trip(self, client):
        metrics = {"chestPain": 5, "oxygenSat": 96}

        async def _check():
            async with client:
                held = await _call(client, "save_daily_metrics", {"metrics": metrics, "entry_date": "2025-01-15"})
                missing = await _call(client, "get_daily_metrics", {"entry_date": "2025-01-15"})
                confirmed = await _call(client, "save_daily_metrics", {
                    "metrics": metrics, "entry_date": "2025-01-15", "acknowledge_alerts": True,
                })
                return held, missing, confirmed
        held, missing, confirmed = _run(_check())
        assert held["status"] == "pending_confirmation"
        assert held["has_urgent_alerts"] is True
        assert "alert_summary" in held
        assert missing["status"] == "not_found"
        assert confirmed["status"] == "saved"

    def test_out_of_range_rejected(self, client):
        async def _check():
            async with client:
                return await _call(client, "save_daily_metrics", {
                    "metrics": {"restingHR": 10, "bpSystolic": 120}, "entry_date": "2025-01-15",
                })
        data = _run(_check())
        assert data["status"] == "error"
        assert set(data["errors"]) == {"restingHR"}

    def test_bad_date(self, client):
        async def _check():
            async with client:
                return await _call(client, "save_daily_metrics", {
                    "metrics": {"restingHR": 60}, "entry_date": "yesterday",
                })
        assert _run(_check())["status"] == "error"


class TestListAndDelete:
    def test_list_newest_first(self, client):
        async def _check():
            async with client:
                for day in ("2025-01-01", "2025-01-02", "2025-01-03"):
                    await _call(client, "save_daily_metrics", {"metrics": {"vo2Max": 20}, "entry_date": day})
                return await _call(client, "list_daily_metrics", {"limit": 2})
        data = _run(_check())
        assert data["count"] == 2
        assert [e["date"] for e in data["entries"]] == ["2025-01-03", "2025-01-02"]
        assert data["entries"][0]["metric_count"] == 1

    def test_delete(self, client):
        async def _check():
            async with client:
                await _call(client, "save_daily_metrics", {"metrics": {"vo2Max": 20}, "entry_date": "2025-01-01"})
                first = await _call(client, "delete_daily_metrics", {"entry_date": "2025-01-01"})
                second = await _call(client, "delete_daily_metrics", {"entry_date": "2025-01-01"})
                return first, second
        first, second = _run(_check())
        assert first["status"] == "deleted"
        assert second["status"] == "not_found"

    def test_delete_all_requires_confirmation(self, client, recovery_repository):
        recovery_repository.save_profile({"age": 60})

        async def _check():
            async with client:
                await _call(client, "save_daily_metrics", {"metrics": {"vo2Max": 20}, "entry_date": "2025-01-01"})
                cancelled = await _call(client, "delete_all_recovery_data", {})
                done = await _call(client, "delete_all_recovery_data", {"confirm": "DELETE_ALL"})
                return cancelled, done
        cancelled, done = _run(_check())
        assert cancelled["status"] == "cancelled"
        assert done["status"] == "all_deleted"
        assert done["entries_deleted"] == 1
        assert recovery_repository.count_entries() == 0
        assert recovery_repository.get_profile() == {}


class TestHeartRateSessionTool:
    def test_record_session(self, client):
        async def _check():
            async with client:
                recorded = await _call(client, "record_heart_rate_session", {
                    "heart_rates": [70, 80, 120, 130, 125, 100, 95, 92, 90, 88],
                    "rr_intervals": [800, 810, 790, 860, 800, 805, 815, 795, 850, 800],
                    "duration_seconds": 600,
                    "entry_date": "2025-01-15",
                })
                fetched = await _call(client, "get_daily_metrics", {"entry_date": "2025-01-15"})
                return recorded, fetched
        recorded, fetched = _run(_check())
        assert recorded["status"] == "saved"
        assert recorded["entry"]["status"] == "saved"
        assert fetched["metrics"]["hrRecovery"] == 37
        assert "sdnn" in fetched["metrics"]
        assert len(fetched["hr_sessions"]) == 1
        assert fetched["hr_sessions"][0]["id"] == recorded["session_id"]

    def test_no_valid_samples(self, client):
        async def _check():
            async with client:
                return await _call(client, "record_heart_rate_session", {"heart_rates": [0, 0]})
        assert _run(_check())["status"] == "error"


class TestDemographicsTools:
    def test_set_and_get(self, client, full_scenario_metrics):
        async def _check():
            async with client:
                await _call(client, "save_daily_metrics", {
                    "metrics": full_scenario_metrics, "entry_date": "2025-01-15",
                })
                saved = await _call(client, "set_patient_demographics", {
                    "age": 49, "sex": "Female", "surgery_date": "2025-01-01",
                })
                fetched = await _call(client, "get_patient_demographics", {})
                entry = await _call(client, "get_daily_metrics", {"entry_date": "2025-01-15"})
                return saved, fetched, entry
        saved, fetched, entry = _run(_check())
        assert saved["status"] == "saved"
        assert saved["entries_rescored"] == 1
        assert saved["demographics"]["sex"] == "female"
        assert fetched["surgery_date"] == "2025-01-01"
        assert fetched["stored_fields"] == ["age", "sex", "surgery_date"]
        assert entry["crps_score"] == 96

    def test_invalid_sex(self, client):
        async def _check():
            async with client:
                return await _call(client, "set_patient_demographics", {"sex": "unknown"})
        assert _run(_check())["status"] == "error"

    def test_invalid_surgery_date(self, client):
        async def _check():
            async with client:
                return await _call(client, "set_patient_demographics", {"surgery_date": "01/01/2025"})
        assert _run(_check())["status"] == "error"
