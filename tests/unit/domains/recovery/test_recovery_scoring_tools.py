"""Unit tests for the stateless recovery scoring MCP tools."""

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


def _call(client: Client, tool: str, arguments: dict | None = None) -> dict:
    async def _go():
        async with client:
            result = await client.call_tool(tool, arguments or {})
            return json.loads(result.content[0].text)
    return _run(_go())


@pytest.fixture
def client():
    """Client for a server without storage (no ENCRYPTION_KEY)."""
    return Client(create_app())


@pytest.fixture
def stored_client(recovery_repository):
    return Client(create_app(repository_override=recovery_repository))


def _ble_packet(bpm: int, rr_raw: int = 1024) -> str:
    return bytes([0x10, bpm]).hex() + rr_raw.to_bytes(2, "little").hex()


class TestCalculateRecoveryScore:
    def test_full_scenario(self, client, full_scenario_metrics):
        data = _call(client, "calculate_recovery_score", {
            "metrics": full_scenario_metrics, "age": 50, "sex": "female", "height": 170, "weight": 70,
        })
        assert data["status"] == "ok"
        assert data["total"] == 91
        assert data["interpretation"] == "SUPERIOR RECOVERY"
        assert data["details"]["bloodPressure"]["value"] == "118/76"

    def test_defaults_without_demographics(self, client, full_scenario_metrics):
        data = _call(client, "calculate_recovery_score", {"metrics": full_scenario_metrics})
        assert data["total"] == 91
        assert data["ageMultiplier"] == 1.0

    def test_stored_profile_fills_demographics(self, stored_client, recovery_repository, full_scenario_metrics):
        recovery_repository.save_profile({"age": 49})
        data = _call(stored_client, "calculate_recovery_score", {"metrics": full_scenario_metrics})
        assert data["ageMultiplier"] == 1.05
        assert data["total"] == 96

    def test_explicit_age_beats_profile(self, stored_client, recovery_repository, full_scenario_metrics):
        recovery_repository.save_profile({"age": 49})
        data = _call(stored_client, "calculate_recovery_score", {"metrics": full_scenario_metrics, "age": 60})
        assert data["ageMultiplier"] == 1.0


class TestRiskAndValidation:
    def test_assess_cardiac_risk(self, client):
        data = _call(client, "assess_cardiac_risk", {"metrics": {"ejectionFraction": 25, "vo2Max": 26}})
        assert data["status"] == "ok"
        assert data["risk"]["level"] == 3
        assert data["population"]["position"] == "Excellent"

    def test_assess_cardiac_risk_no_data(self, client):
        data = _call(client, "assess_cardiac_risk", {"metrics": {"notes": "rest"}})
        assert data["status"] == "no_data"
        assert data["risk"]["label"] == "No Data"

    def test_validate_single_field(self, client):
        data = _call(client, "validate_metric", {"field": "chestPain", "value": 4})
        assert data["valid"] is True
        assert data["results"]["chestPain"]["level"] == "critical"

    def test_validate_metric_set(self, client):
        data = _call(client, "validate_metric", {"metrics": {"restingHR": 300, "vo2Max": 25}})
        assert data["valid"] is False
        assert data["results"]["restingHR"]["level"] == "error"
        assert data["results"]["vo2Max"]["level"] == "good"

    def test_validate_blood_pressure_pair(self, client):
        data = _call(client, "validate_metric", {"bp_systolic": 80, "bp_diastolic": 90})
        assert data["results"]["bloodPressure"]["message"] == "Systolic BP must be higher than Diastolic BP"

    def test_validate_nothing(self, client):
        assert _call(client, "validate_metric", {})["status"] == "error"


class TestAlerts:
    def test_urgent_and_warning(self, client):
        data = _call(client, "check_clinical_alerts", {
            "metrics": {"chestPain": 6, "weight": 84},
            "prior_weight": 81,
        })
        assert data["alert_count"] == 2
        assert data["has_urgent_alerts"] is True
        assert [a["metric"] for a in data["alerts"]] == ["chestPain", "weight"]

    def test_no_alerts(self, client, full_scenario_metrics):
        data = _call(client, "check_clinical_alerts", {"metrics": full_scenario_metrics})
        assert data["alert_count"] == 0
        assert data["summary"] == ""


class TestHeartRate:
    def test_compute_hrv(self, client):
        data = _call(client, "compute_hrv_metrics", {"rr_intervals": [800, 810, 790, 860, 800]})
        assert data["status"] == "insufficient_data"
        assert data["rmssd"] == 47.4

    def test_summarize_samples(self, client):
        data = _call(client, "summarize_heart_rate_session", {
            "heart_rates": [70, 80, 120, 130, 125, 100, 95, 92, 90, 88],
            "duration_seconds": 600,
        })
        assert data["source"] == "samples"
        assert data["hr_recovery"] == 37
        assert data["metrics"]["restingHR"] == 99

    def test_summarize_ble_packets(self, client):
        packets = [_ble_packet(bpm) for bpm in (70, 72, 75, 80, 90, 100, 110, 105, 95, 90, 85, 80)]
        data = _call(client, "summarize_heart_rate_session", {
            "packets_hex": packets,
            "duration_seconds": 30,
        })
        assert data["status"] == "ok"
        assert data["source"] == "ble"
        assert data["sample_count"] == 12
        assert data["duration_seconds"] == 30.0
        assert data["hrv"]["count"] == 12
        assert data["hrv"]["sdnn"] == 0.0
        assert data["live"]["recording"] is True

    def test_bad_packet(self, client):
        data = _call(client, "summarize_heart_rate_session", {"packets_hex": ["10"]})
        assert data["status"] == "error"
        assert "Bad heart-rate packet" in data["message"]

    def test_nothing_to_summarize(self, client):
        assert _call(client, "summarize_heart_rate_session", {})["status"] == "error"


class TestRecoveryPhase:
    def test_phase_and_protocol(self, client):
        data = _call(client, "recovery_phase_info", {"surgery_date": "2025-01-01", "on_date": "2025-01-15"})
        assert data["phase"] == "Phase 2: Early Mobilization"
        assert data["week"] == 2
        assert data["protocol"]["title"] == "Week 3: Expanding Activity"
        assert len(data["expected_vo2_curve"]) == 12

    def test_before_surgery_has_no_protocol(self, client):
        data = _call(client, "recovery_phase_info", {"surgery_date": "2025-01-01", "on_date": "2024-12-20"})
        assert data["phase"] == "Pre-Surgery"
        assert data["protocol"] is None

    def test_missing_surgery_date(self, client):
        assert _call(client, "recovery_phase_info", {})["status"] == "error"

    def test_surgery_date_from_profile(self, stored_client, recovery_repository):
        recovery_repository.save_profile({"surgery_date": "2025-01-01"})
        data = _call(stored_client, "recovery_phase_info", {"on_date": "2025-03-01"})
        assert data["surgery_date"] == "2025-01-01"
        assert data["phase"] == "Phase 4: Advanced Training"

    def test_invalid_date(self, client):
        data = _call(client, "recovery_phase_info", {"surgery_date": "soon"})
        assert data["status"] == "error"
