"""Tests for the RecoveryTrendAnalyzer: longitudinal metric and score trends."""

from __future__ import annotations

import pytest

from crp.core.storage.models import DailyEntry
from crp.domains.recovery.domain_logic.recovery_trends import (
    RecoveryTrendAnalyzer,
    higher_is_better,
)

UNTIL = "2025-01-31"


def _entry(entry_date: str, crps_score: int | None = None, risk_level: int | None = None, **metrics) -> DailyEntry:
    return DailyEntry(
        entry_date=entry_date,
        metrics=metrics,
        crps_score=crps_score,
        risk_level=risk_level,
    )


@pytest.fixture
def analyzer(recovery_repository):
    return RecoveryTrendAnalyzer(recovery_repository)


class TestMetricTrend:
    def test_no_data(self, analyzer):
        result = analyzer.metric_trend("vo2Max", until=UNTIL)
        assert result["status"] == "no_data"
        assert result["data_points"] == 0

    def test_unknown_metric(self, analyzer):
        with pytest.raises(ValueError, match="Unknown metric"):
            analyzer.metric_trend("cholesterol")

    def test_improving_upward_metric(self, analyzer, recovery_repository):
        for day, vo2 in (("2025-01-05", 14), ("2025-01-12", 15), ("2025-01-19", 18), ("2025-01-26", 20)):
            recovery_repository.save_entry(_entry(day, vo2Max=vo2))

        result = analyzer.metric_trend("vo2Max", until=UNTIL)
        assert result["direction"] == "improving"
        assert result["current"] == 20
        assert result["previous"] == 18
        assert result["change"] == 2
        assert result["min"] == 14
        assert result["data_points"] == 4
        assert result["unit"] == "ml/kg/min"
        assert result["points"][0] == {"date": "2025-01-05", "value": 14}

    def test_falling_resting_hr_is_improving(self, analyzer, recovery_repository):
        for day, hr in (("2025-01-05", 80), ("2025-01-12", 78), ("2025-01-19", 70), ("2025-01-26", 68)):
            recovery_repository.save_entry(_entry(day, restingHR=hr))
        assert analyzer.metric_trend("restingHR", until=UNTIL)["direction"] == "improving"

    def test_rising_symptoms_are_declining(self, analyzer, recovery_repository):
        recovery_repository.save_entry(_entry("2025-01-05", dyspnea=2))
        recovery_repository.save_entry(_entry("2025-01-06", dyspnea=5))
        assert analyzer.metric_trend("dyspnea", until=UNTIL)["direction"] == "declining"

    def test_neutral_metric_direction(self, analyzer, recovery_repository):
        recovery_repository.save_entry(_entry("2025-01-05", weight=80))
        recovery_repository.save_entry(_entry("2025-01-06", weight=80.5))
        assert analyzer.metric_trend("weight", until=UNTIL)["direction"] == "stable"

        recovery_repository.save_entry(_entry("2025-01-07", weight=85))
        assert analyzer.metric_trend("weight", until=UNTIL)["direction"] == "increasing"

    def test_single_point(self, analyzer, recovery_repository):
        recovery_repository.save_entry(_entry("2025-01-05", sdnn=42))
        result = analyzer.metric_trend("sdnn", until=UNTIL)
        assert result["direction"] == "insufficient_data"
        assert result["previous"] is None
        assert result["change"] is None

    def test_window_excludes_old_entries(self, analyzer, recovery_repository):
        recovery_repository.save_entry(_entry("2024-06-01", vo2Max=10))
        recovery_repository.save_entry(_entry("2025-01-20", vo2Max=22))
        result = analyzer.metric_trend("vo2Max", days=30, until=UNTIL)
        assert result["data_points"] == 1

    def test_non_numeric_values_skipped(self, analyzer, recovery_repository):
        recovery_repository.save_entry(_entry("2025-01-05", vo2Max="n/a"))
        assert analyzer.metric_trend("vo2Max", until=UNTIL)["status"] == "no_data"


class TestCrpsTrend:
    def test_no_data(self, analyzer):
        assert analyzer.crps_trend()["status"] == "no_data"

    def test_trajectory(self, analyzer, recovery_repository):
        for day, score in (("2025-01-01", 60), ("2025-01-02", 65), ("2025-01-03", 70), ("2025-01-04", 68)):
            recovery_repository.save_entry(_entry(day, crps_score=score))
        recovery_repository.save_entry(_entry("2025-01-05"))

        result = analyzer.crps_trend()
        assert result["data_points"] == 4
        assert result["first"] == 60
        assert result["current"] == 68
        assert result["best"] == 70
        assert result["best_date"] == "2025-01-03"
        assert result["direction"] == "improving"

    def test_limit_keeps_most_recent(self, analyzer, recovery_repository):
        for day in range(1, 6):
            recovery_repository.save_entry(_entry(f"2025-01-0{day}", crps_score=50 + day))
        result = analyzer.crps_trend(limit=2)
        assert [p["date"] for p in result["points"]] == ["2025-01-04", "2025-01-05"]


class TestRiskTimeline:
    def test_each_date_evaluated_alone(self, analyzer, recovery_repository):
        recovery_repository.save_entry(_entry("2025-01-01", ejectionFraction=25))
        recovery_repository.save_entry(_entry("2025-01-02", notes="rest"))
        recovery_repository.save_entry(_entry("2025-01-03", vo2Max=30))

        timeline = analyzer.risk_timeline()
        assert [(t["date"], t["level"]) for t in timeline] == [
            ("2025-01-01", 3),
            ("2025-01-02", None),
            ("2025-01-03", 1),
        ]
        assert timeline[1]["label"] == "No Data"

    def test_empty(self, analyzer):
        assert analyzer.risk_timeline() == []


class TestWeeklyImprovements:
    def test_compares_last_week_with_week_before(self, analyzer, recovery_repository):
        for day in ("2025-01-01", "2025-01-02", "2025-01-03"):
            recovery_repository.save_entry(_entry(day, vo2Max=18, restingHR=80, sdnn=40))
        for day in ("2025-01-10", "2025-01-11", "2025-01-12"):
            recovery_repository.save_entry(_entry(day, vo2Max=20, restingHR=76, sdnn=35))

        improvements = analyzer.weekly_improvements()
        assert [i["metric"] for i in improvements] == ["vo2Max", "restingHR"]
        assert improvements[0]["percent_change"] == 11.1
        assert improvements[1]["change"] == -4
        assert improvements[1]["percent_change"] == 5.0

    def test_needs_two_weeks_of_data(self, analyzer, recovery_repository):
        recovery_repository.save_entry(_entry("2025-01-10", vo2Max=18))
        recovery_repository.save_entry(_entry("2025-01-11", vo2Max=20))
        assert analyzer.weekly_improvements() == []

    def test_until_anchor(self, analyzer, recovery_repository):
        recovery_repository.save_entry(_entry("2025-01-01", vo2Max=18))
        recovery_repository.save_entry(_entry("2025-01-10", vo2Max=20))
        recovery_repository.save_entry(_entry("2025-03-01", vo2Max=10))
        improvements = analyzer.weekly_improvements(until="2025-01-31")
        assert [i["metric"] for i in improvements] == ["vo2Max"]


class TestLogSummary:
    def test_empty(self, analyzer):
        assert analyzer.get_log_summary() == {"entries_available": 0, "status": "no_history"}

    def test_summary(self, analyzer, recovery_repository):
        recovery_repository.save_entry(_entry("2025-01-01", crps_score=55, risk_level=3))
        recovery_repository.save_entry(_entry("2025-01-09", crps_score=62, risk_level=2))
        summary = analyzer.get_log_summary()
        assert summary["entries_available"] == 2
        assert summary["first_date"] == "2025-01-01"
        assert summary["latest_date"] == "2025-01-09"
        assert summary["latest_crps"] == 62
        assert summary["latest_risk"] == "Below Average"


def test_higher_is_better():
    assert higher_is_better("vo2Max") is True
    assert higher_is_better("restingHR") is False
    assert higher_is_better("weight") is None
