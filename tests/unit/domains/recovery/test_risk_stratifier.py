"""Tests for five-level risk stratification."""

from __future__ import annotations

import pytest

from crp.domains.recovery.domain_logic.risk_stratifier import (
    RISK_LEVEL_LABELS,
    assess_risk,
    compare_to_population,
    risk_by_date,
    risk_level,
    vo2_percentile,
)


class TestAssessRisk:
    def test_well_recovered_day_is_low(self, full_scenario_metrics):
        risk = assess_risk(full_scenario_metrics)
        assert risk.score == 1
        assert risk.level == 1
        assert risk.label == "Low"
        assert risk.contributions["hrRecovery"] == 1

    def test_no_contributing_metrics_is_no_data(self):
        risk = assess_risk({"notes": "rest day", "sleepQuality": 6})
        assert risk.level is None
        assert risk.label == "No Data"
        assert risk.to_dict()["level"] is None

    def test_no_data_is_distinct_from_low(self):
        assert risk_level({}) is None
        assert risk_level({"vo2Max": 30}) == 1

    def test_reduced_ejection_fraction_alone_reaches_average(self):
        risk = assess_risk({"ejectionFraction": 25})
        assert risk.score == 5
        assert risk.level == 3

    def test_multiple_poor_metrics_reach_high(self):
        risk = assess_risk({"vo2Max": 10, "hrRecovery": 8, "ejectionFraction": 25})
        assert risk.score == 13
        assert risk.level == 5
        assert risk.label == "High"

    @pytest.mark.parametrize("metrics, level", [
        ({"restingHR": 75}, 1),
        ({"restingHR": 85}, 2),
        ({"restingHR": 101, "chestPain": 4}, 3),
        ({"restingHR": 101, "chestPain": 6}, 4),
        ({"walkDistance": 200, "dyspnea": 7, "chestPain": 6}, 5),
    ])
    def test_level_ladder(self, metrics, level):
        assert risk_level(metrics) == level

    def test_every_level_has_a_label(self):
        assert sorted(RISK_LEVEL_LABELS) == [1, 2, 3, 4, 5]


class TestRiskByDate:
    def test_dates_evaluated_independently_and_sorted(self):
        timeline = risk_by_date({
            "2025-01-03": {"ejectionFraction": 25},
            "2025-01-01": {"vo2Max": 30},
            "2025-01-02": {"notes": "skipped"},
        })
        assert timeline == [
            ("2025-01-01", 1),
            ("2025-01-02", None),
            ("2025-01-03", 3),
        ]

    def test_accepts_pairs(self):
        assert risk_by_date([("2025-02-01", {"restingHR": 85})]) == [("2025-02-01", 2)]


class TestPopulation:
    @pytest.mark.parametrize("vo2, percentile", [
        (7, 12.5),
        (14, 25),
        (20, 50),
        (24, 75),
        (28, 90),
        (38, 95),
        (60, 100),
    ])
    def test_vo2_percentile(self, vo2, percentile):
        assert vo2_percentile(vo2) == pytest.approx(percentile)

    def test_good_vo2_is_excellent(self):
        result = compare_to_population({"vo2Max": 26})
        assert result["percentile"] == 82.5
        assert result["position"] == "Excellent"
        assert result["risk_level"] == "LOW"

    def test_poor_metrics_are_high_risk(self):
        result = compare_to_population({"vo2Max": 12, "hrRecovery": 10})
        assert result["risk_score"] == 6
        assert result["risk_level"] == "HIGH"
        assert result["position"] == "Below Average"

    def test_no_vo2(self):
        result = compare_to_population({})
        assert result["percentile"] is None
        assert result["position"] == "No data"


@pytest.mark.parametrize("metric, worsening", [
    ("vo2Max", [30, 23, 19, 15, 11]),
    ("hrRecovery", [25, 21, 17, 13, 9]),
    ("ejectionFraction", [60, 52, 45, 38, 32, 25]),
    ("restingHR", [60, 75, 85, 95, 110]),
    ("walkDistance", [500, 420, 380, 300, 200]),
    ("chestPain", [0, 4, 6]),
    ("dyspnea", [0, 5, 7]),
])
def test_risk_never_improves_as_a_metric_worsens(metric, worsening):
    base = {"vo2Max": 22, "hrRecovery": 20}
    levels = [risk_level(dict(base, **{metric: value})) for value in worsening]
    assert levels == sorted(levels)
