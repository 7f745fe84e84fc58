"""
test_confidence_engine.py — Unit tests for estimate confidence scoring.

Tests cover:
  - Neutral defaults and the missing risk assessment warning
  - Weighted score normalization and weight overrides
  - Factor value clamping and non-numeric values
  - Risk assessment derived factors
  - Level bands and uncertainty
  - Recommendations and critical-factor warnings
"""

import pytest

from proposal_pricing.services.confidence_engine import (
    CONFIDENCE_FACTORS,
    calculate_confidence_score,
    confidence_level_for,
)
from proposal_pricing.services.risk_scoring_engine import FactorScore, RiskLevel, RiskScoringResult


def _risk(processed, provided):
    breakdown = [
        FactorScore(name=f"F{i}", category="C", score=10.0, weight=10.0, input_provided=i < provided)
        for i in range(processed)
    ]
    return RiskScoringResult(
        total_risk_score=10.0,
        risk_level=RiskLevel.LOW,
        contingency_rate=0.02,
        contingency_explanation="",
        factor_breakdown=breakdown,
        factors_processed=processed,
    )


# ===========================================================================
# Class 1: Score
# ===========================================================================

class TestConfidenceScore:

    def test_defaults_are_neutral(self):
        result = calculate_confidence_score()
        assert result.score == 50.0
        assert result.level == "MEDIUM"
        assert result.uncertainty_pct == 10.0
        assert result.recommendations == []
        assert result.warnings == ["Risk assessment not provided, using default confidence values"]

    def test_weights_normalized_by_their_sum(self):
        result = calculate_confidence_score({"data_completeness": 100})
        # default weights sum to 1.03
        assert result.score == pytest.approx(50.0 + 50.0 * 0.11 / 1.03, abs=0.01)

    def test_weight_override(self):
        weights = {**{name: 0.0 for name in CONFIDENCE_FACTORS}, "data_completeness": 1.0}
        result = calculate_confidence_score({"data_completeness": 85}, weights=weights)
        assert result.score == 85.0
        assert result.level == "VERY_HIGH"

    def test_all_zero_weights_fall_back_to_neutral(self):
        result = calculate_confidence_score(
            {"data_completeness": 5}, weights={name: 0.0 for name in CONFIDENCE_FACTORS}
        )
        assert result.score == 50.0

    @pytest.mark.parametrize("value,expected", [
        (150, 100.0), (-5, 0.0), ("abc", 50.0), (True, 50.0), (float("nan"), 50.0), (10**400, 50.0),
    ], ids=["above", "below", "text", "bool", "nan", "int-1e400"])
    def test_factor_values_clamped_or_defaulted(self, value, expected):
        result = calculate_confidence_score({"data_accuracy": value})
        assert result.factor_scores["data_accuracy"] == expected

    def test_unknown_factor_warns(self):
        result = calculate_confidence_score({"gut_feeling": 90})
        assert "Unknown confidence factor 'gut_feeling' ignored" in result.warnings
        assert "gut_feeling" not in result.factor_scores

    def test_non_mapping_factors_warn(self):
        result = calculate_confidence_score(["data_accuracy"])
        assert result.score == 50.0
        assert any("must be a mapping" in w for w in result.warnings)


# ===========================================================================
# Class 2: Risk assessment factors
# ===========================================================================

class TestRiskAssessmentFactors:

    def test_derived_from_scoring_result(self):
        result = calculate_confidence_score(risk_result=_risk(processed=18, provided=9))
        assert result.factor_scores["risk_assessment_confidence"] == 50.0
        assert result.factor_scores["risk_factor_coverage"] == 90.0
        assert not any("Risk assessment not provided" in w for w in result.warnings)

    def test_coverage_capped(self):
        result = calculate_confidence_score(risk_result=_risk(processed=30, provided=30))
        assert result.factor_scores["risk_factor_coverage"] == 100.0
        assert result.factor_scores["risk_assessment_confidence"] == 100.0

    def test_supplied_values_replaced_by_assessment(self):
        result = calculate_confidence_score(
            {"risk_assessment_confidence": 5}, risk_result=_risk(processed=10, provided=10)
        )
        assert result.factor_scores["risk_assessment_confidence"] == 100.0


# ===========================================================================
# Class 3: Levels and recommendations
# ===========================================================================

class TestLevelsAndRecommendations:

    @pytest.mark.parametrize("score,level,uncertainty", [
        (0.0, "VERY_LOW", 0.25), (20.0, "VERY_LOW", 0.25), (20.01, "LOW", 0.15), (40.0, "LOW", 0.15),
        (60.0, "MEDIUM", 0.10), (80.0, "HIGH", 0.05), (80.5, "VERY_HIGH", 0.02), (100.0, "VERY_HIGH", 0.02),
    ])
    def test_level_bands(self, score, level, uncertainty):
        assert confidence_level_for(score) == (level, uncertainty)

    def test_critical_factor(self):
        result = calculate_confidence_score({"historical_accuracy": 10})
        assert "Critical: Improve historical accuracy (10.0%)" in result.recommendations
        assert "historical_accuracy score is critically low: 10.0%" in result.warnings

    def test_weak_factor(self):
        result = calculate_confidence_score({"requirement_clarity": 35})
        assert "Improve requirement clarity (35.0%)" in result.recommendations

    def test_low_average_suggests_buffer(self):
        factors = {name: 35 for name in CONFIDENCE_FACTORS}
        result = calculate_confidence_score(factors)
        assert "Add contingency buffer to account for uncertainty" in result.recommendations

    def test_very_low_average_suggests_delay(self):
        factors = {name: 10 for name in CONFIDENCE_FACTORS}
        result = calculate_confidence_score(factors, risk_result=_risk(processed=2, provided=0))
        assert result.level == "VERY_LOW"
        assert "Consider delaying estimate until more data is available" in result.recommendations

    def test_high_confidence(self):
        factors = {name: 100 for name in CONFIDENCE_FACTORS}
        result = calculate_confidence_score(factors, risk_result=_risk(processed=20, provided=20))
        assert result.score == 100.0
        assert result.level == "VERY_HIGH"
        assert result.uncertainty_pct == 2.0
        assert result.recommendations == ["High confidence estimate - consider reducing contingency"]

    def test_to_dict_bounds(self):
        data = calculate_confidence_score().to_dict()
        assert data["lower_bound_pct"] == -10.0
        assert data["upper_bound_pct"] == 10.0
