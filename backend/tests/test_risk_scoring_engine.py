"""
test_risk_scoring_engine.py — Unit tests for RiskScoringEngine.

Tests cover:
  - Weighted category and total scores on a small, hand-computed catalog
  - Missing inputs score 0 and are still listed
  - Name matching: exact first, then trimmed case-insensitive; each input used once
  - Weight normalization: clamped weights, all-zero weights, inactive categories/factors
  - Risk level bands and piecewise-linear contingency rates (monotone, continuous)
  - Breakdown ordering, recommendations and unmatched-input warnings
  - Market-aware contingency recommendation
"""

import pytest

from proposal_pricing import config
from proposal_pricing.services.market_analysis import MarketAnalysisResult
from proposal_pricing.services.risk_catalog import NumericScale, RiskCategory, RiskFactor
from proposal_pricing.services.risk_input_validator import RiskFactorInput
from proposal_pricing.services.risk_scoring_engine import (
    NO_DRIVER_MESSAGE,
    RiskLevel,
    RiskScoringEngine,
    contingency_rate_for,
    recommend_contingency,
    risk_level_for,
)


def _inputs(**values):
    return {name.replace("_", " "): RiskFactorInput(value=v) for name, v in values.items()}


# ===========================================================================
# Class 1: Aggregation
# ===========================================================================

class TestAggregation:
    """Category and total scores on the two-category test catalog."""

    def test_weighted_total(self, scoring_engine, small_catalog):
        """
        Site = (90*50 + 40*50) / 100 = 65; Commercial = 80.
        Total = (65*60 + 80*40) / 100 = 71 -> HIGH.
        """
        result = scoring_engine.score(
            {"Access": RiskFactorInput("Hard"), "Height": RiskFactorInput(40), "Rush Job": RiskFactorInput("yes")},
            small_catalog,
        )
        assert result.total_risk_score == 71.0
        assert result.risk_level == RiskLevel.HIGH
        assert abs(result.contingency_rate - 0.142) < 1e-9
        assert [c["score"] for c in result.category_scores] == [65.0, 80.0]
        assert result.factors_processed == 3

    def test_missing_inputs_contribute_zero(self, scoring_engine, small_catalog):
        result = scoring_engine.score({"Access": RiskFactorInput("Easy")}, small_catalog)
        assert result.total_risk_score == 3.0
        assert result.risk_level == RiskLevel.LOW
        missing = [f for f in result.factor_breakdown if not f.input_provided]
        assert {f.name for f in missing} == {"Height", "Rush Job"}
        assert all(f.score == 0.0 for f in missing)

    def test_plain_mapping_entries_accepted(self, scoring_engine, small_catalog):
        result = scoring_engine.score({"Height": {"value": 100}}, small_catalog)
        assert result.total_risk_score == 30.0

    def test_empty_inputs_on_seeded_catalog(self, scoring_engine, seeded_catalog):
        result = scoring_engine.score({}, seeded_catalog)
        assert result.total_risk_score == 0.0
        assert result.risk_level == RiskLevel.LOW
        assert result.contingency_rate == 0.0
        assert result.factors_processed == 18
        assert result.warnings == []

    def test_empty_catalog(self, scoring_engine):
        result = scoring_engine.score(_inputs(Access="Hard"), ())
        assert result.total_risk_score == 0.0
        assert result.factor_breakdown == []
        assert result.contingency_rate == 0.0

    def test_seeded_catalog_categorical_input(self, scoring_engine, seeded_catalog):
        """Weather Delays 'Critical' = 100 -> Schedule = 100*35/100 = 35 -> total 35*25/100 = 8.75."""
        result = scoring_engine.score({"Weather Delays": RiskFactorInput("Critical Risk (30+ days)")}, seeded_catalog)
        assert result.total_risk_score == 8.75
        assert result.factor_breakdown[0].name == "Weather Delays"


# ===========================================================================
# Class 2: Matching
# ===========================================================================

class TestMatching:
    """Input-to-factor matching and duplicate handling."""

    def test_case_and_whitespace_insensitive_match(self, scoring_engine, small_catalog):
        result = scoring_engine.score({"  ACCESS ": RiskFactorInput("Hard")}, small_catalog)
        access = next(f for f in result.factor_breakdown if f.name == "Access")
        assert access.input_provided
        assert access.score == 90.0

    def test_duplicate_inputs_consumed_once(self, scoring_engine, small_catalog):
        """Exact name wins; the case variant is ignored with a warning, not double counted."""
        result = scoring_engine.score(
            {"access": RiskFactorInput("Hard"), "Access": RiskFactorInput("Easy")}, small_catalog
        )
        access = [f for f in result.factor_breakdown if f.name == "Access"]
        assert len(access) == 1
        assert access[0].score == 10.0
        assert result.total_risk_score == 3.0
        assert any("ignored" in w for w in result.warnings)

    def test_unmatched_input_warns(self, scoring_engine, small_catalog):
        result = scoring_engine.score({"Weather": RiskFactorInput(85)}, small_catalog)
        assert result.total_risk_score == 0.0
        assert result.warnings == ["Risk factor input 'Weather' does not match any active catalog factor"]

    def test_type_mismatch_scores_zero_with_note(self, scoring_engine, small_catalog):
        result = scoring_engine.score({"Height": RiskFactorInput("very high")}, small_catalog)
        height = next(f for f in result.factor_breakdown if f.name == "Height")
        assert height.score == 0.0
        assert height.input_provided
        assert height.note


# ===========================================================================
# Class 3: Weights
# ===========================================================================

class TestWeights:
    """Defensive weight normalization."""

    def test_all_zero_weights_use_plain_mean(self, scoring_engine):
        catalog = (RiskCategory("Only", 0.0, factors=(
            RiskFactor("A", 0.0, NumericScale(0.0, 100.0)),
            RiskFactor("B", 0.0, NumericScale(0.0, 100.0)),
        )),)
        result = scoring_engine.score(_inputs(A=20, B=60), catalog)
        assert result.total_risk_score == 40.0

    def test_out_of_range_weights_clamped(self, scoring_engine):
        catalog = (RiskCategory("Only", 500.0, factors=(
            RiskFactor("A", 250.0, NumericScale(0.0, 100.0)),
            RiskFactor("B", -40.0, NumericScale(0.0, 100.0)),
        )),)
        result = scoring_engine.score(_inputs(A=20, B=60), catalog)
        assert result.total_risk_score == 20.0
        assert all(0.0 <= f.weight <= 100.0 for f in result.factor_breakdown)

    def test_weight_beyond_float_range_is_capped(self, scoring_engine):
        catalog = (RiskCategory("Only", 10**400, factors=(
            RiskFactor("A", 10**400, NumericScale(0.0, 100.0)),
            RiskFactor("B", 100.0, NumericScale(0.0, 100.0)),
        )),)
        result = scoring_engine.score(_inputs(A=20, B=60), catalog)
        assert result.total_risk_score == 40.0
        assert {f.weight for f in result.factor_breakdown} == {100.0}

    def test_inactive_entries_skipped(self, scoring_engine):
        catalog = (
            RiskCategory("Active", 50.0, factors=(
                RiskFactor("A", 50.0, NumericScale(0.0, 100.0)),
                RiskFactor("Off", 50.0, NumericScale(0.0, 100.0), is_active=False),
            )),
            RiskCategory("Disabled", 50.0, is_active=False, factors=(
                RiskFactor("C", 50.0, NumericScale(0.0, 100.0)),
            )),
            RiskCategory("Empty", 50.0),
        )
        result = scoring_engine.score(_inputs(A=80, Off=100, C=100), catalog)
        assert result.total_risk_score == 80.0
        assert [c["name"] for c in result.category_scores] == ["Active"]
        assert len(result.warnings) == 2


# ===========================================================================
# Class 4: Bands
# ===========================================================================

class TestBands:
    """Risk levels and contingency rates."""

    @pytest.mark.parametrize("score,level", [
        (0, RiskLevel.LOW), (24.99, RiskLevel.LOW), (25, RiskLevel.MEDIUM),
        (50, RiskLevel.HIGH), (74.99, RiskLevel.HIGH), (75, RiskLevel.SEVERE), (100, RiskLevel.SEVERE),
    ])
    def test_level_bands(self, score, level):
        assert risk_level_for(score) == level

    def test_levels_are_ordered(self):
        assert RiskLevel.LOW < RiskLevel.MEDIUM < RiskLevel.HIGH < RiskLevel.SEVERE

    def test_level_and_rate_monotone(self):
        previous_level, previous_rate = RiskLevel.LOW, 0.0
        for step in range(0, 201):
            score = step / 2.0
            level = risk_level_for(score)
            rate, _ = contingency_rate_for(score)
            assert level >= previous_level
            assert rate >= previous_rate >= 0.0
            previous_level, previous_rate = level, rate

    @pytest.mark.parametrize("boundary", [25.0, 50.0, 75.0])
    def test_rate_continuous_at_band_boundaries(self, boundary):
        below, _ = contingency_rate_for(boundary - 1e-6)
        at, _ = contingency_rate_for(boundary)
        assert abs(at - below) < 1e-4

    def test_rate_endpoints(self):
        assert contingency_rate_for(0)[0] == 0.0
        assert contingency_rate_for(100)[0] == 0.20

    def test_explanation_names_level(self):
        _, explanation = contingency_rate_for(60)
        assert explanation.startswith("HIGH risk")

    def test_custom_bands(self, small_catalog):
        engine = RiskScoringEngine({
            "contingency_bands": {lvl: (lo, hi, 0.03, 0.03) for lvl, (lo, hi, _, _) in config.CONTINGENCY_BANDS.items()},
        })
        result = engine.score({"Height": RiskFactorInput(100)}, small_catalog)
        assert result.contingency_rate == 0.03


# ===========================================================================
# Class 5: Breakdown and recommendations
# ===========================================================================

class TestRecommendations:

    def test_breakdown_sorted_by_score_then_name(self, scoring_engine, small_catalog):
        result = scoring_engine.score(
            {"Access": RiskFactorInput("Hard"), "Height": RiskFactorInput(40), "Rush Job": RiskFactorInput(True)},
            small_catalog,
        )
        assert [f.name for f in result.factor_breakdown] == ["Access", "Rush Job", "Height"]

    def test_ties_broken_by_name(self, scoring_engine):
        catalog = (RiskCategory("Only", 100.0, factors=(
            RiskFactor("Zeta", 50.0, NumericScale(0.0, 100.0)),
            RiskFactor("Alpha", 50.0, NumericScale(0.0, 100.0)),
        )),)
        result = scoring_engine.score(_inputs(Zeta=30, Alpha=30), catalog)
        assert [f.name for f in result.factor_breakdown] == ["Alpha", "Zeta"]

    def test_severe_guidance_and_driver_advice(self, scoring_engine, small_catalog):
        result = scoring_engine.score(
            {"Access": RiskFactorInput("Hard"), "Height": RiskFactorInput(100), "Rush Job": RiskFactorInput("yes")},
            small_catalog,
        )
        assert result.risk_level == RiskLevel.SEVERE
        assert abs(result.contingency_rate - 0.178) < 1e-9
        assert "Requires senior management review and approval." in result.recommendations
        assert "Mitigate high risk in: Height." in result.recommendations

    def test_keyword_advice_on_seeded_catalog(self, scoring_engine, seeded_catalog):
        result = scoring_engine.score(
            {
                "Weather Delays": RiskFactorInput("Critical Risk (30+ days)"),
                "Material Price Volatility": RiskFactorInput(50),
                "Labor Availability": RiskFactorInput("Critical labor shortage"),
            },
            seeded_catalog,
        )
        assert "Consider weather protection measures for seasonal risks." in result.recommendations
        assert "Identify alternative suppliers for material risk mitigation." in result.recommendations
        assert "Plan for labor shortages or secure backup crews." in result.recommendations

    def test_to_dict_serializes_level(self, scoring_engine, small_catalog):
        data = scoring_engine.score({}, small_catalog).to_dict()
        assert data["risk_level"] == "LOW"
        assert isinstance(data["factor_breakdown"][0], dict)


# ===========================================================================
# Class 6: Contingency recommendation
# ===========================================================================

class TestContingencyRecommendation:

    def test_default_message_without_drivers_or_market(self, scoring_engine, small_catalog):
        result = scoring_engine.score({}, small_catalog)
        rec = recommend_contingency(result)
        assert rec.recommendations == [NO_DRIVER_MESSAGE]
        assert rec.recommended_rate == 0.0

    def test_market_signals_add_uplift(self, scoring_engine, small_catalog):
        result = scoring_engine.score({"Height": RiskFactorInput(50)}, small_catalog)
        market = MarketAnalysisResult(
            material_cost_trend=0.12,
            labor_availability_index=60.0,
            regional_adjustment=0.0,
            market_condition_score=55.0,
        )
        rec = recommend_contingency(result, market)
        assert abs(rec.recommended_rate - (result.contingency_rate + 3 * config.MARKET_UPLIFT_PER_SIGNAL)) < 1e-9
        assert len(rec.recommendations) == 3
        assert "adverse market signal" in rec.explanation

    def test_rate_capped(self, scoring_engine, small_catalog):
        result = scoring_engine.score(
            {"Access": RiskFactorInput("Hard"), "Height": RiskFactorInput(100), "Rush Job": RiskFactorInput("yes")},
            small_catalog,
        )
        market = MarketAnalysisResult(0.5, 10.0, 0.2, 0.0)
        engine_cfg = {"contingency_bands": {k: (lo, hi, 0.24, 0.24) for k, (lo, hi, _, _) in config.CONTINGENCY_BANDS.items()}}
        high = RiskScoringEngine(engine_cfg).score(
            {"Access": RiskFactorInput("Hard")}, small_catalog
        )
        assert recommend_contingency(high, market).recommended_rate == config.CONTINGENCY_RECOMMENDATION_CAP
        assert recommend_contingency(result, market).recommended_rate <= config.CONTINGENCY_RECOMMENDATION_CAP
