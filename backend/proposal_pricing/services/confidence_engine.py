"""
Estimate confidence scoring.

Rates how much an estimate can be trusted from fourteen 0–100 factor scores
(data quality, historical performance, project clarity, market data and the
risk assessment itself). Factors the caller does not supply sit at a neutral
50. The weighted score maps to a confidence level and a +/- uncertainty band
around the estimate.
"""
import math
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from proposal_pricing import config
from proposal_pricing.services.risk_scoring_engine import RiskScoringResult

logger = logging.getLogger("proposal-pricing.confidence")

CONFIDENCE_FACTORS = tuple(config.CONFIDENCE_FACTOR_WEIGHTS.keys())

_LEVEL_DESCRIPTIONS = {
    "VERY_LOW": "Very Low Confidence - High uncertainty, significant risk of cost overruns",
    "LOW": "Low Confidence - Considerable uncertainty, moderate risk of cost variations",
    "MEDIUM": "Medium Confidence - Reasonable accuracy with some uncertainty",
    "HIGH": "High Confidence - Good accuracy with minimal uncertainty",
    "VERY_HIGH": "Very High Confidence - Excellent accuracy with very low uncertainty",
}


@dataclass(frozen=True)
class ConfidenceResult:
    score: float
    level: str
    description: str
    uncertainty_pct: float  # +/- percent around the estimate
    factor_scores: Dict[str, float] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "level": self.level,
            "description": self.description,
            "uncertainty_pct": self.uncertainty_pct,
            "lower_bound_pct": -self.uncertainty_pct,
            "upper_bound_pct": self.uncertainty_pct,
            "factor_scores": dict(self.factor_scores),
            "recommendations": list(self.recommendations),
            "warnings": list(self.warnings),
        }


def _factor_value(value: Any) -> Optional[float]:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return max(0.0, min(100.0, number)) if math.isfinite(number) else None


def confidence_level_for(score: float) -> Tuple[str, float]:
    """(level, uncertainty fraction) for a 0–100 confidence score."""
    for upper, level, uncertainty in config.CONFIDENCE_LEVEL_BANDS:
        if score <= upper:
            return level, uncertainty
    _, level, uncertainty = config.CONFIDENCE_LEVEL_BANDS[-1]
    return level, uncertainty


def _spaced(key: str) -> str:
    return key.replace("_", " ")


def calculate_confidence_score(
    factors: Optional[Mapping[str, Any]] = None,
    risk_result: Optional[RiskScoringResult] = None,
    weights: Optional[Mapping[str, float]] = None,
) -> ConfidenceResult:
    """
    Weighted estimate confidence.

    Args:
        factors:     Factor name -> 0–100 score. Unknown names are reported as
                     warnings; missing or non-numeric values use 50.
        risk_result: When given, risk_assessment_confidence is the share of
                     catalog factors that had input and risk_factor_coverage
                     grows with the number of factors processed.
        weights:     Overrides for CONFIDENCE_FACTOR_WEIGHTS, normalized by
                     their sum.
    """
    weights = {**config.CONFIDENCE_FACTOR_WEIGHTS, **(weights or {})}
    warnings: List[str] = []
    if factors is not None and not isinstance(factors, Mapping):
        warnings.append("Confidence factors must be a mapping of factor name to score; defaults used")
        factors = None
    factors = factors or {}

    for name in factors:
        if name not in config.CONFIDENCE_FACTOR_WEIGHTS:
            label = name if isinstance(name, str) else type(name).__name__
            warnings.append(f"Unknown confidence factor '{label}' ignored")

    scores: Dict[str, float] = {}
    for name in CONFIDENCE_FACTORS:
        value = _factor_value(factors.get(name))
        scores[name] = config.CONFIDENCE_DEFAULT_FACTOR_SCORE if value is None else value

    if risk_result is not None:
        processed = risk_result.factors_processed
        provided = sum(1 for fs in risk_result.factor_breakdown if fs.input_provided)
        scores["risk_assessment_confidence"] = round(provided / processed * 100.0, 2) if processed else 0.0
        scores["risk_factor_coverage"] = round(
            min(100.0, processed / config.CONFIDENCE_FULL_COVERAGE_FACTORS * 100.0), 2
        )
    else:
        scores["risk_assessment_confidence"] = config.CONFIDENCE_DEFAULT_FACTOR_SCORE
        scores["risk_factor_coverage"] = config.CONFIDENCE_DEFAULT_FACTOR_SCORE
        warnings.append("Risk assessment not provided, using default confidence values")

    # non-numeric or negative weights count as 0
    effective = {name: _factor_value(weights.get(name)) or 0.0 for name in CONFIDENCE_FACTORS}
    total_weight = sum(effective.values())
    if total_weight > 0:
        weighted = sum(scores[name] * effective[name] for name in CONFIDENCE_FACTORS)
        score = max(0.0, min(100.0, weighted / total_weight))
    else:
        score = config.CONFIDENCE_DEFAULT_FACTOR_SCORE

    level, uncertainty = confidence_level_for(score)

    recommendations: List[str] = []
    for name in CONFIDENCE_FACTORS:
        value = scores[name]
        if value <= 20:
            recommendations.append(f"Critical: Improve {_spaced(name)} ({value:.1f}%)")
            warnings.append(f"{name} score is critically low: {value:.1f}%")
        elif value <= 40:
            recommendations.append(f"Improve {_spaced(name)} ({value:.1f}%)")

    average = sum(scores.values()) / len(scores)
    if average < 30:
        recommendations.append("Consider delaying estimate until more data is available")
    elif average < 50:
        recommendations.append("Add contingency buffer to account for uncertainty")
    elif average > 80:
        recommendations.append("High confidence estimate - consider reducing contingency")

    logger.debug(f"Confidence score {score:.2f} ({level}), {len(factors)} factor(s) supplied")
    return ConfidenceResult(
        score=round(score, 2),
        level=level,
        description=_LEVEL_DESCRIPTIONS[level],
        uncertainty_pct=round(uncertainty * 100.0, 2),
        factor_scores=scores,
        recommendations=recommendations,
        warnings=warnings,
    )
