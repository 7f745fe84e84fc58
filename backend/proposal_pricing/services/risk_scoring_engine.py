"""
Risk scoring engine — weighted, multi-category risk score for a proposal.

Resolves each catalog factor against the validated inputs, rolls factor
sub-scores up into category scores and a 0–100 total, then maps the total to
a risk level and a contingency rate using the configured bands.
"""
import math
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import total_ordering
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from proposal_pricing import config
from proposal_pricing.services.risk_catalog import RiskCategory, RiskFactor, default_catalog
from proposal_pricing.services.risk_input_validator import RiskFactorInput

logger = logging.getLogger("proposal-pricing.risk")


@total_ordering
class RiskLevel(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    SEVERE = "SEVERE"

    @property
    def rank(self) -> int:
        return list(RiskLevel).index(self)

    def __lt__(self, other):
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank < other.rank


@dataclass(frozen=True)
class FactorScore:
    name: str
    category: str
    score: float
    weight: float
    input_provided: bool
    note: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "category": self.category,
            "score": self.score,
            "weight": self.weight,
            "input_provided": self.input_provided,
            "note": self.note,
        }


@dataclass(frozen=True)
class RiskScoringResult:
    total_risk_score: float
    risk_level: RiskLevel
    contingency_rate: float
    contingency_explanation: str
    recommendations: List[str] = field(default_factory=list)
    category_scores: List[Dict[str, Any]] = field(default_factory=list)
    factor_breakdown: List[FactorScore] = field(default_factory=list)
    factors_processed: int = 0
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total_risk_score": self.total_risk_score,
            "risk_level": self.risk_level.value,
            "contingency_rate": self.contingency_rate,
            "contingency_explanation": self.contingency_explanation,
            "recommendations": list(self.recommendations),
            "category_scores": [dict(c) for c in self.category_scores],
            "factor_breakdown": [f.to_dict() for f in self.factor_breakdown],
            "factors_processed": self.factors_processed,
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class ContingencyRecommendation:
    recommended_rate: float
    explanation: str
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "recommended_rate": self.recommended_rate,
            "explanation": self.explanation,
            "recommendations": list(self.recommendations),
        }


# ---------------------------------------------------------------------------
# Level guidance
# ---------------------------------------------------------------------------

_LEVEL_GUIDANCE: Dict[RiskLevel, Tuple[str, ...]] = {
    RiskLevel.LOW: (
        "Standard project management practices should be sufficient.",
    ),
    RiskLevel.MEDIUM: (
        "Implement enhanced monitoring and regular risk reviews.",
        "Consider additional safety measures and quality controls.",
    ),
    RiskLevel.HIGH: (
        "Develop comprehensive risk mitigation plan.",
        "Increase project oversight and monitoring frequency.",
        "Consider additional insurance coverage.",
    ),
    RiskLevel.SEVERE: (
        "Requires senior management review and approval.",
        "Implement aggressive risk mitigation strategies.",
        "Consider project scope reduction or timeline extension.",
        "Engage specialized consultants if needed.",
    ),
}

NO_DRIVER_MESSAGE = "No specific high-risk factors identified. Standard contingency applies."


def driver_advice(factor_name: str) -> str:
    """Mitigation advice for a high-scoring factor, keyed on its name."""
    lowered = factor_name.lower()
    if "weather" in lowered:
        return "Consider weather protection measures for seasonal risks."
    if "material" in lowered:
        return "Identify alternative suppliers for material risk mitigation."
    if "labor" in lowered or "labour" in lowered:
        return "Plan for labor shortages or secure backup crews."
    return f"Mitigate high risk in: {factor_name}."


# ---------------------------------------------------------------------------
# Band lookups
# ---------------------------------------------------------------------------

def risk_level_for(
    score: float,
    bands: Sequence[Tuple[float, str]] = config.RISK_LEVEL_BANDS,
) -> RiskLevel:
    """Level of the highest band whose lower bound is <= score."""
    level = bands[0][1]
    for lower, name in bands:
        if score >= lower:
            level = name
    return RiskLevel(level)


def contingency_rate_for(
    score: float,
    bands: Mapping[str, Tuple[float, float, float, float]] = config.CONTINGENCY_BANDS,
    level_bands: Sequence[Tuple[float, str]] = config.RISK_LEVEL_BANDS,
) -> Tuple[float, str]:
    """
    Piecewise-linear contingency rate for a 0–100 risk score.

    Returns:
        (rate as a fraction, human-readable explanation)
    """
    score = max(0.0, min(100.0, score))
    level = risk_level_for(score, level_bands)
    start, end, rate_start, rate_end = bands[level.value]
    span = end - start
    position = (score - start) / span if span > 0 else 1.0
    position = max(0.0, min(1.0, position))
    rate = round(rate_start + position * (rate_end - rate_start), 4)
    explanation = (
        f"{level.value} risk (score {score:.1f}/100): {rate * 100:.2f}% contingency, "
        f"interpolated within the {level.value} band "
        f"({rate_start * 100:g}% to {rate_end * 100:g}% for scores {start:g} to {end:g})"
    )
    return rate, explanation


# ---------------------------------------------------------------------------
# Internal helpers (module-private)
# ---------------------------------------------------------------------------

def _clamp_weight(weight: float) -> float:
    if not isinstance(weight, (int, float)) or isinstance(weight, bool):
        return 0.0
    try:
        weight = float(weight)
    except OverflowError:
        # an int past float range is still a weight above the cap
        return 100.0 if weight > 0 else 0.0
    if not math.isfinite(weight):
        return 0.0
    return max(0.0, min(100.0, weight))


def _weighted_mean(pairs: Iterable[Tuple[float, float]]) -> float:
    """Mean of (score, weight) pairs; falls back to a plain mean if weights sum to 0."""
    pairs = list(pairs)
    if not pairs:
        return 0.0
    total_weight = sum(w for _, w in pairs)
    if total_weight <= 0:
        return sum(s for s, _ in pairs) / len(pairs)
    return sum(s * w for s, w in pairs) / total_weight


def _input_value(entry: Any) -> Any:
    if isinstance(entry, RiskFactorInput):
        return entry.value
    if isinstance(entry, Mapping):
        return entry.get("value")
    return entry


def _fold(name: str) -> str:
    return name.strip().casefold()


def _match_inputs(
    factors: Sequence[RiskFactor],
    input_names: Sequence[str],
) -> Dict[int, int]:
    """
    Map factor index -> input index.

    Exact names are claimed first, then trimmed case-insensitive names in
    input order. Each input is claimed by at most one factor.
    """
    claimed: Dict[int, int] = {}
    used = set()

    for f_idx, factor in enumerate(factors):
        for i_idx, name in enumerate(input_names):
            if i_idx not in used and name == factor.name:
                claimed[f_idx] = i_idx
                used.add(i_idx)
                break

    for f_idx, factor in enumerate(factors):
        if f_idx in claimed:
            continue
        wanted = _fold(factor.name)
        for i_idx, name in enumerate(input_names):
            if i_idx not in used and _fold(name) == wanted:
                claimed[f_idx] = i_idx
                used.add(i_idx)
                break

    return claimed


class RiskScoringEngine:
    """
    Weighted multi-category risk scorer.

    Band configuration defaults to config.py and may be overridden per
    instance (e.g. a contractor-specific contingency policy).
    """

    def __init__(self, scoring_config: Optional[Dict[str, Any]] = None) -> None:
        cfg = scoring_config or {}
        self.level_bands: Tuple[Tuple[float, str], ...] = tuple(
            cfg.get("risk_level_bands", config.RISK_LEVEL_BANDS)
        )
        self.contingency_bands: Dict[str, Tuple[float, float, float, float]] = dict(
            cfg.get("contingency_bands", config.CONTINGENCY_BANDS)
        )
        self.top_driver_threshold: float = float(
            cfg.get("top_driver_threshold", config.TOP_DRIVER_SCORE_THRESHOLD)
        )
        self.top_driver_limit: int = int(cfg.get("top_driver_limit", config.TOP_DRIVER_LIMIT))

    def score(
        self,
        inputs: Optional[Mapping[str, Any]],
        categories: Optional[Sequence[RiskCategory]] = None,
    ) -> RiskScoringResult:
        """
        Score validated inputs against the catalog.

        Args:
            inputs:     Mapping of factor name -> RiskFactorInput (or a mapping
                        with a "value" key). Use the cleaned inputs of a valid
                        ValidationOutcome.
            categories: Risk catalog. Defaults to the seeded catalog.
        """
        categories = default_catalog() if categories is None else categories
        inputs = inputs or {}
        input_names = list(inputs.keys())
        input_entries = list(inputs.values())

        active: List[Tuple[RiskCategory, Tuple[RiskFactor, ...]]] = [
            (c, c.active_factors()) for c in categories if c.is_active
        ]
        active = [(c, fs) for c, fs in active if fs]

        flat: List[Tuple[RiskCategory, RiskFactor]] = [(c, f) for c, fs in active for f in fs]
        claimed = _match_inputs([f for _, f in flat], input_names)

        breakdown: List[FactorScore] = []
        per_category: Dict[str, List[Tuple[float, float]]] = {c.name: [] for c, _ in active}

        for f_idx, (category, factor) in enumerate(flat):
            weight = _clamp_weight(factor.weight)
            if f_idx in claimed:
                raw = _input_value(input_entries[claimed[f_idx]])
                sub_score, note = factor.kind.score(raw)
                provided = True
            else:
                sub_score, note, provided = 0.0, "no input provided", False
            sub_score = max(0.0, min(100.0, sub_score))
            per_category[category.name].append((sub_score, weight))
            breakdown.append(FactorScore(
                name=factor.name,
                category=category.name,
                score=round(sub_score, 2),
                weight=weight,
                input_provided=provided,
                note=note,
            ))

        category_scores = []
        category_pairs = []
        for category, _ in active:
            cat_score = _weighted_mean(per_category[category.name])
            cat_weight = _clamp_weight(category.weight)
            category_pairs.append((cat_score, cat_weight))
            category_scores.append({
                "name": category.name,
                "score": round(cat_score, 2),
                "weight": cat_weight,
            })

        total = round(max(0.0, min(100.0, _weighted_mean(category_pairs))), 2)
        level = risk_level_for(total, self.level_bands)
        rate, explanation = contingency_rate_for(total, self.contingency_bands, self.level_bands)

        breakdown.sort(key=lambda fs: (-fs.score, fs.name))
        warnings = self._unmatched_warnings(flat, input_names, set(claimed.values()))

        result = RiskScoringResult(
            total_risk_score=total,
            risk_level=level,
            contingency_rate=rate,
            contingency_explanation=explanation,
            recommendations=self._recommendations(level, breakdown),
            category_scores=category_scores,
            factor_breakdown=breakdown,
            factors_processed=len(breakdown),
            warnings=warnings,
        )
        logger.info(
            f"Risk scoring: total={total} level={level.value} rate={rate:.4f} "
            f"factors={len(breakdown)} unmatched={len(warnings)}"
        )
        return result

    def top_drivers(self, breakdown: Sequence[FactorScore]) -> List[FactorScore]:
        """Highest-scoring factors above the driver threshold, best first."""
        ranked = sorted(breakdown, key=lambda fs: (-fs.score, fs.name))
        return [fs for fs in ranked[: self.top_driver_limit] if fs.score > self.top_driver_threshold]

    # ─── Internals ────────────────────────────────────────────────────────

    def _recommendations(self, level: RiskLevel, breakdown: Sequence[FactorScore]) -> List[str]:
        recommendations = list(_LEVEL_GUIDANCE[level])
        for driver in self.top_drivers(breakdown):
            advice = driver_advice(driver.name)
            if advice not in recommendations:
                recommendations.append(advice)
        return recommendations

    @staticmethod
    def _unmatched_warnings(
        flat: Sequence[Tuple[RiskCategory, RiskFactor]],
        input_names: Sequence[str],
        used: set,
    ) -> List[str]:
        known = {_fold(f.name): f.name for _, f in flat}
        warnings = []
        for i_idx, name in enumerate(input_names):
            if i_idx in used:
                continue
            folded = _fold(name) if isinstance(name, str) else ""
            if folded in known:
                warnings.append(
                    f"Risk factor input '{name}' ignored: '{known[folded]}' was already "
                    f"scored from another input"
                )
            else:
                warnings.append(f"Risk factor input '{name}' does not match any active catalog factor")
        return warnings


def recommend_contingency(
    risk_result: RiskScoringResult,
    market_analysis: Optional[Any] = None,
    engine: Optional[RiskScoringEngine] = None,
) -> ContingencyRecommendation:
    """
    Advisory, market-aware contingency recommendation.

    Starts from the scored contingency rate and adds a fixed uplift for each
    adverse market signal (rising material costs, low labor availability,
    weak market conditions). Never changes the rate used for pricing.
    """
    engine = engine or RiskScoringEngine()
    recommendations = [driver_advice(d.name) for d in engine.top_drivers(risk_result.factor_breakdown)]
    signals = 0

    if market_analysis is not None:
        if market_analysis.material_cost_trend > config.RISING_MATERIAL_TREND:
            signals += 1
            recommendations.append("Material costs are rising rapidly; consider locking in prices early.")
        if market_analysis.labor_availability_index < config.LOW_LABOR_AVAILABILITY:
            signals += 1
            recommendations.append("Labor availability is low; plan for potential delays or higher costs.")
        if market_analysis.market_condition_score < config.WEAK_MARKET_CONDITION:
            signals += 1
            recommendations.append("Market conditions are challenging; consider additional contingency.")

    if not recommendations:
        recommendations.append(NO_DRIVER_MESSAGE)

    rate = risk_result.contingency_rate + signals * config.MARKET_UPLIFT_PER_SIGNAL
    rate = round(
        max(config.CONTINGENCY_RECOMMENDATION_FLOOR, min(config.CONTINGENCY_RECOMMENDATION_CAP, rate)), 4
    )
    explanation = (
        f"{risk_result.risk_level.value} risk: base contingency {risk_result.contingency_rate * 100:.2f}%"
    )
    if signals:
        explanation += (
            f", plus {config.MARKET_UPLIFT_PER_SIGNAL * 100:g}% for each of {signals} adverse market signal(s)"
        )
    explanation += f"; recommended {rate * 100:.2f}%."

    return ContingencyRecommendation(
        recommended_rate=rate,
        explanation=explanation,
        recommendations=recommendations,
    )
