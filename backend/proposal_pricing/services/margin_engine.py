"""
Margin engine — size-based overhead rates and risk-adjusted profit margins.

Both calculations are advisory: the orchestrator attaches them to the result
next to the requested overhead and margin, it never substitutes them.

Size-based overhead:
  Larger projects absorb fixed overhead better, so the rate steps down through
  configured size tiers (18 % below $50k to 10 % above $1M). "smooth" mode
  eases between neighbouring tiers instead of jumping at tier boundaries.

Risk-adjusted margin:
  The base margin is scaled by the risk level multiplier, then raised further
  for technical, timeline, client and market pressure found in the factor
  breakdown, and finally clamped to [MARGIN_MIN_PCT, MARGIN_MAX_PCT].
"""
import math
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from proposal_pricing import config
from proposal_pricing.services.risk_scoring_engine import FactorScore, RiskScoringResult

logger = logging.getLogger("proposal-pricing.margin")

OverheadTier = Tuple[float, float, str]

OVERHEAD_METHODS = ("tiered", "smooth")


@dataclass(frozen=True)
class OverheadResult:
    project_size: float
    overhead_rate: float
    overhead_amount: float
    method: str  # tiered | smooth | fixed
    tier: str
    breakdown: Optional[Dict[str, float]] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "project_size": self.project_size,
            "overhead_rate": self.overhead_rate,
            "overhead_percentage": round(self.overhead_rate * 100.0, 2),
            "overhead_amount": self.overhead_amount,
            "method": self.method,
            "tier": self.tier,
            "breakdown": dict(self.breakdown) if self.breakdown is not None else None,
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class MarginAdjustment:
    name: str
    average_score: float
    multiplier: float
    amount: float

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "average_score": self.average_score,
            "multiplier": self.multiplier,
            "amount": self.amount,
        }


@dataclass(frozen=True)
class MarginResult:
    base_margin: float
    adjusted_margin: float
    margin_adjustment: float
    adjustment_percentage: float
    risk_level: str
    explanation: str
    adjustments: List[MarginAdjustment] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "base_margin": self.base_margin,
            "adjusted_margin": self.adjusted_margin,
            "margin_adjustment": self.margin_adjustment,
            "adjustment_percentage": self.adjustment_percentage,
            "risk_level": self.risk_level,
            "explanation": self.explanation,
            "adjustments": [a.to_dict() for a in self.adjustments],
            "warnings": list(self.warnings),
        }


# ---------------------------------------------------------------------------
# Size-based overhead
# ---------------------------------------------------------------------------

def _positive_finite(value) -> bool:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value) and value > 0
    except OverflowError:
        return False


def _ease_in_out(fraction: float) -> float:
    """Quadratic ease-in-out on [0, 1]."""
    if fraction < 0.5:
        return 2.0 * fraction * fraction
    return 1.0 - (-2.0 * fraction + 2.0) ** 2 / 2.0


def _smooth_rate(size: float, tiers: Sequence[OverheadTier]) -> Tuple[float, str]:
    upper_idx = next((i for i, (bound, _, _) in enumerate(tiers) if size < bound), len(tiers) - 1)
    upper_bound, upper_rate, upper_label = tiers[upper_idx]
    if upper_idx == 0:
        return upper_rate, upper_label

    lower_bound, lower_rate, _ = tiers[upper_idx - 1]
    if math.isinf(upper_bound):
        # open-ended tier: ease over the width of the previous tier
        previous_start = tiers[upper_idx - 2][0] if upper_idx >= 2 else 0.0
        upper_bound = lower_bound + (lower_bound - previous_start)
    if size >= upper_bound:
        return upper_rate, upper_label

    fraction = (size - lower_bound) / (upper_bound - lower_bound)
    return lower_rate + (upper_rate - lower_rate) * _ease_in_out(fraction), upper_label


def size_based_overhead_rate(
    project_size: float,
    method: str = "tiered",
    tiers: Sequence[OverheadTier] = config.OVERHEAD_TIERS,
) -> Tuple[float, str, str]:
    """
    Overhead rate for a project size.

    Returns:
        (rate, tier description, method actually used). Non-positive or
        non-finite sizes, and an empty tier table, use the first tier's rate
        (or OVERHEAD_FALLBACK_RATE) with method "fixed".

    Raises:
        ValueError: if method is not "tiered" or "smooth".
    """
    if method not in OVERHEAD_METHODS:
        raise ValueError(f"method must be one of {OVERHEAD_METHODS}, got {method!r}")
    if not tiers:
        return config.OVERHEAD_FALLBACK_RATE, "Fallback rate", "fixed"
    if not _positive_finite(project_size):
        return tiers[0][1], tiers[0][2], "fixed"

    size = float(project_size)
    if method == "smooth":
        rate, label = _smooth_rate(size, tiers)
        return round(rate, 6), label, "smooth"

    for bound, rate, label in tiers:
        if size < bound:
            return rate, label, "tiered"
    return tiers[-1][1], tiers[-1][2], "tiered"


def calculate_size_based_overhead(
    base_cost: float,
    project_size: Optional[float] = None,
    method: str = "tiered",
    include_breakdown: bool = True,
    tiers: Sequence[OverheadTier] = config.OVERHEAD_TIERS,
) -> OverheadResult:
    """
    Overhead amount on base_cost at the rate for the project's size.

    project_size defaults to base_cost.
    """
    base_cost = float(base_cost) if _positive_finite(base_cost) else 0.0
    size = base_cost if project_size is None else project_size
    warnings: List[str] = []
    if not _positive_finite(size):
        warnings.append("Project size must be greater than 0")
        size = 0.0

    rate, label, used = size_based_overhead_rate(size, method, tiers)
    amount = round(base_cost * rate, config.MONEY_DECIMALS)

    breakdown = None
    if include_breakdown:
        breakdown = {
            name: round(amount * share, config.MONEY_DECIMALS)
            for name, share in config.OVERHEAD_CATEGORY_SHARES.items()
        }

    if size > config.OVERHEAD_TYPICAL_MAX_SIZE:
        warnings.append("Project size exceeds typical range - consider manual rate adjustment")
    if rate < config.OVERHEAD_LOW_RATE_WARNING:
        warnings.append("Overhead rate is very low - verify calculation accuracy")

    return OverheadResult(
        project_size=round(float(size), config.MONEY_DECIMALS),
        overhead_rate=rate,
        overhead_amount=amount,
        method=used,
        tier=label,
        breakdown=breakdown,
        warnings=warnings,
    )


# ---------------------------------------------------------------------------
# Risk-adjusted margin
# ---------------------------------------------------------------------------

_LEVEL_DESCRIPTIONS = {
    "LOW": "Low risk projects can use reduced margins due to predictable outcomes",
    "MEDIUM": "Standard margins for medium risk projects",
    "HIGH": "Increased margins for high risk projects to account for uncertainty",
    "SEVERE": "Significant margin increase for severe risk projects",
}

# adjustment -> (category keywords, factor name keywords, explanation label)
_ADJUSTMENT_KEYWORDS: Dict[str, Tuple[Tuple[str, ...], Tuple[str, ...], str]] = {
    "technical": (
        ("technical",), ("complexity", "technical"),
        "Technical complexity: Increased margin for complex technical requirements",
    ),
    "timeline": (
        ("schedule",), ("timeline", "deadline", "pressure"),
        "Timeline pressure: Increased margin for tight deadlines",
    ),
    "client": (
        ("client",), ("client", "relationship"),
        "Client history: Increased margin for new client relationship",
    ),
    "market": (
        ("market",), ("market", "economic", "competition"),
        "Market conditions: Increased margin for challenging market environment",
    ),
}


def _keyword_average(
    breakdown: Sequence[FactorScore], category_words: Sequence[str], name_words: Sequence[str],
) -> Optional[float]:
    scores = []
    for fs in breakdown:
        if not fs.input_provided:
            continue
        category, name = fs.category.lower(), fs.name.lower()
        if any(w in category for w in category_words) or any(w in name for w in name_words):
            scores.append(fs.score)
    return sum(scores) / len(scores) if scores else None


def calculate_risk_adjusted_margin(
    base_margin: float,
    risk_result: RiskScoringResult,
    multipliers: Mapping[str, float] = config.MARGIN_RISK_MULTIPLIERS,
    min_margin: float = config.MARGIN_MIN_PCT,
    max_margin: float = config.MARGIN_MAX_PCT,
) -> MarginResult:
    """
    Scale a profit margin (percent) by the scored risk.

    Each adjustment adds base_margin * (multiplier - 1). Factor-driven
    adjustments use the average sub-score of the factors (with input) whose
    category or name matches the adjustment's keywords.
    """
    level = risk_result.risk_level.value
    level_multiplier = multipliers.get(level, 1.0)
    level_amount = base_margin * (level_multiplier - 1.0)
    adjusted = base_margin + level_amount

    parts = [
        f"Base profit margin: {base_margin:.1f}%",
        f"{level} risk level: {_LEVEL_DESCRIPTIONS.get(level, 'Risk level adjustment')} ({level_amount:+.1f}%)",
    ]
    adjustments: List[MarginAdjustment] = []
    for name, (threshold, multiplier) in config.MARGIN_FACTOR_ADJUSTMENTS.items():
        category_words, name_words, label = _ADJUSTMENT_KEYWORDS[name]
        average = _keyword_average(risk_result.factor_breakdown, category_words, name_words)
        if average is None or average <= threshold:
            continue
        amount = base_margin * (multiplier - 1.0)
        adjusted += amount
        adjustments.append(MarginAdjustment(name, round(average, 2), multiplier, round(amount, 2)))
        parts.append(f"{label} (+{amount:.1f}%)")

    warnings: List[str] = []
    if adjusted < min_margin:
        warnings.append(f"Adjusted margin ({adjusted:.1f}%) is below minimum ({min_margin:g}%). Using minimum margin.")
        adjusted = min_margin
    elif adjusted > max_margin:
        warnings.append(f"Adjusted margin ({adjusted:.1f}%) is above maximum ({max_margin:g}%). Using maximum margin.")
        adjusted = max_margin
    parts.append(f"Final adjusted margin: {adjusted:.1f}%")

    margin_adjustment = adjusted - base_margin
    adjustment_pct = margin_adjustment / base_margin * 100.0 if base_margin else 0.0

    logger.debug(
        f"Risk-adjusted margin: base={base_margin:g} level={level} adjusted={adjusted:.2f} "
        f"adjustments={[a.name for a in adjustments]}"
    )
    return MarginResult(
        base_margin=round(base_margin, 2),
        adjusted_margin=round(adjusted, 2),
        margin_adjustment=round(margin_adjustment, 2),
        adjustment_percentage=round(adjustment_pct, 2),
        risk_level=level,
        explanation=". ".join(parts),
        adjustments=adjustments,
        warnings=warnings,
    )
