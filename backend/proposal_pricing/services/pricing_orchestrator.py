"""
PricingOrchestrator — risk-adjusted proposal pricing.

Sequence per request:
  1. Validate free-form risk factor inputs
  2. Score them (enhanced path) or fall back to the legacy scalar risk score
  3. Optionally enrich with market conditions, benchmarking and win probability
  4. Apply overhead, profit margin and contingency to the base cost
  5. Attach advisory size-based overhead, risk-adjusted margin and estimate
     confidence (never applied to the price)

Every request ends in exactly one of two outcomes, "enhanced" or "legacy",
and always yields a priced result. Also hosts the legacy pricing helpers.
"""

import hashlib
import json
import math
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from proposal_pricing import config
from proposal_pricing.services.confidence_engine import ConfidenceResult, calculate_confidence_score
from proposal_pricing.services.margin_engine import (
    MarginResult,
    OverheadResult,
    calculate_risk_adjusted_margin,
    calculate_size_based_overhead,
)
from proposal_pricing.services.market_analysis import (
    BenchmarkQuery,
    BenchmarkResult,
    MarketAnalysisResult,
    MarketDataPoint,
    MarketSnapshot,
    analyze_market_conditions,
    benchmark_project_cost,
    calculate_win_probability,
    default_market_snapshot,
)
from proposal_pricing.services.risk_catalog import RiskCategory, default_catalog
from proposal_pricing.services.risk_input_validator import (
    ValidationPolicy,
    validate_risk_factor_inputs,
)
from proposal_pricing.services.risk_scoring_engine import (
    ContingencyRecommendation,
    RiskScoringEngine,
    RiskScoringResult,
    recommend_contingency,
)

logger = logging.getLogger("proposal-pricing")

VALIDATION_ERROR = "VALIDATION_ERROR"
RISK_SCORING_ERROR = "RISK_SCORING_ERROR"
PRICING_OVERFLOW = "PRICING_OVERFLOW"


# ---------------------------------------------------------------------------
# Request / result value objects
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProjectAttributes:
    region: Optional[str] = None
    project_type: Optional[str] = None
    material_type: Optional[str] = None
    square_footage: Optional[float] = None
    cost_per_sf: Optional[float] = None
    effective_date: Optional[date] = None


@dataclass(frozen=True)
class PricingRequest:
    base_cost: float
    overhead_percentage: float = config.DEFAULT_OVERHEAD_PCT
    profit_margin: float = config.DEFAULT_PROFIT_MARGIN_PCT
    risk_factor_inputs: Optional[Mapping[str, Any]] = None  # raw, untrusted
    project_attributes: Optional[ProjectAttributes] = None
    legacy_risk_score: Optional[float] = None
    market_data: Optional[Tuple[MarketDataPoint, ...]] = None  # overrides the snapshot's points
    confidence_factors: Optional[Mapping[str, float]] = None


@dataclass(frozen=True)
class CalculationError:
    code: str
    message: str
    details: List[str] = field(default_factory=list)
    fallback_used: bool = False

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": list(self.details),
            "fallback_used": self.fallback_used,
        }


@dataclass(frozen=True)
class EnhancedCalculationResult:
    total_price: float
    breakdown: Dict[str, float]
    contingency_source: str  # enhanced | legacy
    fallback_used: bool
    calculation_id: str
    warnings: List[str] = field(default_factory=list)
    errors: List[CalculationError] = field(default_factory=list)
    risk_assessment: Optional[RiskScoringResult] = None
    market_analysis: Optional[MarketAnalysisResult] = None
    benchmark: Optional[BenchmarkResult] = None
    win_probability: Optional[float] = None
    cost_per_square_foot: Optional[float] = None
    contingency_recommendation: Optional[ContingencyRecommendation] = None
    size_based_overhead: Optional[OverheadResult] = None
    risk_adjusted_margin: Optional[MarginResult] = None
    confidence: Optional[ConfidenceResult] = None
    calculation_sequence: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        def _opt(obj):
            return obj.to_dict() if obj is not None else None

        return {
            "calculation_id": self.calculation_id,
            "total_price": self.total_price,
            "breakdown": dict(self.breakdown),
            "contingency_source": self.contingency_source,
            "fallback_used": self.fallback_used,
            "warnings": list(self.warnings),
            "errors": [e.to_dict() for e in self.errors],
            "risk_assessment": _opt(self.risk_assessment),
            "market_analysis": _opt(self.market_analysis),
            "benchmark": _opt(self.benchmark),
            "win_probability": self.win_probability,
            "cost_per_square_foot": self.cost_per_square_foot,
            "contingency_recommendation": _opt(self.contingency_recommendation),
            "size_based_overhead": _opt(self.size_based_overhead),
            "risk_adjusted_margin": _opt(self.risk_adjusted_margin),
            "confidence": _opt(self.confidence),
            "calculation_sequence": list(self.calculation_sequence),
        }


# ---------------------------------------------------------------------------
# Internal helpers (module-private)
# ---------------------------------------------------------------------------

def _finite(value: Any) -> bool:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _money(value: float) -> float:
    return round(value, config.MONEY_DECIMALS)


def _clamp_percentage(label: str, value: Any, default: float, warnings: List[str]) -> float:
    if value is None:
        return default
    if not _finite(value):
        warnings.append(f"{label} is not a finite number; using default {default:g}%")
        return default
    clamped = max(0.0, min(100.0, float(value)))
    if clamped != value:
        warnings.append(f"{label} {value:g}% clamped to {clamped:g}%")
    return clamped


def _canonical(value: Any) -> Any:
    """JSON-ready, order-stable form of arbitrary request data."""
    if isinstance(value, Mapping):
        return {(k if isinstance(k, str) else repr(_canonical(k))): _canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    if hasattr(value, "__dataclass_fields__"):
        return {name: _canonical(getattr(value, name)) for name in value.__dataclass_fields__}
    if isinstance(value, date):
        return value.isoformat()
    if value is None or isinstance(value, (str, bool)):
        return value
    if isinstance(value, int) and not _finite(value):
        # beyond float range; str() of such ints can hit the digit limit
        raw = value.to_bytes(value.bit_length() // 8 + 1, "big", signed=True)
        return "int:" + hashlib.sha256(raw).hexdigest()
    if isinstance(value, float) and not math.isfinite(value):
        return repr(value)
    if isinstance(value, (int, float)):
        return value
    return repr(value)


def calculation_id_for(request: PricingRequest) -> str:
    """SHA-256 of the canonical request JSON; identical requests share an id."""
    payload = json.dumps(_canonical(request), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class PricingOrchestrator:
    """
    Entry point for risk-adjusted proposal pricing.

    Holds only an immutable catalog and market snapshot; safe to share across
    concurrent requests.
    """

    def __init__(
        self,
        categories: Optional[Sequence[RiskCategory]] = None,
        market_snapshot: Optional[MarketSnapshot] = None,
        scoring_engine: Optional[RiskScoringEngine] = None,
        validation_policy: Optional[ValidationPolicy] = None,
    ) -> None:
        self.categories: Tuple[RiskCategory, ...] = tuple(
            default_catalog() if categories is None else categories
        )
        self.market_snapshot: MarketSnapshot = market_snapshot or default_market_snapshot()
        self.scoring_engine: RiskScoringEngine = scoring_engine or RiskScoringEngine()
        self.validation_policy: ValidationPolicy = validation_policy or ValidationPolicy()

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def price_proposal(self, request: PricingRequest) -> EnhancedCalculationResult:
        calculation_id = calculation_id_for(request)
        log_extra = {"calculation_id": calculation_id}
        warnings: List[str] = []
        errors: List[CalculationError] = []
        sequence: List[str] = []

        # ── 1. Validate ───────────────────────────────────────────────────
        sequence.append("validate_risk_inputs")
        outcome = validate_risk_factor_inputs(request.risk_factor_inputs, self.validation_policy)
        warnings.extend(outcome.warnings)

        # ── 2. Enhanced scoring or legacy fallback ────────────────────────
        risk_result: Optional[RiskScoringResult] = None
        if not outcome.is_valid:
            errors.append(CalculationError(
                code=VALIDATION_ERROR,
                message="Risk factor inputs failed validation; legacy contingency applied",
                details=list(outcome.errors),
                fallback_used=True,
            ))
        else:
            sequence.append("score_risk")
            try:
                risk_result = self.scoring_engine.score(outcome.inputs, self.categories)
                warnings.extend(risk_result.warnings)
            except Exception as exc:
                logger.exception(f"Risk scoring failed, falling back to legacy: {exc}", extra=log_extra)
                errors.append(CalculationError(
                    code=RISK_SCORING_ERROR,
                    message=f"Risk scoring failed: {exc}",
                    fallback_used=True,
                ))

        if risk_result is not None:
            contingency_source = "enhanced"
            rate = risk_result.contingency_rate
        else:
            contingency_source = "legacy"
            sequence.append("legacy_contingency")
            rate = self._legacy_rate(request.legacy_risk_score, warnings)
            logger.warning(
                f"Calculation {calculation_id[:12]} used legacy contingency "
                f"({len(outcome.errors)} validation error(s))",
                extra={**log_extra, "fallback_used": True},
            )

        # ── 3. Base cost and percentages ──────────────────────────────────
        base_cost = request.base_cost
        if not _finite(base_cost) or base_cost < 0:
            warnings.append("Base cost is not a finite non-negative number; using 0")
            base_cost = 0.0
        base_cost = float(base_cost)
        overhead_pct = _clamp_percentage(
            "Overhead percentage", request.overhead_percentage, config.DEFAULT_OVERHEAD_PCT, warnings
        )
        profit_pct = _clamp_percentage(
            "Profit margin", request.profit_margin, config.DEFAULT_PROFIT_MARGIN_PCT, warnings
        )

        # ── 4. Market enrichment ──────────────────────────────────────────
        market_analysis = benchmark = win_probability = None
        attrs = request.project_attributes
        if attrs is not None:
            sequence.append("market_analysis")
            try:
                market_analysis, benchmark, win_probability = self._market(
                    attrs, request, base_cost, risk_result
                )
            except Exception as exc:
                logger.exception(f"Market analysis failed: {exc}", extra=log_extra)
                warnings.append(f"Market analysis unavailable: {exc}")

        recommendation = None
        if risk_result is not None:
            sequence.append("contingency_recommendation")
            recommendation = recommend_contingency(risk_result, market_analysis, self.scoring_engine)

        # ── 5. Price ──────────────────────────────────────────────────────
        sequence.append("apply_pricing")
        overhead_amount = base_cost * overhead_pct / 100.0
        cost_with_overhead = base_cost + overhead_amount
        profit_amount = cost_with_overhead * profit_pct / 100.0
        cost_with_profit = cost_with_overhead + profit_amount
        contingency_amount = cost_with_profit * rate
        total = cost_with_profit + contingency_amount

        amounts = (overhead_amount, profit_amount, contingency_amount, total)
        if not all(math.isfinite(a) for a in amounts):
            logger.error(
                f"Pricing arithmetic overflowed for calculation {calculation_id[:12]}", extra=log_extra
            )
            warnings.append("Pricing arithmetic overflowed; amounts reported as 0")
            errors.append(CalculationError(
                code=PRICING_OVERFLOW,
                message="Base cost too large to price; amounts reported as 0",
            ))
            base_cost = overhead_amount = profit_amount = contingency_amount = total = 0.0

        cost_per_sf = None
        if attrs is not None and _finite(attrs.square_footage) and attrs.square_footage > 0:
            cost_per_sf = _money(total / attrs.square_footage)
            if not math.isfinite(cost_per_sf):
                cost_per_sf = None

        # ── 6. Advisory overhead, margin and confidence ───────────────────
        sequence.append("advisory_analysis")
        size_overhead = calculate_size_based_overhead(base_cost)
        adjusted_margin = None
        if risk_result is not None:
            adjusted_margin = calculate_risk_adjusted_margin(profit_pct, risk_result)
        confidence = calculate_confidence_score(request.confidence_factors, risk_result)

        result = EnhancedCalculationResult(
            total_price=_money(total),
            breakdown={
                "base_cost": _money(base_cost),
                "overhead_percentage": overhead_pct,
                "overhead_amount": _money(overhead_amount),
                "profit_margin": profit_pct,
                "profit_amount": _money(profit_amount),
                "contingency_rate": rate,
                "contingency_amount": _money(contingency_amount),
            },
            contingency_source=contingency_source,
            fallback_used=contingency_source == "legacy",
            calculation_id=calculation_id,
            warnings=warnings,
            errors=errors,
            risk_assessment=risk_result,
            market_analysis=market_analysis,
            benchmark=benchmark,
            win_probability=win_probability,
            cost_per_square_foot=cost_per_sf,
            contingency_recommendation=recommendation,
            calculation_sequence=sequence,
            size_based_overhead=size_overhead,
            risk_adjusted_margin=adjusted_margin,
            confidence=confidence,
        )
        logger.info(
            f"Priced proposal {calculation_id[:12]}: total={result.total_price} "
            f"source={contingency_source} rate={rate:.4f}",
            extra={**log_extra, "fallback_used": result.fallback_used},
        )
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    @staticmethod
    def _legacy_rate(legacy_risk_score: Optional[float], warnings: List[str]) -> float:
        """Legacy contingency: 2 % per risk point on a 0–10 scale."""
        if not _finite(legacy_risk_score):
            warnings.append("No legacy risk score supplied; legacy contingency rate of 0 applied")
            return 0.0
        score = max(0.0, min(config.LEGACY_RISK_SCORE_MAX, float(legacy_risk_score)))
        if score != legacy_risk_score:
            warnings.append(f"Legacy risk score {legacy_risk_score:g} clamped to {score:g}")
        return round(score * config.LEGACY_RATE_PER_POINT, 4)

    def _market(
        self,
        attrs: ProjectAttributes,
        request: PricingRequest,
        base_cost: float,
        risk_result: Optional[RiskScoringResult],
    ) -> Tuple[Optional[MarketAnalysisResult], Optional[BenchmarkResult], float]:
        market_analysis = None
        benchmark = None

        if attrs.region:
            market_analysis = analyze_market_conditions(
                attrs.region, attrs.material_type, self.market_snapshot
            )

        cost_basis = None
        if _finite(attrs.cost_per_sf) and attrs.cost_per_sf > 0:
            cost_basis = float(attrs.cost_per_sf)
        elif _finite(attrs.square_footage) and attrs.square_footage > 0 and base_cost > 0:
            cost_basis = base_cost / attrs.square_footage

        if attrs.region and cost_basis is not None:
            points = request.market_data if request.market_data is not None else self.market_snapshot.points
            benchmark = benchmark_project_cost(
                BenchmarkQuery(
                    region=attrs.region,
                    cost_per_sf=cost_basis,
                    project_type=attrs.project_type,
                    effective_date=attrs.effective_date,
                ),
                points,
            )

        percentile = 50.0
        if benchmark is not None and benchmark.percentile is not None:
            percentile = benchmark.percentile

        if risk_result is not None:
            risk_score = risk_result.total_risk_score
        elif _finite(request.legacy_risk_score):
            risk_score = max(0.0, min(config.LEGACY_RISK_SCORE_MAX, request.legacy_risk_score)) * 10.0
        else:
            risk_score = 0.0

        win_probability = calculate_win_probability(
            cost_basis, risk_score, percentile, attrs.project_type, attrs.region
        )
        return market_analysis, benchmark, win_probability


# ---------------------------------------------------------------------------
# Legacy pricing helpers
# ---------------------------------------------------------------------------

def calculate_proposal_pricing(
    base_cost: float,
    overhead_percentage: float = config.DEFAULT_OVERHEAD_PCT,
    profit_margin: float = config.DEFAULT_PROFIT_MARGIN_PCT,
    risk_score: float = 0.0,
) -> Dict[str, Any]:
    """
    Single-scalar proposal pricing.

    Risk adjustment is 2 % of the cost-with-profit per risk point (0–10);
    win probability drops 8 points per risk point with a 10 % floor.
    """
    overhead_amount = base_cost * overhead_percentage / 100.0
    cost_with_overhead = base_cost + overhead_amount
    profit_amount = cost_with_overhead * profit_margin / 100.0
    cost_with_profit = cost_with_overhead + profit_amount
    risk_adjustment = cost_with_profit * risk_score * config.LEGACY_RATE_PER_POINT
    total_cost = cost_with_profit + risk_adjustment

    win_probability = max(
        config.LEGACY_MIN_WIN_PROBABILITY_PCT,
        100.0 - risk_score * config.LEGACY_WIN_PROBABILITY_DROP_PER_POINT,
    )

    return {
        "base_cost": _money(base_cost),
        "overhead_percentage": overhead_percentage,
        "overhead_amount": _money(overhead_amount),
        "profit_margin": profit_margin,
        "profit_amount": _money(profit_amount),
        "risk_adjustment": _money(risk_adjustment),
        "total_cost": _money(total_cost),
        "win_probability": win_probability,
    }


def calculate_item_pricing(
    quantity: float,
    unit_cost: float,
    overhead_percentage: float = config.DEFAULT_OVERHEAD_PCT,
    profit_margin: float = config.DEFAULT_PROFIT_MARGIN_PCT,
) -> Dict[str, float]:
    """Line-item pricing: quantity x unit cost plus overhead and profit."""
    base_cost = quantity * unit_cost
    overhead_amount = base_cost * overhead_percentage / 100.0
    cost_with_overhead = base_cost + overhead_amount
    profit_amount = cost_with_overhead * profit_margin / 100.0
    return {
        "base_cost": _money(base_cost),
        "overhead_amount": _money(overhead_amount),
        "profit_amount": _money(profit_amount),
        "total_cost": _money(cost_with_overhead + profit_amount),
    }


def calculate_total_proposal(
    items: List[Dict[str, float]],
    overhead_percentage: float = config.DEFAULT_OVERHEAD_PCT,
    profit_margin: float = config.DEFAULT_PROFIT_MARGIN_PCT,
    risk_score: float = 0.0,
) -> Dict[str, Any]:
    """Legacy pricing for a list of {"quantity", "unit_cost"} items."""
    base_cost = sum(float(i.get("quantity", 0)) * float(i.get("unit_cost", 0)) for i in items)
    return calculate_proposal_pricing(base_cost, overhead_percentage, profit_margin, risk_score)
