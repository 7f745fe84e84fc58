"""
Market analysis — regional market conditions, cost-per-SF benchmarking,
win-probability estimation and pricing package recommendations.

All functions are pure over the MarketSnapshot / data points they are given;
market data is injected per call, never read from module state.
"""
import math
import logging
import statistics
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from proposal_pricing import config

logger = logging.getLogger("proposal-pricing.market")


# ---------------------------------------------------------------------------
# Reference tables (seed for the default snapshot)
# ---------------------------------------------------------------------------
_MATERIAL_PRICE_TRENDS: Dict[str, float] = {
    "glass": 0.08,       # +8 % year on year
    "aluminum": 0.05,
    "steel": 0.12,
}
_DEFAULT_MATERIAL_TREND: float = 0.06

_LABOR_AVAILABILITY_BY_REGION: Dict[str, float] = {
    "Northeast": 70.0,
    "Midwest": 80.0,
    "South": 60.0,
    "West": 75.0,
}
_DEFAULT_LABOR_AVAILABILITY: float = 70.0

# Signed fraction: +0.10 means 10 % above the national baseline
_REGIONAL_ADJUSTMENTS: Dict[str, float] = {
    "Northeast": 0.10,
    "Midwest": 0.0,
    "South": -0.05,
    "West": 0.08,
}
_DEFAULT_REGIONAL_ADJUSTMENT: float = 0.0

_SEED_COST_PER_SF: Tuple[Tuple[str, float], ...] = (
    ("Northeast", 45.0),
    ("Midwest", 42.5),
    ("South", 40.0),
    ("West", 47.0),
)
_SEED_DATE = date(2024, 1, 1)
_SEED_NOTES = "Commercial glazing, typical project"


@dataclass(frozen=True)
class MarketDataPoint:
    value: float                      # cost per SF
    region: str
    project_type: Optional[str] = None  # free-text notes, matched by substring
    effective_date: Optional[date] = None

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "region": self.region,
            "project_type": self.project_type,
            "effective_date": self.effective_date.isoformat() if self.effective_date else None,
        }


@dataclass(frozen=True)
class MarketSnapshot:
    """Immutable market data supplied to a single calculation."""
    material_trends: Dict[str, float] = field(default_factory=dict)
    labor_availability: Dict[str, float] = field(default_factory=dict)
    regional_adjustments: Dict[str, float] = field(default_factory=dict)
    points: Tuple[MarketDataPoint, ...] = ()

    def with_points(self, points: Iterable[MarketDataPoint]) -> "MarketSnapshot":
        return MarketSnapshot(
            material_trends=self.material_trends,
            labor_availability=self.labor_availability,
            regional_adjustments=self.regional_adjustments,
            points=tuple(points),
        )


def default_market_snapshot() -> MarketSnapshot:
    """Snapshot seeded with the reference trend tables and regional cost-per-SF points."""
    return MarketSnapshot(
        material_trends=dict(_MATERIAL_PRICE_TRENDS),
        labor_availability=dict(_LABOR_AVAILABILITY_BY_REGION),
        regional_adjustments=dict(_REGIONAL_ADJUSTMENTS),
        points=tuple(
            MarketDataPoint(value=v, region=r, project_type=_SEED_NOTES, effective_date=_SEED_DATE)
            for r, v in _SEED_COST_PER_SF
        ),
    )


@dataclass(frozen=True)
class MarketAnalysisResult:
    material_cost_trend: float
    labor_availability_index: float
    regional_adjustment: float
    market_condition_score: float
    notes: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "material_cost_trend": self.material_cost_trend,
            "labor_availability_index": self.labor_availability_index,
            "regional_adjustment": self.regional_adjustment,
            "market_condition_score": self.market_condition_score,
            "notes": list(self.notes),
        }


@dataclass(frozen=True)
class BenchmarkQuery:
    region: str
    cost_per_sf: float
    project_type: Optional[str] = None
    effective_date: Optional[date] = None


@dataclass(frozen=True)
class BenchmarkResult:
    percentile: Optional[float]
    comparable_count: int
    regional_count: int
    market_average: Optional[float]
    median_cost: Optional[float]
    std_dev: Optional[float]
    variance_from_average_pct: Optional[float]
    category: str                     # below_market | competitive | above_market | insufficient_data
    confidence: float
    insufficient_data: bool
    notes: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "percentile": self.percentile,
            "comparable_count": self.comparable_count,
            "regional_count": self.regional_count,
            "market_average": self.market_average,
            "median_cost": self.median_cost,
            "std_dev": self.std_dev,
            "variance_from_average_pct": self.variance_from_average_pct,
            "category": self.category,
            "confidence": self.confidence,
            "insufficient_data": self.insufficient_data,
            "notes": list(self.notes),
        }


@dataclass(frozen=True)
class PricingPackage:
    label: str
    margin: float
    price: float
    estimated_win_probability: float  # percent
    notes: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "margin": self.margin,
            "price": self.price,
            "estimated_win_probability": self.estimated_win_probability,
            "notes": list(self.notes),
        }


def _finite(value: Any) -> bool:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


# ---------------------------------------------------------------------------
# Market conditions
# ---------------------------------------------------------------------------

def analyze_market_conditions(
    region: str,
    material_type: Optional[str] = None,
    snapshot: Optional[MarketSnapshot] = None,
) -> MarketAnalysisResult:
    """
    Regional market conditions from the snapshot's reference tables.

    Condition score: 100 - trend*50 - (100 - labor)*0.5 - adjustment*100,
    clamped to 0–100. A note is added whenever a default is used.
    """
    snapshot = snapshot or default_market_snapshot()
    notes: List[str] = []

    trends = {k.lower(): v for k, v in snapshot.material_trends.items()}
    material_key = (material_type or "").strip().lower()
    if material_key in trends:
        trend = trends[material_key]
    else:
        trend = _DEFAULT_MATERIAL_TREND
        notes.append(
            f"No specific trend for material '{material_type}', using default {trend * 100:g}%."
        )

    if region in snapshot.labor_availability:
        labor = snapshot.labor_availability[region]
    else:
        labor = _DEFAULT_LABOR_AVAILABILITY
        notes.append(f"No labor data for region '{region}', using default {labor:g}.")

    if region in snapshot.regional_adjustments:
        adjustment = snapshot.regional_adjustments[region]
    else:
        adjustment = _DEFAULT_REGIONAL_ADJUSTMENT
        notes.append(f"No regional adjustment for '{region}', using {adjustment:g}.")

    condition = 100.0 - trend * 50.0 - (100.0 - labor) * 0.5 - adjustment * 100.0
    condition = round(max(0.0, min(100.0, condition)), 2)

    return MarketAnalysisResult(
        material_cost_trend=trend,
        labor_availability_index=labor,
        regional_adjustment=adjustment,
        market_condition_score=condition,
        notes=notes,
    )


# ---------------------------------------------------------------------------
# Benchmarking
# ---------------------------------------------------------------------------

def _insufficient(regional_count: int, notes: List[str]) -> BenchmarkResult:
    return BenchmarkResult(
        percentile=None,
        comparable_count=0,
        regional_count=regional_count,
        market_average=None,
        median_cost=None,
        std_dev=None,
        variance_from_average_pct=None,
        category="insufficient_data",
        confidence=0.0,
        insufficient_data=True,
        notes=notes,
    )


def benchmark_project_cost(
    query: BenchmarkQuery,
    points: Iterable[MarketDataPoint],
    recency_days: Optional[int] = None,
) -> BenchmarkResult:
    """
    Rank query.cost_per_sf among comparable historical points.

    Comparable = same region (exact), project type contained in the point's
    notes (case-insensitive, when given), and effective within
    [query date - recency_days, query date] when the query is dated.
    Percentile uses the mid-rank: (below + 0.5 * equal) / n * 100.
    """
    recency_days = config.BENCHMARK_RECENCY_DAYS if recency_days is None else recency_days
    notes: List[str] = []

    usable = [p for p in points if _finite(p.value) and p.value > 0]

    if query.effective_date is not None:
        window_start = query.effective_date - timedelta(days=recency_days)
        usable = [
            p for p in usable
            if p.effective_date is not None and window_start <= p.effective_date <= query.effective_date
        ]

    regional = [p for p in usable if p.region == query.region]
    comparables = regional
    if query.project_type:
        wanted = query.project_type.strip().lower()
        comparables = [p for p in regional if p.project_type and wanted in p.project_type.lower()]

    if not _finite(query.cost_per_sf) or query.cost_per_sf <= 0:
        notes.append("Cost per SF must be a positive number; benchmark not computed.")
        return _insufficient(len(regional), notes)

    if not comparables:
        notes.append(
            f"No comparable market data for region '{query.region}'"
            + (f" and project type '{query.project_type}'" if query.project_type else "")
            + "."
        )
        return _insufficient(len(regional), notes)

    values = [p.value for p in comparables]
    n = len(values)
    cost = float(query.cost_per_sf)
    below = sum(1 for v in values if v < cost)
    equal = sum(1 for v in values if v == cost)
    percentile = round((below + 0.5 * equal) / n * 100.0, 2)

    average = statistics.fmean(values)
    median = statistics.median(values)
    std_dev = statistics.pstdev(values)
    variance_pct = (cost - average) / average * 100.0

    if percentile < config.BENCHMARK_BELOW_MARKET_PCTL:
        category = "below_market"
    elif percentile > config.BENCHMARK_ABOVE_MARKET_PCTL:
        category = "above_market"
    else:
        category = "competitive"

    confidence = round(min(1.0, n / config.BENCHMARK_FULL_CONFIDENCE_SAMPLE), 2)
    if n < config.BENCHMARK_FULL_CONFIDENCE_SAMPLE:
        notes.append(f"Only {n} comparable data point(s); confidence {confidence:.2f}.")
    notes.append(
        f"Cost ${cost:.2f}/SF is {abs(variance_pct):.1f}% "
        f"{'above' if variance_pct >= 0 else 'below'} the market average of ${average:.2f}/SF."
    )

    return BenchmarkResult(
        percentile=percentile,
        comparable_count=n,
        regional_count=len(regional),
        market_average=round(average, 2),
        median_cost=round(median, 2),
        std_dev=round(std_dev, 2),
        variance_from_average_pct=round(variance_pct, 2),
        category=category,
        confidence=confidence,
        insufficient_data=False,
        notes=notes,
    )


# ---------------------------------------------------------------------------
# Win probability
# ---------------------------------------------------------------------------

def calculate_win_probability(
    cost_per_sf: Optional[float],
    risk_score: Optional[float],
    market_percentile: Optional[float],
    project_type: Optional[str] = None,
    region: Optional[str] = None,
) -> float:
    """
    Logistic estimate of the chance a proposal is accepted, in [0, 1].

    Decreases as the market percentile rises (pricing above market) and as
    the 0–100 risk score rises. Cost enters through the percentile; a
    non-finite or missing input is replaced by its neutral value
    (percentile 50, risk 0). Project type applies a small offset.
    """
    percentile = market_percentile if _finite(market_percentile) else 50.0
    risk = risk_score if _finite(risk_score) else 0.0
    percentile = max(0.0, min(100.0, float(percentile)))
    risk = max(0.0, min(100.0, float(risk)))

    offset = 0.0
    if project_type:
        offset = config.WIN_MODEL_PROJECT_TYPE_OFFSETS.get(project_type.strip().upper(), 0.0)

    z = (
        config.WIN_MODEL_INTERCEPT
        - config.WIN_MODEL_PERCENTILE_WEIGHT * (percentile - 50.0) / 50.0
        - config.WIN_MODEL_RISK_WEIGHT * risk / 100.0
        + offset
    )
    probability = 1.0 / (1.0 + math.exp(-z))
    probability = round(max(0.0, min(1.0, probability)), 4)

    logger.debug(
        f"Win probability {probability} (percentile={percentile}, risk={risk}, "
        f"type={project_type}, region={region}, cost_per_sf={cost_per_sf})"
    )
    return probability


# ---------------------------------------------------------------------------
# Pricing packages
# ---------------------------------------------------------------------------

_PACKAGE_LABELS = ("Competitive", "Balanced", "Premium")
# Win-probability multiplier swing between the lowest and highest margin
_PACKAGE_WIN_SWING: float = 0.15


def recommend_packages(
    base_cost: float,
    market_average: Optional[float],
    market_percentile: Optional[float],
    win_probability: float,
    min_margin: float = config.PACKAGE_DEFAULT_MIN_MARGIN,
    max_margin: float = config.PACKAGE_DEFAULT_MAX_MARGIN,
) -> List[PricingPackage]:
    """
    Three pricing packages at the minimum, middle and maximum margin.

    Args:
        base_cost:         Cost before margin.
        market_average:    Market average price on the same basis as base_cost.
        market_percentile: Benchmark percentile of the cost (0–100) or None.
        win_probability:   Baseline win probability, 0–1.
        min_margin, max_margin: Margin range in percent.

    Raises:
        ValueError: if min_margin > max_margin.
    """
    if min_margin > max_margin:
        raise ValueError(
            f"min_margin ({min_margin}) must be less than or equal to max_margin ({max_margin})"
        )

    base_cost = float(base_cost) if _finite(base_cost) and base_cost > 0 else 0.0
    baseline = float(win_probability) if _finite(win_probability) else 0.5
    baseline = max(0.0, min(1.0, baseline))
    margins = (min_margin, (min_margin + max_margin) / 2.0, max_margin)
    span = max_margin - min_margin

    packages = []
    for label, margin in zip(_PACKAGE_LABELS, margins):
        position = (margin - min_margin) / span if span > 0 else 0.5
        price = round(base_cost * (1 + margin / 100.0), config.MONEY_DECIMALS)
        win = baseline * (1 + _PACKAGE_WIN_SWING * (1 - 2 * position))
        win_pct = round(max(0.0, min(1.0, win)) * 100.0, 1)

        notes = [f"{margin:g}% margin on ${base_cost:,.2f} base cost."]
        if _finite(market_average) and market_average > 0:
            diff = (price - market_average) / market_average * 100.0
            notes.append(
                f"Price is {abs(diff):.1f}% {'above' if diff >= 0 else 'below'} the market average."
            )
        else:
            notes.append("No market average available for comparison.")
        if label == "Premium" and _finite(market_percentile) \
                and market_percentile > config.BENCHMARK_ABOVE_MARKET_PCTL:
            notes.append(
                f"Cost already sits above the {config.BENCHMARK_ABOVE_MARKET_PCTL:g}th market percentile; "
                f"premium pricing lowers win odds."
            )

        packages.append(PricingPackage(
            label=label,
            margin=round(margin, 2),
            price=price,
            estimated_win_probability=win_pct,
            notes=notes,
        ))
    return packages
