"""
Risk catalog — typed risk categories and factors used by the scoring engine.

Each factor carries one of a closed set of kinds (numeric scale, enumerated
choice, boolean flag). The kind owns its configuration and resolves a raw
input value into a 0–100 sub-score via score(); nothing is interpreted from
opaque blobs and no stored formula is ever executed.
"""
import math
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterable, Mapping, Optional, Tuple, Union

from proposal_pricing.models.risk_catalog_schema import RiskCategoryRecord, RiskFactorRecord

logger = logging.getLogger("proposal-pricing.risk")

# (sub-score, note explaining a fallback or mismatch)
Resolution = Tuple[float, Optional[str]]

_TRUE_STRINGS = {"true", "yes", "y", "1"}
_FALSE_STRINGS = {"false", "no", "n", "0"}
_CURVE_NAMES = ("linear", "exponential", "stepped")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _finite_float(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _clamp_score(score: float) -> float:
    return max(0.0, min(100.0, float(score)))


def normalize_to_scale(value: float, min_value: float, max_value: float) -> float:
    """Map value onto 0–100 over [min_value, max_value]; degenerate range → 50."""
    if max_value == min_value:
        return 50.0
    return _clamp_score((value - min_value) / (max_value - min_value) * 100.0)


# ---------------------------------------------------------------------------
# Factor kinds
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NumericScale:
    """Numeric input mapped over a range with a linear, exponential or stepped curve."""
    kind: ClassVar[str] = "numeric"

    min_value: Optional[float] = 0.0
    max_value: Optional[float] = 100.0
    curve: str = "linear"  # linear | exponential | stepped
    # (normalized upper bound, score); first bound above the value wins
    steps: Tuple[Tuple[float, float], ...] = ((30.0, 25.0), (70.0, 50.0), (100.0, 75.0))

    def __post_init__(self):
        if self.curve not in _CURVE_NAMES:
            raise ValueError(f"curve must be one of {_CURVE_NAMES}, got {self.curve!r}")
        if self.curve == "stepped" and not self.steps:
            raise ValueError("stepped curve requires at least one step")

    def score(self, value: Any) -> Resolution:
        if isinstance(value, bool):
            return 0.0, "expected a number, got boolean"
        if isinstance(value, str):
            try:
                value = float(value.replace(",", ""))
            except ValueError:
                return 0.0, f"expected a number, got text {value!r}"
        number = _finite_float(value) if _is_number(value) else None
        if number is None:
            return 0.0, "expected a finite number"
        if self.min_value is None or self.max_value is None:
            return 50.0, "no range configured; neutral score used"

        normalized = normalize_to_scale(number, self.min_value, self.max_value)
        if self.curve == "exponential":
            return (normalized / 100.0) ** 0.7 * 100.0, None
        if self.curve == "stepped":
            for bound, step_score in self.steps:
                if normalized < bound:
                    return _clamp_score(step_score), None
            return _clamp_score(self.steps[-1][1]), None
        return normalized, None

    def describe(self) -> dict:
        return {
            "kind": self.kind,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "curve": self.curve,
        }


@dataclass(frozen=True)
class EnumeratedChoice:
    """Text input matched against labelled choices."""
    kind: ClassVar[str] = "choice"

    choices: Tuple[Tuple[str, float], ...] = ()
    fallback_score: float = 50.0

    def score(self, value: Any) -> Resolution:
        if isinstance(value, bool):
            return 0.0, "expected a choice label, got boolean"
        if _is_number(value):
            number = _finite_float(value)
            if number is None:
                return 0.0, "expected a finite number"
            return _clamp_score(number), "numeric input used as a direct score"
        if not isinstance(value, str):
            return 0.0, "expected a choice label"

        wanted = value.strip().casefold()
        for label, choice_score in self.choices:
            if label.casefold() == wanted:
                return _clamp_score(choice_score), None
        if wanted:
            prefixed = [(l, s) for l, s in self.choices if l.casefold().startswith(wanted)]
            if len(prefixed) == 1:
                return _clamp_score(prefixed[0][1]), f"matched option '{prefixed[0][0]}'"
        return _clamp_score(self.fallback_score), f"'{value}' is not a known option; neutral score used"

    def describe(self) -> dict:
        return {
            "kind": self.kind,
            "choices": [{"label": l, "score": s} for l, s in self.choices],
        }


@dataclass(frozen=True)
class BooleanFlag:
    """Yes/no input."""
    kind: ClassVar[str] = "flag"

    true_score: float = 100.0
    false_score: float = 0.0

    def score(self, value: Any) -> Resolution:
        if isinstance(value, bool):
            flag = value
        elif isinstance(value, str) and value.strip().casefold() in _TRUE_STRINGS | _FALSE_STRINGS:
            flag = value.strip().casefold() in _TRUE_STRINGS
        elif _is_number(value) and _finite_float(value) is not None:
            flag = value != 0
        else:
            return 0.0, "expected a yes/no value"
        return _clamp_score(self.true_score if flag else self.false_score), None

    def describe(self) -> dict:
        return {"kind": self.kind, "true_score": self.true_score, "false_score": self.false_score}


FactorKind = Union[NumericScale, EnumeratedChoice, BooleanFlag]


@dataclass(frozen=True)
class RiskFactor:
    name: str
    weight: float
    kind: FactorKind
    is_active: bool = True
    sort_order: int = 0
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "weight": self.weight,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
            **self.kind.describe(),
        }


@dataclass(frozen=True)
class RiskCategory:
    name: str
    weight: float
    factors: Tuple[RiskFactor, ...] = field(default_factory=tuple)
    is_active: bool = True
    sort_order: int = 0
    description: str = ""

    def active_factors(self) -> Tuple[RiskFactor, ...]:
        return tuple(f for f in self.factors if f.is_active)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "weight": self.weight,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
            "factors": [f.to_dict() for f in self.factors],
        }


# ---------------------------------------------------------------------------
# Loading from stored records
# ---------------------------------------------------------------------------

_CURVES = {"LINEAR": "linear", "EXPONENTIAL": "exponential", "THRESHOLD": "stepped"}


def _kind_from_record(record: RiskFactorRecord) -> FactorKind:
    if record.scoring_type == "CATEGORICAL":
        return EnumeratedChoice(choices=tuple((o.label, o.score) for o in record.options))
    if record.scoring_type == "BOOLEAN" or record.data_type == "BOOLEAN":
        return BooleanFlag()
    if record.scoring_type == "FORMULA":
        logger.warning(
            f"Risk factor '{record.name}': stored formula ignored, scored linearly over "
            f"[{record.min_value}, {record.max_value}]"
        )
        return NumericScale(min_value=record.min_value, max_value=record.max_value)
    return NumericScale(
        min_value=record.min_value,
        max_value=record.max_value,
        curve=_CURVES[record.scoring_type],
    )


def load_catalog(
    records: Iterable[Union[Mapping[str, Any], RiskCategoryRecord]],
) -> Tuple[RiskCategory, ...]:
    """
    Build the typed catalog from persistence-style category records.

    Raises pydantic.ValidationError when a record does not match
    RiskCategoryRecord; categories and factors are ordered by sort_order.
    """
    categories = []
    for raw in records:
        record = raw if isinstance(raw, RiskCategoryRecord) else RiskCategoryRecord.model_validate(raw)
        factors = tuple(
            RiskFactor(
                name=f.name,
                weight=f.weight,
                kind=_kind_from_record(f),
                is_active=f.is_active,
                sort_order=f.sort_order,
                description=f.description or "",
            )
            for f in sorted(record.factors, key=lambda f: (f.sort_order, f.name))
        )
        categories.append(RiskCategory(
            name=record.name,
            weight=record.weight,
            factors=factors,
            is_active=record.is_active,
            sort_order=record.sort_order,
            description=record.description or "",
        ))
    return tuple(sorted(categories, key=lambda c: (c.sort_order, c.name)))


# ---------------------------------------------------------------------------
# Default seeded catalog
# ---------------------------------------------------------------------------

def _choices(*pairs: Tuple[str, float]) -> EnumeratedChoice:
    return EnumeratedChoice(choices=tuple(pairs))


_DEFAULT_CATALOG: Tuple[RiskCategory, ...] = (
    RiskCategory(
        name="Schedule Risks", weight=25.0, sort_order=1,
        description="Risks related to project timeline and scheduling",
        factors=(
            RiskFactor("Weather Delays", 35.0, _choices(
                ("Minimal Risk (0-5 days)", 10), ("Low Risk (5-10 days)", 25),
                ("Medium Risk (10-20 days)", 50), ("High Risk (20-30 days)", 75),
                ("Critical Risk (30+ days)", 100),
            ), sort_order=1, description="Potential delays due to adverse weather conditions"),
            RiskFactor("Permit Delays", 25.0, _choices(
                ("Permits in hand", 0), ("Permits pending, expected approval", 20),
                ("Permits pending, uncertain timeline", 40), ("Permits not yet applied for", 60),
                ("Complex permitting requirements", 80),
            ), sort_order=2, description="Delays in obtaining necessary permits and approvals"),
            RiskFactor("Seasonal Constraints", 20.0, _choices(
                ("No seasonal constraints", 0), ("Minor seasonal impact", 15),
                ("Moderate seasonal constraints", 35), ("Major seasonal constraints", 60),
                ("Critical seasonal limitations", 85),
            ), sort_order=3, description="Project timeline affected by seasonal factors"),
            RiskFactor("Material Lead Times", 20.0, NumericScale(0.0, 90.0),
                       sort_order=4, description="Lead time in days for critical materials"),
        ),
    ),
    RiskCategory(
        name="Technical Risks", weight=20.0, sort_order=2,
        description="Risks related to technical complexity and requirements",
        factors=(
            RiskFactor("Project Complexity", 30.0, _choices(
                ("Standard installation", 10), ("Minor customizations", 25),
                ("Moderate complexity", 45), ("High complexity", 70), ("Extreme complexity", 90),
            ), sort_order=1, description="Technical complexity of the glazing project"),
            RiskFactor("New Technology", 25.0, _choices(
                ("Proven technology only", 0), ("Minor new elements", 20),
                ("Some new technology", 40), ("Significant new technology", 65),
                ("Cutting-edge technology", 85),
            ), sort_order=2, description="Use of new or untested technologies or materials"),
            RiskFactor("Site Access", 20.0, _choices(
                ("Easy access", 5), ("Standard access", 15), ("Limited access", 35),
                ("Difficult access", 60), ("Extreme access challenges", 85),
            ), sort_order=3, description="Complexity of site access and logistics"),
            RiskFactor("Height and Safety", 25.0, NumericScale(0.0, 100.0),
                       sort_order=4, description="Working height in metres"),
        ),
    ),
    RiskCategory(
        name="Financial Risks", weight=30.0, sort_order=3,
        description="Risks related to costs, pricing, and financial factors",
        factors=(
            RiskFactor("Material Price Volatility", 35.0, NumericScale(0.0, 50.0, curve="exponential"),
                       sort_order=1, description="Expected material price swing, percent"),
            RiskFactor("Labor Availability", 25.0, _choices(
                ("Abundant skilled labor", 5), ("Adequate labor pool", 20),
                ("Limited labor availability", 45), ("Scarce skilled labor", 70),
                ("Critical labor shortage", 90),
            ), sort_order=2, description="Availability of skilled labor for the project"),
            RiskFactor("Economic Conditions", 20.0, _choices(
                ("Stable economy", 10), ("Minor economic uncertainty", 25),
                ("Moderate economic volatility", 45), ("High economic uncertainty", 70),
                ("Economic crisis conditions", 90),
            ), sort_order=3, description="Impact of current economic conditions on project costs"),
            RiskFactor("Currency Fluctuation", 20.0, NumericScale(0.0, 30.0),
                       sort_order=4, description="Expected exchange-rate swing, percent"),
        ),
    ),
    RiskCategory(
        name="Operational Risks", weight=15.0, sort_order=4,
        description="Risks related to operations, logistics, and execution",
        factors=(
            RiskFactor("Subcontractor Reliability", 40.0, _choices(
                ("Proven reliable subcontractors", 5), ("Generally reliable", 20),
                ("Mixed reliability", 45), ("Questionable reliability", 70),
                ("Unknown or unreliable", 90),
            ), sort_order=1, description="Reliability and track record of subcontractors"),
            RiskFactor("Equipment Availability", 30.0, _choices(
                ("Equipment readily available", 5), ("Standard equipment needs", 20),
                ("Some specialized equipment", 40), ("Significant equipment challenges", 65),
                ("Critical equipment shortages", 85),
            ), sort_order=2, description="Availability of required equipment and machinery"),
            RiskFactor("Quality Control", 30.0, _choices(
                ("Standard QC requirements", 10), ("Enhanced QC needed", 25),
                ("Specialized QC procedures", 45), ("Complex QC requirements", 70),
                ("Extreme QC standards", 90),
            ), sort_order=3, description="Complexity of quality control requirements"),
        ),
    ),
    RiskCategory(
        name="Environmental Risks", weight=10.0, sort_order=5,
        description="Risks related to environmental factors and site conditions",
        factors=(
            RiskFactor("Site Conditions", 40.0, _choices(
                ("Ideal site conditions", 5), ("Standard site conditions", 20),
                ("Challenging site conditions", 45), ("Difficult site conditions", 70),
                ("Extreme site challenges", 90),
            ), sort_order=1, description="Environmental and site-specific conditions"),
            RiskFactor("Environmental Regulations", 35.0, _choices(
                ("Standard compliance", 10), ("Enhanced compliance", 25),
                ("Specialized compliance", 45), ("Complex compliance", 70),
                ("Extreme compliance requirements", 90),
            ), sort_order=2, description="Complexity of environmental compliance requirements"),
            RiskFactor("Weather Sensitivity", 25.0, _choices(
                ("Weather independent", 0), ("Minimal weather impact", 15),
                ("Moderate weather sensitivity", 35), ("High weather sensitivity", 60),
                ("Extreme weather sensitivity", 85),
            ), sort_order=3, description="Project sensitivity to weather conditions"),
        ),
    ),
)


def default_catalog() -> Tuple[RiskCategory, ...]:
    """The seeded five-category glazing risk catalog."""
    return _DEFAULT_CATALOG
