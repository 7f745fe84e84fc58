"""
Request shapes for the pricing API.

These models enforce structure only (ranges, required fields, enumerated
project types). risk_factor_inputs stays free-form: its content is screened
by the risk input validator inside the engine.
"""
from datetime import date
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from proposal_pricing import config
from proposal_pricing.services.market_analysis import MarketDataPoint
from proposal_pricing.services.pricing_orchestrator import PricingRequest, ProjectAttributes

ProjectType = Literal[
    "COMMERCIAL", "RESIDENTIAL", "INDUSTRIAL", "INSTITUTIONAL", "RETAIL",
    "HOSPITALITY", "HEALTHCARE", "EDUCATIONAL", "OTHER",
]


class _FiniteModel(BaseModel):
    """Rejects NaN and Infinity in every float field."""
    model_config = ConfigDict(allow_inf_nan=False)


class MarketDataPointIn(_FiniteModel):
    value: float = Field(..., gt=0, le=config.MAX_COST_PER_SF, description="Cost per SF")
    region: str = Field(..., min_length=1)
    project_type: Optional[str] = Field(None, description="Free-text notes, e.g. 'Commercial glazing'")
    effective_date: Optional[date] = None

    def to_point(self) -> MarketDataPoint:
        return MarketDataPoint(
            value=self.value,
            region=self.region,
            project_type=self.project_type,
            effective_date=self.effective_date,
        )


class ProjectAttributesIn(_FiniteModel):
    region: Optional[str] = Field(None, description="e.g., Northeast")
    project_type: Optional[ProjectType] = None
    material_type: Optional[str] = Field(None, description="glass | aluminum | steel")
    square_footage: Optional[float] = Field(None, gt=0)
    cost_per_sf: Optional[float] = Field(None, gt=0, le=config.MAX_COST_PER_SF)
    effective_date: Optional[date] = None


class EnhancedPricingRequest(_FiniteModel):
    base_cost: float = Field(..., ge=0, le=config.MAX_BASE_COST)
    overhead_percentage: float = Field(config.DEFAULT_OVERHEAD_PCT, ge=0, le=100)
    profit_margin: float = Field(config.DEFAULT_PROFIT_MARGIN_PCT, ge=0, le=100)
    risk_factor_inputs: Optional[Dict[str, Any]] = Field(
        None, description="Factor name -> {value, notes}. Content-checked by the engine."
    )
    project_attributes: Optional[ProjectAttributesIn] = None
    legacy_risk_score: Optional[float] = Field(None, ge=0, le=config.LEGACY_RISK_SCORE_MAX)
    market_data: Optional[List[MarketDataPointIn]] = None
    confidence_factors: Optional[Dict[str, float]] = Field(
        None, description="Estimate confidence factor -> 0-100 score, e.g. data_completeness"
    )

    def to_request(self) -> PricingRequest:
        attrs = None
        if self.project_attributes is not None:
            attrs = ProjectAttributes(**self.project_attributes.model_dump())
        return PricingRequest(
            base_cost=self.base_cost,
            overhead_percentage=self.overhead_percentage,
            profit_margin=self.profit_margin,
            risk_factor_inputs=self.risk_factor_inputs,
            project_attributes=attrs,
            legacy_risk_score=self.legacy_risk_score,
            market_data=tuple(p.to_point() for p in self.market_data) if self.market_data is not None else None,
            confidence_factors=self.confidence_factors,
        )


class LegacyPricingRequest(_FiniteModel):
    base_cost: float = Field(..., ge=0, le=config.MAX_BASE_COST)
    overhead_percentage: float = Field(config.DEFAULT_OVERHEAD_PCT, ge=0, le=100)
    profit_margin: float = Field(config.DEFAULT_PROFIT_MARGIN_PCT, ge=0, le=100)
    risk_score: float = Field(0.0, ge=0, le=config.LEGACY_RISK_SCORE_MAX)


class BenchmarkRequest(_FiniteModel):
    region: str = Field(..., min_length=1)
    cost_per_sf: float = Field(..., gt=0, le=config.MAX_COST_PER_SF)
    project_type: Optional[str] = None
    effective_date: Optional[date] = None
    market_data: Optional[List[MarketDataPointIn]] = None


class WinProbabilityRequest(_FiniteModel):
    cost_per_sf: float = Field(..., ge=0, le=config.MAX_COST_PER_SF)
    risk_score: float = Field(..., ge=0, le=100)
    market_percentile: float = Field(..., ge=0, le=100)
    project_type: Optional[ProjectType] = None
    region: Optional[str] = None


class RecommendPackagesRequest(_FiniteModel):
    base_cost: float = Field(..., ge=0, le=config.MAX_BASE_COST)
    market_average: float = Field(..., ge=0, le=config.MAX_BASE_COST)
    market_percentile: Optional[float] = Field(None, ge=0, le=100)
    win_probability: float = Field(..., ge=0, le=1)
    min_margin: float = Field(config.PACKAGE_DEFAULT_MIN_MARGIN, ge=0, le=100)
    max_margin: float = Field(config.PACKAGE_DEFAULT_MAX_MARGIN, ge=0, le=100)
