"""
Pricing API Routes

POST /api/pricing/enhanced     — risk-adjusted pricing with legacy fallback
POST /api/pricing/legacy       — single-scalar legacy pricing
GET  /api/pricing/risk-factors — active risk catalog
"""
import logging
from typing import Tuple

from fastapi import APIRouter, Depends, Request

from proposal_pricing.api.deps import get_orchestrator, get_risk_catalog
from proposal_pricing.models.pricing_schemas import EnhancedPricingRequest, LegacyPricingRequest
from proposal_pricing.services.pricing_orchestrator import PricingOrchestrator, calculate_proposal_pricing
from proposal_pricing.services.risk_catalog import RiskCategory

router = APIRouter(prefix="/api/pricing", tags=["Pricing"])
logger = logging.getLogger("proposal-pricing.api")


@router.post("/enhanced")
async def price_enhanced(
    req: EnhancedPricingRequest,
    request: Request,
    orchestrator: PricingOrchestrator = Depends(get_orchestrator),
):
    """Full enhanced calculation. Always returns a priced result."""
    result = orchestrator.price_proposal(req.to_request())
    if result.fallback_used:
        logger.info(
            f"Enhanced pricing fell back to legacy contingency ({len(result.errors)} error(s))",
            extra={
                "calculation_id": result.calculation_id,
                "request_id": getattr(request.state, "request_id", None),
                "fallback_used": True,
            },
        )
    return {"success": True, "result": result.to_dict()}


@router.post("/legacy")
async def price_legacy(req: LegacyPricingRequest):
    return {
        "success": True,
        "result": calculate_proposal_pricing(
            req.base_cost, req.overhead_percentage, req.profit_margin, req.risk_score
        ),
    }


@router.get("/risk-factors")
async def list_risk_factors(catalog: Tuple[RiskCategory, ...] = Depends(get_risk_catalog)):
    """Active categories and their active factors, in display order."""
    categories = []
    for category in catalog:
        if not category.is_active:
            continue
        data = category.to_dict()
        data["factors"] = [f.to_dict() for f in category.active_factors()]
        categories.append(data)
    return {"success": True, "categories": categories}
