"""
Market API Routes

POST /api/market-data/benchmark           — cost-per-SF percentile benchmarking
POST /api/proposals/win-probability       — modelled win probability
POST /api/proposals/recommend-packages    — Competitive / Balanced / Premium packages
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from proposal_pricing.api.deps import get_market_snapshot
from proposal_pricing.models.pricing_schemas import (
    BenchmarkRequest,
    RecommendPackagesRequest,
    WinProbabilityRequest,
)
from proposal_pricing.services.market_analysis import (
    BenchmarkQuery,
    MarketSnapshot,
    benchmark_project_cost,
    calculate_win_probability,
    recommend_packages,
)

market_router = APIRouter(prefix="/api/market-data", tags=["Market Data"])
proposals_router = APIRouter(prefix="/api/proposals", tags=["Proposals"])
logger = logging.getLogger("proposal-pricing.api")


@market_router.post("/benchmark")
async def benchmark(req: BenchmarkRequest, snapshot: MarketSnapshot = Depends(get_market_snapshot)):
    """Benchmark against request-supplied points, or the market snapshot when none are given."""
    points = [p.to_point() for p in req.market_data] if req.market_data is not None else snapshot.points
    result = benchmark_project_cost(
        BenchmarkQuery(
            region=req.region,
            cost_per_sf=req.cost_per_sf,
            project_type=req.project_type,
            effective_date=req.effective_date,
        ),
        points,
    )
    return {"success": True, "result": result.to_dict()}


@proposals_router.post("/win-probability")
async def win_probability(req: WinProbabilityRequest):
    probability = calculate_win_probability(
        req.cost_per_sf, req.risk_score, req.market_percentile, req.project_type, req.region
    )
    return {"success": True, "win_probability": probability}


@proposals_router.post("/recommend-packages")
async def packages(req: RecommendPackagesRequest):
    try:
        result = recommend_packages(
            base_cost=req.base_cost,
            market_average=req.market_average,
            market_percentile=req.market_percentile,
            win_probability=req.win_probability,
            min_margin=req.min_margin,
            max_margin=req.max_margin,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "packages": [p.to_dict() for p in result]}
