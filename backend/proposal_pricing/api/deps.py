"""FastAPI dependency injection — catalog and market-data providers."""
from typing import Tuple

from fastapi import Depends, Request

from proposal_pricing.services.market_analysis import MarketSnapshot, default_market_snapshot
from proposal_pricing.services.pricing_orchestrator import PricingOrchestrator
from proposal_pricing.services.risk_catalog import RiskCategory, default_catalog


def get_risk_catalog(request: Request) -> Tuple[RiskCategory, ...]:
    """
    Catalog for this request.

    Uses app.state.risk_catalog when the lifespan (or a deployment hook) has
    installed one, otherwise the seeded default catalog. Override with
    app.dependency_overrides to plug in a persistence-backed provider.
    """
    catalog = getattr(request.app.state, "risk_catalog", None)
    return catalog if catalog is not None else default_catalog()


def get_market_snapshot(request: Request) -> MarketSnapshot:
    snapshot = getattr(request.app.state, "market_snapshot", None)
    return snapshot if snapshot is not None else default_market_snapshot()


def get_orchestrator(
    catalog: Tuple[RiskCategory, ...] = Depends(get_risk_catalog),
    snapshot: MarketSnapshot = Depends(get_market_snapshot),
) -> PricingOrchestrator:
    return PricingOrchestrator(categories=catalog, market_snapshot=snapshot)
