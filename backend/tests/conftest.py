"""
conftest.py — Shared pytest fixtures for the proposal pricing test suite.

No database or external service fixtures are defined here. Engine tests are
pure unit tests; API tests drive the FastAPI app through TestClient.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``proposal_pricing.*`` imports resolve correctly regardless of where
    pytest is invoked.
"""

import sys
import os
from datetime import date

import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any package imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Catalog fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def seeded_catalog():
    """The default five-category glazing risk catalog."""
    from proposal_pricing.services.risk_catalog import default_catalog
    return default_catalog()


@pytest.fixture(scope="session")
def small_catalog():
    """
    Two-category catalog with round numbers for exact score arithmetic.

    Site (weight 60):
      Access  weight 50  choice: Easy 10 / Hard 90
      Height  weight 50  numeric 0–100 linear
    Commercial (weight 40):
      Rush Job weight 100 flag: yes 80 / no 0
    """
    from proposal_pricing.services.risk_catalog import (
        BooleanFlag, EnumeratedChoice, NumericScale, RiskCategory, RiskFactor,
    )
    return (
        RiskCategory(
            name="Site", weight=60.0, sort_order=1,
            factors=(
                RiskFactor("Access", 50.0, EnumeratedChoice(choices=(("Easy", 10.0), ("Hard", 90.0)))),
                RiskFactor("Height", 50.0, NumericScale(0.0, 100.0)),
            ),
        ),
        RiskCategory(
            name="Commercial", weight=40.0, sort_order=2,
            factors=(
                RiskFactor("Rush Job", 100.0, BooleanFlag(true_score=80.0, false_score=0.0)),
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def scoring_engine():
    """RiskScoringEngine with the configured bands."""
    from proposal_pricing.services.risk_scoring_engine import RiskScoringEngine
    return RiskScoringEngine()


@pytest.fixture(scope="session")
def orchestrator():
    """PricingOrchestrator over the seeded catalog and default market snapshot."""
    from proposal_pricing.services.pricing_orchestrator import PricingOrchestrator
    return PricingOrchestrator()


# ---------------------------------------------------------------------------
# Shared market data
# ---------------------------------------------------------------------------

@pytest.fixture
def northeast_points():
    """
    Ten Northeast commercial points at 40, 41, ... 49 $/SF dated 2024-06-01,
    plus one South point and one undated Northeast point.
    """
    from proposal_pricing.services.market_analysis import MarketDataPoint
    points = [
        MarketDataPoint(
            value=40.0 + i,
            region="Northeast",
            project_type="Commercial glazing, typical project",
            effective_date=date(2024, 6, 1),
        )
        for i in range(10)
    ]
    points.append(MarketDataPoint(value=38.0, region="South", project_type="Commercial",
                                  effective_date=date(2024, 6, 1)))
    points.append(MarketDataPoint(value=60.0, region="Northeast", project_type="Commercial"))
    return points


@pytest.fixture
def client():
    """TestClient with the application lifespan running (rate-limit store installed)."""
    from fastapi.testclient import TestClient
    from proposal_pricing.main import app
    with TestClient(app) as c:
        yield c
