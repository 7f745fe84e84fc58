"""
test_import_safety.py — Import and layering checks.

Verifies that:
  1. Every module imports without circular import failures.
  2. The pricing engines are standalone: no FastAPI / Starlette imports, so
     they can be called from scripts and workers without the web layer.
  3. Module-level configuration constants are sane.

No network or external services are required.
"""

import importlib
import inspect

import pytest


_ENGINE_MODULES = [
    "proposal_pricing.services.risk_input_validator",
    "proposal_pricing.services.risk_catalog",
    "proposal_pricing.services.risk_scoring_engine",
    "proposal_pricing.services.market_analysis",
    "proposal_pricing.services.margin_engine",
    "proposal_pricing.services.confidence_engine",
    "proposal_pricing.services.pricing_orchestrator",
]

_BOUNDARY_MODULES = [
    "proposal_pricing.config",
    "proposal_pricing.models.risk_catalog_schema",
    "proposal_pricing.models.pricing_schemas",
    "proposal_pricing.services.logging_config",
    "proposal_pricing.services.middleware",
    "proposal_pricing.api.deps",
    "proposal_pricing.api.pricing_routes",
    "proposal_pricing.api.market_routes",
    "proposal_pricing.main",
]


class TestModuleImports:
    """All modules must import cleanly."""

    @pytest.mark.parametrize("module_path", _ENGINE_MODULES + _BOUNDARY_MODULES)
    def test_module_imports(self, module_path):
        mod = importlib.import_module(module_path)
        assert mod is not None, f"Module {module_path} is None after import"


class TestEngineLayering:
    """Engines must not depend on the HTTP layer."""

    @pytest.mark.parametrize("module_path", _ENGINE_MODULES)
    def test_engine_has_no_web_imports(self, module_path):
        src = inspect.getsource(importlib.import_module(module_path))
        assert "import fastapi" not in src and "from fastapi" not in src, (
            f"{module_path} must not depend on FastAPI"
        )
        assert "starlette" not in src, f"{module_path} must not depend on Starlette"

    def test_engines_do_not_import_api_package(self):
        for module_path in _ENGINE_MODULES:
            src = inspect.getsource(importlib.import_module(module_path))
            assert "proposal_pricing.api" not in src, (
                f"{module_path} imports the API package (circular risk)"
            )


class TestConfigConstants:
    """Band tables must be contiguous and monotone."""

    def test_contingency_bands_contiguous(self):
        from proposal_pricing import config
        bands = [config.CONTINGENCY_BANDS[level] for level in ("LOW", "MEDIUM", "HIGH", "SEVERE")]
        assert bands[0][0] == 0 and bands[-1][1] == 100
        for (_, end, _, rate_end), (start, _, rate_start, _) in zip(bands, bands[1:]):
            assert end == start, "score bands must be contiguous"
            assert abs(rate_end - rate_start) < 1e-12, "rates must be continuous at band edges"

    def test_risk_level_bands_ascending(self):
        from proposal_pricing import config
        lower_bounds = [lower for lower, _ in config.RISK_LEVEL_BANDS]
        assert lower_bounds == sorted(lower_bounds)
        assert lower_bounds[0] == 0

    def test_legacy_constants(self):
        from proposal_pricing import config
        assert config.LEGACY_RATE_PER_POINT == 0.02
        assert config.LEGACY_RISK_SCORE_MAX == 10

    def test_overhead_tiers_ascending_and_open_ended(self):
        import math
        from proposal_pricing import config
        bounds = [bound for bound, _, _ in config.OVERHEAD_TIERS]
        assert bounds == sorted(bounds)
        assert math.isinf(bounds[-1])
        assert abs(sum(config.OVERHEAD_CATEGORY_SHARES.values()) - 1.0) < 1e-12


class TestEntryPoint:
    """main.py starts the app under uvicorn when run directly."""

    def test_main_runs_under_uvicorn(self):
        src = inspect.getsource(importlib.import_module("proposal_pricing.main"))
        assert "uvicorn.run(" in src
        assert '"proposal_pricing.main:app"' in src
