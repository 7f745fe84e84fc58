"""
Glazing Proposal Pricing API v1.0
FastAPI boundary over the risk-adjusted pricing engine: enhanced and legacy
pricing, risk catalog listing, market benchmarking and win probability.
"""
import os
import time
import logging
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# .env must be loaded before config reads its environment overrides
load_dotenv()

from proposal_pricing import config  # noqa: E402
from proposal_pricing.api.market_routes import market_router, proposals_router  # noqa: E402
from proposal_pricing.api.pricing_routes import router as pricing_router  # noqa: E402
from proposal_pricing.services.logging_config import setup_logging  # noqa: E402
from proposal_pricing.services.market_analysis import default_market_snapshot  # noqa: E402
from proposal_pricing.services.middleware import (  # noqa: E402
    RateLimitMiddleware,
    RequestTimingMiddleware,
    SecurityHeadersMiddleware,
    SlidingWindowCounterStore,
)
from proposal_pricing.services.risk_catalog import default_catalog  # noqa: E402

APP_VERSION = "1.0.0"

_log_level = os.getenv("LOG_LEVEL", "INFO")
_json_logs = os.getenv("LOG_FORMAT", "json").lower() != "text"
setup_logging(level=_log_level, json_output=_json_logs, engine_level=os.getenv("ENGINE_LOG_LEVEL"))
logger = logging.getLogger("proposal-pricing.api")

_PROCESS_START = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Per-app state; nothing here is a module global
    app.state.rate_limit_store = SlidingWindowCounterStore(
        limit=config.RATE_LIMIT_PER_MINUTE,
        window_seconds=config.RATE_LIMIT_WINDOW_SECONDS,
    )
    app.state.risk_catalog = default_catalog()
    app.state.market_snapshot = default_market_snapshot()
    logger.info(
        f"Pricing API started: {len(app.state.risk_catalog)} risk categories, "
        f"{len(app.state.market_snapshot.points)} market data points, "
        f"rate limit {config.RATE_LIMIT_PER_MINUTE}/min"
    )
    yield
    app.state.rate_limit_store.reset()


app = FastAPI(
    title="Glazing Proposal Pricing API",
    version=APP_VERSION,
    description="Risk-adjusted proposal pricing for glazing contractors",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# CORS: allowed origins from env
# ---------------------------------------------------------------------------
_cors_default = "http://localhost:3000,http://localhost:8000"
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RateLimitMiddleware)
# Request timing + X-Request-ID must be outermost so it wraps all other middleware
app.add_middleware(RequestTimingMiddleware)

app.include_router(pricing_router)
app.include_router(market_router)
app.include_router(proposals_router)


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "version": APP_VERSION,
        "uptime_seconds": round(time.monotonic() - _PROCESS_START, 1),
    }


if __name__ == "__main__":
    uvicorn.run(
        "proposal_pricing.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "false").lower() == "true",
    )
