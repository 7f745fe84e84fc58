"""
Pricing engine configuration — single source of truth for validation limits,
risk bands, contingency bands, market benchmarking and pricing defaults.

Import from here in all services rather than hardcoding values.
"""
from __future__ import annotations

import os


# ── Risk factor input validation ──────────────────────────────────────────────

MAX_STRING_VALUE_LENGTH: int = 1000
MAX_NOTES_LENGTH: int = 2000

# |value| above this is flagged as an extreme value (warning only)
EXTREME_VALUE_THRESHOLD: float = 1000.0

# How negative numeric risk values are treated: "warn" | "error" | "allow"
NEGATIVE_VALUE_POLICY: str = os.getenv("NEGATIVE_RISK_VALUE_POLICY", "warn").strip().lower()

# Content signatures rejected in string values (matched case-insensitively)
INJECTION_PATTERNS: tuple[str, ...] = (
    r"<\s*script\b",
    r"javascript\s*:",
    r"\bon\w+\s*=",
    r"\beval\s*\(",
    r"\bdocument\s*\.",
    r"\bwindow\s*\.",
)


# ── Risk level bands ──────────────────────────────────────────────────────────
# (lower bound inclusive, level). Upper bound is the next band's lower bound;
# the last band is closed at 100.
RISK_LEVEL_BANDS: tuple[tuple[float, str], ...] = (
    (0.0, "LOW"),
    (25.0, "MEDIUM"),
    (50.0, "HIGH"),
    (75.0, "SEVERE"),
)


# ── Contingency bands ─────────────────────────────────────────────────────────
# level -> (band start score, band end score, rate at start, rate at end).
# Piecewise linear and continuous: 0 % at score 0, 20 % at score 100.
CONTINGENCY_BANDS: dict[str, tuple[float, float, float, float]] = {
    "LOW":    (0.0, 25.0, 0.00, 0.05),
    "MEDIUM": (25.0, 50.0, 0.05, 0.10),
    "HIGH":   (50.0, 75.0, 0.10, 0.15),
    "SEVERE": (75.0, 100.0, 0.15, 0.20),
}

# Factor sub-score above which mitigation advice is generated
TOP_DRIVER_SCORE_THRESHOLD: float = 60.0
TOP_DRIVER_LIMIT: int = 3

# Market-aware contingency recommendation uplifts (advisory only)
CONTINGENCY_RECOMMENDATION_FLOOR: float = 0.0
CONTINGENCY_RECOMMENDATION_CAP: float = 0.25
RISING_MATERIAL_TREND: float = 0.10
LOW_LABOR_AVAILABILITY: float = 65.0
WEAK_MARKET_CONDITION: float = 60.0
MARKET_UPLIFT_PER_SIGNAL: float = 0.01


# ── Legacy pricing ────────────────────────────────────────────────────────────

LEGACY_RISK_SCORE_MAX: float = 10.0
LEGACY_RATE_PER_POINT: float = 0.02          # 2 % per legacy risk point
LEGACY_MIN_WIN_PROBABILITY_PCT: float = 10.0
LEGACY_WIN_PROBABILITY_DROP_PER_POINT: float = 8.0


# ── Pricing defaults ──────────────────────────────────────────────────────────

DEFAULT_OVERHEAD_PCT: float = float(os.getenv("DEFAULT_OVERHEAD_PCT", "15"))
DEFAULT_PROFIT_MARGIN_PCT: float = float(os.getenv("DEFAULT_PROFIT_MARGIN_PCT", "20"))
MONEY_DECIMALS: int = 2

# Request-level ceiling on base cost; keeps every pricing amount finite
MAX_BASE_COST: float = float(os.getenv("MAX_BASE_COST", "1e12"))
MAX_COST_PER_SF: float = 1e6


# ── Size-based overhead (advisory) ────────────────────────────────────────────
# (project size upper bound, exclusive; overhead rate; description).
# The last tier is open-ended.
OVERHEAD_TIERS: tuple[tuple[float, float, str], ...] = (
    (50_000.0, 0.18, "Small projects (<$50k)"),
    (200_000.0, 0.16, "Medium projects ($50k-$200k)"),
    (500_000.0, 0.14, "Large projects ($200k-$500k)"),
    (1_000_000.0, 0.12, "Very large projects ($500k-$1M)"),
    (float("inf"), 0.10, "Mega projects (>$1M)"),
)
OVERHEAD_FALLBACK_RATE: float = 0.15
# Share of the overhead amount per cost category
OVERHEAD_CATEGORY_SHARES: dict[str, float] = {
    "administrative": 0.45,
    "equipment": 0.30,
    "insurance": 0.15,
    "other": 0.10,
}
OVERHEAD_TYPICAL_MAX_SIZE: float = 10_000_000.0
OVERHEAD_LOW_RATE_WARNING: float = 0.05


# ── Risk-adjusted profit margin (advisory) ────────────────────────────────────

MARGIN_MIN_PCT: float = 5.0
MARGIN_MAX_PCT: float = 35.0
MARGIN_RISK_MULTIPLIERS: dict[str, float] = {
    "LOW": 0.8,
    "MEDIUM": 1.0,
    "HIGH": 1.3,
    "SEVERE": 1.6,
}
# adjustment -> (average factor score threshold, margin multiplier)
MARGIN_FACTOR_ADJUSTMENTS: dict[str, tuple[float, float]] = {
    "technical": (70.0, 1.15),
    "timeline": (60.0, 1.20),
    "client": (50.0, 1.10),
    "market": (65.0, 1.05),
}


# ── Estimate confidence ───────────────────────────────────────────────────────
# Factor weights; normalized by their sum when scoring
CONFIDENCE_FACTOR_WEIGHTS: dict[str, float] = {
    "data_completeness": 0.11,
    "data_accuracy": 0.09,
    "data_recency": 0.07,
    "historical_accuracy": 0.14,
    "estimate_frequency": 0.08,
    "variance_from_historical": 0.09,
    "scope_complexity": 0.08,
    "technical_uncertainty": 0.08,
    "requirement_clarity": 0.08,
    "market_data_age": 0.05,
    "market_volatility": 0.05,
    "supplier_reliability": 0.03,
    "risk_assessment_confidence": 0.05,
    "risk_factor_coverage": 0.03,
}
CONFIDENCE_DEFAULT_FACTOR_SCORE: float = 50.0
# Factor count at which risk factor coverage reaches 100
CONFIDENCE_FULL_COVERAGE_FACTORS: int = 20
# (upper bound inclusive, level, +/- uncertainty as a fraction of the estimate)
CONFIDENCE_LEVEL_BANDS: tuple[tuple[float, str, float], ...] = (
    (20.0, "VERY_LOW", 0.25),
    (40.0, "LOW", 0.15),
    (60.0, "MEDIUM", 0.10),
    (80.0, "HIGH", 0.05),
    (100.0, "VERY_HIGH", 0.02),
)


# ── Market benchmarking ───────────────────────────────────────────────────────

BENCHMARK_RECENCY_DAYS: int = int(os.getenv("BENCHMARK_RECENCY_DAYS", "730"))
BENCHMARK_FULL_CONFIDENCE_SAMPLE: int = 10
BENCHMARK_BELOW_MARKET_PCTL: float = 25.0
BENCHMARK_ABOVE_MARKET_PCTL: float = 75.0

# Logistic win-probability model coefficients
WIN_MODEL_INTERCEPT: float = 0.8
WIN_MODEL_PERCENTILE_WEIGHT: float = 1.6     # per half-range of percentile above 50
WIN_MODEL_RISK_WEIGHT: float = 1.2           # per full 0–100 risk range
WIN_MODEL_PROJECT_TYPE_OFFSETS: dict[str, float] = {
    "COMMERCIAL": 0.0,
    "RESIDENTIAL": 0.10,
    "INDUSTRIAL": -0.05,
    "INSTITUTIONAL": -0.15,   # public tenders, lowest bid dominates
    "RETAIL": 0.05,
    "HOSPITALITY": 0.05,
    "HEALTHCARE": -0.10,
    "EDUCATIONAL": -0.15,
    "OTHER": 0.0,
}

# Package recommendation margin range (percent)
PACKAGE_DEFAULT_MIN_MARGIN: float = 10.0
PACKAGE_DEFAULT_MAX_MARGIN: float = 30.0


# ── Request boundary ──────────────────────────────────────────────────────────

RATE_LIMIT_PER_MINUTE: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))
RATE_LIMIT_WINDOW_SECONDS: float = 60.0

PROJECT_TYPES: tuple[str, ...] = tuple(WIN_MODEL_PROJECT_TYPE_OFFSETS.keys())
