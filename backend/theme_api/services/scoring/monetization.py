"""Monetization score: a weighted 0-100 rating of how viable a theme is to monetize.

Factors and weights are plain mappings keyed by the camelCase factor names that
are also used in stored JSON and API payloads. Two factors are inverted before
weighting (higher competition or acquisition cost lowers the score).
"""
from __future__ import annotations

import logging
from typing import Iterable, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from . import round_half_up

log = logging.getLogger(__name__)

FACTOR_NAMES: tuple[str, ...] = (
    "marketSize",
    "paymentWillingness",
    "competitionLevel",
    "revenueModels",
    "customerAcquisitionCost",
    "customerLifetimeValue",
)
INVERTED_FACTORS = frozenset({"competitionLevel", "customerAcquisitionCost"})

DEFAULT_WEIGHTS: dict[str, float] = {
    "marketSize": 0.25,
    "paymentWillingness": 0.2,
    "competitionLevel": 0.15,
    "revenueModels": 0.15,
    "customerAcquisitionCost": 0.15,
    "customerLifetimeValue": 0.1,
}

FACTOR_LABELS: dict[str, str] = {
    "marketSize": "市場規模",
    "paymentWillingness": "支払い意欲度",
    "competitionLevel": "競合レベル",
    "revenueModels": "収益化手法",
    "customerAcquisitionCost": "顧客獲得コスト",
    "customerLifetimeValue": "顧客生涯価値",
}

MIN_SCORE = 0
MAX_SCORE = 100
DEFAULT_FACTOR_VALUE = 50.0
WEIGHT_SUM_TOLERANCE = 0.001
TREND_ANALYSIS_DAYS = 30

COMPETITION_FACTOR_VALUES = {"low": 20.0, "medium": 50.0, "high": 80.0}
DIFFICULTY_CAC_VALUES = {"beginner": 30.0, "intermediate": 50.0, "advanced": 70.0}


class MonetizationFactors(BaseModel):
    """Validated factor set used at the API boundary (each value 0-100)."""
    marketSize: float = Field(ge=0, le=100)
    paymentWillingness: float = Field(ge=0, le=100)
    competitionLevel: float = Field(ge=0, le=100)
    revenueModels: float = Field(ge=0, le=100)
    customerAcquisitionCost: float = Field(ge=0, le=100)
    customerLifetimeValue: float = Field(ge=0, le=100)


class MonetizationWeights(BaseModel):
    """Partial weight overrides; missing entries fall back to DEFAULT_WEIGHTS."""
    marketSize: Optional[float] = Field(default=None, ge=0, le=1)
    paymentWillingness: Optional[float] = Field(default=None, ge=0, le=1)
    competitionLevel: Optional[float] = Field(default=None, ge=0, le=1)
    revenueModels: Optional[float] = Field(default=None, ge=0, le=1)
    customerAcquisitionCost: Optional[float] = Field(default=None, ge=0, le=1)
    customerLifetimeValue: Optional[float] = Field(default=None, ge=0, le=1)

    def as_partial(self) -> dict[str, float]:
        return self.model_dump(exclude_none=True)


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def normalize_factors(factors: Optional[Mapping[str, Optional[float]]]) -> dict[str, float]:
    """Fill missing factors with 50 and clamp every value into [0, 100]."""
    factors = factors or {}
    out: dict[str, float] = {}
    for name in FACTOR_NAMES:
        value = factors.get(name)
        out[name] = DEFAULT_FACTOR_VALUE if value is None else _clamp(float(value))
    return out


def normalize_weights(weights: Optional[Mapping[str, Optional[float]]] = None) -> dict[str, float]:
    """Merge partial weights over the defaults and rescale so they sum to 1."""
    merged = dict(DEFAULT_WEIGHTS)
    for name, value in (weights or {}).items():
        if name in merged and value is not None:
            merged[name] = max(0.0, float(value))

    total = sum(merged.values())
    if total <= 0:
        log.warning("[scoring] All weights are zero; using defaults")
        return dict(DEFAULT_WEIGHTS)
    if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
        log.warning("[scoring] Weights sum to %.4f, normalizing", total)
        merged = {name: value / total for name, value in merged.items()}
    return merged


def _contributions(factors: Mapping[str, float], weights: Mapping[str, float]) -> dict[str, float]:
    out = {}
    for name in FACTOR_NAMES:
        value = factors[name]
        if name in INVERTED_FACTORS:
            value = 100.0 - value
        out[name] = value * weights[name]
    return out


def calculate_score(
    factors: Optional[Mapping[str, Optional[float]]],
    weights: Optional[Mapping[str, Optional[float]]] = None,
) -> int:
    """Weighted score rounded to the nearest integer, always within [0, 100]."""
    contributions = _contributions(normalize_factors(factors), normalize_weights(weights))
    score = round_half_up(sum(contributions.values()))
    return int(_clamp(score, MIN_SCORE, MAX_SCORE))


def calculate_breakdown(
    factors: Optional[Mapping[str, Optional[float]]],
    weights: Optional[Mapping[str, Optional[float]]] = None,
) -> dict[str, float]:
    """Per-factor contribution (value x weight, inverted where applicable)."""
    return _contributions(normalize_factors(factors), normalize_weights(weights))


def _trend_averages(trend_data: Sequence) -> tuple[float, float]:
    volumes = [float(getattr(t, "search_volume", 0) or 0) for t in trend_data]
    growth = [float(getattr(t, "growth_rate", 0) or 0) for t in trend_data]
    return sum(volumes) / len(volumes), sum(growth) / len(growth)


def factors_from_theme(theme, trend_data: Optional[Sequence] = None) -> dict[str, float]:
    """Derive the six factors from a theme's stored attributes and trend samples."""
    market_size = float(getattr(theme, "market_size", 0) or 0)
    revenue_min = float(getattr(theme, "estimated_revenue_min", 0) or 0)
    revenue_max = float(getattr(theme, "estimated_revenue_max", 0) or 0)
    data_sources = getattr(theme, "data_sources", None) or []

    factors = {
        "marketSize": min(100.0, market_size / 1_000_000 * 10),
        "paymentWillingness": DEFAULT_FACTOR_VALUE,
        "competitionLevel": COMPETITION_FACTOR_VALUES.get(getattr(theme, "competition_level", ""), 50.0),
        "revenueModels": len(data_sources) * 20.0,
        "customerAcquisitionCost": DIFFICULTY_CAC_VALUES.get(getattr(theme, "technical_difficulty", ""), 50.0),
        "customerLifetimeValue": (revenue_min + revenue_max) / 2000,
    }

    if trend_data:
        avg_volume, avg_growth = _trend_averages(trend_data)
        factors["paymentWillingness"] = min(100.0, avg_volume / 10000 * 50 + max(0.0, avg_growth) * 2)
        if avg_growth > 10:
            factors["marketSize"] *= 1.2
        elif avg_growth < -10:
            factors["marketSize"] *= 0.8

    return normalize_factors(factors)


def score_theme(theme, trend_data: Optional[Sequence] = None, weights=None) -> tuple[int, dict[str, float]]:
    """Derive factors for a theme and score them; returns (score, factors)."""
    factors = factors_from_theme(theme, trend_data)
    return calculate_score(factors, weights), factors


def calculate_batch_scores(
    themes: Iterable,
    trend_by_theme: Optional[Mapping] = None,
    weights=None,
) -> list[tuple[object, int, dict[str, float]]]:
    """Score each theme with its own trend samples; returns (theme, score, factors) triples."""
    trend_by_theme = trend_by_theme or {}
    results = []
    for theme in themes:
        score, factors = score_theme(theme, trend_by_theme.get(theme.id, []), weights)
        results.append((theme, score, factors))
    return results


def recalculate_with_weights(themes: Iterable, weights) -> list[tuple[object, int, dict[str, float]]]:
    """Re-score themes from their stored factors; themes without factors are skipped."""
    results = []
    for theme in themes:
        stored = getattr(theme, "monetization_factors", None)
        if not stored:
            continue
        factors = normalize_factors(stored)
        results.append((theme, calculate_score(factors, weights), factors))
    return results
