from __future__ import annotations

import math
from datetime import datetime
from typing import Literal, Mapping, Optional, Sequence

from pydantic import BaseModel

from .monetization import FACTOR_NAMES, normalize_factors

TrendDirection = Literal["increasing", "decreasing", "stable"]

STABLE_CHANGE_PERCENT = 2.0
VOLATILITY_SAMPLE_SIZE = 10
CONFIDENCE_FULL_SAMPLE = 10
FACTOR_CHANGE_THRESHOLD = 1.0


class ScoreHistoryEntry(BaseModel):
    score: float
    factors: dict[str, float]
    timestamp: datetime
    metadata: Optional[dict] = None


class FactorHighlights(BaseModel):
    strongest: str
    weakest: str
    mostImproved: Optional[str] = None
    mostDeclined: Optional[str] = None


class ScoreAnalysis(BaseModel):
    currentScore: float
    previousScore: Optional[float] = None
    trend: TrendDirection
    changePercentage: float
    volatility: float
    confidence: float
    factors: FactorHighlights


def classify_change(change_percentage: float) -> TrendDirection:
    if abs(change_percentage) < STABLE_CHANGE_PERCENT:
        return "stable"
    return "increasing" if change_percentage > 0 else "decreasing"


def _population_std(values: Sequence[float]) -> float:
    mean = sum(values) / len(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


def analyze_score_trend(
    current_score: float,
    current_factors: Mapping[str, float],
    history: Sequence[ScoreHistoryEntry],
) -> ScoreAnalysis:
    """Compare the current score with the most recent prior snapshot.

    ``history`` may be in any order; the newest entry is treated as the
    previous snapshot. Volatility is the population standard deviation of the
    current score plus up to ten of the newest historical scores, and confidence
    grows with sample size and shrinks with volatility.
    """
    ordered = sorted(history, key=lambda e: e.timestamp, reverse=True)
    previous = ordered[0] if ordered else None

    change_percentage = 0.0
    trend: TrendDirection = "stable"
    if previous is not None:
        if previous.score > 0:
            change_percentage = (current_score - previous.score) / previous.score * 100
        trend = classify_change(change_percentage)

    samples = [float(current_score)] + [float(e.score) for e in ordered[:VOLATILITY_SAMPLE_SIZE]]
    volatility = min(100.0, _population_std(samples))
    base_confidence = min(100.0, len(samples) / CONFIDENCE_FULL_SAMPLE * 100)
    confidence = max(0.0, base_confidence - volatility * 0.5)

    factors = normalize_factors(current_factors)
    # max/min keep the first factor in FACTOR_NAMES order on ties
    strongest = max(FACTOR_NAMES, key=lambda name: factors[name])
    weakest = min(FACTOR_NAMES, key=lambda name: factors[name])

    most_improved = None
    most_declined = None
    if previous is not None:
        prior = normalize_factors(previous.factors)
        deltas = {name: factors[name] - prior[name] for name in FACTOR_NAMES}
        best = max(FACTOR_NAMES, key=lambda name: deltas[name])
        worst = min(FACTOR_NAMES, key=lambda name: deltas[name])
        if deltas[best] > FACTOR_CHANGE_THRESHOLD:
            most_improved = best
        if deltas[worst] < -FACTOR_CHANGE_THRESHOLD:
            most_declined = worst

    return ScoreAnalysis(
        currentScore=current_score,
        previousScore=previous.score if previous is not None else None,
        trend=trend,
        changePercentage=change_percentage,
        volatility=volatility,
        confidence=confidence,
        factors=FactorHighlights(
            strongest=strongest,
            weakest=weakest,
            mostImproved=most_improved,
            mostDeclined=most_declined,
        ),
    )
