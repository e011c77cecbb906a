from datetime import datetime, timedelta

import pytest

from theme_api.services.scoring.monetization import FACTOR_NAMES
from theme_api.services.scoring.trend import (
    ScoreHistoryEntry,
    analyze_score_trend,
    classify_change,
)

NOW = datetime(2024, 5, 1, 12, 0, 0)
NEUTRAL = {name: 50.0 for name in FACTOR_NAMES}


def _entry(score, days_ago, **factor_overrides):
    factors = dict(NEUTRAL)
    factors.update(factor_overrides)
    return ScoreHistoryEntry(score=score, factors=factors, timestamp=NOW - timedelta(days=days_ago))


@pytest.mark.parametrize(
    "change, expected",
    [(0, "stable"), (1.99, "stable"), (-1.99, "stable"), (2, "increasing"), (-2, "decreasing")],
)
def test_classify_change_uses_two_percent_band(change, expected):
    assert classify_change(change) == expected


def test_no_history_is_stable_with_low_confidence():
    analysis = analyze_score_trend(70, NEUTRAL, [])
    assert analysis.trend == "stable"
    assert analysis.changePercentage == 0
    assert analysis.previousScore is None
    assert analysis.volatility == 0
    assert analysis.confidence == pytest.approx(10.0)
    assert analysis.factors.mostImproved is None
    assert analysis.factors.mostDeclined is None


def test_previous_is_newest_entry_regardless_of_order():
    history = [_entry(40, days_ago=10), _entry(50, days_ago=1), _entry(45, days_ago=5)]
    analysis = analyze_score_trend(60, NEUTRAL, history)
    assert analysis.previousScore == 50
    assert analysis.changePercentage == pytest.approx(20.0)
    assert analysis.trend == "increasing"


def test_zero_previous_score_gives_zero_change():
    analysis = analyze_score_trend(60, NEUTRAL, [_entry(0, days_ago=1)])
    assert analysis.changePercentage == 0
    assert analysis.trend == "stable"


def test_volatility_and_confidence():
    history = [_entry(50, days_ago=i + 1) for i in range(10)]
    steady = analyze_score_trend(50, NEUTRAL, history)
    assert steady.volatility == 0
    assert steady.confidence == 100

    # current + 10 newest entries form the sample: [100, 0, 100, 0, ...]
    swinging = [_entry(0 if i % 2 == 0 else 100, days_ago=i + 1) for i in range(12)]
    analysis = analyze_score_trend(100, NEUTRAL, swinging)
    assert 0 < analysis.volatility <= 100
    assert analysis.confidence == pytest.approx(max(0.0, 100 - analysis.volatility * 0.5))


def test_factor_highlights():
    current = dict(NEUTRAL, marketSize=90, revenueModels=10, paymentWillingness=60)
    previous = _entry(50, days_ago=1, marketSize=70, revenueModels=30, paymentWillingness=59.5)
    analysis = analyze_score_trend(55, current, [previous])
    assert analysis.factors.strongest == "marketSize"
    assert analysis.factors.weakest == "revenueModels"
    assert analysis.factors.mostImproved == "marketSize"
    assert analysis.factors.mostDeclined == "revenueModels"


def test_small_factor_moves_are_not_highlighted():
    previous = _entry(50, days_ago=1, marketSize=49.5)
    analysis = analyze_score_trend(50, NEUTRAL, [previous])
    assert analysis.factors.mostImproved is None
    assert analysis.factors.mostDeclined is None
