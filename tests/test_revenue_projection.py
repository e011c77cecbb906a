from types import SimpleNamespace

import pytest

from theme_api.services import revenue


def _theme(**overrides):
    fields = dict(
        market_size=2_500_000,
        monetization_score=85,
        competition_level="medium",
        technical_difficulty="intermediate",
        estimated_revenue_min=50_000,
        estimated_revenue_max=150_000,
        monetization_factors=None,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def test_projection_bands_for_reference_theme():
    projection = revenue.calculate_revenue_projection(_theme())
    scenarios = projection["scenarios"]
    assert scenarios == {"conservative": 51_000, "realistic": 119_000, "optimistic": 255_000}
    assert scenarios["conservative"] < scenarios["realistic"] < scenarios["optimistic"]
    assert projection["timeframe"] == "month"


def test_timeframe_multiplies_bands():
    month = revenue.calculate_revenue_projection(_theme())["scenarios"]
    year = revenue.calculate_revenue_projection(_theme(), "year")["scenarios"]
    assert year["realistic"] == month["realistic"] * 12


@pytest.mark.parametrize("overrides", [
    {"market_size": 0},
    {"monetization_score": 0},
    {"market_size": -10, "monetization_score": -5},
    {"estimated_revenue_min": 0, "estimated_revenue_max": 0},
])
def test_degenerate_inputs_project_zero_not_negative(overrides):
    scenarios = revenue.calculate_revenue_projection(_theme(**overrides))["scenarios"]
    assert all(v == 0 for v in scenarios.values())


def test_custom_multipliers_keep_bands_ordered():
    resolved = revenue.resolve_multipliers({"conservative": 1.8, "optimistic": 0.2})
    assert resolved["conservative"] <= resolved["realistic"] <= resolved["optimistic"]
    scenarios = revenue.calculate_revenue_projection(
        _theme(), multipliers=revenue.RevenueMultipliers(conservative=1.8, optimistic=0.2)
    )["scenarios"]
    assert scenarios["conservative"] <= scenarios["realistic"] <= scenarios["optimistic"]


def test_factors_adjust_projection_and_assumptions():
    plain = revenue.calculate_revenue_projection(_theme())
    factors = {"paymentWillingness": 90, "customerLifetimeValue": 80}
    boosted = revenue.calculate_revenue_projection(_theme(monetization_factors=factors))
    assert boosted["scenarios"]["realistic"] > plain["scenarios"]["realistic"]
    assert len(plain["assumptions"]) == 5
    assert [a["confidence"] for a in boosted["assumptions"][-2:]] == [70, 60]


def test_timeline_periods_and_projected_months():
    timeline = revenue.calculate_revenue_timeline(_theme())
    assert list(timeline) == ["mvpToFirstRevenue", "to10k", "to100k"]
    assert timeline["mvpToFirstRevenue"]["period"] == "2-4ヶ月"
    assert timeline["mvpToFirstRevenue"]["amount"] == 11_900
    assert timeline["to100k"]["projectedMonth"] == 1

    slow = revenue.calculate_revenue_timeline(_theme(technical_difficulty="advanced", competition_level="high"))
    # 12-24 months stretched by 1.3 x 1.2
    assert slow["to100k"]["period"] == "19-37ヶ月"


def test_timeline_projected_month_uses_growth_curve():
    small = _theme(estimated_revenue_min=5_000, estimated_revenue_max=5_000, market_size=1_000_000, monetization_score=100)
    realistic = revenue.calculate_revenue_projection(small)["scenarios"]["realistic"]
    assert realistic == 3_500
    timeline = revenue.calculate_revenue_timeline(small)
    month = timeline["to10k"]["projectedMonth"]
    assert month == revenue.projected_month(realistic, 10_000)
    assert revenue._growth_value(realistic, "realistic", month) >= 10_000
    assert revenue._growth_value(realistic, "realistic", month - 1) < 10_000


def test_zero_baseline_never_reaches_milestones():
    timeline = revenue.calculate_revenue_timeline(_theme(market_size=0))
    assert all(m["projectedMonth"] is None for m in timeline.values())


def test_growth_projection_plateaus():
    growth = revenue.calculate_growth_projection(_theme(), months=30)
    rows = growth["monthlyProjections"]
    assert len(rows) == 30
    assert rows[0]["realistic"] == 119_000
    # conservative stops compounding after month 18
    assert rows[17]["conservative"] == rows[29]["conservative"]
    assert rows[23]["realistic"] == rows[29]["realistic"]
    assert rows[29]["optimistic"] > rows[23]["optimistic"]
    assert growth["peakMonth"] == 24
    assert growth["plateauRevenue"]["realistic"] == rows[23]["realistic"]


def test_risks_and_opportunities():
    risky = _theme(competition_level="high", technical_difficulty="advanced", market_size=100_000,
                   monetization_score=30, monetization_factors={"paymentWillingness": 20})
    assert len(revenue.analyze_risk_factors(risky)) == 5
    assert revenue.identify_opportunities(risky) == []

    promising = _theme(competition_level="low", technical_difficulty="beginner", monetization_score=90,
                       monetization_factors={"paymentWillingness": 75})
    assert revenue.analyze_risk_factors(promising) == []
    assert len(revenue.identify_opportunities(promising)) == 5


def test_full_analysis_bundle():
    analysis = revenue.perform_revenue_analysis(_theme(), include_growth=True, months=6)
    assert set(analysis) == {"projection", "timeline", "riskFactors", "opportunities", "growthProjection"}
    assert len(analysis["growthProjection"]["monthlyProjections"]) == 6
    assert "growthProjection" not in revenue.perform_revenue_analysis(_theme())


def test_helpers():
    assert revenue.percentage_change(0, 10) == 100.0
    assert revenue.percentage_change(0, 0) == 0.0
    assert revenue.percentage_change(50, 75) == 50.0
    assert revenue.confidence_label(85) == "高信頼度"
    assert revenue.confidence_label(60) == "中信頼度"
    assert revenue.confidence_label(40) == "低信頼度"
    assert revenue.confidence_label(10) == "要検証"
