"""
Revenue projection for a theme: scenario bands, milestone timeline, growth
curves, and the risk/opportunity notes shown next to them.

All amounts are JPY per month unless a timeframe says otherwise. Inputs that
would make a projection negative (market size or score below zero) are floored
at zero so every figure returned is finite and non-negative.
"""
from __future__ import annotations

import math
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from theme_api.services.scoring import round_half_up

Timeframe = Literal["month", "quarter", "year"]
Scenario = Literal["conservative", "realistic", "optimistic"]

SCENARIOS: tuple[str, ...] = ("conservative", "realistic", "optimistic")

DEFAULT_MULTIPLIERS = {"conservative": 0.3, "realistic": 0.7, "optimistic": 1.5}
MARKET_SIZE_NORMALIZATION = 1_000_000
TIME_MULTIPLIERS = {"month": 1, "quarter": 3, "year": 12}

COMPETITION_FACTORS = {"low": 1.2, "medium": 1.0, "high": 0.8}
DIFFICULTY_FACTORS = {"beginner": 1.1, "intermediate": 1.0, "advanced": 0.9}

# Timeline stretch applied to every milestone period
DIFFICULTY_TIMELINE_ADJUSTMENT = {"beginner": 0.8, "intermediate": 1.0, "advanced": 1.3}
COMPETITION_TIMELINE_ADJUSTMENT = {"low": 0.9, "medium": 1.0, "high": 1.2}

MILESTONES = {
    "mvpToFirstRevenue": {"min": 2, "max": 4, "description": "MVP開発から初回収益まで", "confidence": 70},
    "to10k": {"min": 6, "max": 12, "description": "月次収益1万円達成まで", "confidence": 65, "amount": 10_000},
    "to100k": {"min": 12, "max": 24, "description": "月次収益10万円達成まで", "confidence": 55, "amount": 100_000},
}
FIRST_REVENUE_SHARE = 0.1
MILESTONE_SEARCH_MONTHS = 60

GROWTH_PATTERNS = {
    "conservative": {"monthlyGrowthRate": 0.05, "plateauMonth": 18},
    "realistic": {"monthlyGrowthRate": 0.10, "plateauMonth": 24},
    "optimistic": {"monthlyGrowthRate": 0.20, "plateauMonth": 36},
}

COMPETITION_SCORES = {"low": 20, "medium": 50, "high": 80}
DIFFICULTY_SCORES = {"beginner": 30, "intermediate": 50, "advanced": 70}


class RevenueMultipliers(BaseModel):
    """Optional overrides for the scenario multipliers."""
    conservative: Optional[float] = Field(default=None, ge=0, le=2)
    realistic: Optional[float] = Field(default=None, ge=0, le=2)
    optimistic: Optional[float] = Field(default=None, ge=0, le=3)


def _non_negative(value) -> float:
    try:
        number = float(value or 0)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return max(0.0, number)


def _factors(theme) -> Optional[dict]:
    factors = getattr(theme, "monetization_factors", None)
    return factors or None


def resolve_multipliers(overrides: Optional[RevenueMultipliers | dict] = None) -> dict[str, float]:
    """Merge overrides over the defaults, then re-order so the bands stay monotone."""
    if isinstance(overrides, RevenueMultipliers):
        overrides = overrides.model_dump(exclude_none=True)
    merged = dict(DEFAULT_MULTIPLIERS)
    for name, value in (overrides or {}).items():
        if name in merged and value is not None:
            merged[name] = _non_negative(value)
    ordered = sorted(merged[name] for name in SCENARIOS)
    return dict(zip(SCENARIOS, ordered))


def calculate_base_revenue(theme) -> float:
    return (_non_negative(theme.estimated_revenue_min) + _non_negative(theme.estimated_revenue_max)) / 2


def calculate_market_adjustment(theme) -> float:
    market_size_factor = min(2.0, _non_negative(theme.market_size) / MARKET_SIZE_NORMALIZATION)
    score_factor = _non_negative(theme.monetization_score) / 100
    competition_factor = COMPETITION_FACTORS.get(theme.competition_level, 1.0)
    difficulty_factor = DIFFICULTY_FACTORS.get(theme.technical_difficulty, 1.0)

    additional = 1.0
    factors = _factors(theme)
    if factors:
        payment = float(factors.get("paymentWillingness", 50))
        lifetime_value = float(factors.get("customerLifetimeValue", 50))
        additional *= 1 + (payment - 50) / 200
        additional *= 1 + (lifetime_value - 50) / 300

    return max(0.0, market_size_factor * score_factor * competition_factor * difficulty_factor * additional)


def generate_assumptions(theme, adjustment: float) -> list[dict[str, Any]]:
    assumptions = [
        {"factor": "市場規模", "value": theme.market_size, "confidence": 75, "source": "トレンドデータ分析"},
        {"factor": "マネタイズスコア", "value": theme.monetization_score, "confidence": 80, "source": "総合評価アルゴリズム"},
        {
            "factor": "競合レベル",
            "value": COMPETITION_SCORES.get(theme.competition_level, 50),
            "confidence": 70,
            "source": "競合分析",
        },
        {
            "factor": "技術難易度",
            "value": DIFFICULTY_SCORES.get(theme.technical_difficulty, 50),
            "confidence": 85,
            "source": "技術要件分析",
        },
        {"factor": "市場調整係数", "value": round_half_up(adjustment, 2), "confidence": 65, "source": "複合要因分析"},
    ]
    factors = _factors(theme)
    if factors:
        assumptions.append({
            "factor": "支払い意欲度",
            "value": factors.get("paymentWillingness"),
            "confidence": 70,
            "source": "ユーザー行動分析",
        })
        assumptions.append({
            "factor": "顧客生涯価値",
            "value": factors.get("customerLifetimeValue"),
            "confidence": 60,
            "source": "収益モデル分析",
        })
    return assumptions


def calculate_revenue_projection(
    theme,
    timeframe: Timeframe = "month",
    multipliers: Optional[RevenueMultipliers | dict] = None,
) -> dict[str, Any]:
    """Conservative/realistic/optimistic revenue for one timeframe.

    Args:
        theme: Any object with the Theme attributes.
        timeframe: ``month``, ``quarter`` or ``year``.
        multipliers: Optional scenario multiplier overrides.

    Returns:
        Dict with ``timeframe``, ``scenarios`` (int JPY each) and ``assumptions``.
    """
    base = calculate_base_revenue(theme)
    adjustment = calculate_market_adjustment(theme)
    time_multiplier = TIME_MULTIPLIERS.get(timeframe, 1)
    resolved = resolve_multipliers(multipliers)

    scenarios = {
        name: round_half_up(base * resolved[name] * adjustment * time_multiplier)
        for name in SCENARIOS
    }
    return {
        "timeframe": timeframe,
        "scenarios": scenarios,
        "assumptions": generate_assumptions(theme, adjustment),
    }


def _growth_value(base: float, scenario: str, month: int) -> int:
    pattern = GROWTH_PATTERNS[scenario]
    exponent = min(month, pattern["plateauMonth"]) - 1
    return round_half_up(base * (1 + pattern["monthlyGrowthRate"]) ** exponent)


def projected_month(monthly_base: float, amount: float, scenario: str = "realistic") -> Optional[int]:
    """First month in which the scenario's growth curve reaches ``amount``."""
    if amount <= 0:
        return 1
    for month in range(1, MILESTONE_SEARCH_MONTHS + 1):
        if _growth_value(monthly_base, scenario, month) >= amount:
            return month
    return None


def calculate_revenue_timeline(theme) -> dict[str, dict[str, Any]]:
    realistic = calculate_revenue_projection(theme, "month")["scenarios"]["realistic"]
    adjustment = (
        DIFFICULTY_TIMELINE_ADJUSTMENT.get(theme.technical_difficulty, 1.0)
        * COMPETITION_TIMELINE_ADJUSTMENT.get(theme.competition_level, 1.0)
    )

    timeline = {}
    for key, milestone in MILESTONES.items():
        amount = milestone.get("amount")
        if amount is None:
            amount = round_half_up(realistic * FIRST_REVENUE_SHARE)
        low = round_half_up(milestone["min"] * adjustment)
        high = round_half_up(milestone["max"] * adjustment)
        timeline[key] = {
            "period": f"{low}-{high}ヶ月",
            "minMonths": low,
            "maxMonths": high,
            "description": milestone["description"],
            "amount": amount,
            "confidence": milestone["confidence"],
            # a zero baseline never reaches a positive target
            "projectedMonth": projected_month(realistic, amount) if realistic > 0 else None,
            "confidenceLabel": confidence_label(milestone["confidence"]),
        }
    return timeline


def calculate_growth_projection(theme, months: int = 24) -> dict[str, Any]:
    months = max(1, int(months))
    base = calculate_revenue_projection(theme, "month")["scenarios"]

    monthly = []
    for month in range(1, months + 1):
        row: dict[str, Any] = {"month": month}
        for scenario in SCENARIOS:
            row[scenario] = _growth_value(base[scenario], scenario, month)
        monthly.append(row)

    totals = {scenario: sum(row[scenario] for row in monthly) for scenario in SCENARIOS}
    plateau = {
        scenario: monthly[min(GROWTH_PATTERNS[scenario]["plateauMonth"], months) - 1][scenario]
        for scenario in SCENARIOS
    }
    return {
        "monthlyProjections": monthly,
        "totalProjection": totals,
        "peakMonth": min(GROWTH_PATTERNS["realistic"]["plateauMonth"], months),
        "plateauRevenue": plateau,
        "realisticGrowthPercentage": round_half_up(
            percentage_change(monthly[0]["realistic"], monthly[-1]["realistic"]), 2
        ),
    }


def analyze_risk_factors(theme) -> list[dict[str, Any]]:
    risks = []
    if theme.competition_level == "high":
        risks.append({
            "factor": "高競合市場",
            "impact": "high",
            "probability": 80,
            "mitigation": "差別化戦略の強化、ニッチ市場への特化",
        })
    if theme.technical_difficulty == "advanced":
        risks.append({
            "factor": "技術実装の複雑性",
            "impact": "medium",
            "probability": 70,
            "mitigation": "段階的開発、技術的負債の管理",
        })
    if _non_negative(theme.market_size) < 500_000:
        risks.append({
            "factor": "限定的な市場規模",
            "impact": "medium",
            "probability": 60,
            "mitigation": "市場拡大戦略、隣接市場への展開",
        })
    if _non_negative(theme.monetization_score) < 50:
        risks.append({
            "factor": "低いマネタイズ可能性",
            "impact": "high",
            "probability": 75,
            "mitigation": "収益モデルの見直し、価値提案の強化",
        })
    factors = _factors(theme)
    if factors and factors.get("paymentWillingness") is not None and factors["paymentWillingness"] < 40:
        risks.append({
            "factor": "低い支払い意欲",
            "impact": "high",
            "probability": 70,
            "mitigation": "フリーミアムモデル、価値の明確化",
        })
    return risks


def identify_opportunities(theme) -> list[dict[str, Any]]:
    opportunities = []
    if theme.competition_level == "low":
        opportunities.append({
            "opportunity": "ブルーオーシャン市場",
            "potential": "high",
            "timeframe": "6-12ヶ月",
            "requirements": ["迅速な市場参入", "ブランド構築"],
        })
    if _non_negative(theme.monetization_score) >= 80:
        opportunities.append({
            "opportunity": "高収益化ポテンシャル",
            "potential": "high",
            "timeframe": "3-6ヶ月",
            "requirements": ["効率的な開発", "マーケティング投資"],
        })
    if _non_negative(theme.market_size) >= 1_000_000:
        opportunities.append({
            "opportunity": "大規模市場への展開",
            "potential": "medium",
            "timeframe": "12-24ヶ月",
            "requirements": ["スケーラブルな設計", "資金調達"],
        })
    if theme.technical_difficulty == "beginner":
        opportunities.append({
            "opportunity": "迅速なMVP開発",
            "potential": "medium",
            "timeframe": "1-3ヶ月",
            "requirements": ["最小限のリソース", "市場検証"],
        })
    factors = _factors(theme)
    if factors and (factors.get("paymentWillingness") or 0) >= 70:
        opportunities.append({
            "opportunity": "高い支払い意欲の活用",
            "potential": "high",
            "timeframe": "3-9ヶ月",
            "requirements": ["プレミアム機能開発", "価格戦略最適化"],
        })
    return opportunities


def perform_revenue_analysis(
    theme,
    include_growth: bool = False,
    months: int = 12,
    multipliers: Optional[RevenueMultipliers | dict] = None,
    timeframe: Timeframe = "month",
) -> dict[str, Any]:
    """Projection, timeline, risks and opportunities (plus growth when asked) in one payload."""
    analysis = {
        "projection": calculate_revenue_projection(theme, timeframe, multipliers),
        "timeline": calculate_revenue_timeline(theme),
        "riskFactors": analyze_risk_factors(theme),
        "opportunities": identify_opportunities(theme),
    }
    if include_growth:
        analysis["growthProjection"] = calculate_growth_projection(theme, months)
    return analysis


def percentage_change(old_value: float, new_value: float) -> float:
    if old_value == 0:
        return 100.0 if new_value > 0 else 0.0
    return (new_value - old_value) / old_value * 100


def confidence_label(confidence: float) -> str:
    if confidence >= 80:
        return "高信頼度"
    if confidence >= 60:
        return "中信頼度"
    if confidence >= 40:
        return "低信頼度"
    return "要検証"
