"""Competitor landscape summary for a theme (saturation bucket, feature gaps, positioning)."""
from __future__ import annotations

from collections import Counter
from typing import Literal, Optional, Sequence

from pydantic import BaseModel, Field

from theme_api.services.scoring import round_half_up

Saturation = Literal["unknown", "low", "medium", "high"]

LOW_SATURATION_MAX = 3
MEDIUM_SATURATION_MAX = 10
MAX_COMPETITIVE_ADVANTAGES = 5

MARKET_GAP_CANDIDATES: tuple[str, ...] = (
    "モバイルファースト設計",
    "AI/ML機能統合",
    "リアルタイム協業",
    "オフライン対応",
    "カスタマイズ性",
)

SATURATION_INFO = {
    "low": {"label": "低飽和", "description": "ブルーオーシャン市場", "opportunity": "参入しやすく、先行者利益を得やすい"},
    "medium": {"label": "中飽和", "description": "バランス市場", "opportunity": "差別化により成功可能"},
    "high": {"label": "高飽和", "description": "レッドオーシャン市場", "opportunity": "独自性と革新が必要"},
    "unknown": {"label": "不明", "description": "データ不足", "opportunity": "市場調査が必要"},
}

NO_COMPETITORS_MESSAGE = "競合データがありません。ブルーオーシャン市場の可能性があります。"


class SaturationInfo(BaseModel):
    label: str
    description: str
    opportunity: str


class CompetitorInsights(BaseModel):
    totalCompetitors: int
    averageRevenue: int
    averageUsers: int
    pricingModels: dict[str, int] = Field(default_factory=dict)
    marketSaturation: Saturation
    competitiveAdvantages: list[str] = Field(default_factory=list)
    marketGaps: list[str] = Field(default_factory=list)
    saturationInfo: SaturationInfo
    message: Optional[str] = None


class PositioningRecommendation(BaseModel):
    strategy: str
    description: str
    priority: Literal["high", "medium", "low"]


def classify_saturation(count: int) -> Saturation:
    if count <= 0:
        return "unknown"
    if count <= LOW_SATURATION_MAX:
        return "low"
    if count <= MEDIUM_SATURATION_MAX:
        return "medium"
    return "high"


def _average_of_truthy(values) -> int:
    present = [v for v in values if v]
    if not present:
        return 0
    return round_half_up(sum(present) / len(present))


def analyze_competitors(competitors: Sequence) -> CompetitorInsights:
    """Summarize competitor records (any objects with the CompetitorAnalysis attributes)."""
    competitors = list(competitors or [])
    if not competitors:
        return CompetitorInsights(
            totalCompetitors=0,
            averageRevenue=0,
            averageUsers=0,
            marketSaturation="unknown",
            saturationInfo=SaturationInfo(**SATURATION_INFO["unknown"]),
            message=NO_COMPETITORS_MESSAGE,
        )

    total = len(competitors)
    pricing = Counter(c.pricing_model for c in competitors if getattr(c, "pricing_model", None))

    all_features: list[str] = []
    for competitor in competitors:
        all_features.extend(getattr(competitor, "features", None) or [])
    # Counter preserves first-seen order
    frequency = Counter(all_features)
    advantages = [feature for feature, count in frequency.items() if count < total * 0.5]

    seen = set(all_features)
    saturation = classify_saturation(total)
    return CompetitorInsights(
        totalCompetitors=total,
        averageRevenue=_average_of_truthy(getattr(c, "estimated_revenue", None) for c in competitors),
        averageUsers=_average_of_truthy(getattr(c, "user_count", None) for c in competitors),
        pricingModels=dict(pricing),
        marketSaturation=saturation,
        competitiveAdvantages=advantages[:MAX_COMPETITIVE_ADVANTAGES],
        marketGaps=[gap for gap in MARKET_GAP_CANDIDATES if gap not in seen],
        saturationInfo=SaturationInfo(**SATURATION_INFO[saturation]),
    )


def positioning_recommendations(insights: CompetitorInsights) -> list[PositioningRecommendation]:
    recommendations = []
    if insights.marketSaturation == "low":
        recommendations.append(PositioningRecommendation(
            strategy="市場リーダーシップ",
            description="先行者利益を活かし、市場標準を確立する",
            priority="high",
        ))
    elif insights.marketSaturation == "medium":
        recommendations.append(PositioningRecommendation(
            strategy="差別化戦略",
            description="独自機能や優れたUXで競合と差別化する",
            priority="high",
        ))
    elif insights.marketSaturation == "high":
        recommendations.append(PositioningRecommendation(
            strategy="ニッチ戦略",
            description="特定セグメントに特化して競争を避ける",
            priority="high",
        ))

    if insights.marketGaps:
        recommendations.append(PositioningRecommendation(
            strategy="ギャップ戦略",
            description="競合が対応していない機能やニーズに焦点を当てる",
            priority="medium",
        ))
    if insights.averageRevenue > 0:
        recommendations.append(PositioningRecommendation(
            strategy="価格戦略",
            description=f"市場平均（¥{insights.averageRevenue:,}）を参考に価格設定する",
            priority="medium",
        ))
    return recommendations
