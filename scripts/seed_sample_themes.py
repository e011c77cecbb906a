#!/usr/bin/env python3
"""
Seed the database with sample themes, trend samples and competitors for local development.

Each theme gets one TrendData row per source and an initial monetization
score derived from those samples. Themes whose title already exists are
skipped, so the script can be re-run safely.

Usage:
    python scripts/seed_sample_themes.py
"""

import sys
from pathlib import Path

backend_dir = Path(__file__).parent.parent / "backend"
sys.path.insert(0, str(backend_dir))

from dotenv import load_dotenv
env_path = backend_dir / ".env.local"
if env_path.exists():
    load_dotenv(dotenv_path=env_path)
else:
    load_dotenv()

from sqlmodel import select

from theme_api.core import crud
from theme_api.core.database import create_db_and_tables, session_scope
from theme_api.models.theme import CompetitorAnalysis, Theme, TrendData
from theme_api.services.scoring.monetization import score_theme

# trend: (source, search_volume, growth_rate)
# competitors: (name, pricing_model, estimated_revenue, features)
SAMPLE_THEMES = [
    {
        "title": "AI駆動のタスク管理アプリ",
        "description": "作業パターンを学習し、最適なタスクスケジューリングを提案するアプリケーション",
        "category": "productivity",
        "market_size": 2_500_000,
        "competition_level": "medium",
        "technical_difficulty": "advanced",
        "estimated_revenue_min": 50_000,
        "estimated_revenue_max": 200_000,
        "trend": [("google_trends", 15_000, 12.5), ("reddit", 8_500, 8.2)],
        "competitors": [
            ("Todoist", "freemium", 500_000, ["タスク管理", "カレンダー連携"]),
        ],
    },
    {
        "title": "バーチャル英会話練習プラットフォーム",
        "description": "AI講師との1対1英会話練習。発音矯正とリアルタイムフィードバック機能付き",
        "category": "education",
        "market_size": 1_800_000,
        "competition_level": "high",
        "technical_difficulty": "advanced",
        "estimated_revenue_min": 30_000,
        "estimated_revenue_max": 150_000,
        "trend": [("google_trends", 22_000, 15.3), ("product_hunt", 3_200, 5.7)],
    },
    {
        "title": "ローカル食材マッチングサービス",
        "description": "地域の農家と消費者を直接つなぐ直販プラットフォーム",
        "category": "social",
        "market_size": 950_000,
        "competition_level": "low",
        "technical_difficulty": "intermediate",
        "estimated_revenue_min": 25_000,
        "estimated_revenue_max": 80_000,
        "trend": [("google_trends", 8_900, 18.7), ("twitter", 5_400, 22.1)],
    },
    {
        "title": "メンタルヘルス日記アプリ",
        "description": "感情の記録と分析でメンタルヘルスの改善をサポート",
        "category": "health",
        "market_size": 1_400_000,
        "competition_level": "medium",
        "technical_difficulty": "intermediate",
        "estimated_revenue_min": 20_000,
        "estimated_revenue_max": 100_000,
        "trend": [("google_trends", 18_500, 25.4), ("product_hunt", 2_800, 12.9)],
    },
    {
        "title": "スマート家計簿アプリ",
        "description": "レシート撮影による自動入力と支出分析、節約提案機能",
        "category": "finance",
        "market_size": 2_100_000,
        "competition_level": "high",
        "technical_difficulty": "intermediate",
        "estimated_revenue_min": 40_000,
        "estimated_revenue_max": 180_000,
        "trend": [("google_trends", 28_000, 11.6), ("reddit", 9_200, 16.3)],
        "competitors": [
            ("Zaim", "freemium", 300_000, ["レシート読取", "銀行連携"]),
            ("マネーフォワード ME", "subscription", 900_000, ["銀行連携", "資産グラフ", "API"]),
        ],
    },
    {
        "title": "インタラクティブ音楽学習ゲーム",
        "description": "ゲーミフィケーションを活用した楽器学習。リアルタイム演奏評価付き",
        "category": "entertainment",
        "market_size": 1_100_000,
        "competition_level": "medium",
        "technical_difficulty": "advanced",
        "estimated_revenue_min": 15_000,
        "estimated_revenue_max": 75_000,
        "trend": [("google_trends", 12_000, 7.3), ("github", 1_500, 4.8)],
    },
]


def seed() -> int:
    create_db_and_tables()
    created = 0
    with session_scope() as session:
        existing = set(session.exec(select(Theme.title)).all())
        for sample in SAMPLE_THEMES:
            fields = {k: v for k, v in sample.items() if k not in ("trend", "competitors")}
            if fields["title"] in existing:
                print(f"   ✓ Skipping existing theme: {fields['title']}")
                continue
            theme = Theme(data_sources=[source for source, _, _ in sample["trend"]], **fields)
            session.add(theme)
            session.commit()
            session.refresh(theme)

            samples = [
                TrendData(theme_id=theme.id, source=source, search_volume=volume, growth_rate=growth)
                for source, volume, growth in sample["trend"]
            ]
            session.add_all(samples)
            session.add_all([
                CompetitorAnalysis(
                    theme_id=theme.id,
                    competitor_name=name,
                    pricing_model=pricing,
                    estimated_revenue=revenue,
                    features=features,
                )
                for name, pricing, revenue, features in sample.get("competitors", [])
            ])
            session.commit()

            score, factors = score_theme(theme, samples)
            crud.update_theme_score(session, theme, score, factors)
            print(f"   ✅ {theme.title} (score={score})")
            created += 1
    return created


if __name__ == "__main__":
    print("=" * 60)
    print("Sample theme seed")
    print("=" * 60)
    count = seed()
    print()
    print(f"✅ Created {count} theme(s)")
