from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID, uuid4

from pydantic import model_validator
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field

CompetitionLevel = Literal["low", "medium", "high"]
TechnicalDifficulty = Literal["beginner", "intermediate", "advanced"]


class ThemeBase(SQLModel):
    title: str = Field(max_length=200)
    description: str = Field(default="")
    category: str = Field(index=True)
    monetization_score: int = Field(default=0, ge=0, le=100, index=True)
    market_size: int = Field(default=0, ge=0, index=True)
    competition_level: str = Field(default="medium", index=True)  # low|medium|high
    technical_difficulty: str = Field(default="intermediate", index=True)  # beginner|intermediate|advanced
    estimated_revenue_min: int = Field(default=0, ge=0)
    estimated_revenue_max: int = Field(default=0, ge=0)


class Theme(ThemeBase, table=True):
    __tablename__ = "themes"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    data_sources: list = Field(default_factory=list, sa_column=Column(JSON))
    monetization_factors: Optional[dict] = Field(
        default=None,
        sa_column=Column(JSON(none_as_null=True)),
        description="Six 0-100 factors keyed by camelCase name; null until first scored",
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, index=True)


class ThemeCreate(SQLModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    category: str = Field(min_length=1)
    market_size: int = Field(default=0, ge=0)
    competition_level: CompetitionLevel = "medium"
    technical_difficulty: TechnicalDifficulty = "intermediate"
    estimated_revenue_min: int = Field(default=0, ge=0)
    estimated_revenue_max: int = Field(default=0, ge=0)
    data_sources: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _revenue_band_ordered(self):
        if self.estimated_revenue_min > self.estimated_revenue_max:
            raise ValueError("estimated_revenue_min must not exceed estimated_revenue_max")
        return self


class ThemePublic(ThemeBase):
    id: UUID
    data_sources: list = Field(default_factory=list)
    monetization_factors: Optional[dict] = None
    created_at: datetime
    updated_at: datetime


class TrendData(SQLModel, table=True):
    """A time-stamped search-volume/growth sample for a theme."""
    __tablename__ = "trend_data"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    theme_id: UUID = Field(foreign_key="themes.id", index=True)
    source: str = Field(max_length=50)  # google_trends, reddit, twitter, ...
    search_volume: int = Field(default=0, ge=0)
    growth_rate: float = Field(default=0.0)
    geographic_data: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    demographic_data: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    timestamp: datetime = Field(default_factory=datetime.utcnow, index=True)


class CompetitorAnalysis(SQLModel, table=True):
    __tablename__ = "competitor_analysis"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    theme_id: UUID = Field(foreign_key="themes.id", index=True)
    competitor_name: str
    competitor_url: Optional[str] = None
    pricing_model: Optional[str] = None
    estimated_revenue: Optional[int] = None
    user_count: Optional[int] = None
    features: list = Field(default_factory=list, sa_column=Column(JSON))
    market_share: Optional[float] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
