from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


class ScoreHistory(SQLModel, table=True):
    """Snapshot of a theme's monetization score and the factors that produced it."""
    __tablename__ = "score_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    theme_id: UUID = Field(foreign_key="themes.id", index=True)
    score: int = Field(ge=0, le=100)
    factors: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    # "metadata" is reserved on SQLModel classes, so the attribute is named meta
    meta: Optional[dict] = Field(default=None, sa_column=Column("metadata", JSON))
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
