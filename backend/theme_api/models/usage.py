from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class UserUsage(SQLModel, table=True):
    """Monthly per-feature usage counter (month is YYYY-MM, UTC)."""
    __tablename__ = "user_usage"
    __table_args__ = (
        UniqueConstraint("user_id", "feature", "month", name="uq_user_usage_user_feature_month"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    feature: str = Field(max_length=64)
    month: str = Field(max_length=7)
    count: int = Field(default=0, ge=0)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
