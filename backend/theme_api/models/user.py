from sqlmodel import SQLModel, Field
from datetime import datetime
from uuid import UUID
from typing import Optional


class UserBase(SQLModel):
    """Base model with shared fields."""
    email: Optional[str] = Field(default=None, index=True)
    # Derived from the active subscription mirror rows; only tier_service writes it.
    subscription_tier: str = Field(default="free")
    stripe_customer_id: Optional[str] = Field(default=None, index=True)


class User(UserBase, table=True):
    """Local mirror of an auth-provider user (the id is the provider's UUID)."""
    __tablename__ = "users"

    id: UUID = Field(primary_key=True, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class UserPublic(UserBase):
    id: UUID
    created_at: datetime
