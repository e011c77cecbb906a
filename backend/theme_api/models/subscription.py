from sqlmodel import SQLModel, Field
from datetime import datetime
from uuid import UUID, uuid4
from typing import Optional


class Subscription(SQLModel, table=True):
    """Read-model of a Stripe subscription; Stripe webhooks are the only writer of billing fields."""
    __tablename__ = "subscriptions"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    stripe_subscription_id: str = Field(unique=True, index=True)
    stripe_customer_id: Optional[str] = Field(default=None, index=True)
    plan_name: str = Field(default="basic")  # basic | pro
    status: str = Field(default="incomplete")  # active, trialing, past_due, canceled, incomplete, incomplete_expired, unpaid
    current_period_start: Optional[datetime] = Field(default=None)
    current_period_end: Optional[datetime] = Field(default=None)
    cancel_at_period_end: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class SubscriptionPublic(SQLModel):
    id: UUID
    stripe_subscription_id: str
    plan_name: str
    status: str
    current_period_start: Optional[datetime]
    current_period_end: Optional[datetime]
    cancel_at_period_end: bool
    created_at: datetime
