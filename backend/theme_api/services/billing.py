"""Stripe helpers shared by the subscription routes and the webhook.

The local ``subscriptions`` table mirrors Stripe. ``sync_subscription`` is the
single upsert path: it resolves the owning user and plan, writes the row keyed
on ``stripe_subscription_id`` and recomputes the user's tier.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import stripe
from sqlmodel import Session

from theme_api.core import crud
from theme_api.core.config import settings
from theme_api.models.subscription import Subscription
from theme_api.models.user import User
from theme_api.services import tier_service

log = logging.getLogger(__name__)


def configure_stripe() -> bool:
    """Point the SDK at the configured secret key; False when none is set."""
    stripe.api_key = settings.STRIPE_SECRET_KEY or None
    return bool(stripe.api_key)


def to_plain(obj: Any) -> dict:
    """StripeObject (or dict) -> plain nested dict."""
    if obj is None:
        return {}
    if isinstance(obj, stripe.StripeObject):
        return json.loads(str(obj))
    if isinstance(obj, dict):
        return obj
    raise TypeError(f"Cannot convert {type(obj).__name__} to a Stripe payload")


def _ts(value) -> Optional[datetime]:
    if not value:
        return None
    return datetime.utcfromtimestamp(int(value))


def object_id(value) -> Optional[str]:
    """Stripe references are either an id string or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def _first_item(sub: dict) -> dict:
    items = (sub.get("items") or {}).get("data") or []
    return items[0] if items else {}


def _period_bounds(sub: dict) -> tuple[Optional[datetime], Optional[datetime]]:
    # Newer API versions moved the period onto subscription items
    item = _first_item(sub)
    start = sub.get("current_period_start") or item.get("current_period_start")
    end = sub.get("current_period_end") or item.get("current_period_end")
    return _ts(start), _ts(end)


def _price_id(sub: dict) -> Optional[str]:
    price = _first_item(sub).get("price")
    return object_id(price)


def _parse_uuid(value) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        log.warning("[webhook] Ignoring malformed userId %r in metadata", value)
        return None


def resolve_user(
    session: Session,
    metadata: dict,
    existing: Optional[Subscription],
    customer_id: Optional[str],
) -> Optional[User]:
    """Owner of a subscription: metadata userId, then the mirror row, then the customer id."""
    meta_user_id = _parse_uuid(metadata.get("userId"))
    if meta_user_id:
        user = crud.get_user_by_id(session, meta_user_id)
        if user:
            return user
    if existing:
        user = crud.get_user_by_id(session, existing.user_id)
        if user:
            return user
    if customer_id:
        return crud.get_user_by_customer_id(session, customer_id)
    return None


def resolve_plan(sub: dict, metadata: dict, existing: Optional[Subscription]) -> Optional[str]:
    plan = metadata.get("planName")
    if plan in tier_service.PLANS:
        return plan
    plan = tier_service.plan_for_price_id(_price_id(sub))
    if plan:
        return plan
    return existing.plan_name if existing else None


def sync_subscription(
    session: Session,
    sub: dict,
    metadata: Optional[dict] = None,
    status: Optional[str] = None,
) -> Optional[Subscription]:
    """Upsert the mirror row for a Stripe subscription payload and recompute the tier.

    ``metadata`` (e.g. from a checkout session) is merged over the
    subscription's own metadata. Returns None when the owner or plan cannot
    be resolved.
    """
    sub_id = sub.get("id")
    if not sub_id:
        log.warning("[webhook] Subscription payload without id; skipping")
        return None

    merged_meta = {**(sub.get("metadata") or {}), **(metadata or {})}
    existing = crud.get_subscription_by_stripe_id(session, sub_id)
    customer_id = object_id(sub.get("customer"))

    user = resolve_user(session, merged_meta, existing, customer_id)
    if not user:
        log.warning("[webhook] No user found for subscription %s (customer=%s)", sub_id, customer_id)
        return None

    plan = resolve_plan(sub, merged_meta, existing)
    if not plan:
        log.warning("[webhook] Could not resolve plan for subscription %s", sub_id)
        return None

    period_start, period_end = _period_bounds(sub)
    row = crud.upsert_subscription(
        session,
        user.id,
        sub_id,
        stripe_customer_id=customer_id or (existing.stripe_customer_id if existing else None),
        plan_name=plan,
        status=status or sub.get("status") or "incomplete",
        current_period_start=period_start,
        current_period_end=period_end,
        cancel_at_period_end=bool(sub.get("cancel_at_period_end")),
    )

    if customer_id and not user.stripe_customer_id:
        user.stripe_customer_id = customer_id
        user.updated_at = datetime.utcnow()
        session.add(user)
        session.commit()

    tier_service.recompute_user_tier(session, user.id)
    log.info("[webhook] Synced subscription %s user=%s plan=%s status=%s", sub_id, user.id, plan, row.status)
    return row


def retrieve_subscription(subscription_id: str) -> dict:
    return to_plain(stripe.Subscription.retrieve(subscription_id))


def invoice_subscription_id(invoice: dict) -> Optional[str]:
    sub = invoice.get("subscription")
    if sub:
        return object_id(sub)
    # 2025+ API versions nest it under parent.subscription_details
    details = ((invoice.get("parent") or {}).get("subscription_details")) or {}
    return object_id(details.get("subscription"))


def ensure_customer(session: Session, user: User) -> str:
    """Return the user's Stripe customer id, creating the customer on first use."""
    if user.stripe_customer_id:
        return user.stripe_customer_id
    customer = stripe.Customer.create(email=user.email, metadata={"userId": str(user.id)})
    user.stripe_customer_id = customer.id
    user.updated_at = datetime.utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)
    log.info("[subscriptions] Created Stripe customer for user %s", user.id)
    return user.stripe_customer_id
