from typing import List, Literal, Optional

import logging
import stripe
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, HttpUrl
from sqlmodel import Session

from ..core import crud
from ..core.auth import get_current_user
from ..core.config import settings
from ..core.database import get_session
from ..models.subscription import SubscriptionPublic
from ..models.user import User
from ..services import billing, tier_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


class CreateSubscriptionRequest(BaseModel):
    planName: Literal["basic", "pro"]
    successUrl: HttpUrl
    cancelUrl: HttpUrl


class CheckoutResponse(BaseModel):
    sessionId: str
    url: Optional[str] = None


class PortalRequest(BaseModel):
    returnUrl: Optional[HttpUrl] = None


class PortalResponse(BaseModel):
    url: str


class ManageResponse(BaseModel):
    subscription: Optional[SubscriptionPublic] = None
    tier: str
    history: List[SubscriptionPublic] = []


def _stripe_failure(event: str, user: User, exc: Exception) -> HTTPException:
    logger.error("[subscriptions] event=%s user_id=%s error=%s", event, user.id, exc, exc_info=True)
    return HTTPException(status_code=500, detail="Subscription service error")


@router.post("/create", response_model=CheckoutResponse)
def create_subscription(
    req: CreateSubscriptionRequest,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if crud.get_active_subscription(session, current_user.id):
        raise HTTPException(status_code=400, detail="User already has an active subscription")

    price_id = tier_service.price_id_for_plan(req.planName)
    if not price_id:
        logger.error("[subscriptions] No Stripe price configured for plan %s", req.planName)
        raise HTTPException(status_code=500, detail="Plan not available")

    metadata = {"userId": str(current_user.id), "planName": req.planName}
    try:
        customer_id = billing.ensure_customer(session, current_user)
        checkout = stripe.checkout.Session.create(
            customer=customer_id,
            mode="subscription",
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=str(req.successUrl),
            cancel_url=str(req.cancelUrl),
            metadata=metadata,
            subscription_data={"metadata": metadata},
            allow_promotion_codes=True,
            billing_address_collection="required",
        )
    except stripe.StripeError as e:
        raise _stripe_failure("checkout_create_failed", current_user, e)

    logger.info("[subscriptions] Checkout session created user_id=%s plan=%s", current_user.id, req.planName)
    return CheckoutResponse(sessionId=checkout.id, url=getattr(checkout, "url", None))


@router.post("/cancel", response_model=SubscriptionPublic)
def cancel_subscription(
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    sub = crud.get_active_subscription(session, current_user.id)
    if not sub:
        raise HTTPException(status_code=404, detail="No active subscription found")
    try:
        stripe.Subscription.modify(sub.stripe_subscription_id, cancel_at_period_end=True)
    except stripe.StripeError as e:
        raise _stripe_failure("cancel_failed", current_user, e)
    sub = crud.upsert_subscription(session, sub.user_id, sub.stripe_subscription_id, cancel_at_period_end=True)
    logger.info("[subscriptions] Subscription %s set to cancel at period end", sub.stripe_subscription_id)
    return sub


@router.post("/reactivate", response_model=SubscriptionPublic)
def reactivate_subscription(
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    sub = crud.get_active_subscription(session, current_user.id)
    if not sub or not sub.cancel_at_period_end:
        raise HTTPException(status_code=404, detail="No subscription pending cancellation found")
    try:
        stripe.Subscription.modify(sub.stripe_subscription_id, cancel_at_period_end=False)
    except stripe.StripeError as e:
        raise _stripe_failure("reactivate_failed", current_user, e)
    sub = crud.upsert_subscription(session, sub.user_id, sub.stripe_subscription_id, cancel_at_period_end=False)
    logger.info("[subscriptions] Subscription %s reactivated", sub.stripe_subscription_id)
    return sub


@router.get("/manage", response_model=ManageResponse)
def get_subscription_status(
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    active = crud.get_active_subscription(session, current_user.id)
    return ManageResponse(
        subscription=SubscriptionPublic.model_validate(active) if active else None,
        tier=tier_service.normalize_tier(current_user.subscription_tier),
        history=[SubscriptionPublic.model_validate(s) for s in crud.get_user_subscriptions(session, current_user.id)],
    )


@router.post("/manage", response_model=PortalResponse)
def create_portal_session(
    req: Optional[PortalRequest] = None,
    current_user: User = Depends(get_current_user),
):
    if not current_user.stripe_customer_id:
        raise HTTPException(status_code=404, detail="No billing account found")
    return_url = str(req.returnUrl) if req and req.returnUrl else settings.APP_BASE_URL
    try:
        portal = stripe.billing_portal.Session.create(
            customer=current_user.stripe_customer_id,
            return_url=return_url,
        )
    except stripe.StripeError as e:
        raise _stripe_failure("portal_create_failed", current_user, e)
    return PortalResponse(url=portal.url)
