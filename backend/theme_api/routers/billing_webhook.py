import json
import logging

import stripe
from fastapi import APIRouter, HTTPException, Request
from sqlmodel import Session

from ..core.config import settings
from ..core.database import session_scope
from ..services import billing

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Billing Webhook"])


def _handle_checkout_completed(session: Session, obj: dict) -> None:
    if obj.get("mode") != "subscription" or not obj.get("subscription"):
        logger.info("[webhook] checkout.session.completed without subscription; ignored")
        return
    sub = billing.retrieve_subscription(billing.object_id(obj["subscription"]))
    if not sub.get("customer") and obj.get("customer"):
        sub["customer"] = obj["customer"]
    billing.sync_subscription(session, sub, metadata=obj.get("metadata") or {})


def _handle_subscription_changed(session: Session, obj: dict) -> None:
    billing.sync_subscription(session, obj)


def _handle_subscription_deleted(session: Session, obj: dict) -> None:
    billing.sync_subscription(session, obj, status="canceled")


def _handle_invoice(session: Session, obj: dict) -> None:
    sub_id = billing.invoice_subscription_id(obj)
    if not sub_id:
        logger.info("[webhook] Invoice %s has no subscription; ignored", obj.get("id"))
        return
    billing.sync_subscription(session, billing.retrieve_subscription(sub_id))


def _handle_trial_will_end(session: Session, obj: dict) -> None:
    logger.info("[webhook] Trial ending soon for subscription %s", obj.get("id"))


HANDLERS = {
    "checkout.session.completed": _handle_checkout_completed,
    "customer.subscription.created": _handle_subscription_changed,
    "customer.subscription.updated": _handle_subscription_changed,
    "customer.subscription.deleted": _handle_subscription_deleted,
    "invoice.payment_succeeded": _handle_invoice,
    "invoice.payment_failed": _handle_invoice,
    "customer.subscription.trial_will_end": _handle_trial_will_end,
}


@router.post("/stripe")
async def stripe_webhook(request: Request):
    secret = settings.STRIPE_WEBHOOK_SECRET
    if not secret:
        logger.error("[webhook] STRIPE_WEBHOOK_SECRET not configured")
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        raise HTTPException(status_code=400, detail="Missing Stripe-Signature header")

    raw = await request.body()
    try:
        payload = raw.decode("utf-8")
        stripe.WebhookSignature.verify_header(payload, sig_header, secret)
        event = json.loads(payload)
    except stripe.SignatureVerificationError as e:
        logger.warning("[webhook] Signature verification failed: %s", e)
        raise HTTPException(status_code=400, detail="Invalid signature")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")

    kind = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}
    handler = HANDLERS.get(kind)
    if handler is None:
        logger.info("[webhook] Unhandled event type: %s", kind)
        return {"received": True}

    billing.configure_stripe()
    with session_scope() as session:
        try:
            handler(session, obj)
        except Exception as e:
            # Acknowledged anyway; the failure is only logged
            session.rollback()
            logger.exception("[webhook] Handler for %s (event %s) failed: %s", kind, event.get("id"), e)
    return {"received": True}
