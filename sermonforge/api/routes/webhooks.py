"""
Stripe webhook handler.

Handles:
- checkout.session.completed
- customer.subscription.created / updated / deleted
- customer.subscription.trial_will_end
- invoice.payment_succeeded / payment_failed

All subscription state is written here; the app never polls Stripe.
"""

import logging
import os

import stripe
from fastapi import APIRouter, HTTPException, Request

from ...lib import SubscriptionService


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhook")
async def stripe_webhook(request: Request):
    """
    Handle Stripe webhook events.

    Verifies the webhook signature, then mirrors the event into the
    subscriptions table. Unhandled event types are acknowledged and ignored.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    webhook_secret = os.environ.get("STRIPE_WEBHOOK_SECRET")

    if not webhook_secret:
        raise HTTPException(status_code=500, detail="Webhook secret not configured")
    if not sig_header:
        raise HTTPException(status_code=400, detail="No signature")

    try:
        event = stripe.Webhook.construct_event(
            payload, sig_header, webhook_secret
        )
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        raise HTTPException(status_code=400, detail="Invalid signature")

    service = SubscriptionService()
    try:
        service.handle_event(event)
    except stripe.StripeError as e:
        logger.error("Stripe webhook %s failed: %s", event["type"], e)
        raise HTTPException(
            status_code=500,
            detail={"error": "Webhook handler failed", "details": str(e)},
        )

    # Acknowledge receipt
    return {"received": True}
