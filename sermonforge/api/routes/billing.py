"""
Billing routes (Stripe).
All self-serve - plan changes and cancellation happen in the Stripe portal.

Endpoints:
- POST /checkout - Start a subscription (14-day trial when eligible)
- POST /portal - Stripe Customer Portal URL
- POST /preview-proration - Cost of switching plans
- GET /invoices - Recent invoices
"""

from fastapi import APIRouter, Depends

from ...lib import SubscriptionService, get_current_user
from ...models import CheckoutRequest, ProrationRequest


router = APIRouter()


@router.post("/checkout")
async def create_checkout_session(
    body: CheckoutRequest,
    user: dict = Depends(get_current_user)
):
    """
    Create Stripe Checkout session for a plan.

    Body:
    - planId: starter | growth | enterprise
    - skipTrial: Pay now instead of starting the trial

    Returns:
    - url: Redirect user here to complete payment
    - hasTrial: Whether the subscription starts with a trial
    - trialDays: Trial length (0 without a trial)
    """
    service = SubscriptionService()
    return service.create_checkout_session(
        user_id=user["id"],
        email=user.get("email"),
        plan_id=body.planId,
        skip_trial=body.skipTrial,
    )


@router.post("/portal")
async def get_billing_portal(user: dict = Depends(get_current_user)):
    """
    Get Stripe Customer Portal URL.

    Users can update payment method, change plans, view invoices and
    cancel - all without contacting support.
    """
    service = SubscriptionService()
    return {"url": service.get_billing_portal_url(user["id"])}


@router.post("/preview-proration")
async def preview_proration(
    body: ProrationRequest,
    user: dict = Depends(get_current_user)
):
    """
    Preview a plan change.

    Returns:
    - currentPlan, targetPlan: {id, name, price}
    - isUpgrade
    - proration: {amount, dueNow, credit}
    - nextMonth: {amount, date}
    - daysRemaining, message
    """
    service = SubscriptionService()
    return service.preview_proration(user["id"], body.targetPlanId)


@router.get("/invoices")
async def list_invoices(user: dict = Depends(get_current_user)):
    service = SubscriptionService()
    return {"invoices": service.list_invoices(user["id"])}
