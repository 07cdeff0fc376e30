"""
Subscription status routes.

Endpoints:
- GET /usage - Sermon usage against the current plan or trial
- GET /trial - Trial status and eligibility
- GET /plans - Available plans
"""

from fastapi import APIRouter, Depends

from ...lib import SubscriptionService, UsageEvaluator, get_current_user
from ...lib.plans import PLANS, TRIAL_CONFIG


router = APIRouter()


@router.get("/usage")
async def get_usage(user: dict = Depends(get_current_user)):
    """
    Get usage for the current billing period.

    Returns:
    - allowed: Whether another sermon can be created
    - current, limit, remaining, percentUsed, isUnlimited
    - planId, planName, status
    - billingPeriod: {start, end, daysRemaining}
    - trial: Trial details when relevant
    - message: Warning or limit message, if any
    """
    evaluator = UsageEvaluator()
    return evaluator.check(user["id"]).to_dict()


@router.get("/trial")
async def get_trial_status(user: dict = Depends(get_current_user)):
    service = SubscriptionService()
    return service.get_trial_status(user["id"])


@router.get("/plans")
async def list_plans():
    """Public plan catalogue. No auth needed."""
    return {
        "plans": [
            {
                "id": plan_id,
                "name": plan["name"],
                "description": plan["description"],
                "price": plan["price"],
                "sermonLimit": plan["sermon_limit"],
                "features": plan["features"],
            }
            for plan_id, plan in PLANS.items()
        ],
        "trial": {
            "durationDays": TRIAL_CONFIG["duration_days"],
            "sermonLimit": TRIAL_CONFIG["sermon_limit"],
        },
    }
