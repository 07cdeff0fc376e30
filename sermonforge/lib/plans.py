"""
Subscription plans and trial configuration.

Three tiers, monthly billing:
- Starter: $149/month, 4 sermons
- Growth: $299/month, 12 sermons
- Enterprise: $599/month, unlimited

Trial: 14 days, card required, 2 sermons.
"""

import math
import os
from datetime import datetime, timezone
from typing import Optional


UNLIMITED = -1

PLANS = {
    "starter": {
        "name": "Starter",
        "description": "Perfect for small churches",
        "price": 149,
        "sermon_limit": 4,
        "price_env": "STRIPE_STARTER_PRICE_ID",
        "features": [
            "4 sermons per month",
            "All content types",
            "PDF & Word exports",
            "Email support",
        ],
    },
    "growth": {
        "name": "Growth",
        "description": "For growing congregations",
        "price": 299,
        "sermon_limit": 12,
        "price_env": "STRIPE_GROWTH_PRICE_ID",
        "features": [
            "12 sermons per month",
            "All content types",
            "PDF, Word & PowerPoint exports",
            "Church branding",
            "Priority support",
        ],
    },
    "enterprise": {
        "name": "Enterprise",
        "description": "Unlimited for large ministries",
        "price": 599,
        "sermon_limit": UNLIMITED,
        "price_env": "STRIPE_ENTERPRISE_PRICE_ID",
        "features": [
            "Unlimited sermons",
            "All content types",
            "All export formats",
            "Church branding",
            "Custom integrations",
            "Dedicated support",
        ],
    },
}

TRIAL_CONFIG = {
    "duration_days": 14,
    "sermon_limit": 2,
    "require_card": True,
}

ACTIVE_STATUSES = ("active", "trialing")


def get_price_id(plan_id: str) -> str:
    """Stripe price id for a plan, read from the environment."""
    return os.environ.get(PLANS[plan_id]["price_env"], "")


def get_plan_from_price_id(price_id: Optional[str]) -> Optional[str]:
    if not price_id:
        return None
    for plan_id in PLANS:
        if get_price_id(plan_id) == price_id:
            return plan_id
    return None


def plan_name(plan_id: str) -> str:
    plan = PLANS.get(plan_id)
    return plan["name"] if plan else plan_id


def parse_timestamp(value) -> Optional[datetime]:
    """Parse a Supabase timestamp (ISO string) into an aware datetime."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def days_until(moment: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    """Whole days (rounded up) until `moment`, never negative."""
    if moment is None:
        return None
    now = now or datetime.now(timezone.utc)
    seconds = (moment - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def is_on_trial(subscription: Optional[dict], now: Optional[datetime] = None) -> bool:
    """Trialing status and a trial end still in the future."""
    if not subscription:
        return False
    if subscription.get("status") != "trialing":
        return False
    trial_end = parse_timestamp(subscription.get("trial_end"))
    if not trial_end:
        return False
    return trial_end > (now or datetime.now(timezone.utc))


def trial_days_remaining(subscription: Optional[dict], now: Optional[datetime] = None) -> int:
    if not subscription or subscription.get("status") != "trialing":
        return 0
    return days_until(parse_timestamp(subscription.get("trial_end")), now) or 0
