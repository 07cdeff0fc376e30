"""
Usage-limit evaluator.
Decides whether a user may create another sermon this period and reports
usage for display.

Rules:
- No subscription: trial-eligible, full trial entitlement
- Inactive subscription: never allowed
- Unlimited plan: always allowed
- Otherwise: allowed while current < limit (trial limit while on trial)

Pure read. Callers enforce the result (see SermonService.create).
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..db import get_admin_client
from .plans import (
    ACTIVE_STATUSES,
    PLANS,
    TRIAL_CONFIG,
    UNLIMITED,
    days_until,
    is_on_trial,
    parse_timestamp,
    plan_name,
    trial_days_remaining,
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class UsageReport:
    """Result of a usage check. `limit == -1` means unlimited."""
    allowed: bool
    current: int
    limit: int
    plan_id: str
    plan_name: str
    status: str
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    days_remaining: Optional[int] = None
    trial: Optional[dict] = None
    message: Optional[str] = None
    extra: dict = field(default_factory=dict)

    @property
    def is_unlimited(self) -> bool:
        return self.limit == UNLIMITED

    @property
    def remaining(self) -> int:
        if self.is_unlimited:
            return UNLIMITED
        return max(0, self.limit - self.current)

    @property
    def percent_used(self) -> float:
        if self.is_unlimited or self.limit <= 0:
            return 0 if self.is_unlimited else 100
        return min(self.current / self.limit * 100, 100)

    def to_dict(self) -> dict:
        body = {
            "allowed": self.allowed,
            "current": self.current,
            "limit": self.limit,
            "isUnlimited": self.is_unlimited,
            "percentUsed": self.percent_used,
            "remaining": self.remaining,
            "planId": self.plan_id,
            "planName": self.plan_name,
            "status": self.status,
            "billingPeriod": {
                "start": _iso(self.period_start),
                "end": _iso(self.period_end),
                "daysRemaining": self.days_remaining,
            },
        }
        if self.trial is not None:
            body["trial"] = {
                key: _iso(value) if isinstance(value, datetime) else value
                for key, value in self.trial.items()
            }
        if self.message:
            body["message"] = self.message
        body.update(self.extra)
        return body


class UsageEvaluator:
    """Reads the subscription and sermon count, computes a UsageReport."""

    def __init__(self, client=None):
        self.client = client or get_admin_client()

    def get_subscription(self, user_id: str) -> Optional[dict]:
        result = (
            self.client.table("subscriptions")
            .select("*")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def count_sermons_since(self, user_id: str, since: Optional[datetime]) -> int:
        """Sermons created by the user since `since` (all time when None)."""
        query = (
            self.client.table("sermons")
            .select("id", count="exact")
            .eq("user_id", user_id)
        )
        if since is not None:
            query = query.gte("created_at", since.isoformat())
        result = query.execute()
        return result.count or 0

    def usage_window_start(self, subscription: dict, now: datetime) -> datetime:
        """
        Start of the window usage is counted in.
        Trial window while on trial, else the Stripe billing period,
        else the calendar month.
        """
        if is_on_trial(subscription, now):
            trial_end = parse_timestamp(subscription.get("trial_end"))
            return trial_end - timedelta(days=TRIAL_CONFIG["duration_days"])

        period_start = parse_timestamp(subscription.get("current_period_start"))
        if period_start:
            return period_start

        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    def check(self, user_id: str, now: Optional[datetime] = None) -> UsageReport:
        now = now or datetime.now(timezone.utc)
        subscription = self.get_subscription(user_id)

        if not subscription:
            return self._trial_eligible_report(user_id)

        window_start = self.usage_window_start(subscription, now)
        current = self.count_sermons_since(user_id, window_start)

        plan_id = subscription.get("plan_id") or "starter"
        status = subscription.get("status") or "incomplete"
        on_trial = is_on_trial(subscription, now)
        trial_end = parse_timestamp(subscription.get("trial_end"))
        trial_days = trial_days_remaining(subscription, now)

        period_start = parse_timestamp(subscription.get("current_period_start"))
        period_end = parse_timestamp(subscription.get("current_period_end"))
        end_for_display = trial_end if on_trial and trial_end else period_end

        if on_trial:
            limit = subscription.get("trial_sermon_limit") or TRIAL_CONFIG["sermon_limit"]
        else:
            limit = subscription.get("sermon_limit")
            if limit is None:
                limit = PLANS.get(plan_id, PLANS["starter"])["sermon_limit"]

        trial_info = None
        if on_trial:
            trial_info = {
                "isOnTrial": True,
                "daysRemaining": trial_days,
                "endsAt": trial_end,
            }

        report = UsageReport(
            allowed=False,
            current=current,
            limit=limit,
            plan_id=plan_id,
            plan_name=plan_name(plan_id),
            status=status,
            period_start=window_start if on_trial else period_start,
            period_end=end_for_display,
            days_remaining=days_until(end_for_display, now),
            trial=trial_info,
        )

        if status not in ACTIVE_STATUSES:
            report.message = (
                "Payment failed. Please update your payment method to continue."
                if status == "past_due"
                else "Your subscription is inactive. Please renew to continue."
            )
            return report

        if report.is_unlimited:
            report.allowed = True
            return report

        report.allowed = current < limit
        if on_trial:
            report.plan_name = f"{report.plan_name} (Trial)"

        if not report.allowed:
            report.message = (
                f"You've used your {limit} trial sermons. Subscribe now for more!"
                if on_trial
                else f"You've reached your {limit} sermon limit. Upgrade for more."
            )
        elif report.remaining == 1:
            report.message = (
                f"1 trial sermon remaining. {trial_days} days left in your trial."
                if on_trial
                else "You have 1 sermon remaining this billing period."
            )

        return report

    def _trial_eligible_report(self, user_id: str) -> UsageReport:
        """No subscription yet: the user still has the whole trial to use."""
        limit = TRIAL_CONFIG["sermon_limit"]
        current = self.count_sermons_since(user_id, None)
        allowed = current < limit

        report = UsageReport(
            allowed=allowed,
            current=current,
            limit=limit,
            plan_id="trial",
            plan_name="Free Trial",
            status="none",
            trial={
                "isOnTrial": False,
                "isEligible": True,
                "daysRemaining": TRIAL_CONFIG["duration_days"],
                "endsAt": None,
            },
        )
        if not allowed:
            report.message = (
                f"You've used your {limit} trial sermons. Subscribe now for more!"
            )
        return report
