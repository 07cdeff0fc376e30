"""
Usage gate tests.

Validates:
1. Users without a subscription get the trial entitlement, counted over all time
2. Paid plans count sermons inside the current billing period only
3. Inactive subscriptions are never allowed
4. Unlimited plans are always allowed
5. Trials use the trial limit and window
"""

from datetime import datetime, timedelta, timezone

import pytest

from sermonforge.lib.usage import UsageEvaluator

from fakes import USER


NOW = datetime.now(timezone.utc)


def add_subscription(db, **fields):
    row = {
        "user_id": USER["id"],
        "plan_id": "starter",
        "status": "active",
        "sermon_limit": 4,
        "current_period_start": (NOW - timedelta(days=10)).isoformat(),
        "current_period_end": (NOW + timedelta(days=20)).isoformat(),
    }
    row.update(fields)
    return db.add("subscriptions", **row)


def add_sermons(db, count, created_at=None):
    for i in range(count):
        fields = {"user_id": USER["id"], "title": f"Sermon {i}", "status": "draft"}
        if created_at:
            fields["created_at"] = created_at
        db.add("sermons", **fields)


# =============================================================================
# No subscription
# =============================================================================

def test_no_subscription_is_trial_eligible(db):
    """Test: A brand new user can create sermons up to the trial limit."""
    report = UsageEvaluator(db).check(USER["id"])

    assert report.allowed is True
    assert report.limit == 2
    assert report.plan_id == "trial"
    body = report.to_dict()
    assert body["trial"]["isEligible"] is True
    assert body["remaining"] == 2


def test_no_subscription_counts_all_time(db):
    """Test: Old sermons still count against the trial entitlement."""
    add_sermons(db, 2, created_at=(NOW - timedelta(days=400)).isoformat())

    report = UsageEvaluator(db).check(USER["id"])

    assert report.allowed is False
    assert report.message == "You've used your 2 trial sermons. Subscribe now for more!"


# =============================================================================
# Paid plans
# =============================================================================

def test_only_current_period_counts(db):
    """Test: Sermons from before the billing period are not counted."""
    add_subscription(db)
    add_sermons(db, 5, created_at=(NOW - timedelta(days=40)).isoformat())
    add_sermons(db, 2)

    report = UsageEvaluator(db).check(USER["id"], now=NOW)

    assert report.current == 2
    assert report.allowed is True
    assert report.remaining == 2
    assert report.percent_used == 50


def test_last_sermon_warning(db):
    add_subscription(db)
    add_sermons(db, 3)

    report = UsageEvaluator(db).check(USER["id"], now=NOW)

    assert report.allowed is True
    assert report.message == "You have 1 sermon remaining this billing period."


def test_limit_reached(db):
    """Test: current == limit blocks creation."""
    add_subscription(db)
    add_sermons(db, 4)

    report = UsageEvaluator(db).check(USER["id"], now=NOW)

    assert report.allowed is False
    assert report.message == "You've reached your 4 sermon limit. Upgrade for more."
    assert report.to_dict()["billingPeriod"]["daysRemaining"] == 20


@pytest.mark.parametrize("status,message", [
    ("past_due", "Payment failed. Please update your payment method to continue."),
    ("canceled", "Your subscription is inactive. Please renew to continue."),
])
def test_inactive_subscription_never_allowed(db, status, message):
    add_subscription(db, status=status)

    report = UsageEvaluator(db).check(USER["id"], now=NOW)

    assert report.allowed is False
    assert report.current == 0
    assert report.message == message


def test_unlimited_plan(db):
    add_subscription(db, plan_id="enterprise", sermon_limit=-1)
    add_sermons(db, 50)

    report = UsageEvaluator(db).check(USER["id"], now=NOW)

    assert report.allowed is True
    body = report.to_dict()
    assert body["isUnlimited"] is True
    assert body["remaining"] == -1
    assert body["percentUsed"] == 0


def test_missing_period_falls_back_to_calendar_month(db):
    add_subscription(db, current_period_start=None, current_period_end=None)

    evaluator = UsageEvaluator(db)
    start = evaluator.usage_window_start(db.rows("subscriptions")[0], NOW)

    assert start == NOW.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


# =============================================================================
# Trials
# =============================================================================

def test_trial_uses_trial_limit(db):
    """Test: While trialing, the trial limit applies instead of the plan limit."""
    add_subscription(
        db,
        plan_id="growth",
        status="trialing",
        sermon_limit=12,
        trial_sermon_limit=2,
        trial_end=(NOW + timedelta(days=5)).isoformat(),
    )
    add_sermons(db, 2)

    report = UsageEvaluator(db).check(USER["id"], now=NOW)

    assert report.limit == 2
    assert report.allowed is False
    assert report.plan_name == "Growth (Trial)"
    assert report.trial["isOnTrial"] is True
    assert report.trial["daysRemaining"] == 5


def test_trial_last_sermon_message(db):
    add_subscription(
        db,
        status="trialing",
        trial_sermon_limit=2,
        trial_end=(NOW + timedelta(days=9)).isoformat(),
    )
    add_sermons(db, 1)

    report = UsageEvaluator(db).check(USER["id"], now=NOW)

    assert report.allowed is True
    assert report.plan_name == "Starter (Trial)"
    assert report.message == "1 trial sermon remaining. 9 days left in your trial."
