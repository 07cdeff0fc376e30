"""
Stripe subscription sync tests.

Validates:
1. Checkout offers the trial only to accounts that never subscribed
2. Webhooks mirror Stripe state into the subscriptions table
3. Paid invoices reset the usage counter; failed ones mark past_due
4. Billing emails go out without failing the webhook
5. Proration previews and invoice history are mapped for the client

Stripe API calls are replaced with canned responses.
"""

import smtplib
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
import stripe

from sermonforge.lib.errors import NotFoundError, UpstreamError, ValidationError
from sermonforge.lib.subscriptions import SubscriptionService, subscription_period
from sermonforge.lib.usage import UsageEvaluator

from fakes import USER, MockMailer, make_sermon


NOW = datetime(2025, 3, 10, tzinfo=timezone.utc)
PERIOD_START = int(datetime(2025, 3, 1, tzinfo=timezone.utc).timestamp())
PERIOD_END = int(datetime(2025, 4, 1, tzinfo=timezone.utc).timestamp())


@pytest.fixture(autouse=True)
def price_ids(monkeypatch):
    monkeypatch.setenv("STRIPE_STARTER_PRICE_ID", "price_starter")
    monkeypatch.setenv("STRIPE_GROWTH_PRICE_ID", "price_growth")
    monkeypatch.setenv("STRIPE_ENTERPRISE_PRICE_ID", "price_enterprise")
    monkeypatch.setenv("APP_URL", "https://app.example.com")


@pytest.fixture
def mailer():
    return MockMailer()


@pytest.fixture
def service(db, mailer):
    return SubscriptionService(client=db, mailer=mailer)


class StripeCalls:
    """Records calls made to a patched Stripe method."""

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        if self.error:
            raise self.error
        return self.result


def stripe_subscription(**fields):
    sub = {
        "id": "sub_1",
        "customer": "cus_1",
        "status": "active",
        "metadata": {"user_id": USER["id"], "plan_id": "growth"},
        "items": {"data": [{
            "id": "si_1",
            "price": {"id": "price_growth"},
            "current_period_start": PERIOD_START,
            "current_period_end": PERIOD_END,
        }]},
        "cancel_at_period_end": False,
        "canceled_at": None,
        "trial_end": None,
    }
    sub.update(fields)
    return sub


def add_row(db, **fields):
    row = {
        "user_id": USER["id"],
        "stripe_customer_id": "cus_1",
        "stripe_subscription_id": "sub_1",
        "plan_id": "starter",
        "status": "active",
        "sermon_count": 3,
        "current_period_end": datetime(2025, 4, 1, tzinfo=timezone.utc).isoformat(),
    }
    row.update(fields)
    return db.add("subscriptions", **row)


# =============================================================================
# Checkout
# =============================================================================

def test_checkout_with_trial(db, service, monkeypatch):
    """Test: First checkout gets a 14 day trial and an incomplete row."""
    monkeypatch.setattr(stripe.Customer, "create", StripeCalls(SimpleNamespace(id="cus_new")))
    create_session = StripeCalls(SimpleNamespace(url="https://checkout.stripe.com/c/1"))
    monkeypatch.setattr(stripe.checkout.Session, "create", create_session)

    result = service.create_checkout_session(USER["id"], USER["email"], "growth")

    assert result == {"url": "https://checkout.stripe.com/c/1", "hasTrial": True, "trialDays": 14}
    kwargs = create_session.calls[0][1]
    assert kwargs["customer"] == "cus_new"
    assert kwargs["line_items"] == [{"price": "price_growth", "quantity": 1}]
    assert kwargs["payment_method_collection"] == "always"
    assert kwargs["subscription_data"]["trial_period_days"] == 14
    assert kwargs["success_url"].startswith("https://app.example.com/dashboard?checkout=success")

    row = db.rows("subscriptions")[0]
    assert row["status"] == "incomplete"
    assert row["plan_id"] == "growth"
    assert row["sermon_limit"] == 12


def test_checkout_without_trial_for_returning_customer(db, service, monkeypatch):
    add_row(db, status="canceled", had_trial=True)
    create_session = StripeCalls(SimpleNamespace(url="https://checkout.stripe.com/c/2"))
    monkeypatch.setattr(stripe.checkout.Session, "create", create_session)

    result = service.create_checkout_session(USER["id"], USER["email"], "starter")

    assert result["hasTrial"] is False
    assert result["trialDays"] == 0
    assert "trial_period_days" not in create_session.calls[0][1]["subscription_data"]


def test_checkout_skip_trial(service, monkeypatch):
    monkeypatch.setattr(stripe.Customer, "create", StripeCalls(SimpleNamespace(id="cus_new")))
    monkeypatch.setattr(stripe.checkout.Session, "create", StripeCalls(SimpleNamespace(url="u")))

    assert service.create_checkout_session(USER["id"], None, "starter", skip_trial=True)["hasTrial"] is False


def test_checkout_invalid_plan(service, monkeypatch):
    with pytest.raises(ValidationError, match="Invalid plan"):
        service.create_checkout_session(USER["id"], USER["email"], "platinum")

    monkeypatch.delenv("STRIPE_GROWTH_PRICE_ID")
    with pytest.raises(ValidationError, match="Invalid plan"):
        service.create_checkout_session(USER["id"], USER["email"], "growth")


def test_checkout_stripe_error(service, monkeypatch):
    monkeypatch.setattr(stripe.Customer, "create", StripeCalls(error=stripe.StripeError("card declined")))

    with pytest.raises(UpstreamError, match="Failed to create checkout session"):
        service.create_checkout_session(USER["id"], USER["email"], "growth")


def test_portal_requires_subscription(service):
    with pytest.raises(NotFoundError, match="No subscription found"):
        service.get_billing_portal_url(USER["id"])


def test_portal_url(db, service, monkeypatch):
    add_row(db)
    create = StripeCalls(SimpleNamespace(url="https://billing.stripe.com/p/1"))
    monkeypatch.setattr(stripe.billing_portal.Session, "create", create)

    assert service.get_billing_portal_url(USER["id"]) == "https://billing.stripe.com/p/1"
    assert create.calls[0][1]["return_url"] == "https://app.example.com/settings/billing"


# =============================================================================
# Webhooks
# =============================================================================

def test_subscription_created_syncs_row(db, service):
    """Test: customer.subscription.created stores plan, status, period and trial."""
    trial_end = int((NOW + timedelta(days=14)).timestamp())
    service.handle_event({
        "type": "customer.subscription.created",
        "data": {"object": stripe_subscription(status="trialing", trial_end=trial_end)},
    })

    row = db.rows("subscriptions")[0]
    assert row["plan_id"] == "growth"
    assert row["status"] == "trialing"
    assert row["sermon_limit"] == 12
    assert row["had_trial"] is True
    assert row["trial_sermon_limit"] == 2
    assert row["current_period_start"] == "2025-03-01T00:00:00+00:00"
    assert row["current_period_end"] == "2025-04-01T00:00:00+00:00"


def test_subscription_updated_without_metadata_uses_customer(db, service):
    add_row(db, plan_id="growth")

    service.handle_event({
        "type": "customer.subscription.updated",
        "data": {"object": stripe_subscription(
            metadata={}, items={"data": [{"id": "si_1", "price": {"id": "price_enterprise"}}]},
            current_period_start=PERIOD_START, current_period_end=PERIOD_END,
        )},
    })

    rows = db.rows("subscriptions")
    assert len(rows) == 1
    assert rows[0]["plan_id"] == "enterprise"
    assert rows[0]["sermon_limit"] == -1


def test_checkout_completed_sends_welcome(db, service, mailer, monkeypatch):
    monkeypatch.setattr(stripe.Subscription, "retrieve", StripeCalls(stripe_subscription()))

    service.handle_event({
        "type": "checkout.session.completed",
        "data": {"object": {
            "mode": "subscription",
            "subscription": "sub_1",
            "customer_details": {"email": "pastor@example.com"},
        }},
    })

    assert db.rows("subscriptions")[0]["status"] == "active"
    assert mailer.sent == [("send_subscription_welcome", ("pastor@example.com", "Growth", 12))]


def test_payment_succeeded_resets_usage(db, service):
    add_row(db, status="past_due", sermon_count=4)

    service.handle_event({
        "type": "invoice.payment_succeeded",
        "data": {"object": {
            "subscription": "sub_1", "customer": "cus_1",
            "amount_paid": 14900, "billing_reason": "subscription_cycle",
        }},
    })

    row = db.rows("subscriptions")[0]
    assert row["status"] == "active"
    assert row["sermon_count"] == 0


def test_trial_start_invoice_keeps_trial_limits(db, service):
    """Test: The $0 invoice at trial start leaves the subscription trialing with the trial limit."""
    trial_end = datetime.now(timezone.utc) + timedelta(days=10)
    add_row(
        db, plan_id="enterprise", status="trialing", sermon_count=2,
        trial_end=trial_end.isoformat(), trial_sermon_limit=2,
    )
    make_sermon(db)
    make_sermon(db)

    service.handle_event({
        "type": "invoice.payment_succeeded",
        "data": {"object": {
            "subscription": "sub_1", "customer": "cus_1",
            "amount_paid": 0, "billing_reason": "subscription_create",
        }},
    })

    row = db.rows("subscriptions")[0]
    assert row["status"] == "trialing"
    assert row["sermon_count"] == 2
    report = UsageEvaluator(db).check(USER["id"])
    assert report.allowed is False
    assert report.limit == 2


def test_zero_cycle_invoice_keeps_trialing_status(db, service):
    add_row(db, status="trialing", sermon_count=1)

    service.handle_event({
        "type": "invoice.payment_succeeded",
        "data": {"object": {
            "subscription": "sub_1", "customer": "cus_1",
            "amount_paid": 0, "billing_reason": "subscription_cycle",
        }},
    })

    row = db.rows("subscriptions")[0]
    assert row["status"] == "trialing"
    assert row["sermon_count"] == 0


def test_payment_failed_marks_past_due(db, service, mailer):
    add_row(db)

    service.handle_event({
        "type": "invoice.payment_failed",
        "data": {"object": {
            "parent": {"subscription_details": {"subscription": "sub_1"}},
            "customer_email": "billing@example.com",
        }},
    })

    assert db.rows("subscriptions")[0]["status"] == "past_due"
    assert mailer.sent == [("send_payment_failed", ("billing@example.com", "Starter"))]


def test_subscription_deleted(db, service, mailer):
    add_row(db)

    service.handle_event({
        "type": "customer.subscription.deleted",
        "data": {"object": stripe_subscription(status="canceled")},
    })

    row = db.rows("subscriptions")[0]
    assert row["status"] == "canceled"
    assert row["canceled_at"]
    assert mailer.sent[0][0] == "send_subscription_canceled"


def test_trial_will_end_reminder(db, service, mailer):
    add_row(db, status="trialing")
    trial_end = int((datetime.now(timezone.utc) + timedelta(days=3)).timestamp())

    service.handle_event({
        "type": "customer.subscription.trial_will_end",
        "data": {"object": stripe_subscription(trial_end=trial_end)},
    })

    name, args = mailer.sent[0]
    assert name == "send_trial_reminder"
    assert args == (USER["email"], "Starter", 3)


def test_email_failure_does_not_fail_webhook(db, service, mailer):
    """Test: An SMTP error is logged, the status change still lands."""
    add_row(db)

    def broken(*args):
        raise smtplib.SMTPException("relay down")
    mailer.send_payment_failed = broken

    service.handle_event({
        "type": "invoice.payment_failed",
        "data": {"object": {"subscription": "sub_1", "customer_email": "billing@example.com"}},
    })

    assert db.rows("subscriptions")[0]["status"] == "past_due"


def test_unknown_event_ignored(db, service):
    service.handle_event({"type": "customer.created", "data": {"object": {}}})
    assert db.rows("subscriptions") == []


def test_subscription_period_prefers_subscription_fields():
    sub = stripe_subscription(current_period_start=1, current_period_end=2)
    assert subscription_period(sub) == (1, 2)
    assert subscription_period(stripe_subscription()) == (PERIOD_START, PERIOD_END)


# =============================================================================
# Proration, invoices, trial status
# =============================================================================

def test_preview_upgrade(db, service, monkeypatch):
    add_row(db)
    monkeypatch.setattr(stripe.Subscription, "retrieve", StripeCalls(stripe_subscription()))
    preview = StripeCalls({"lines": {"data": [
        {"amount": -10000, "proration": True},
        {"amount": 20000, "parent": {"subscription_item_details": {"proration": True}}},
        {"amount": 29900, "proration": False},
    ]}})
    monkeypatch.setattr(stripe.Invoice, "create_preview", preview)

    result = service.preview_proration(USER["id"], "growth", now=NOW)

    assert result["isUpgrade"] is True
    assert result["proration"] == {"amount": 100.0, "dueNow": 100.0, "credit": 100.0}
    assert result["nextMonth"]["amount"] == 299
    assert result["daysRemaining"] == 22
    assert result["message"].startswith("You'll be charged $100.00 now")
    details = preview.calls[0][1]["subscription_details"]
    assert details["items"] == [{"id": "si_1", "price": "price_growth"}]
    assert details["proration_date"] == int(NOW.timestamp())


def test_preview_requires_active_subscription(db, service):
    with pytest.raises(ValidationError, match="Invalid target plan"):
        service.preview_proration(USER["id"], "platinum")
    with pytest.raises(ValidationError, match="No active subscription"):
        service.preview_proration(USER["id"], "growth")


def test_list_invoices(db, service, monkeypatch):
    add_row(db)
    monkeypatch.setattr(stripe.Invoice, "list", StripeCalls(SimpleNamespace(data=[{
        "id": "in_1",
        "number": "SF-0001",
        "amount_paid": 14900,
        "currency": "usd",
        "status": "paid",
        "created": PERIOD_START,
        "invoice_pdf": "https://pay.stripe.com/in_1.pdf",
        "lines": {"data": [{"description": "1 x Starter"}]},
    }])))

    invoices = service.list_invoices(USER["id"])

    assert invoices == [{
        "id": "in_1",
        "number": "SF-0001",
        "amount": 149.0,
        "currency": "USD",
        "status": "paid",
        "date": "2025-03-01T00:00:00+00:00",
        "pdfUrl": "https://pay.stripe.com/in_1.pdf",
        "description": "1 x Starter",
    }]


def test_list_invoices_without_customer(service):
    assert service.list_invoices(USER["id"]) == []


def test_trial_status(db, service):
    assert service.get_trial_status(USER["id"])["isEligible"] is True

    add_row(db, status="trialing", trial_end=(NOW + timedelta(days=6)).isoformat(), had_trial=True)
    status = service.get_trial_status(USER["id"], now=NOW)

    assert status["isOnTrial"] is True
    assert status["isEligible"] is False
    assert status["daysRemaining"] == 6
    assert status["sermonLimit"] == 2
