"""
Subscription management service.
Handles the Stripe side of billing.

Key design:
- Three monthly plans (see plans.py), 14-day trial with a card on file
- One trial per account: anyone who ever had a Stripe subscription pays immediately
- Stripe is the source of truth; webhooks mirror it into the subscriptions table
- Self-serve plan changes and payment updates through the Customer Portal
"""

import logging
import os
import smtplib
from datetime import datetime, timezone
from typing import Optional

import stripe

from ..db import get_admin_client
from ..models import SubscriptionStatus
from .errors import NotFoundError, UpstreamError, ValidationError
from .notifications import EmailService, app_url
from .plans import (
    PLANS,
    TRIAL_CONFIG,
    days_until,
    get_plan_from_price_id,
    get_price_id,
    is_on_trial,
    parse_timestamp,
    plan_name,
    trial_days_remaining,
)


logger = logging.getLogger(__name__)

INVOICE_HISTORY_LIMIT = 24


def from_unix(ts: Optional[int]) -> Optional[str]:
    if not ts:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def _first_item(subscription) -> Optional[dict]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else None


def subscription_period(subscription) -> tuple:
    """
    (start, end) unix timestamps of the current billing period.
    Newer Stripe API versions carry the period on the subscription item.
    """
    start = subscription.get("current_period_start")
    end = subscription.get("current_period_end")
    item = _first_item(subscription)
    if item and not start:
        start = item.get("current_period_start")
    if item and not end:
        end = item.get("current_period_end")
    return start, end


def subscription_price_id(subscription) -> Optional[str]:
    item = _first_item(subscription)
    if not item:
        return None
    price = item.get("price") or {}
    return price.get("id")


def _is_proration_line(line) -> bool:
    if line.get("proration"):
        return True
    parent = line.get("parent") or {}
    details = parent.get("subscription_item_details") or {}
    return bool(details.get("proration"))


class SubscriptionService:
    """Handles all subscription and billing logic."""

    def __init__(self, client=None, mailer: Optional[EmailService] = None):
        self.client = client or get_admin_client()
        stripe.api_key = os.environ.get("STRIPE_SECRET_KEY")
        self.mailer = mailer or EmailService()

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_subscription(self, user_id: str) -> Optional[dict]:
        result = (
            self.client.table("subscriptions")
            .select("*")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def _find_by_customer(self, customer_id: Optional[str]) -> Optional[dict]:
        if not customer_id:
            return None
        result = (
            self.client.table("subscriptions")
            .select("*")
            .eq("stripe_customer_id", customer_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def _find_by_stripe_subscription(self, subscription_id: Optional[str]) -> Optional[dict]:
        if not subscription_id:
            return None
        result = (
            self.client.table("subscriptions")
            .select("*")
            .eq("stripe_subscription_id", subscription_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def _user_email(self, user_id: str) -> Optional[str]:
        response = self.client.auth.admin.get_user_by_id(user_id)
        return response.user.email if response and response.user else None

    def _notify(self, send, *args) -> None:
        """Emails never fail a billing operation."""
        try:
            send(*args)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("Billing email failed: %s", e)

    # -------------------------------------------------------------------------
    # Checkout & portal
    # -------------------------------------------------------------------------

    def is_trial_eligible(self, subscription: Optional[dict]) -> bool:
        """A trial is offered only to accounts that never had a Stripe subscription."""
        if not subscription:
            return True
        return not subscription.get("stripe_subscription_id") and not subscription.get("had_trial")

    def get_or_create_customer(self, user_id: str, email: Optional[str]) -> str:
        existing = self.get_subscription(user_id)
        if existing and existing.get("stripe_customer_id"):
            return existing["stripe_customer_id"]

        customer = stripe.Customer.create(email=email, metadata={"user_id": user_id})
        logger.info("Created Stripe customer %s for user %s", customer.id, user_id)
        return customer.id

    def create_checkout_session(
        self, user_id: str, email: Optional[str], plan_id: str, skip_trial: bool = False
    ) -> dict:
        """
        Create a Stripe Checkout session for a plan.
        Returns {url, hasTrial, trialDays}.
        """
        if plan_id not in PLANS:
            raise ValidationError("Invalid plan")
        price_id = get_price_id(plan_id)
        if not price_id:
            raise ValidationError("Invalid plan", details=f"No Stripe price configured for {plan_id}")

        existing = self.get_subscription(user_id)
        has_trial = self.is_trial_eligible(existing) and not skip_trial
        plan = PLANS[plan_id]

        try:
            customer_id = self.get_or_create_customer(user_id, email)

            if not existing or existing.get("status") not in ("active", "trialing"):
                self.client.table("subscriptions").upsert({
                    "user_id": user_id,
                    "stripe_customer_id": customer_id,
                    "plan_id": plan_id,
                    "status": SubscriptionStatus.INCOMPLETE.value,
                    "sermon_limit": plan["sermon_limit"],
                    "trial_sermon_limit": TRIAL_CONFIG["sermon_limit"],
                }, on_conflict="user_id").execute()

            subscription_data = {"metadata": {"user_id": user_id, "plan_id": plan_id}}
            if has_trial:
                subscription_data["trial_period_days"] = TRIAL_CONFIG["duration_days"]

            session = stripe.checkout.Session.create(
                customer=customer_id,
                mode="subscription",
                line_items=[{"price": price_id, "quantity": 1}],
                payment_method_collection="always",
                subscription_data=subscription_data,
                success_url=f"{app_url()}/dashboard?checkout=success&session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{app_url()}/pricing?checkout=canceled",
                metadata={"user_id": user_id, "plan_id": plan_id},
            )
        except stripe.StripeError as e:
            logger.error("Checkout failed for user %s: %s", user_id, e)
            raise UpstreamError("Failed to create checkout session", details=str(e))

        return {
            "url": session.url,
            "hasTrial": has_trial,
            "trialDays": TRIAL_CONFIG["duration_days"] if has_trial else 0,
        }

    def get_billing_portal_url(self, user_id: str) -> str:
        """
        Stripe Customer Portal URL for self-serve billing management.
        Users can update payment, change plans and cancel without support.
        """
        subscription = self.get_subscription(user_id)
        if not subscription or not subscription.get("stripe_customer_id"):
            raise NotFoundError("No subscription found")

        try:
            session = stripe.billing_portal.Session.create(
                customer=subscription["stripe_customer_id"],
                return_url=f"{app_url()}/settings/billing",
            )
        except stripe.StripeError as e:
            raise UpstreamError("Failed to create portal session", details=str(e))
        return session.url

    # -------------------------------------------------------------------------
    # Plan changes & invoices
    # -------------------------------------------------------------------------

    def preview_proration(self, user_id: str, target_plan_id: str, now: Optional[datetime] = None) -> dict:
        """What switching to `target_plan_id` costs now and next period."""
        if target_plan_id not in PLANS:
            raise ValidationError("Invalid target plan")

        subscription = self.get_subscription(user_id)
        if (
            not subscription
            or not subscription.get("stripe_subscription_id")
            or subscription.get("status") not in ("active", "trialing")
        ):
            raise ValidationError("No active subscription")

        current_plan_id = subscription.get("plan_id") or "starter"
        current = PLANS.get(current_plan_id, PLANS["starter"])
        target = PLANS[target_plan_id]
        is_upgrade = target["price"] > current["price"]
        now = now or datetime.now(timezone.utc)

        try:
            stripe_sub = stripe.Subscription.retrieve(subscription["stripe_subscription_id"])
            item = _first_item(stripe_sub)
            preview = stripe.Invoice.create_preview(
                customer=subscription["stripe_customer_id"],
                subscription=subscription["stripe_subscription_id"],
                subscription_details={
                    "items": [{"id": item["id"], "price": get_price_id(target_plan_id)}],
                    "proration_date": int(now.timestamp()),
                },
            )
        except stripe.StripeError as e:
            raise UpstreamError("Failed to preview plan change", details=str(e))

        lines = (preview.get("lines") or {}).get("data") or []
        proration_cents = [line.get("amount", 0) for line in lines if _is_proration_line(line)]
        amount = sum(proration_cents) / 100
        credit = -sum(c for c in proration_cents if c < 0) / 100
        due_now = max(0, amount)

        period_end = parse_timestamp(subscription.get("current_period_end"))
        days_remaining = days_until(period_end, now) or 0

        if is_upgrade:
            message = (
                f"You'll be charged ${due_now:.2f} now for the rest of this billing period, "
                f"then ${target['price']}/month."
            )
        else:
            message = (
                f"You'll receive a ${credit:.2f} credit toward future invoices. "
                f"Your new rate of ${target['price']}/month starts next billing period."
            )

        return {
            "currentPlan": {"id": current_plan_id, "name": current["name"], "price": current["price"]},
            "targetPlan": {"id": target_plan_id, "name": target["name"], "price": target["price"]},
            "isUpgrade": is_upgrade,
            "proration": {"amount": amount, "dueNow": due_now, "credit": credit},
            "nextMonth": {
                "amount": target["price"],
                "date": period_end.isoformat() if period_end else None,
            },
            "daysRemaining": days_remaining,
            "message": message,
        }

    def list_invoices(self, user_id: str) -> list:
        subscription = self.get_subscription(user_id)
        if not subscription or not subscription.get("stripe_customer_id"):
            return []

        try:
            invoices = stripe.Invoice.list(
                customer=subscription["stripe_customer_id"],
                limit=INVOICE_HISTORY_LIMIT,
            )
        except stripe.StripeError as e:
            raise UpstreamError("Failed to fetch invoices", details=str(e))

        result = []
        for invoice in invoices.data:
            lines = (invoice.get("lines") or {}).get("data") or []
            description = lines[0].get("description") if lines else None
            result.append({
                "id": invoice.get("id"),
                "number": invoice.get("number"),
                "amount": (invoice.get("amount_paid") or invoice.get("amount_due") or 0) / 100,
                "currency": (invoice.get("currency") or "usd").upper(),
                "status": invoice.get("status"),
                "date": from_unix(invoice.get("created")),
                "pdfUrl": invoice.get("invoice_pdf"),
                "description": description or "SermonForge subscription",
            })
        return result

    def get_trial_status(self, user_id: str, now: Optional[datetime] = None) -> dict:
        subscription = self.get_subscription(user_id)
        on_trial = is_on_trial(subscription, now)
        return {
            "isOnTrial": on_trial,
            "isEligible": self.is_trial_eligible(subscription),
            "hadTrial": bool(subscription and subscription.get("had_trial")),
            "daysRemaining": trial_days_remaining(subscription, now),
            "endsAt": subscription.get("trial_end") if on_trial else None,
            "sermonLimit": (
                (subscription or {}).get("trial_sermon_limit") or TRIAL_CONFIG["sermon_limit"]
            ),
            "durationDays": TRIAL_CONFIG["duration_days"],
        }

    # -------------------------------------------------------------------------
    # Webhook handlers
    # -------------------------------------------------------------------------

    def handle_event(self, event) -> None:
        """Route a verified Stripe event. Unknown types are acknowledged and ignored."""
        handlers = {
            "checkout.session.completed": self.handle_checkout_completed,
            "customer.subscription.created": self.sync_subscription,
            "customer.subscription.updated": self.sync_subscription,
            "customer.subscription.deleted": self.handle_subscription_deleted,
            "invoice.payment_succeeded": self.handle_payment_succeeded,
            "invoice.payment_failed": self.handle_payment_failed,
            "customer.subscription.trial_will_end": self.handle_trial_will_end,
        }
        handler = handlers.get(event["type"])
        if handler is None:
            logger.debug("Ignoring Stripe event %s", event["type"])
            return
        logger.info("Handling Stripe event %s", event["type"])
        handler(event["data"]["object"])

    def _resolve_user_id(self, stripe_sub) -> Optional[str]:
        metadata = stripe_sub.get("metadata") or {}
        if metadata.get("user_id"):
            return metadata["user_id"]
        row = self._find_by_customer(stripe_sub.get("customer"))
        return row["user_id"] if row else None

    def sync_subscription(self, stripe_sub) -> Optional[dict]:
        """Mirror a Stripe subscription object into our row."""
        user_id = self._resolve_user_id(stripe_sub)
        if not user_id:
            logger.warning("No user for Stripe subscription %s", stripe_sub.get("id"))
            return None

        price_id = subscription_price_id(stripe_sub)
        metadata = stripe_sub.get("metadata") or {}
        plan_id = get_plan_from_price_id(price_id) or metadata.get("plan_id") or "starter"
        period_start, period_end = subscription_period(stripe_sub)

        record = {
            "user_id": user_id,
            "stripe_customer_id": stripe_sub.get("customer"),
            "stripe_subscription_id": stripe_sub.get("id"),
            "stripe_price_id": price_id,
            "plan_id": plan_id,
            "status": stripe_sub.get("status"),
            "sermon_limit": PLANS[plan_id]["sermon_limit"],
            "current_period_start": from_unix(period_start),
            "current_period_end": from_unix(period_end),
            "cancel_at_period_end": bool(stripe_sub.get("cancel_at_period_end")),
            "canceled_at": from_unix(stripe_sub.get("canceled_at")),
            "trial_end": from_unix(stripe_sub.get("trial_end")),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        if stripe_sub.get("trial_end"):
            record["had_trial"] = True
            record["trial_sermon_limit"] = TRIAL_CONFIG["sermon_limit"]

        result = self.client.table("subscriptions").upsert(record, on_conflict="user_id").execute()
        logger.info("Synced subscription %s (%s) for user %s", record["stripe_subscription_id"], record["status"], user_id)
        return result.data[0] if result.data else record

    def handle_checkout_completed(self, session) -> None:
        if session.get("mode") != "subscription" or not session.get("subscription"):
            return

        stripe_sub = stripe.Subscription.retrieve(session["subscription"])
        row = self.sync_subscription(stripe_sub)
        if not row:
            return

        details = session.get("customer_details") or {}
        email = details.get("email") or session.get("customer_email")
        if email:
            plan_id = row.get("plan_id") or "starter"
            self._notify(
                self.mailer.send_subscription_welcome,
                email, plan_name(plan_id), PLANS[plan_id]["sermon_limit"],
            )

    def handle_subscription_deleted(self, stripe_sub) -> None:
        row = self._find_by_stripe_subscription(stripe_sub.get("id")) or self._find_by_customer(stripe_sub.get("customer"))
        if not row:
            return

        now = datetime.now(timezone.utc).isoformat()
        self.client.table("subscriptions").update({
            "status": SubscriptionStatus.CANCELED.value,
            "canceled_at": from_unix(stripe_sub.get("canceled_at")) or now,
            "updated_at": now,
        }).eq("user_id", row["user_id"]).execute()

        email = self._user_email(row["user_id"])
        if email:
            self._notify(self.mailer.send_subscription_canceled, email, plan_name(row.get("plan_id") or "starter"))

    def _row_for_invoice(self, invoice) -> Optional[dict]:
        subscription_id = invoice.get("subscription")
        if not subscription_id:
            parent = invoice.get("parent") or {}
            subscription_id = (parent.get("subscription_details") or {}).get("subscription")
        return self._find_by_stripe_subscription(subscription_id) or self._find_by_customer(invoice.get("customer"))

    def handle_payment_succeeded(self, invoice) -> None:
        """
        A paid invoice starts a fresh period: usage counter back to zero.

        The $0 invoice Stripe issues when a trial starts is not a payment;
        it leaves the trial status and counter alone.
        """
        row = self._row_for_invoice(invoice)
        if not row:
            return

        amount_paid = invoice.get("amount_paid") or 0
        billing_reason = invoice.get("billing_reason")
        if amount_paid <= 0 and billing_reason != "subscription_cycle":
            logger.info(
                "Ignoring $0 %s invoice for user %s", billing_reason or "unknown", row["user_id"]
            )
            return

        update = {
            "sermon_count": 0,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        if amount_paid > 0 or row.get("status") != SubscriptionStatus.TRIALING.value:
            update["status"] = SubscriptionStatus.ACTIVE.value
        self.client.table("subscriptions").update(update).eq("user_id", row["user_id"]).execute()

    def handle_payment_failed(self, invoice) -> None:
        row = self._row_for_invoice(invoice)
        if not row:
            return
        self.client.table("subscriptions").update({
            "status": SubscriptionStatus.PAST_DUE.value,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }).eq("user_id", row["user_id"]).execute()

        email = invoice.get("customer_email") or self._user_email(row["user_id"])
        if email:
            self._notify(self.mailer.send_payment_failed, email, plan_name(row.get("plan_id") or "starter"))

    def handle_trial_will_end(self, stripe_sub) -> None:
        row = self._find_by_stripe_subscription(stripe_sub.get("id")) or self._find_by_customer(stripe_sub.get("customer"))
        if not row:
            return

        trial_end = parse_timestamp(from_unix(stripe_sub.get("trial_end")))
        days = days_until(trial_end) or 0
        email = self._user_email(row["user_id"])
        if email:
            self._notify(self.mailer.send_trial_reminder, email, plan_name(row.get("plan_id") or "starter"), days)
