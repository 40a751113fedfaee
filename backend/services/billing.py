"""Stripe checkout, customer portal and webhook event handling."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import stripe
from sqlalchemy.orm import Session

from backend import config
from backend.models_db import Invoice, User
from backend.repositories import SubscriptionRepository
from backend.services.errors import NotFoundError
from backend.services.subscriptions import SubscriptionService
from engine.plans import BILLING_INTERVALS, FREE_PLAN_ID, get_plan

logger = logging.getLogger(__name__)

HANDLED_EVENTS = (
    "checkout.session.completed",
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "invoice.paid",
    "invoice.payment_failed",
)


def _field(obj: Any, key: str, default=None):
    """Read a key from a Stripe object or a plain dict."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, AttributeError):
        return default
    return default if value is None else value


def _ts(value) -> Optional[datetime]:
    return datetime.fromtimestamp(int(value), tz=timezone.utc) if value else None


def configure_stripe() -> None:
    if not config.STRIPE_SECRET_KEY:
        raise RuntimeError("Stripe not configured")
    stripe.api_key = config.STRIPE_SECRET_KEY


def construct_event(payload: bytes, signature: str):
    """Verify the webhook signature. Raises stripe.SignatureVerificationError."""
    if not config.STRIPE_WEBHOOK_SECRET:
        raise RuntimeError("Stripe not configured")
    configure_stripe()
    return stripe.Webhook.construct_event(payload, signature, config.STRIPE_WEBHOOK_SECRET)


class BillingService:
    def __init__(self, db: Session):
        self.db = db
        self.subscriptions = SubscriptionService(db)
        self.repo = SubscriptionRepository(db)

    # --- Checkout / portal ---

    def create_checkout_session(self, user: User, plan_id: str, billing_interval: str) -> dict:
        if plan_id == FREE_PLAN_ID:
            raise ValueError("The free plan does not require checkout")
        if get_plan(plan_id) is None:
            raise ValueError(f"Unknown plan: {plan_id}")
        if billing_interval not in BILLING_INTERVALS:
            raise ValueError(f"Invalid billing interval: {billing_interval}")
        price_id = config.stripe_price_id(plan_id, billing_interval)
        if not price_id:
            raise ValueError(f"No Stripe price configured for {plan_id}/{billing_interval}")

        configure_stripe()
        metadata = {"user_id": user.id, "plan_id": plan_id, "billing_interval": billing_interval}
        params = {
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": f"{config.APP_URL}/dashboard/checkout-success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{config.APP_URL}/dashboard/account?canceled=true",
            "allow_promotion_codes": True,
            "client_reference_id": user.id,
            "metadata": metadata,
            "subscription_data": {"metadata": metadata},
        }
        existing = self.repo.latest_for_user(user.id)
        if existing and existing.stripe_customer_id:
            params["customer"] = existing.stripe_customer_id
        elif user.email:
            params["customer_email"] = user.email

        session = stripe.checkout.Session.create(**params)
        logger.info("Checkout session %s created for %s (%s)", session.id, user.id, plan_id)
        return {"session_id": session.id, "url": session.url}

    def create_portal_session(self, user: User) -> str:
        existing = self.repo.latest_for_user(user.id)
        if existing is None or not existing.stripe_customer_id:
            raise NotFoundError("No Stripe customer found")
        configure_stripe()
        session = stripe.billing_portal.Session.create(
            customer=existing.stripe_customer_id,
            return_url=f"{config.APP_URL}/dashboard/account",
        )
        return session.url

    def cancel_stripe_subscription(self, user_id: str) -> None:
        """Cancel the user's live Stripe subscription; best-effort."""
        current = self.repo.current_for_user(user_id)
        if current is None or not current.stripe_subscription_id:
            return
        try:
            configure_stripe()
            stripe.Subscription.cancel(current.stripe_subscription_id)
        except Exception as e:
            logger.warning("Failed to cancel Stripe subscription for %s: %s", user_id, e)

    # --- Webhooks ---

    def handle_event(self, event) -> bool:
        """Apply a verified event. Returns False for event types we ignore."""
        event_type = _field(event, "type")
        obj = _field(_field(event, "data"), "object")
        if event_type not in HANDLED_EVENTS:
            logger.info("Ignoring Stripe event %s", event_type)
            return False

        if event_type == "checkout.session.completed":
            self._on_checkout_completed(obj)
        elif event_type in ("customer.subscription.created", "customer.subscription.updated"):
            self._on_subscription_changed(obj)
        elif event_type == "customer.subscription.deleted":
            self.subscriptions.update_subscription_by_stripe_id(
                _field(obj, "id"), status="canceled", canceled_at=datetime.now(timezone.utc),
            )
        elif event_type == "invoice.paid":
            self._on_invoice_paid(obj)
        elif event_type == "invoice.payment_failed":
            subscription = self._subscription_for_invoice(obj)
            if subscription is not None:
                subscription.status = "past_due"
        return True

    def _on_checkout_completed(self, session) -> None:
        metadata = _field(session, "metadata", {})
        user_id = _field(metadata, "user_id") or _field(session, "client_reference_id")
        plan_id = _field(metadata, "plan_id")
        interval = _field(metadata, "billing_interval", "monthly")
        if not user_id or not plan_id:
            logger.warning("Checkout session %s has no user/plan metadata", _field(session, "id"))
            return
        stripe_subscription_id = _field(session, "subscription")
        if stripe_subscription_id and self.repo.by_stripe_subscription_id(stripe_subscription_id):
            return
        self.subscriptions.create_subscription(
            user_id,
            plan_id,
            interval,
            stripe_customer_id=_field(session, "customer"),
            stripe_subscription_id=stripe_subscription_id,
            stripe_price_id=config.stripe_price_id(plan_id, interval),
        )

    def _on_subscription_changed(self, sub) -> None:
        changes = {"status": _field(sub, "status", "active")}
        # Newer API versions report periods per subscription item
        item = (_field(_field(sub, "items"), "data") or [None])[0]
        start = _field(sub, "current_period_start") or _field(item, "current_period_start")
        end = _field(sub, "current_period_end") or _field(item, "current_period_end")
        if start:
            changes["current_period_start"] = _ts(start)
        if end:
            changes["current_period_end"] = _ts(end)
        changes["cancel_at"] = _ts(_field(sub, "cancel_at"))
        self.subscriptions.update_subscription_by_stripe_id(_field(sub, "id"), **changes)

    def _subscription_for_invoice(self, invoice):
        stripe_subscription_id = _field(invoice, "subscription")
        if stripe_subscription_id:
            subscription = self.repo.by_stripe_subscription_id(stripe_subscription_id)
            if subscription is not None:
                return subscription
        customer = _field(invoice, "customer")
        if customer:
            return self.subscriptions.get_by_stripe_customer_id(customer)
        return None

    def _on_invoice_paid(self, invoice) -> None:
        subscription = self._subscription_for_invoice(invoice)
        if subscription is None:
            logger.warning("Paid invoice %s has no matching subscription", _field(invoice, "id"))
            return
        self.repo.add_invoice(Invoice(
            user_id=subscription.user_id,
            subscription_id=subscription.id,
            stripe_invoice_id=_field(invoice, "id"),
            amount=int(_field(invoice, "amount_paid", 0)),
            currency=_field(invoice, "currency", "eur"),
            status="paid",
            description=_field(invoice, "description"),
            invoice_pdf=_field(invoice, "invoice_pdf"),
            hosted_invoice_url=_field(invoice, "hosted_invoice_url"),
            period_start=_ts(_field(invoice, "period_start")),
            period_end=_ts(_field(invoice, "period_end")),
        ))
        self.subscriptions.reset_period_usage(subscription)
