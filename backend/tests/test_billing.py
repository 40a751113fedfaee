"""
Tests for subscriptions, Stripe webhook handling and checkout.

Webhook events are passed as plain dicts, which is how they are shaped on
the wire; the handler reads them the same way as Stripe objects.
"""

import os
import sys
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(__file__))))

import stripe

from backend import config
from backend.models_db import Invoice, Subscription, User, UserStats, UsageRecord
from backend.services.billing import BillingService
from backend.services.errors import NotFoundError
from backend.services.subscriptions import SubscriptionService, period_end


@pytest.fixture
def db(session_factory):
    session = session_factory()
    session.add(User(id="user-1", email="owner@example.com"))
    session.commit()
    yield session
    session.close()


def _event(event_type, obj):
    return {"type": event_type, "data": {"object": obj}}


def _checkout_completed(subscription_id="sub_123"):
    return _event("checkout.session.completed", {
        "id": "cs_1",
        "customer": "cus_1",
        "subscription": subscription_id,
        "client_reference_id": "user-1",
        "metadata": {"user_id": "user-1", "plan_id": "starter", "billing_interval": "monthly"},
    })


def _subscriptions(db):
    return db.query(Subscription).order_by(Subscription.created_at).all()


class TestPeriodEnd:
    def test_monthly(self):
        assert period_end(datetime(2026, 3, 15), "monthly") == datetime(2026, 4, 15)

    def test_month_end_is_clamped(self):
        assert period_end(datetime(2026, 1, 31), "monthly") == datetime(2026, 2, 28)

    def test_december_rolls_over(self):
        assert period_end(datetime(2026, 12, 10), "monthly") == datetime(2027, 1, 10)

    def test_yearly_leap_day(self):
        assert period_end(datetime(2028, 2, 29), "yearly") == datetime(2029, 2, 28)


class TestSubscriptionService:
    def test_create_cancels_previous(self, db):
        service = SubscriptionService(db)
        service.initialize_free_subscription("user-1")
        service.create_subscription("user-1", "starter", "yearly")
        db.commit()

        rows = _subscriptions(db)
        assert [r.status for r in rows] == ["canceled", "active"]
        current = service.get_user_subscription("user-1")
        assert current.plan_id == "starter"
        assert current.amount == 47000
        assert current.currency == "eur"
        assert current.generations_limit == 50

    def test_unknown_plan(self, db):
        with pytest.raises(ValueError, match="Unknown plan"):
            SubscriptionService(db).create_subscription("user-1", "platinum")

    def test_initialize_free_is_idempotent(self, db):
        service = SubscriptionService(db)
        first = service.initialize_free_subscription("user-1")
        assert service.initialize_free_subscription("user-1") is first
        assert first.generations_limit == 5

    def test_can_user_generate(self, db):
        service = SubscriptionService(db)
        usage = service.can_user_generate("user-1", needed=5)
        assert usage["allowed"] is True
        assert usage["subscription"].plan_id == "free"
        assert service.can_user_generate("user-1", needed=6)["allowed"] is False

    def test_record_generation_and_edit(self, db):
        service = SubscriptionService(db)
        service.initialize_free_subscription("user-1")
        service.record_generation("user-1", 2, "generation", visual_id="visual_1")
        subscription = service.record_generation("user-1", 1, "edit", visual_id="visual_1")
        db.commit()

        assert subscription.generations_used == 3
        stats = db.get(UserStats, "user-1")
        assert (stats.total_generations, stats.total_edits) == (2, 1)
        assert sorted(r.type for r in db.query(UsageRecord).all()) == ["edit", "generation"]

    def test_record_without_subscription(self, db):
        assert SubscriptionService(db).record_generation("user-1", 1) is None


class TestWebhooks:
    def test_checkout_completed_creates_subscription(self, db):
        SubscriptionService(db).initialize_free_subscription("user-1")
        assert BillingService(db).handle_event(_checkout_completed()) is True
        db.commit()

        current = SubscriptionService(db).get_user_subscription("user-1")
        assert current.plan_id == "starter"
        assert current.stripe_customer_id == "cus_1"
        assert current.stripe_subscription_id == "sub_123"
        assert current.amount == 4900

    def test_checkout_completed_is_idempotent(self, db):
        billing = BillingService(db)
        billing.handle_event(_checkout_completed())
        db.commit()
        billing.handle_event(_checkout_completed())
        db.commit()
        assert len(_subscriptions(db)) == 1

    def test_checkout_without_metadata_is_ignored(self, db):
        event = _event("checkout.session.completed", {"id": "cs_2", "metadata": {}})
        assert BillingService(db).handle_event(event) is True
        assert _subscriptions(db) == []

    def test_subscription_updated_reads_item_periods(self, db):
        billing = BillingService(db)
        billing.handle_event(_checkout_completed())
        db.commit()

        billing.handle_event(_event("customer.subscription.updated", {
            "id": "sub_123",
            "status": "active",
            "cancel_at": 1798761600,
            "items": {"data": [{"current_period_start": 1767225600, "current_period_end": 1769904000}]},
        }))
        db.commit()

        sub = _subscriptions(db)[0]
        expected_start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert sub.current_period_start.replace(tzinfo=timezone.utc) == expected_start
        assert sub.cancel_at is not None

    def test_subscription_deleted(self, db):
        billing = BillingService(db)
        billing.handle_event(_checkout_completed())
        db.commit()
        billing.handle_event(_event("customer.subscription.deleted", {"id": "sub_123"}))
        db.commit()

        assert _subscriptions(db)[0].status == "canceled"
        assert SubscriptionService(db).get_user_subscription("user-1") is None

    def test_invoice_paid_records_invoice_and_resets_usage(self, db):
        billing = BillingService(db)
        billing.handle_event(_checkout_completed())
        SubscriptionService(db).record_generation("user-1", 7)
        db.commit()

        invoice = {
            "id": "in_1",
            "subscription": "sub_123",
            "customer": "cus_1",
            "amount_paid": 4900,
            "currency": "eur",
            "invoice_pdf": "https://stripe.example.com/in_1.pdf",
            "period_start": 1767225600,
            "period_end": 1769904000,
        }
        billing.handle_event(_event("invoice.paid", invoice))
        billing.handle_event(_event("invoice.paid", invoice))
        db.commit()

        invoices = db.query(Invoice).all()
        assert len(invoices) == 1
        assert invoices[0].amount == 4900
        assert _subscriptions(db)[0].generations_used == 0

    def test_payment_failed_matches_by_customer(self, db):
        billing = BillingService(db)
        billing.handle_event(_checkout_completed())
        db.commit()
        billing.handle_event(_event("invoice.payment_failed", {"id": "in_2", "customer": "cus_1"}))
        db.commit()
        assert _subscriptions(db)[0].status == "past_due"

    def test_unhandled_event(self, db):
        assert BillingService(db).handle_event(_event("customer.created", {"id": "cus_9"})) is False


class TestCheckout:
    def _user(self, db):
        return db.get(User, "user-1")

    def test_free_plan_rejected(self, db):
        with pytest.raises(ValueError, match="free plan"):
            BillingService(db).create_checkout_session(self._user(db), "free", "monthly")

    def test_unknown_plan_rejected(self, db):
        with pytest.raises(ValueError, match="Unknown plan"):
            BillingService(db).create_checkout_session(self._user(db), "platinum", "monthly")

    def test_bad_interval_rejected(self, db):
        with pytest.raises(ValueError, match="Invalid billing interval"):
            BillingService(db).create_checkout_session(self._user(db), "starter", "weekly")

    def test_missing_price_rejected(self, db, monkeypatch):
        monkeypatch.delenv("STRIPE_PRICE_STARTER_MONTHLY", raising=False)
        with pytest.raises(ValueError, match="No Stripe price configured"):
            BillingService(db).create_checkout_session(self._user(db), "starter", "monthly")

    def test_creates_session_with_email(self, db, monkeypatch):
        captured = {}

        def fake_create(**params):
            captured.update(params)
            return SimpleNamespace(id="cs_test", url="https://checkout.stripe.com/cs_test")

        monkeypatch.setenv("STRIPE_PRICE_STARTER_MONTHLY", "price_starter_m")
        monkeypatch.setattr(config, "STRIPE_SECRET_KEY", "sk_test")
        monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

        session = BillingService(db).create_checkout_session(self._user(db), "starter", "monthly")

        assert session == {"session_id": "cs_test", "url": "https://checkout.stripe.com/cs_test"}
        assert captured["line_items"] == [{"price": "price_starter_m", "quantity": 1}]
        assert captured["customer_email"] == "owner@example.com"
        assert captured["metadata"]["plan_id"] == "starter"

    def test_reuses_existing_customer(self, db, monkeypatch):
        BillingService(db).handle_event(_checkout_completed())
        db.commit()
        captured = {}

        def fake_create(**params):
            captured.update(params)
            return SimpleNamespace(id="cs_test", url=None)

        monkeypatch.setenv("STRIPE_PRICE_BUSINESS_YEARLY", "price_business_y")
        monkeypatch.setattr(config, "STRIPE_SECRET_KEY", "sk_test")
        monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

        BillingService(db).create_checkout_session(self._user(db), "business", "yearly")
        assert captured["customer"] == "cus_1"
        assert "customer_email" not in captured

    def test_stripe_not_configured(self, db, monkeypatch):
        monkeypatch.setenv("STRIPE_PRICE_STARTER_MONTHLY", "price_starter_m")
        monkeypatch.setattr(config, "STRIPE_SECRET_KEY", None)
        with pytest.raises(RuntimeError, match="Stripe not configured"):
            BillingService(db).create_checkout_session(self._user(db), "starter", "monthly")

    def test_portal_without_customer(self, db):
        with pytest.raises(NotFoundError, match="No Stripe customer found"):
            BillingService(db).create_portal_session(self._user(db))
