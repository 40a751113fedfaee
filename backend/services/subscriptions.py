"""Subscription rows and the monthly generation allowance."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from backend.models_db import Invoice, Subscription
from backend.repositories import SubscriptionRepository, UsageRepository
from engine.plans import (
    BILLING_INTERVALS,
    FREE_PLAN_ID,
    check_usage_limits,
    euros_to_cents,
    get_plan,
    plan_price,
)

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def period_end(start: datetime, billing_interval: str) -> datetime:
    """Same day next month (clamped to month end) or next year."""
    if billing_interval == "yearly":
        try:
            return start.replace(year=start.year + 1)
        except ValueError:  # Feb 29
            return start.replace(year=start.year + 1, day=28)
    month = start.month % 12 + 1
    year = start.year + (1 if start.month == 12 else 0)
    day = start.day
    while True:
        try:
            return start.replace(year=year, month=month, day=day)
        except ValueError:
            day -= 1


class SubscriptionService:
    """Operates on a caller-provided session; the caller commits."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SubscriptionRepository(db)

    def get_user_subscription(self, user_id: str) -> Optional[Subscription]:
        return self.repo.current_for_user(user_id)

    def get_by_stripe_customer_id(self, stripe_customer_id: str) -> Optional[Subscription]:
        return self.repo.by_stripe_customer_id(stripe_customer_id)

    def create_subscription(
        self,
        user_id: str,
        plan_id: str,
        billing_interval: str = "monthly",
        stripe_customer_id: Optional[str] = None,
        stripe_subscription_id: Optional[str] = None,
        stripe_price_id: Optional[str] = None,
        status: str = "active",
    ) -> Subscription:
        plan = get_plan(plan_id)
        if plan is None:
            raise ValueError(f"Unknown plan: {plan_id}")
        if billing_interval not in BILLING_INTERVALS:
            raise ValueError(f"Invalid billing interval: {billing_interval}")

        self.repo.cancel_active(user_id)
        start = _now()
        subscription = Subscription(
            user_id=user_id,
            plan_id=plan.id,
            status=status,
            billing_interval=billing_interval,
            amount=euros_to_cents(plan_price(plan, billing_interval)),
            currency="eur",
            stripe_customer_id=stripe_customer_id,
            stripe_subscription_id=stripe_subscription_id,
            stripe_price_id=stripe_price_id,
            current_period_start=start,
            current_period_end=period_end(start, billing_interval),
            generations_limit=plan.generations_limit,
            generations_used=0,
        )
        self.repo.add(subscription)
        logger.info("Subscription created for %s: %s/%s", user_id, plan.id, billing_interval)
        return subscription

    def initialize_free_subscription(self, user_id: str) -> Subscription:
        existing = self.repo.current_for_user(user_id)
        if existing is not None:
            return existing
        return self.create_subscription(user_id, FREE_PLAN_ID)

    def update_subscription_by_stripe_id(self, stripe_subscription_id: str, **changes) -> Optional[Subscription]:
        subscription = self.repo.by_stripe_subscription_id(stripe_subscription_id)
        if subscription is None:
            logger.warning("No subscription for Stripe id %s", stripe_subscription_id)
            return None
        for key, value in changes.items():
            setattr(subscription, key, value)
        subscription.updated_at = _now()
        return subscription

    def can_user_generate(self, user_id: str, needed: int = 1) -> dict:
        """Usage check, creating the free subscription on first use."""
        subscription = self.repo.current_for_user(user_id)
        if subscription is None:
            subscription = self.initialize_free_subscription(user_id)
        usage = check_usage_limits(subscription.generations_used or 0, subscription.generations_limit, needed)
        usage["subscription"] = subscription
        return usage

    def record_generation(self, user_id: str, count: int = 1, usage_type: str = "generation",
                          visual_id: Optional[str] = None) -> Optional[Subscription]:
        subscription = self.repo.current_for_user(user_id)
        if subscription is None:
            return None
        subscription.generations_used = (subscription.generations_used or 0) + count
        subscription.updated_at = _now()
        usage = UsageRepository(self.db)
        usage.record(user_id, usage_type, count, visual_id=visual_id, subscription_id=subscription.id)
        if usage_type == "edit":
            usage.update_user_usage(user_id, edits=count)
        else:
            usage.update_user_usage(user_id, generations=count)
        return subscription

    def reset_period_usage(self, subscription: Subscription) -> None:
        subscription.generations_used = 0
        subscription.status = "active"
        subscription.updated_at = _now()

    def get_billing_history(self, user_id: str, limit: int = 24) -> list[Invoice]:
        return self.repo.invoices_for_user(user_id, limit=limit)
