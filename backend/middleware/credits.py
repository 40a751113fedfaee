"""Generation credit gate for AI routes."""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from backend import config
from backend.models_db import User
from backend.repositories import SubscriptionRepository
from backend.services.subscriptions import SubscriptionService
from engine.plans import remaining_credits

logger = logging.getLogger(__name__)


def ensure_credits(db: Session, user: User, needed: int = 1) -> Optional[int]:
    """Raise 403 unless ``user`` can spend ``needed`` credits.

    Users who never had a subscription get the free plan on first use; users
    whose subscriptions all lapsed are refused. Returns remaining credits
    (None for admins and unlimited plans).
    """
    if config.is_admin(user.id):
        return None

    service = SubscriptionService(db)
    if service.get_user_subscription(user.id) is None:
        if SubscriptionRepository(db).latest_for_user(user.id) is not None:
            raise HTTPException(status_code=403, detail="No active subscription")
        service.initialize_free_subscription(user.id)
        db.commit()

    usage = service.can_user_generate(user.id, needed)
    if not usage["allowed"]:
        raise HTTPException(
            status_code=403,
            detail={
                "error": "Insufficient credits",
                "needed": needed,
                "remaining": usage["remaining"],
            },
        )
    return usage["remaining"]


def deduct_credits(db: Session, user: User, count: int, usage_type: str = "generation",
                   visual_id: Optional[str] = None) -> Optional[int]:
    """Charge ``count`` credits after a successful call; failures are logged only."""
    if count <= 0 or config.is_admin(user.id):
        return None
    try:
        subscription = SubscriptionService(db).record_generation(user.id, count, usage_type, visual_id)
        db.commit()
        if subscription is None:
            return None
        return remaining_credits(subscription.generations_used, subscription.generations_limit)
    except Exception as e:
        db.rollback()
        logger.error("Failed to deduct %d credits for %s: %s", count, user.id, e)
        return None
