"""
Tests for the generation credit gate.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(__file__))))

from fastapi import HTTPException

from backend import config
from backend.middleware.credits import deduct_credits, ensure_credits
from backend.models_db import Subscription, User
from backend.services.subscriptions import SubscriptionService


@pytest.fixture
def db(session_factory):
    session = session_factory()
    session.add(User(id="user-1", email="owner@example.com"))
    session.commit()
    yield session
    session.close()


@pytest.fixture
def user(db):
    return db.get(User, "user-1")


class TestEnsureCredits:
    def test_first_use_starts_free_plan(self, db, user):
        assert ensure_credits(db, user, 2) == 5
        subscription = SubscriptionService(db).get_user_subscription("user-1")
        assert subscription.plan_id == "free"
        assert subscription.generations_used == 0

    def test_insufficient_credits(self, db, user):
        service = SubscriptionService(db)
        service.initialize_free_subscription("user-1")
        service.record_generation("user-1", 4)
        db.commit()

        with pytest.raises(HTTPException) as exc:
            ensure_credits(db, user, 2)
        assert exc.value.status_code == 403
        assert exc.value.detail == {"error": "Insufficient credits", "needed": 2, "remaining": 1}

    def test_lapsed_subscription_is_refused(self, db, user):
        db.add(Subscription(user_id="user-1", plan_id="starter", status="canceled"))
        db.commit()

        with pytest.raises(HTTPException) as exc:
            ensure_credits(db, user)
        assert exc.value.status_code == 403
        assert exc.value.detail == "No active subscription"

    def test_admin_bypass(self, db, user, monkeypatch):
        monkeypatch.setattr(config, "ADMIN_USER_IDS", {"user-1"})
        assert ensure_credits(db, user, 100) is None
        assert SubscriptionService(db).get_user_subscription("user-1") is None


class TestDeductCredits:
    def test_returns_remaining(self, db, user):
        ensure_credits(db, user)
        assert deduct_credits(db, user, 2, "generation", visual_id="visual_1") == 3
        assert deduct_credits(db, user, 1, "edit") == 2

    def test_nothing_to_charge(self, db, user):
        ensure_credits(db, user)
        assert deduct_credits(db, user, 0) is None
        assert SubscriptionService(db).get_user_subscription("user-1").generations_used == 0

    def test_admin_is_not_charged(self, db, user, monkeypatch):
        monkeypatch.setattr(config, "ADMIN_USER_IDS", {"user-1"})
        assert deduct_credits(db, user, 3) is None

    def test_without_subscription(self, db, user):
        assert deduct_credits(db, user, 1) is None
