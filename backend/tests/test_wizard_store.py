"""
Tests for wizard session persistence (in-memory and SQL stores).
"""

import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(__file__))))

from backend.models_db import WizardSession
from backend.wizard_store import InMemoryWizardStore, SQLWizardStore
from engine.types import ContextType, ProductSpecs, UploadedImage
from engine.wizard import UnifiedInputDraft, Wizard, WizardFlow, WizardStep


@pytest.fixture(params=["memory", "sql"])
def store(request, session_factory):
    if request.param == "memory":
        return InMemoryWizardStore()
    return SQLWizardStore(session_factory)


def _advance(state):
    wizard = Wizard(state)
    wizard.complete_step(UnifiedInputDraft(
        images=[UploadedImage(url="https://cdn.example.com/sofa.png")],
        specs=ProductSpecs(product_name="Oslo Sofa", product_type="sofa"),
        context_type=ContextType.LIFESTYLE,
    ))
    return wizard.state


class TestWizardStores:
    def test_create_and_get(self, store):
        state = asyncio.run(store.create_session("user-1", WizardFlow.CLASSIC))
        assert state.current_step == WizardStep.PRODUCT_INPUT

        loaded = asyncio.run(store.get_session(state.id))
        assert loaded.id == state.id
        assert loaded.user_id == "user-1"
        assert loaded.flow == WizardFlow.CLASSIC

    def test_missing_session(self, store):
        assert asyncio.run(store.get_session("nope")) is None

    def test_update_round_trips_configuration(self, store):
        state = asyncio.run(store.create_session("user-1"))
        updated = asyncio.run(store.update_session(_advance(state)))
        assert updated.updated_at >= state.updated_at

        loaded = asyncio.run(store.get_session(state.id))
        assert loaded.current_step == WizardStep.GENERATION_SETTINGS
        assert loaded.configuration.name == "Oslo Sofa"
        assert loaded.configuration.product_input.images[0].url == "https://cdn.example.com/sofa.png"
        assert loaded.completed_steps == [WizardStep.UNIFIED_INPUT]

    def test_list_by_user(self, store):
        asyncio.run(store.create_session("user-1"))
        asyncio.run(store.create_session("user-1"))
        asyncio.run(store.create_session("user-2"))
        assert len(asyncio.run(store.list_sessions("user-1"))) == 2
        assert len(asyncio.run(store.list_sessions())) == 3

    def test_delete(self, store):
        state = asyncio.run(store.create_session("user-1"))
        assert asyncio.run(store.delete_session(state.id)) is True
        assert asyncio.run(store.delete_session(state.id)) is False
        assert asyncio.run(store.get_session(state.id)) is None


class TestSQLWizardStore:
    def test_row_tracks_name_and_step(self, session_factory):
        store = SQLWizardStore(session_factory)
        state = asyncio.run(store.create_session("user-1"))
        asyncio.run(store.update_session(_advance(state)))

        db = session_factory()
        row = db.get(WizardSession, state.id)
        db.close()
        assert row.name == "Oslo Sofa"
        assert row.current_step == "generation-settings"


class TestCleanup:
    def test_expired_sessions_are_removed(self):
        store = InMemoryWizardStore(ttl_hours=1)
        old = asyncio.run(store.create_session("user-1"))
        fresh = asyncio.run(store.create_session("user-1"))
        store._sessions[old.id] = old.model_copy(
            update={"updated_at": datetime.now(timezone.utc) - timedelta(hours=2)}
        )

        assert asyncio.run(store.cleanup_expired()) == 1
        assert asyncio.run(store.get_session(old.id)) is None
        assert asyncio.run(store.get_session(fresh.id)) is not None

    def test_sql_store_removes_idle_rows(self, session_factory):
        store = SQLWizardStore(session_factory, ttl_hours=1)
        old = asyncio.run(store.create_session("user-1"))
        fresh = asyncio.run(store.create_session("user-1"))
        db = session_factory()
        db.get(WizardSession, old.id).updated_at = datetime.now(timezone.utc) - timedelta(hours=2)
        db.commit()
        db.close()

        assert asyncio.run(store.cleanup_expired()) == 1
        assert asyncio.run(store.get_session(old.id)) is None
        assert asyncio.run(store.get_session(fresh.id)) is not None

    def test_creating_a_session_prunes_idle_ones(self, session_factory):
        store = SQLWizardStore(session_factory, ttl_hours=1)
        old = asyncio.run(store.create_session("user-1"))
        db = session_factory()
        db.get(WizardSession, old.id).updated_at = datetime.now(timezone.utc) - timedelta(hours=2)
        db.commit()
        db.close()

        fresh = asyncio.run(store.create_session("user-1"))
        assert [s.id for s in asyncio.run(store.list_sessions("user-1"))] == [fresh.id]
