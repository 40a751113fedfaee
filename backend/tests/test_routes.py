"""
API tests against the FastAPI app with an in-memory database, a fake bucket
and a scripted image model.
"""

import asyncio
import itertools
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(__file__))))

from conftest import PNG_DATA_URL, FakeGenerator, seed_visual
from fastapi.testclient import TestClient

from backend.auth import get_current_user, optional_user
from backend.database import get_db
from backend.main import app
from backend.models_db import User
from backend.services.container import Services
from backend.services.subscriptions import SubscriptionService
from backend.wizard_store import InMemoryWizardStore
from engine.plans import PLANS

_client_ips = (f"10.9.{i // 250}.{i % 250}" for i in itertools.count(1))

EDIT_PARAMS = {
    "aspectRatio": "1:1",
    "viewAngle": "frontal",
    "lighting": "studio",
    "style": "modern",
}


def _client():
    # Each client gets its own address so the app-wide limiter never trips
    return TestClient(app, headers={"x-forwarded-for": next(_client_ips)})


@pytest.fixture
def services(session_factory, storage, generator):
    services = Services(session_factory, storage=storage, generate_fn=generator, wizard_store=InMemoryWizardStore())
    app.state.services = services
    return services


@pytest.fixture
def anon(session_factory, services):
    def override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    yield _client()
    app.dependency_overrides.clear()


@pytest.fixture
def client(anon, session_factory):
    db = session_factory()
    db.add(User(id="user-1", email="user-1@example.com"))
    db.commit()
    db.close()
    user = User(id="user-1", email="user-1@example.com", full_name="")
    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[optional_user] = lambda: user
    return anon


def _generate(client, variations=2):
    return client.post("/api/generate-images", json={
        "productSpecs": {"product_name": "Oslo Sofa", "product_type": "sofa", "materials": "oak"},
        "uiSettings": {"variations": variations},
        "contextPreset": "packshot",
    })


class TestPublicRoutes:
    def test_health(self, anon):
        res = anon.get("/api/health")
        assert res.status_code == 200
        assert res.json() == {"status": "healthy", "service": "piktor-backend"}

    def test_plans_without_auth(self, anon):
        res = anon.get("/api/plans")
        assert res.status_code == 200
        body = res.json()
        assert [p["id"] for p in body["plans"]] == list(PLANS)
        assert body["currentPlanId"] is None

    def test_protected_route_requires_token(self, anon):
        assert anon.get("/api/visuals").status_code == 401

    def test_webhook_without_signature(self, anon):
        res = anon.post("/api/stripe/webhook", content=b"{}")
        assert res.status_code == 400
        assert res.json()["detail"] == "Missing Stripe signature"


class TestGenerationRoutes:
    def test_generate_images(self, client, generator):
        res = _generate(client)
        assert res.status_code == 200
        body = res.json()
        assert body["visualId"].startswith("visual_")
        assert body["creditsUsed"] == 2
        assert [img["variation"] for img in body["images"]] == [1, 2]
        assert all(img["thumbnailUrl"] for img in body["images"])
        assert len(generator.calls) == 2

        sub = client.get("/api/account/subscription").json()
        assert sub["planId"] == "free"
        assert sub["generationsUsed"] == 2
        assert sub["remaining"] == 3

    def test_insufficient_credits(self, client, generator, session_factory):
        db = session_factory()
        service = SubscriptionService(db)
        service.initialize_free_subscription("user-1")
        service.record_generation("user-1", 4)
        db.commit()
        db.close()

        res = _generate(client, variations=2)
        assert res.status_code == 403
        assert res.json()["detail"] == {"error": "Insufficient credits", "needed": 2, "remaining": 1}
        assert generator.calls == []

    def test_generation_failure_is_not_charged(self, client, services):
        services.generate_fn = FakeGenerator([False, False])
        res = _generate(client)
        assert res.status_code == 500
        assert client.get("/api/account/subscription").json()["generationsUsed"] == 0

    def test_visual_lifecycle(self, client, anon):
        visual_id = _generate(client).json()["visualId"]

        listed = client.get("/api/visuals").json()
        assert [v["visualId"] for v in listed] == [visual_id]
        assert listed[0]["status"] == "completed"
        assert len(listed[0]["imageUrls"]) == 2

        assert client.get(f"/api/visuals/{visual_id}").json()["name"] == "Oslo Sofa"
        assert client.post(f"/api/visuals/{visual_id}/view").json() == {"success": True, "count": 1}

        stats = client.get("/api/analytics/dashboard-stats").json()
        assert stats["stats"]["totalVisuals"] == 1
        assert stats["stats"]["totalViews"] == 1

        usage = client.get("/api/account/storage-usage").json()
        assert usage["fileCount"] == 4

        assert client.delete(f"/api/visuals/{visual_id}").json() == {"success": True}
        assert client.get(f"/api/visuals/{visual_id}").status_code == 404
        assert client.get("/api/account/storage-usage").json()["fileCount"] == 0

    def test_unknown_visual_view(self, client):
        assert client.post("/api/visuals/visual_missing/view").json() == {"success": False, "count": 0}


class TestEditRoutes:
    def test_edit_history_and_delete(self, client, session_factory):
        seed_visual(session_factory)
        res = client.post("/api/edit-image-advanced", json={
            "visualId": "visual_1",
            "imageUrl": PNG_DATA_URL,
            "editParams": EDIT_PARAMS,
            "variations": 2,
        })
        assert res.status_code == 200
        body = res.json()
        assert body["creditsUsed"] == 2
        assert body["remainingCredits"] == 3
        assert {e["versionNumber"] for e in body["edits"]} == {1}

        history = client.get("/api/edit-image-advanced", params={"visualId": "visual_1"}).json()
        assert len(history) == 2
        edit_id = history[0]["editId"]
        assert history[0]["editParams"]["viewAngle"] == "frontal"

        assert client.delete("/api/edit-image-advanced", params={"editId": edit_id}).json() == {"success": True}
        assert len(client.get("/api/edit-image-advanced", params={"visualId": "visual_1"}).json()) == 1
        assert client.get(f"/api/edits/{edit_id}").status_code == 404

    def test_other_users_visual(self, client, session_factory, generator):
        seed_visual(session_factory, user_id="user-2")
        res = client.post("/api/edit-image-advanced", json={
            "visualId": "visual_1", "imageUrl": PNG_DATA_URL, "editParams": EDIT_PARAMS,
        })
        assert res.status_code == 403
        assert generator.calls == []

    def test_missing_visual(self, client):
        res = client.post("/api/edit-image-advanced", json={
            "visualId": "visual_404", "imageUrl": PNG_DATA_URL, "editParams": EDIT_PARAMS,
        })
        assert res.status_code == 404

    def test_custom_angle_requires_prompt(self, client, session_factory):
        seed_visual(session_factory)
        res = client.post("/api/edit-image-advanced", json={
            "visualId": "visual_1",
            "imageUrl": PNG_DATA_URL,
            "editParams": {**EDIT_PARAMS, "viewAngle": "custom"},
        })
        assert res.status_code == 400

    def test_asset_edit(self, client, session_factory, generator):
        seed_visual(session_factory)
        res = client.post("/api/edit-image", json={
            "visualId": "visual_1", "imageUrl": PNG_DATA_URL, "assetType": "hero", "variations": 1,
        })
        assert res.status_code == 200
        assert res.json()["edits"][0]["metadata"]["editedDimensions"] == {"width": 1536, "height": 1024}
        assert generator.calls[0]["aspect_ratio"] == "16:9"

    def test_delete_unknown_edit(self, client):
        assert client.delete("/api/edit-image-advanced", params={"editId": "edit_nope"}).status_code == 404


class TestWizardRoutes:
    COMPLETE_INPUT = {
        "images": [{"url": "https://cdn.example.com/sofa.png"}],
        "specs": {"product_name": "Oslo Sofa", "product_type": "sofa"},
        "context_type": "lifestyle",
    }

    def _create(self, client):
        res = client.post("/api/wizard/sessions", json={"flow": "unified"})
        assert res.status_code == 200
        return res.json()

    def test_create(self, client):
        body = self._create(client)
        assert body["session"]["current_step"] == "unified-input"
        assert body["steps"][0] == "unified-input"
        assert body["can_advance"] is False
        assert body["is_finished"] is False

    def test_unknown_flow(self, client):
        assert client.post("/api/wizard/sessions", json={"flow": "express"}).status_code == 400

    def test_step_guards(self, client):
        session_id = self._create(client)["session"]["id"]
        base = f"/api/wizard/sessions/{session_id}/steps"

        assert client.put(f"{base}/generation-settings", json={}).status_code == 409
        assert client.put(f"{base}/bogus", json={}).status_code == 404
        assert client.put(f"{base}/unified-input", json={"context_type": "nope"}).status_code == 422

        incomplete = client.put(f"{base}/unified-input", json={"specs": {"product_name": "Oslo Sofa"}})
        assert incomplete.status_code == 422
        assert incomplete.json()["detail"] == "Step unified-input is incomplete"

    def test_complete_back_list_delete(self, client):
        session_id = self._create(client)["session"]["id"]

        res = client.put(f"/api/wizard/sessions/{session_id}/steps/unified-input", json=self.COMPLETE_INPUT)
        assert res.status_code == 200
        session = res.json()["session"]
        assert session["current_step"] == "generation-settings"
        assert session["completed_steps"] == ["unified-input"]
        assert session["configuration"]["name"] == "Oslo Sofa"

        back = client.post(f"/api/wizard/sessions/{session_id}/back").json()
        assert back["session"]["current_step"] == "unified-input"
        assert back["can_advance"] is True

        assert [s["id"] for s in client.get("/api/wizard/sessions").json()] == [session_id]

        assert client.delete(f"/api/wizard/sessions/{session_id}").json() == {"success": True}
        assert client.get(f"/api/wizard/sessions/{session_id}").status_code == 404

    def _at_generate_step(self, client):
        session_id = self._create(client)["session"]["id"]
        base = f"/api/wizard/sessions/{session_id}/steps"
        assert client.put(f"{base}/unified-input", json=self.COMPLETE_INPUT).status_code == 200
        res = client.put(f"{base}/generation-settings", json={"formats": ["packshot"]})
        assert res.json()["session"]["current_step"] == "generate"
        return f"{base}/generate"

    @staticmethod
    def _generated_image(image_id):
        return {
            "id": image_id,
            "url": f"https://cdn.example.com/{image_id}.jpg",
            "product_config_id": "config-1",
            "settings": {},
            "specs": {"product_name": "Oslo Sofa"},
            "prompt": "Oslo Sofa packshot",
            "generation_source": {"model": "gemini-2.5-flash-image"},
            "metadata": {"model": "gemini-2.5-flash-image", "size": "1024x1024", "quality": "medium"},
        }

    def test_generate_step_accepts_own_images(self, client):
        visual_id = _generate(client).json()["visualId"]
        url = self._at_generate_step(client)

        res = client.put(url, json={"generated_images": [
            self._generated_image(f"{visual_id}_1"), self._generated_image(f"{visual_id}_2"),
        ]})
        assert res.status_code == 200
        session = res.json()["session"]
        assert session["current_step"] == "edit-images"
        assert [img["id"] for img in session["generated_images"]] == [f"{visual_id}_1", f"{visual_id}_2"]

    def test_generate_step_rejects_foreign_images(self, client, session_factory):
        seed_visual(session_factory, visual_id="visual_other", user_id="user-2")
        url = self._at_generate_step(client)

        for image_id in ("visual_other", "visual_other_1", "visual_unknown"):
            res = client.put(url, json={"generated_images": [self._generated_image(image_id)]})
            assert res.status_code == 403
            assert res.json()["detail"] == f"Generated image {image_id} does not belong to you"

    def test_sessions_are_private(self, client, services):
        state = asyncio.run(services.wizard_store.create_session("user-2"))
        assert client.get(f"/api/wizard/sessions/{state.id}").status_code == 404


class TestAccountRoutes:
    def test_me(self, client):
        assert client.get("/api/auth/me").json() == {
            "id": "user-1", "email": "user-1@example.com", "fullName": "", "isAdmin": False,
        }

    def test_support_tickets(self, client):
        res = client.post("/api/support/tickets", json={"subject": "Billing", "message": "Invoice missing"})
        assert res.status_code == 200
        assert res.json()["status"] == "open"
        assert [t["subject"] for t in client.get("/api/support/tickets").json()] == ["Billing"]

    def test_empty_ticket_rejected(self, client):
        assert client.post("/api/support/tickets", json={"subject": "", "message": "x"}).status_code == 422

    def test_storage_usage_empty(self, client):
        assert client.get("/api/account/storage-usage").json() == {"totalBytes": 0, "fileCount": 0, "totalMb": 0.0}

    def test_plans_mark_current(self, client):
        _generate(client, variations=1)
        assert client.get("/api/plans").json()["currentPlanId"] == "free"

    def test_checkout_free_plan(self, client):
        res = client.post("/api/stripe/create-checkout-session", json={"planId": "free"})
        assert res.status_code == 400

    def test_delete_account(self, client, session_factory):
        _generate(client, variations=1)
        assert client.delete("/api/auth/delete-account").json() == {"success": True}
        db = session_factory()
        assert db.get(User, "user-1") is None
        db.close()
