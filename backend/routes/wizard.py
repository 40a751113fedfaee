"""Wizard routes: server-side product wizard sessions."""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from backend.auth import get_current_user
from backend.database import get_db
from backend.models import CreateWizardSessionRequest
from backend.models_db import User
from backend.repositories import VisualRepository
from backend.routes.common import get_services
from engine.wizard import GenerateDraft, Wizard, WizardFlow, WizardState, WizardStep, draft_from_payload

router = APIRouter()


class WizardSessionResponse(BaseModel):
    session: WizardState
    steps: list[WizardStep]
    can_advance: bool
    is_finished: bool


def _response(wizard: Wizard) -> WizardSessionResponse:
    return WizardSessionResponse(
        session=wizard.state,
        steps=list(wizard.steps),
        can_advance=wizard.can_advance(),
        is_finished=wizard.is_finished,
    )


async def _load(request: Request, session_id: str, user: User) -> WizardState:
    state = await get_services(request).wizard_store.get_session(session_id)
    if not state or state.user_id != user.id:
        raise HTTPException(status_code=404, detail="Wizard session not found")
    return state


def _candidate_visual_ids(image_id: str) -> list[str]:
    """Visual ids an image id may belong to: itself, or ``{visual_id}_{n}``."""
    base, _, suffix = image_id.rpartition("_")
    return [image_id, base] if base and suffix.isdigit() else [image_id]


def _check_generated_images(db: Session, draft: GenerateDraft, user_id: str) -> None:
    repo = VisualRepository(db)
    for image in draft.generated_images:
        if not any(repo.get_owned(vid, user_id) for vid in _candidate_visual_ids(image.id)):
            raise HTTPException(status_code=403, detail=f"Generated image {image.id} does not belong to you")


@router.post("/wizard/sessions", response_model=WizardSessionResponse)
async def create_session(
    request: Request,
    body: Optional[CreateWizardSessionRequest] = None,
    current_user: User = Depends(get_current_user),
):
    flow_name = body.flow if body else WizardFlow.UNIFIED.value
    try:
        flow = WizardFlow(flow_name)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown wizard flow: {flow_name}")
    state = await get_services(request).wizard_store.create_session(current_user.id, flow)
    return _response(Wizard(state))


@router.get("/wizard/sessions", response_model=list[WizardState])
async def list_sessions(request: Request, current_user: User = Depends(get_current_user)):
    return await get_services(request).wizard_store.list_sessions(current_user.id)


@router.get("/wizard/sessions/{session_id}", response_model=WizardSessionResponse)
async def get_session(session_id: str, request: Request, current_user: User = Depends(get_current_user)):
    return _response(Wizard(await _load(request, session_id, current_user)))


@router.put("/wizard/sessions/{session_id}/steps/{step}", response_model=WizardSessionResponse)
async def complete_step(
    session_id: str,
    step: str,
    request: Request,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Submit the current step's data and advance when its checks pass."""
    try:
        wizard_step = WizardStep(step)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown wizard step: {step}")

    wizard = Wizard(await _load(request, session_id, current_user))
    if wizard_step != wizard.current_step:
        raise HTTPException(
            status_code=409,
            detail=f"Step {wizard_step.value} is not the current step ({wizard.current_step.value})",
        )
    try:
        draft = draft_from_payload(wizard_step, payload)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

    if isinstance(draft, GenerateDraft):
        _check_generated_images(db, draft, current_user.id)

    if not wizard.complete_step(draft):
        raise HTTPException(status_code=422, detail=f"Step {wizard_step.value} is incomplete")

    wizard.state = await get_services(request).wizard_store.update_session(wizard.state)
    return _response(wizard)


@router.post("/wizard/sessions/{session_id}/back", response_model=WizardSessionResponse)
async def go_back(session_id: str, request: Request, current_user: User = Depends(get_current_user)):
    wizard = Wizard(await _load(request, session_id, current_user))
    if wizard.go_back():
        wizard.state = await get_services(request).wizard_store.update_session(wizard.state)
    return _response(wizard)


@router.delete("/wizard/sessions/{session_id}")
async def delete_session(session_id: str, request: Request, current_user: User = Depends(get_current_user)):
    await _load(request, session_id, current_user)
    await get_services(request).wizard_store.delete_session(session_id)
    return {"success": True}
