"""Edit routes: advanced image edits, asset-type edits and edit history."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from backend.auth import get_current_user
from backend.database import get_db
from backend.middleware.credits import deduct_credits, ensure_credits
from backend.models import AssetEditRequest, EditImageRequest, EditOut, EditResponse
from backend.models_db import User
from backend.routes.common import get_services, to_http_exception
from engine.types import clamp_variations, get_asset_type_config

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/edit-image-advanced", response_model=EditResponse)
async def edit_image_advanced(
    body: EditImageRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Apply camera angle, lighting and style edits to an existing visual."""
    body = body.model_copy(update={"variations": clamp_variations(body.variations)})
    ensure_credits(db, current_user, body.variations)
    try:
        results = await get_services(request).edits.process_edit(body, current_user.id)
    except Exception as e:
        raise to_http_exception(e)

    remaining = deduct_credits(db, current_user, len(results), "edit", visual_id=body.visual_id)
    return EditResponse(edits=results, credits_used=len(results), remaining_credits=remaining)


@router.get("/edit-image-advanced", response_model=list[EditOut])
async def edit_history(
    request: Request,
    visual_id: str = Query(..., alias="visualId"),
    current_user: User = Depends(get_current_user),
):
    """Edit history for a visual, newest first."""
    edits = get_services(request).edits.get_edit_history(visual_id, current_user.id)
    return [EditOut.from_row(e) for e in edits]


@router.delete("/edit-image-advanced")
async def delete_edit(
    request: Request,
    edit_id: str = Query(..., alias="editId"),
    current_user: User = Depends(get_current_user),
):
    try:
        get_services(request).edits.delete_edit(edit_id, current_user.id)
    except Exception as e:
        raise to_http_exception(e)
    return {"success": True}


@router.get("/edits/{edit_id}", response_model=EditOut)
async def get_edit(edit_id: str, request: Request, current_user: User = Depends(get_current_user)):
    edit = get_services(request).edits.get_edit(edit_id, current_user.id)
    if edit is None:
        raise HTTPException(status_code=404, detail="Edit not found or unauthorized")
    return EditOut.from_row(edit)


@router.post("/edits/{edit_id}/view")
async def track_edit_view(edit_id: str, request: Request):
    get_services(request).edits.increment_edit_view(edit_id)
    return {"success": True}


@router.post("/edits/{edit_id}/download")
async def track_edit_download(edit_id: str, request: Request):
    get_services(request).edits.increment_edit_download(edit_id)
    return {"success": True}


@router.post("/edit-image", response_model=EditResponse)
async def edit_image_asset(
    body: AssetEditRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Turn an existing visual into a lifestyle, ad, social, hero or variation asset."""
    variations = body.variations if body.variations is not None else get_asset_type_config(body.asset_type).variations
    body = body.model_copy(update={"variations": clamp_variations(variations)})
    ensure_credits(db, current_user, body.variations)
    try:
        results = await get_services(request).edits.process_asset_edit(body, current_user.id)
    except Exception as e:
        raise to_http_exception(e)

    remaining = deduct_credits(db, current_user, len(results), "edit", visual_id=body.visual_id)
    return EditResponse(edits=results, credits_used=len(results), remaining_credits=remaining)
