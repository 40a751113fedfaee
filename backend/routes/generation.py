"""Generation routes: create visuals, list them, count views/downloads."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from backend.auth import get_current_user
from backend.database import get_db
from backend.middleware.credits import deduct_credits, ensure_credits
from backend.models import (
    BatchViewsRequest,
    CounterResponse,
    GeneratedImageOut,
    GenerateImagesRequest,
    GenerateImagesResponse,
    VisualOut,
)
from backend.models_db import User
from backend.routes.common import get_services, to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/generate-images", response_model=GenerateImagesResponse)
async def generate_images(
    body: GenerateImagesRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Generate product visuals from specs and reference images."""
    ensure_credits(db, current_user, body.ui_settings.variations)
    try:
        result = await get_services(request).generation.generate_visual(body, current_user.id)
    except Exception as e:
        raise to_http_exception(e)

    credits_used = len(result.uploads)
    deduct_credits(db, current_user, credits_used, "generation", visual_id=result.visual_id)
    return GenerateImagesResponse(
        visual_id=result.visual_id,
        images=[
            GeneratedImageOut(url=u.original_url, thumbnail_url=u.thumbnail_url, variation=i)
            for i, u in enumerate(result.uploads, start=1)
        ],
        prompt=result.prompt,
        credits_used=credits_used,
    )


@router.get("/visuals", response_model=list[VisualOut])
async def list_visuals(
    request: Request,
    project_id: Optional[str] = Query(None, alias="projectId"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
):
    visuals = get_services(request).generation.list_visuals(
        current_user.id, limit=limit, offset=offset, project_id=project_id,
    )
    return [VisualOut.from_row(v) for v in visuals]


@router.get("/visuals/{visual_id}", response_model=VisualOut)
async def get_visual(visual_id: str, request: Request, current_user: User = Depends(get_current_user)):
    visual = get_services(request).generation.get_visual(visual_id, current_user.id)
    if visual is None:
        raise HTTPException(status_code=404, detail="Visual not found")
    return VisualOut.from_row(visual)


@router.delete("/visuals/{visual_id}")
async def delete_visual(visual_id: str, request: Request, current_user: User = Depends(get_current_user)):
    try:
        get_services(request).generation.delete_visual(visual_id, current_user.id)
    except Exception as e:
        raise to_http_exception(e)
    return {"success": True}


@router.post("/visuals/{visual_id}/view", response_model=CounterResponse)
async def track_view(visual_id: str, request: Request):
    """Count a view. Anonymous calls are allowed (shared links)."""
    touched = get_services(request).analytics.track_view(visual_id)
    return CounterResponse(success=touched > 0, count=touched)


@router.post("/visuals/{visual_id}/download", response_model=CounterResponse)
async def track_download(visual_id: str, request: Request):
    touched = get_services(request).analytics.track_download(visual_id)
    return CounterResponse(success=touched > 0, count=touched)


@router.get("/analytics/dashboard-stats")
async def dashboard_stats(request: Request, current_user: User = Depends(get_current_user)):
    analytics = get_services(request).analytics
    stats = analytics.get_dashboard_stats(current_user.id)
    recent = analytics.get_recent_visuals(current_user.id, limit=6)
    return {
        "stats": {
            "totalVisuals": stats.total_visuals,
            "totalViews": stats.total_views,
            "totalDownloads": stats.total_downloads,
            "totalEdits": stats.total_edits,
            "visualsThisMonth": stats.visuals_this_month,
        },
        "recentVisuals": [VisualOut.from_row(v).model_dump(mode="json", by_alias=True) for v in recent],
    }


@router.get("/visuals/{visual_id}/analytics")
async def visual_analytics(visual_id: str, request: Request, current_user: User = Depends(get_current_user)):
    data = get_services(request).analytics.get_visual_analytics(visual_id, current_user.id)
    if data is None:
        raise HTTPException(status_code=404, detail="Visual not found")
    return data


@router.post("/analytics/batch-views", response_model=CounterResponse)
async def batch_views(body: BatchViewsRequest, request: Request):
    counted = get_services(request).analytics.batch_track_views(body.visual_ids)
    return CounterResponse(success=True, count=counted)
