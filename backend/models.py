"""Pydantic models for Piktor API requests and responses.

Request bodies accept the browser's camelCase keys as well as snake_case.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from engine.edit_prompt import EditParams
from engine.types import AssetType, ContextPreset, ProductSpecs, UiSettings


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Generation ---

class ReferenceImageInput(ApiModel):
    url: str  # http(s) or data URL
    mime_type: Optional[str] = None


class GenerateImagesRequest(ApiModel):
    product_specs: ProductSpecs
    ui_settings: UiSettings = Field(default_factory=UiSettings)
    context_preset: Optional[ContextPreset] = None
    reference_images: list[ReferenceImageInput] = Field(default_factory=list)
    project_id: Optional[str] = None
    name: Optional[str] = None


class GeneratedImageOut(ApiModel):
    url: str
    thumbnail_url: Optional[str] = None
    variation: int


class GenerateImagesResponse(ApiModel):
    success: bool = True
    visual_id: str
    images: list[GeneratedImageOut]
    prompt: str
    credits_used: int


# --- Visuals ---

class VisualOut(ApiModel):
    visual_id: str
    name: str
    project_id: Optional[str] = None
    prompt: Optional[str] = None
    original_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    image_urls: list[str] = Field(default_factory=list)
    status: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    views: int = 0
    downloads: int = 0
    edit_count: int = 0
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, visual) -> "VisualOut":
        return cls(
            visual_id=visual.visual_id,
            name=visual.name,
            project_id=visual.project_id,
            prompt=visual.prompt,
            original_url=visual.original_url,
            thumbnail_url=visual.thumbnail_url,
            image_urls=list(visual.image_urls or []),
            status=visual.status,
            metadata=dict(visual.meta or {}),
            views=visual.views or 0,
            downloads=visual.downloads or 0,
            edit_count=visual.edit_count or 0,
            created_at=visual.created_at,
        )


class BatchViewsRequest(ApiModel):
    visual_ids: list[str] = Field(..., max_length=100)


class CounterResponse(ApiModel):
    success: bool
    count: int = 0


# --- Edits ---

class EditImageRequest(ApiModel):
    visual_id: str
    image_url: str
    edit_params: EditParams
    parent_edit_id: Optional[str] = None
    variations: int = 1
    product_name: Optional[str] = None


class AssetEditRequest(ApiModel):
    visual_id: str
    image_url: str
    asset_type: AssetType
    variations: Optional[int] = None
    product_name: Optional[str] = None
    parent_edit_id: Optional[str] = None


class EditMetadata(ApiModel):
    model: str
    timestamp: datetime
    processing_time: int  # ms
    credits_used: int = 1
    variation: int
    original_dimensions: dict[str, int]
    edited_dimensions: dict[str, int]


class EditResult(ApiModel):
    edit_id: str
    original_visual_id: str
    edited_image_url: str
    thumbnail_url: Optional[str] = None
    prompt: str
    version_number: int
    parent_edit_id: Optional[str] = None
    metadata: EditMetadata


class EditResponse(ApiModel):
    success: bool = True
    edits: list[EditResult]
    credits_used: int
    remaining_credits: Optional[int] = None


class EditOut(ApiModel):
    edit_id: str
    original_visual_id: str
    parent_edit_id: Optional[str] = None
    edited_image_url: str
    thumbnail_url: Optional[str] = None
    edit_params: dict[str, Any] = Field(default_factory=dict)
    prompt: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    version_number: int
    is_latest_version: bool
    views: int = 0
    downloads: int = 0
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, edit) -> "EditOut":
        return cls(
            edit_id=edit.edit_id,
            original_visual_id=edit.original_visual_id,
            parent_edit_id=edit.parent_edit_id,
            edited_image_url=edit.edited_image_url,
            thumbnail_url=edit.thumbnail_url,
            edit_params=dict(edit.edit_params or {}),
            prompt=edit.prompt or "",
            metadata=dict(edit.meta or {}),
            version_number=edit.version_number,
            is_latest_version=bool(edit.is_latest_version),
            views=edit.views or 0,
            downloads=edit.downloads or 0,
            created_at=edit.created_at,
        )


# --- Wizard ---

class CreateWizardSessionRequest(ApiModel):
    flow: str = "unified"


# --- Account / billing ---

class SubscriptionOut(ApiModel):
    plan_id: str
    status: str
    billing_interval: str
    amount: int  # cents
    currency: str
    generations_limit: int
    generations_used: int
    remaining: Optional[int] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None


class InvoiceOut(ApiModel):
    stripe_invoice_id: str
    amount: int
    currency: str
    status: str
    description: Optional[str] = None
    invoice_pdf: Optional[str] = None
    hosted_invoice_url: Optional[str] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    created_at: Optional[datetime] = None


class StorageUsageOut(ApiModel):
    total_bytes: int
    file_count: int
    total_mb: float


class CheckoutRequest(ApiModel):
    plan_id: str
    billing_interval: str = "monthly"


class CheckoutResponse(ApiModel):
    session_id: str
    url: Optional[str] = None


class PortalResponse(ApiModel):
    url: str


class SupportTicketRequest(ApiModel):
    subject: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=5000)
    category: str = "general"
    priority: str = "normal"


class SupportTicketOut(ApiModel):
    id: str
    subject: str
    message: str
    category: str
    priority: str
    status: str
    created_at: Optional[datetime] = None


class UserOut(ApiModel):
    id: str
    email: Optional[str] = None
    full_name: str = ""
    is_admin: bool = False
