"""Domain types shared by the wizard, prompt builders and backend services.

Pure data. The only behaviour here is derived predicates (``is_complete``)
and the whole-object replacement helper on ProductConfiguration.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ContextPreset(str, Enum):
    PACKSHOT = "packshot"
    INSTAGRAM = "instagram"
    STORY = "story"
    HERO = "hero"
    LIFESTYLE = "lifestyle"
    DETAIL = "detail"


class BackgroundStyle(str, Enum):
    PLAIN = "plain"
    MINIMAL = "minimal"
    LIFESTYLE = "lifestyle"
    GRADIENT = "gradient"


class ProductPosition(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    CENTER = "center"


class TextZone(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    TOP = "top"
    BOTTOM = "bottom"


class Prop(str, Enum):
    PLANT = "plant"
    LAMP = "lamp"
    RUG = "rug"
    CHAIR = "chair"
    ARTWORK = "artwork"


class SceneLighting(str, Enum):
    SOFT_DAYLIGHT = "soft_daylight"
    STUDIO_SOFTBOX = "studio_softbox"
    WARM_AMBIENT = "warm_ambient"


class Quality(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ContextType(str, Enum):
    PACKSHOT = "packshot"
    SOCIAL_MEDIA = "social-media"
    LIFESTYLE = "lifestyle"


class SocialMediaFormat(str, Enum):
    SQUARE = "square"
    STORY = "story"


class AssetType(str, Enum):
    LIFESTYLE = "lifestyle"
    AD = "ad"
    SOCIAL = "social"
    HERO = "hero"
    VARIATION = "variation"


class GenerationMethod(str, Enum):
    TEXT_TO_IMAGE = "text-to-image"
    REFERENCE_BASED = "reference-based"
    HYBRID = "hybrid"


# --- Size tables ---

SIZE_MAPPINGS: dict[ContextPreset, str] = {
    ContextPreset.PACKSHOT: "1024x1024",
    ContextPreset.INSTAGRAM: "1024x1024",
    ContextPreset.STORY: "1024x1536",
    ContextPreset.HERO: "1536x1024",
    ContextPreset.LIFESTYLE: "1536x1024",
    ContextPreset.DETAIL: "1024x1024",
}

CONTEXT_PRESET_SETTINGS: dict[ContextPreset, dict] = {
    ContextPreset.PACKSHOT: {"size": "1024x1024", "description": "Square product shot (1024x1024)", "aspect_ratio": "1:1"},
    ContextPreset.INSTAGRAM: {"size": "1024x1024", "description": "Instagram post (1024x1024)", "aspect_ratio": "1:1"},
    ContextPreset.STORY: {"size": "1024x1536", "description": "Instagram/Facebook Story (1024x1536)", "aspect_ratio": "9:16"},
    ContextPreset.HERO: {"size": "1536x1024", "description": "Website hero banner (1536x1024)", "aspect_ratio": "16:9"},
    ContextPreset.LIFESTYLE: {"size": "1536x1024", "description": "Lifestyle/contextual scene (1536x1024)", "aspect_ratio": "3:2"},
    ContextPreset.DETAIL: {"size": "1024x1024", "description": "Detail/close-up shot (1024x1024)", "aspect_ratio": "1:1"},
}

CONTEXT_TYPE_PRESETS: dict[ContextType, ContextPreset] = {
    ContextType.PACKSHOT: ContextPreset.PACKSHOT,
    ContextType.LIFESTYLE: ContextPreset.LIFESTYLE,
}

SOCIAL_FORMAT_PRESETS: dict[SocialMediaFormat, ContextPreset] = {
    SocialMediaFormat.SQUARE: ContextPreset.INSTAGRAM,
    SocialMediaFormat.STORY: ContextPreset.STORY,
}


# --- Product input ---

class Dimensions(BaseModel):
    """Real product dimensions in centimetres."""
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)
    depth: float = Field(..., gt=0)


class ProductSpecs(BaseModel):
    product_name: str = ""
    product_type: str = ""
    materials: str = ""
    dimensions: Optional[Dimensions] = None
    additional_specs: str = ""


class UploadedImage(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    url: str  # data URL or http(s) URL
    mime_type: str = "image/jpeg"
    is_primary: bool = False


class ProductInput(BaseModel):
    images: list[UploadedImage] = Field(default_factory=list)
    specs: ProductSpecs = Field(default_factory=ProductSpecs)

    def is_complete(self) -> bool:
        return (
            len(self.images) > 0
            and self.specs.product_name.strip() != ""
            and self.specs.product_type.strip() != ""
        )


class ContextSelection(BaseModel):
    context_type: ContextType
    social_media_format: Optional[SocialMediaFormat] = None

    def is_complete(self) -> bool:
        if self.context_type != ContextType.SOCIAL_MEDIA:
            return True
        return self.social_media_format is not None

    def to_preset(self) -> Optional[ContextPreset]:
        """Resolve to a context preset, or None while a social format is missing."""
        if self.context_type == ContextType.SOCIAL_MEDIA:
            if self.social_media_format is None:
                return None
            return SOCIAL_FORMAT_PRESETS[self.social_media_format]
        return CONTEXT_TYPE_PRESETS[self.context_type]


# --- Generation settings ---

class UiSettings(BaseModel):
    context_preset: ContextPreset = ContextPreset.PACKSHOT
    background_style: BackgroundStyle = BackgroundStyle.MINIMAL
    product_position: ProductPosition = ProductPosition.CENTER
    reserved_text_zone: Optional[TextZone] = None
    props: list[Prop] = Field(default_factory=list)
    lighting: SceneLighting = SceneLighting.SOFT_DAYLIGHT
    strict_mode: bool = True
    quality: Quality = Quality.MEDIUM
    variations: int = Field(default=2, ge=1, le=4)


DEFAULT_UI_SETTINGS = UiSettings()


def generate_slug(name: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to '-', trim dashes."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower())
    return slug.strip("-")


class ProductConfiguration(BaseModel):
    """Aggregate handed between wizard steps.

    Never mutated in place: ``with_changes`` returns a new object with a
    refreshed ``updated_at``.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    slug: str = ""
    product_input: Optional[ProductInput] = None
    context_selection: Optional[ContextSelection] = None
    ui_settings: UiSettings = Field(default_factory=UiSettings)
    output_formats: list[ContextPreset] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    def with_changes(self, **fields) -> "ProductConfiguration":
        data = self.model_dump()
        data.update(fields)
        if "product_input" in fields and fields["product_input"] is not None:
            name = fields["product_input"].specs.product_name.strip()
            data["name"] = name
            data["slug"] = generate_slug(name)
        data["updated_at"] = _now()
        return ProductConfiguration.model_validate(data)


# --- Generated / edited images ---

class GenerationSource(BaseModel):
    method: GenerationMethod = GenerationMethod.TEXT_TO_IMAGE
    model: str
    confidence: float = 1.0
    reference_image_used: bool = False


class ImageMetadata(BaseModel):
    model: str
    timestamp: datetime = Field(default_factory=_now)
    size: str
    quality: str
    variation: Optional[int] = None
    context_preset: Optional[str] = None
    processing_time: Optional[int] = None  # ms


class GeneratedImage(BaseModel):
    model_config = {"frozen": True}

    id: str
    url: str
    product_config_id: str
    settings: UiSettings
    specs: ProductSpecs
    prompt: str
    generation_source: GenerationSource
    metadata: ImageMetadata
    thumbnail: Optional[str] = None


class EditedImage(BaseModel):
    id: str
    source_image_id: str
    asset_type: AssetType
    url: str
    thumbnail: Optional[str] = None
    prompt: str
    version_number: int = 1
    is_latest_version: bool = True
    metadata: dict = Field(default_factory=dict)


# --- Asset types ---

class AssetTypeConfig(BaseModel):
    label: str
    description: str
    variations: int
    context_preset: ContextPreset


ASSET_TYPE_CONFIG: dict[AssetType, AssetTypeConfig] = {
    AssetType.LIFESTYLE: AssetTypeConfig(
        label="Lifestyle Scene",
        description="Product placed in a styled real-world interior",
        variations=2,
        context_preset=ContextPreset.LIFESTYLE,
    ),
    AssetType.AD: AssetTypeConfig(
        label="Advertisement",
        description="High-impact commercial visual for campaigns",
        variations=2,
        context_preset=ContextPreset.HERO,
    ),
    AssetType.SOCIAL: AssetTypeConfig(
        label="Social Media",
        description="Feed-ready square visual for Instagram, Facebook or Pinterest",
        variations=3,
        context_preset=ContextPreset.INSTAGRAM,
    ),
    AssetType.HERO: AssetTypeConfig(
        label="Hero Banner",
        description="Website header with space for text overlay",
        variations=1,
        context_preset=ContextPreset.HERO,
    ),
    AssetType.VARIATION: AssetTypeConfig(
        label="Color/Material Variation",
        description="Same product in an alternative finish or colorway",
        variations=3,
        context_preset=ContextPreset.PACKSHOT,
    ),
}


def get_asset_type_config(asset_type: AssetType) -> AssetTypeConfig:
    return ASSET_TYPE_CONFIG[AssetType(asset_type)]


def clamp_variations(value: int) -> int:
    return min(max(int(value), 1), 4)


for _enum, _table in ((ContextPreset, SIZE_MAPPINGS), (ContextPreset, CONTEXT_PRESET_SETTINGS), (AssetType, ASSET_TYPE_CONFIG)):
    _missing = set(_enum) - set(_table)
    if _missing:
        raise RuntimeError(f"{_enum.__name__} table missing entries: {sorted(m.value for m in _missing)}")
