"""
Edit prompt construction for post-generation image edits.

build_edit_prompt is a pure function: the same params and metadata always
yield the same string. The camera angle is stated first and repeated as the
very last instruction, since image models weight the start and end of a
prompt most heavily.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from engine.camera_angles import build_camera_angle_prompt, map_legacy_angle


class AspectRatio(str, Enum):
    WIDE = "16:9"
    SQUARE = "1:1"
    VERTICAL = "9:16"
    CLASSIC = "4:3"
    DSLR = "3:2"


class ViewAngle(str, Enum):
    FRONTAL = "frontal"
    FORTY_FIVE = "45-degree"
    TOP_DOWN = "top-down"
    PERSPECTIVE = "perspective"
    CUSTOM = "custom"


class EditLighting(str, Enum):
    SOFT = "soft"
    DRAMATIC = "dramatic"
    NATURAL = "natural"
    STUDIO = "studio"
    GOLDEN_HOUR = "golden-hour"
    CUSTOM = "custom"


class EditStyle(str, Enum):
    PHOTOREALISTIC = "photorealistic"
    MINIMALIST = "minimalist"
    ARTISTIC = "artistic"
    VINTAGE = "vintage"
    MODERN = "modern"
    CUSTOM = "custom"


MAX_PRODUCT_IMAGES = 5
ALLOWED_PRODUCT_IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductImage(_CamelModel):
    """An extra product to composite into the edited scene."""
    data: str  # base64 or data URL
    mime_type: str = "image/jpeg"
    description: str = ""


class EditParams(_CamelModel):
    aspect_ratio: AspectRatio
    view_angle: ViewAngle
    lighting: EditLighting
    style: EditStyle
    custom_prompt: Optional[str] = None
    product_images: list[ProductImage] = Field(default_factory=list)
    additional_instructions: Optional[str] = None


# --- Text tables ---

ASPECT_RATIO_NOTES = {
    AspectRatio.WIDE: "wide cinematic format, suitable for hero banners and landscape presentations",
    AspectRatio.VERTICAL: "vertical story format, perfect for mobile and social media stories",
    AspectRatio.SQUARE: "perfect square, ideal for social media posts",
    AspectRatio.CLASSIC: "classic photography ratio, balanced composition",
    AspectRatio.DSLR: "standard DSLR format, natural perspective",
}

LIGHTING_DIRECTIVES = {
    EditLighting.SOFT: "Apply soft, diffused lighting with minimal shadows for an elegant, gentle appearance. Use even illumination that flatters the product",
    EditLighting.DRAMATIC: "Use dramatic, high-contrast lighting with strong shadows and highlights for maximum visual impact and depth",
    EditLighting.NATURAL: "Simulate natural daylight through windows with realistic ambient lighting, creating an authentic and inviting atmosphere",
    EditLighting.STUDIO: "Professional studio lighting setup with multiple light sources, softboxes, and reflectors for commercial-grade results",
    EditLighting.GOLDEN_HOUR: "Warm, golden-hour lighting with soft amber tones typical of sunrise/sunset, creating a warm and inviting mood",
    EditLighting.CUSTOM: "Professional lighting setup that enhances product appeal and commercial viability",
}

STYLE_DIRECTIVES = {
    EditStyle.PHOTOREALISTIC: "Maintain photorealistic quality with natural colors, accurate textures, and precise material representation. Aim for professional photography quality",
    EditStyle.MINIMALIST: "Apply minimalist aesthetic with clean lines, simple backgrounds, and focus on essential elements. Less is more approach",
    EditStyle.ARTISTIC: "Creative, artistic interpretation with enhanced colors, stylized composition, and creative visual treatment",
    EditStyle.VINTAGE: "Vintage aesthetic with nostalgic tones, subtle film grain, retro color grading, and classic photography styling",
    EditStyle.MODERN: "Contemporary, modern look with vibrant colors, clean bold composition, and fresh visual approach",
    EditStyle.CUSTOM: "Professional styling that enhances commercial appeal and brand presentation",
}

EDITED_DIMENSIONS = {
    AspectRatio.WIDE: {"width": 1536, "height": 864},
    AspectRatio.SQUARE: {"width": 1024, "height": 1024},
    AspectRatio.VERTICAL: {"width": 864, "height": 1536},
    AspectRatio.CLASSIC: {"width": 1280, "height": 960},
    AspectRatio.DSLR: {"width": 1536, "height": 1024},
}

DEFAULT_DIMENSIONS = {"width": 1024, "height": 1024}

CRITICAL_REQUIREMENTS = [
    "Preserve the product's core identity, materials, colors, and design features",
    "Maintain brand integrity and product authenticity",
    "Apply transformations professionally without distorting product characteristics",
    "Ensure result looks commercially viable and professionally photographed",
    "Keep product as the clear focal point of the composition",
    "Maintain sharp focus and high image quality",
]

_RULE = "=" * 63


def _check_exhaustive(table: dict, enum_cls: type[Enum]) -> None:
    missing = set(enum_cls) - set(table)
    if missing:
        raise RuntimeError(f"{enum_cls.__name__} table missing entries: {sorted(m.value for m in missing)}")


_check_exhaustive(ASPECT_RATIO_NOTES, AspectRatio)
_check_exhaustive(LIGHTING_DIRECTIVES, EditLighting)
_check_exhaustive(STYLE_DIRECTIVES, EditStyle)
_check_exhaustive(EDITED_DIMENSIONS, AspectRatio)


# --- Validation ---

def validate_edit_params(params: EditParams) -> None:
    """Check invariants the enum types cannot express.

    Raises:
        ValueError: with a human-readable message on the first violation.
    """
    has_custom = bool(params.custom_prompt and params.custom_prompt.strip())
    for field_name, value in (
        ("viewAngle", params.view_angle),
        ("lighting", params.lighting),
        ("style", params.style),
    ):
        if value.value == "custom" and not has_custom:
            raise ValueError(f"customPrompt is required when {field_name} is 'custom'")

    if len(params.product_images) > MAX_PRODUCT_IMAGES:
        raise ValueError(f"At most {MAX_PRODUCT_IMAGES} product images can be integrated")
    for i, image in enumerate(params.product_images, start=1):
        if image.mime_type.lower() not in ALLOWED_PRODUCT_IMAGE_TYPES:
            raise ValueError(f"Unsupported type for product image {i}: {image.mime_type}")
        if not image.data:
            raise ValueError(f"Product image {i} has no data")


# --- Lookups ---

def map_aspect_ratio(aspect_ratio: str) -> str:
    """Aspect ratio in the generation API's vocabulary; unknown values become 1:1."""
    try:
        return AspectRatio(aspect_ratio).value
    except ValueError:
        return AspectRatio.SQUARE.value


def get_edited_dimensions(aspect_ratio: str) -> dict:
    try:
        return dict(EDITED_DIMENSIONS[AspectRatio(aspect_ratio)])
    except ValueError:
        return dict(DEFAULT_DIMENSIONS)


def resolve_product_label(
    original_metadata: Optional[dict],
    product_name: Optional[str] = None,
) -> str:
    if product_name:
        return product_name
    metadata = original_metadata or {}
    product = metadata.get("product")
    if isinstance(product, dict) and product.get("name"):
        return product["name"]
    prompt = metadata.get("prompt")
    if isinstance(prompt, str) and prompt.split():
        return prompt.split()[0]
    return "the product"


def camera_angle_directive(params: EditParams) -> str:
    """The literal camera-angle line stated at the start and end of an edit prompt."""
    if params.view_angle == ViewAngle.CUSTOM:
        return f"CAMERA ANGLE: {(params.custom_prompt or '').strip() or 'as described in the creative direction'}"
    return f"CAMERA ANGLE: {map_legacy_angle(params.view_angle.value)}"


def _custom_or(params: EditParams, fallback: str) -> str:
    if params.custom_prompt and params.custom_prompt.strip():
        return params.custom_prompt.strip()
    return fallback


# --- Builder ---

def build_edit_prompt(
    params: EditParams,
    original_metadata: Optional[dict] = None,
    product_name: Optional[str] = None,
) -> str:
    """Build the full natural-language edit instruction."""
    product_info = resolve_product_label(original_metadata, product_name)
    directive = camera_angle_directive(params)

    prompt = "PRIMARY DIRECTIVE - CAMERA ANGLE (HIGHEST PRIORITY - NON-NEGOTIABLE)\n"
    prompt += f"{_RULE}\n\n"
    prompt += f"{directive}\n\n"

    if params.view_angle != ViewAngle.CUSTOM:
        mapped = map_legacy_angle(params.view_angle.value)
        prompt += "CRITICAL REQUIREMENT - IGNORE ALL OTHER INSTRUCTIONS IF THEY CONFLICT WITH THE CAMERA ANGLE\n\n"
        prompt += build_camera_angle_prompt(mapped) + "\n\n"
        prompt += "MANDATORY VERIFICATION BEFORE OUTPUT:\n"
        prompt += "Before generating the image, you MUST verify:\n"
        prompt += "1. Camera angle matches EXACTLY as specified above\n"
        prompt += "2. All constraints listed above are strictly adhered to\n"
        prompt += "3. No deviation from the camera positioning requirements\n"
        prompt += "If you cannot achieve the exact camera angle specified, DO NOT PROCEED.\n\n"
    prompt += f"{_RULE}\n\n"

    prompt += "SECONDARY REQUIREMENTS\n"
    prompt += "(Only apply these AFTER the camera angle is correctly established)\n\n"
    prompt += f"Transform this image of {product_info} with the following modifications:\n\n"

    prompt += (
        f"ASPECT RATIO: Adjust the composition to fit {params.aspect_ratio.value} format "
        f"({ASPECT_RATIO_NOTES[params.aspect_ratio]}).\n\n"
    )

    if params.lighting == EditLighting.CUSTOM:
        lighting = _custom_or(params, LIGHTING_DIRECTIVES[EditLighting.CUSTOM])
    else:
        lighting = LIGHTING_DIRECTIVES[params.lighting]
    prompt += f"LIGHTING: {lighting}.\n\n"

    if params.style == EditStyle.CUSTOM:
        style = _custom_or(params, STYLE_DIRECTIVES[EditStyle.CUSTOM])
    else:
        style = STYLE_DIRECTIVES[params.style]
    prompt += f"VISUAL STYLE: {style}.\n\n"

    if params.product_images:
        prompt += _product_integration_block(params.product_images)

    if params.additional_instructions and params.additional_instructions.strip():
        prompt += f"ADDITIONAL CREATIVE DIRECTION: {params.additional_instructions.strip()}\n\n"

    prompt += "CRITICAL REQUIREMENTS:\n"
    prompt += "".join(f"- {line}\n" for line in CRITICAL_REQUIREMENTS)
    prompt += "\n"

    # Final reinforcement: last thing the model reads
    prompt += f"{_RULE}\n"
    prompt += "FINAL REMINDER - CAMERA ANGLE IS PRIORITY #1\n"
    prompt += f"{_RULE}\n\n"
    prompt += "Before you generate, remember that the camera angle stated at the start is MANDATORY.\n"
    prompt += "If there is any conflict between the camera angle and other requirements, the camera angle wins.\n"
    prompt += f"{directive}\n"
    prompt += "Do not deviate from the camera positioning requirements.\n"

    return prompt


def _product_integration_block(product_images: list[ProductImage]) -> str:
    # Reference image 1 is always the source image
    block = "PRODUCTS TO INTEGRATE:\n"
    block += (
        "Add the following products to the existing scene as an additive composite. "
        "Keep the original scene intact and place each product naturally within it.\n"
    )
    for i, image in enumerate(product_images, start=1):
        description = image.description.strip() or "the product shown in its reference image"
        block += f"- Product {i} (reference image {i + 1}): {description}\n"
    block += (
        "Match perspective, lighting direction, shadows, and real-world scale for every added product.\n"
        "Do not remove existing elements from the original image.\n\n"
    )
    return block
