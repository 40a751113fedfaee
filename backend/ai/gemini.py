"""Image generation through the Gemini image model.

``generate_image_with_gemini`` never raises for model or transport errors; it
returns ``GeminiResponse(success=False, error=...)`` so callers can count
partial successes. A missing API key is a configuration error and does raise.
"""

import base64
import logging
import time
from typing import Optional

from google import genai
from google.genai import types
from pydantic import BaseModel, Field

from backend import config

logger = logging.getLogger(__name__)

REFERENCE_INSTRUCTION = (
    "Use the provided reference images to understand the exact product appearance, "
    "style, materials, and details. Generate a new image that maintains the same product "
    "identity while applying this instruction: {prompt}"
)


class ReferenceImage(BaseModel):
    data: str  # base64, no data: prefix
    mime_type: str = "image/jpeg"


class GeminiImageData(BaseModel):
    image_data: str  # base64
    mime_type: str = "image/png"
    text: Optional[str] = None


class GeminiResponse(BaseModel):
    success: bool
    data: Optional[GeminiImageData] = None
    error: Optional[str] = None
    metadata: dict = Field(default_factory=dict)


_client: Optional[genai.Client] = None


def _get_client() -> genai.Client:
    global _client
    if _client is None:
        if not config.GEMINI_API_KEY:
            raise RuntimeError("GEMINI_API_KEY not configured")
        _client = genai.Client(api_key=config.GEMINI_API_KEY, http_options={"timeout": config.GEMINI_TIMEOUT_MS})
    return _client


def build_contents(prompt: str, reference_images: list[ReferenceImage]) -> list:
    """References first, then the (possibly wrapped) instruction text."""
    parts = []
    for ref in reference_images:
        parts.append(types.Part.from_bytes(data=base64.b64decode(ref.data), mime_type=ref.mime_type))
    text = REFERENCE_INSTRUCTION.format(prompt=prompt) if reference_images else prompt
    parts.append(types.Part.from_text(text=text))
    return parts


def _extract_image(response) -> Optional[GeminiImageData]:
    text_parts = []
    for candidate in response.candidates or []:
        if candidate.content is None:
            continue
        for part in candidate.content.parts or []:
            if getattr(part, "text", None):
                text_parts.append(part.text)
            if getattr(part, "inline_data", None) and part.inline_data.data:
                data = part.inline_data.data
                if isinstance(data, str):
                    data = base64.b64decode(data)
                return GeminiImageData(
                    image_data=base64.b64encode(data).decode("ascii"),
                    mime_type=part.inline_data.mime_type or "image/png",
                    text="\n".join(text_parts) or None,
                )
    return None


async def generate_image_with_gemini(
    prompt: str,
    aspect_ratio: str = "1:1",
    reference_images: Optional[list[ReferenceImage]] = None,
    image_size: Optional[str] = None,
) -> GeminiResponse:
    """One generation call. ``image_size`` is informational only."""
    client = _get_client()
    references = reference_images or []
    started = time.monotonic()
    metadata = {
        "model": config.GEMINI_IMAGE_MODEL,
        "aspect_ratio": aspect_ratio,
        "reference_count": len(references),
    }
    if image_size:
        metadata["image_size"] = image_size

    try:
        response = await client.aio.models.generate_content(
            model=config.GEMINI_IMAGE_MODEL,
            contents=build_contents(prompt, references),
            config=types.GenerateContentConfig(
                response_modalities=["IMAGE", "TEXT"],
                image_config=types.ImageConfig(aspect_ratio=aspect_ratio),
            ),
        )
    except Exception as e:
        logger.warning("Gemini generation failed: %s", e)
        metadata["processing_time"] = int((time.monotonic() - started) * 1000)
        return GeminiResponse(success=False, error=str(e), metadata=metadata)

    metadata["processing_time"] = int((time.monotonic() - started) * 1000)
    image = _extract_image(response)
    if image is None:
        logger.warning("Gemini returned no image data")
        return GeminiResponse(success=False, error="No image data in response", metadata=metadata)
    return GeminiResponse(success=True, data=image, metadata=metadata)
