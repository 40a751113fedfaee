"""Edit orchestration: validate, check ownership, version, generate, persist.

Each requested variation is an independent job. A failed job is logged and
skipped; the call only fails when no variation succeeded.
"""

import asyncio
import base64
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from backend.ai.gemini import GeminiResponse, ReferenceImage, generate_image_with_gemini
from backend.models import AssetEditRequest, EditImageRequest, EditMetadata, EditResult
from backend.repositories import ImageEditRepository, VisualRepository
from backend.services.errors import (
    EditValidationError,
    GenerationFailedError,
    NotFoundError,
    UnauthorizedError,
)
from backend.services.worker_pool import BoundedWorkerPool
from backend.storage import VisualStorage, fetch_image_as_base64
from engine.edit_prompt import (
    DEFAULT_DIMENSIONS,
    build_edit_prompt,
    get_edited_dimensions,
    map_aspect_ratio,
    resolve_product_label,
    validate_edit_params,
)
from engine.generation_prompt import asset_variation_prompt, build_asset_prompt
from engine.types import CONTEXT_PRESET_SETTINGS, SIZE_MAPPINGS, AssetType, get_asset_type_config

logger = logging.getLogger(__name__)

EDIT_MODEL = "gemini-2.5-flash-image"
CREDITS_PER_EDIT = 1
MAX_VARIATIONS = 4

GenerateFn = Callable[..., Awaitable[GeminiResponse]]
FetchFn = Callable[[str], Awaitable[tuple[str, str]]]


def new_edit_id(version: int) -> str:
    millis = int(time.time() * 1000)
    return f"edit_{millis}_{uuid.uuid4().hex[:9]}_v{version}"


def parse_dimensions(metadata: Optional[dict]) -> dict:
    """Original image size from visual metadata; 1024x1024 when unknown."""
    metadata = metadata or {}
    dims = metadata.get("dimensions")
    if isinstance(dims, dict) and dims.get("width") and dims.get("height"):
        return {"width": int(dims["width"]), "height": int(dims["height"])}
    size = metadata.get("size")
    if isinstance(size, str) and "x" in size:
        width, _, height = size.partition("x")
        if width.strip().isdigit() and height.strip().isdigit():
            return {"width": int(width), "height": int(height)}
    return dict(DEFAULT_DIMENSIONS)


def _strip_data_url(data: str) -> str:
    if data.startswith("data:") and "," in data:
        return data.split(",", 1)[1]
    return data


class ImageEditService:
    def __init__(
        self,
        session_factory,
        storage: VisualStorage,
        generate_fn: GenerateFn = generate_image_with_gemini,
        pool: Optional[BoundedWorkerPool] = None,
        fetch_image: FetchFn = fetch_image_as_base64,
    ):
        self._session_factory = session_factory
        self.storage = storage
        self.generate_fn = generate_fn
        self.pool = pool or BoundedWorkerPool(1)
        self.fetch_image = fetch_image

    # --- Entry points ---

    async def process_edit(self, request: EditImageRequest, user_id: str) -> list[EditResult]:
        self._validate_common(request.visual_id, request.image_url, request.variations)
        try:
            validate_edit_params(request.edit_params)
        except ValueError as e:
            raise EditValidationError(str(e)) from e

        visual_meta = self._check_ownership(request.visual_id, user_id)
        version = self._next_version(request.visual_id, user_id, request.parent_edit_id)

        params = request.edit_params
        prompt = build_edit_prompt(params, visual_meta, request.product_name)
        extra_refs = [
            ReferenceImage(data=_strip_data_url(img.data), mime_type=img.mime_type)
            for img in params.product_images
        ]
        aspect_ratio = map_aspect_ratio(params.aspect_ratio.value)

        return await self._run_variations(
            user_id=user_id,
            visual_id=request.visual_id,
            image_url=request.image_url,
            parent_edit_id=request.parent_edit_id,
            version=version,
            prompts=[f"{prompt} (variation {i})" for i in range(1, request.variations + 1)],
            aspect_ratio=aspect_ratio,
            extra_refs=extra_refs,
            edit_params=params.model_dump(mode="json", by_alias=True),
            original_dimensions=parse_dimensions(visual_meta),
            edited_dimensions=get_edited_dimensions(aspect_ratio),
        )

    async def process_asset_edit(self, request: AssetEditRequest, user_id: str) -> list[EditResult]:
        asset_config = get_asset_type_config(request.asset_type)
        variations = request.variations if request.variations is not None else asset_config.variations
        self._validate_common(request.visual_id, request.image_url, variations)

        visual_meta = self._check_ownership(request.visual_id, user_id)
        version = self._next_version(request.visual_id, user_id, request.parent_edit_id)

        product = resolve_product_label(visual_meta, request.product_name)
        base_prompt = build_asset_prompt(request.asset_type, product)
        preset_settings = CONTEXT_PRESET_SETTINGS[asset_config.context_preset]
        width, _, height = SIZE_MAPPINGS[asset_config.context_preset].partition("x")

        return await self._run_variations(
            user_id=user_id,
            visual_id=request.visual_id,
            image_url=request.image_url,
            parent_edit_id=request.parent_edit_id,
            version=version,
            prompts=[
                asset_variation_prompt(base_prompt, request.asset_type, i)
                for i in range(1, variations + 1)
            ],
            aspect_ratio=preset_settings["aspect_ratio"],
            extra_refs=[],
            edit_params={"assetType": AssetType(request.asset_type).value, "variations": variations},
            original_dimensions=parse_dimensions(visual_meta),
            edited_dimensions={"width": int(width), "height": int(height)},
        )

    # --- Steps ---

    @staticmethod
    def _validate_common(visual_id: str, image_url: str, variations: int) -> None:
        if not visual_id or not visual_id.strip():
            raise EditValidationError("visualId is required")
        if not image_url or not image_url.strip():
            raise EditValidationError("imageUrl is required")
        if not 1 <= variations <= MAX_VARIATIONS:
            raise EditValidationError(f"variations must be between 1 and {MAX_VARIATIONS}")

    def _check_ownership(self, visual_id: str, user_id: str) -> dict:
        """Visual metadata (with its prompt) if ``user_id`` owns the visual."""
        db = self._session_factory()
        try:
            visual = VisualRepository(db).get_by_visual_id(visual_id)
            if visual is None:
                raise NotFoundError("Original visual not found")
            if visual.user_id != user_id:
                raise UnauthorizedError("Unauthorized: You do not own this visual")
            meta = dict(visual.meta or {})
            if visual.prompt and "prompt" not in meta:
                meta["prompt"] = visual.prompt
            return meta
        finally:
            db.close()

    def _next_version(self, visual_id: str, user_id: str, parent_edit_id: Optional[str]) -> int:
        """Parent version + 1, or 1 for a new lineage.

        Only reads. The parent stops being latest when the first variation is
        stored; two concurrent edits of one parent can get the same number.
        """
        if not parent_edit_id:
            return 1
        db = self._session_factory()
        try:
            parent_version = ImageEditRepository(db).get_version_number(parent_edit_id)
        finally:
            db.close()
        if parent_version is None:
            logger.warning("Parent edit %s not found, starting at version 1", parent_edit_id)
            return 1
        return parent_version + 1

    async def _run_variations(
        self,
        user_id: str,
        visual_id: str,
        image_url: str,
        parent_edit_id: Optional[str],
        version: int,
        prompts: list[str],
        aspect_ratio: str,
        extra_refs: list[ReferenceImage],
        edit_params: dict,
        original_dimensions: dict,
        edited_dimensions: dict,
    ) -> list[EditResult]:
        def make_job(index: int, variation_prompt: str):
            async def job() -> Optional[EditResult]:
                return await self._generate_one(
                    user_id, visual_id, image_url, parent_edit_id, version, index,
                    variation_prompt, aspect_ratio, extra_refs,
                    edit_params, original_dimensions, edited_dimensions,
                )
            return job

        jobs = [make_job(i, p) for i, p in enumerate(prompts, start=1)]
        results = await self.pool.run(jobs, label="Edit variation")

        if not results:
            raise GenerationFailedError("Failed to generate any edit variations")
        logger.info("Edit of %s: %d/%d variations succeeded", visual_id, len(results), len(prompts))
        return results

    async def _generate_one(
        self, user_id, visual_id, image_url, parent_edit_id, version, variation,
        variation_prompt, aspect_ratio, extra_refs,
        edit_params, original_dimensions, edited_dimensions,
    ) -> Optional[EditResult]:
        started = time.monotonic()
        source_b64, source_mime = await self.fetch_image(image_url)
        references = [ReferenceImage(data=source_b64, mime_type=source_mime), *extra_refs]

        response = await self.generate_fn(variation_prompt, aspect_ratio, references)
        if not response.success or response.data is None:
            logger.warning("Variation %d generation failed: %s", variation, response.error)
            return None

        edit_id = new_edit_id(version)
        upload = await asyncio.to_thread(
            self.storage.upload_visual_image,
            user_id,
            None,
            edit_id,
            base64.b64decode(response.data.image_data),
            content_type=response.data.mime_type or "image/png",
            generate_thumbnail=True,
            metadata={"original_visual_id": visual_id, "version": str(version)},
        )

        metadata = EditMetadata(
            model=EDIT_MODEL,
            timestamp=datetime.now(timezone.utc),
            processing_time=int((time.monotonic() - started) * 1000),
            credits_used=CREDITS_PER_EDIT,
            variation=variation,
            original_dimensions=original_dimensions,
            edited_dimensions=edited_dimensions,
        )

        db = self._session_factory()
        try:
            repo = ImageEditRepository(db)
            repo.insert(
                edit_id=edit_id,
                user_id=user_id,
                original_visual_id=visual_id,
                parent_edit_id=parent_edit_id,
                edited_image_url=upload.original_url,
                thumbnail_url=upload.thumbnail_url,
                edit_params=edit_params,
                prompt=variation_prompt,
                meta=metadata.model_dump(mode="json"),
                version_number=version,
                is_latest_version=True,
            )
            if parent_edit_id:
                repo.retire_version(parent_edit_id, user_id)
            VisualRepository(db).adjust_edit_count(visual_id, 1)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        return EditResult(
            edit_id=edit_id,
            original_visual_id=visual_id,
            edited_image_url=upload.original_url,
            thumbnail_url=upload.thumbnail_url,
            prompt=variation_prompt,
            version_number=version,
            parent_edit_id=parent_edit_id,
            metadata=metadata,
        )

    # --- History / bookkeeping ---

    def get_edit_history(self, visual_id: str, user_id: str) -> list:
        db = self._session_factory()
        try:
            return ImageEditRepository(db).history(visual_id, user_id)
        finally:
            db.close()

    def get_edit(self, edit_id: str, user_id: str):
        db = self._session_factory()
        try:
            return ImageEditRepository(db).get_owned(edit_id, user_id)
        finally:
            db.close()

    def delete_edit(self, edit_id: str, user_id: str) -> None:
        db = self._session_factory()
        try:
            repo = ImageEditRepository(db)
            edit = repo.get_owned(edit_id, user_id)
            if edit is None:
                raise NotFoundError("Edit not found or unauthorized")

            try:
                self.storage.delete_visual_images(user_id, None, edit_id)
            except Exception as e:
                logger.warning("Failed to delete storage for edit %s: %s", edit_id, e)

            visual_id = edit.original_visual_id
            repo.delete(edit)
            VisualRepository(db).adjust_edit_count(visual_id, -1)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def increment_edit_view(self, edit_id: str) -> None:
        self._increment(edit_id, "views")

    def increment_edit_download(self, edit_id: str) -> None:
        self._increment(edit_id, "downloads")

    def _increment(self, edit_id: str, column: str) -> None:
        db = self._session_factory()
        try:
            ImageEditRepository(db).increment(edit_id, column)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.warning("Failed to increment %s for edit %s: %s", column, edit_id, e)
        finally:
            db.close()
