"""Visual generation: record lifecycle, variation fan-out and uploads.

A visual row is created with status ``generating`` before any model call and
ends as ``completed`` (at least one image stored) or ``failed``.
"""

import asyncio
import base64
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from backend.ai.gemini import GeminiImageData, ReferenceImage, generate_image_with_gemini
from backend.models import GenerateImagesRequest
from backend.repositories import VisualRepository
from backend.services.errors import GenerationFailedError, NotFoundError
from backend.services.image_edit_service import FetchFn, GenerateFn
from backend.services.worker_pool import BoundedWorkerPool
from backend.storage import UploadResult, VisualStorage, fetch_image_as_base64
from engine.generation_prompt import build_generation_prompt
from engine.types import CONTEXT_PRESET_SETTINGS, SIZE_MAPPINGS, ContextPreset

logger = logging.getLogger(__name__)

GENERATION_MODEL = "gemini-2.5-flash-image"


def new_visual_id() -> str:
    return f"visual_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class GenerationResult:
    visual_id: str
    prompt: str
    uploads: list[UploadResult] = field(default_factory=list)
    requested: int = 0
    metadata: dict = field(default_factory=dict)


class GenerationService:
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

    # --- Record lifecycle ---

    def create_visual_record(
        self,
        user_id: str,
        project_id: Optional[str],
        visual_id: str,
        prompt: str,
        name: str = "",
        metadata: Optional[dict] = None,
    ) -> None:
        db = self._session_factory()
        try:
            VisualRepository(db).create(
                visual_id=visual_id,
                user_id=user_id,
                project_id=project_id,
                name=name,
                prompt=prompt,
                meta={"prompt": prompt, **(metadata or {}), "status": "generating"},
            )
            db.commit()
            logger.info("Visual record created: %s", visual_id)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def process_generated_images(
        self,
        user_id: str,
        project_id: Optional[str],
        visual_id: str,
        images: list[GeminiImageData],
        metadata: Optional[dict] = None,
    ) -> list[UploadResult]:
        """Upload each image; failures are logged and skipped."""
        uploads = []
        for i, image in enumerate(images, start=1):
            image_id = f"{visual_id}_{i}" if len(images) > 1 else visual_id
            try:
                uploads.append(self.storage.upload_visual_image(
                    user_id,
                    project_id,
                    image_id,
                    base64.b64decode(image.image_data),
                    content_type=image.mime_type or "image/png",
                    generate_thumbnail=True,
                    metadata={**(metadata or {}), "generated_at": _iso_now()},
                ))
            except Exception as e:
                logger.warning("Failed to upload image %d/%d of %s: %s", i, len(images), visual_id, e)
        logger.info("Uploaded %d/%d images for %s", len(uploads), len(images), visual_id)
        return uploads

    def complete_generation(self, visual_id: str, uploads: list[UploadResult], metadata: dict) -> None:
        if not uploads:
            raise GenerationFailedError("No images were successfully uploaded")
        main = uploads[0]
        db = self._session_factory()
        try:
            repo = VisualRepository(db)
            visual = repo.get_by_visual_id(visual_id)
            if visual is None:
                raise NotFoundError(f"Visual {visual_id} not found")
            visual.original_url = main.original_url
            visual.thumbnail_url = main.thumbnail_url
            visual.image_urls = [u.original_url for u in uploads]
            repo.update_metadata(
                visual,
                **metadata,
                images=[{"originalUrl": u.original_url, "thumbnailUrl": u.thumbnail_url} for u in uploads],
                completedAt=_iso_now(),
                status="completed",
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def fail_generation(self, visual_id: str, error: Exception) -> None:
        db = self._session_factory()
        try:
            repo = VisualRepository(db)
            visual = repo.get_by_visual_id(visual_id)
            if visual is not None:
                repo.update_metadata(visual, status="failed", error=str(error), failedAt=_iso_now())
                db.commit()
                logger.info("Generation marked as failed: %s", visual_id)
        except Exception as e:
            db.rollback()
            logger.error("Failed to mark %s as failed: %s", visual_id, e)
        finally:
            db.close()

    # --- Orchestration ---

    async def generate_visual(self, request: GenerateImagesRequest, user_id: str) -> GenerationResult:
        settings = request.ui_settings
        preset = ContextPreset(request.context_preset or settings.context_preset)
        prompt = build_generation_prompt(request.product_specs, settings, preset)
        aspect_ratio = CONTEXT_PRESET_SETTINGS[preset]["aspect_ratio"]
        size = SIZE_MAPPINGS[preset]
        variations = settings.variations

        references = await self._load_references(request)
        visual_id = new_visual_id()
        metadata = {
            "contextPreset": preset.value,
            "variations": variations,
            "quality": settings.quality.value,
            "aspectRatio": aspect_ratio,
            "size": size,
            "model": GENERATION_MODEL,
            "references": [r.url for r in request.reference_images if not r.url.startswith("data:")],
            "product": {
                "name": request.product_specs.product_name,
                "category": request.product_specs.product_type,
            },
        }
        self.create_visual_record(
            user_id,
            request.project_id,
            visual_id,
            prompt,
            name=request.name or request.product_specs.product_name,
            metadata=metadata,
        )

        try:
            def make_job(variation: int):
                async def job() -> Optional[GeminiImageData]:
                    response = await self.generate_fn(
                        f"{prompt} (variation {variation})", aspect_ratio, references, size,
                    )
                    if not response.success or response.data is None:
                        logger.warning("Variation %d of %s failed: %s", variation, visual_id, response.error)
                        return None
                    return response.data
                return job

            images = await self.pool.run([make_job(i) for i in range(1, variations + 1)], label="Generation variation")
            if not images:
                raise GenerationFailedError("Failed to generate any images")

            uploads = await asyncio.to_thread(
                self.process_generated_images,
                user_id, request.project_id, visual_id, images,
                metadata={"model": GENERATION_MODEL, "aspect_ratio": aspect_ratio},
            )
            metadata["timestamp"] = _iso_now()
            self.complete_generation(visual_id, uploads, metadata)
        except Exception as e:
            logger.error("Generation %s failed: %s", visual_id, e)
            self.fail_generation(visual_id, e)
            raise

        return GenerationResult(
            visual_id=visual_id, prompt=prompt, uploads=uploads, requested=variations, metadata=metadata,
        )

    async def _load_references(self, request: GenerateImagesRequest) -> list[ReferenceImage]:
        references = []
        for ref in request.reference_images:
            try:
                data, mime = await self.fetch_image(ref.url)
                references.append(ReferenceImage(data=data, mime_type=ref.mime_type or mime))
            except Exception as e:
                logger.warning("Skipping unreadable reference image: %s", e)
        return references

    # --- Reads / deletes ---

    def get_visual(self, visual_id: str, user_id: str):
        db = self._session_factory()
        try:
            return VisualRepository(db).get_owned(visual_id, user_id)
        finally:
            db.close()

    def list_visuals(self, user_id: str, limit: int = 50, offset: int = 0, project_id: Optional[str] = None) -> list:
        db = self._session_factory()
        try:
            return VisualRepository(db).list_for_user(user_id, limit=limit, offset=offset, project_id=project_id)
        finally:
            db.close()

    def delete_visual(self, visual_id: str, user_id: str) -> None:
        db = self._session_factory()
        try:
            repo = VisualRepository(db)
            visual = repo.get_owned(visual_id, user_id)
            if visual is None:
                raise NotFoundError("Visual not found")
            try:
                self.storage.delete_visual_images(user_id, visual.project_id, visual_id)
            except Exception as e:
                logger.warning("Failed to delete storage for %s: %s", visual_id, e)
            repo.delete(visual)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
