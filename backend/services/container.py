"""Service objects shared by the routes, built once at startup.

Storage is constructed on first use so the API can boot (and serve wizard,
plans, health) without blob-storage credentials.
"""

import logging
from typing import Optional

from backend import config
from backend.ai.gemini import generate_image_with_gemini
from backend.services.analytics_service import AnalyticsService
from backend.services.generation_service import GenerationService
from backend.services.image_edit_service import GenerateFn, ImageEditService
from backend.services.worker_pool import BoundedWorkerPool
from backend.storage import BlobStore, VisualStorage
from backend.wizard_store import SQLWizardStore

logger = logging.getLogger(__name__)


class Services:
    def __init__(
        self,
        session_factory,
        storage: Optional[VisualStorage] = None,
        generate_fn: GenerateFn = generate_image_with_gemini,
        max_in_flight: int = config.GENERATION_MAX_IN_FLIGHT,
        wizard_store=None,
    ):
        self.session_factory = session_factory
        self.generate_fn = generate_fn
        self.pool = BoundedWorkerPool(max_in_flight)
        self.analytics = AnalyticsService(session_factory)
        self.wizard_store = wizard_store or SQLWizardStore(session_factory, ttl_hours=config.WIZARD_SESSION_TTL_HOURS)
        self._storage = storage
        self._generation: Optional[GenerationService] = None
        self._edits: Optional[ImageEditService] = None

    @property
    def storage(self) -> VisualStorage:
        if self._storage is None:
            self._storage = VisualStorage(BlobStore.from_env(), self.session_factory)
            logger.info("Blob storage initialised (bucket=%s)", self._storage.blob.bucket)
        return self._storage

    @property
    def generation(self) -> GenerationService:
        if self._generation is None:
            self._generation = GenerationService(
                self.session_factory, self.storage, generate_fn=self.generate_fn, pool=self.pool,
            )
        return self._generation

    @property
    def edits(self) -> ImageEditService:
        if self._edits is None:
            self._edits = ImageEditService(
                self.session_factory, self.storage, generate_fn=self.generate_fn, pool=self.pool,
            )
        return self._edits
