"""Bounded fan-out for per-variation jobs."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BoundedWorkerPool:
    """Run jobs with at most ``max_in_flight`` awaiting at once.

    ``max_in_flight=1`` runs jobs strictly one after another. Results come back
    in job order; a job that raises or returns ``None`` is logged and left out.
    """

    def __init__(self, max_in_flight: int = 1):
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be >= 1")
        self.max_in_flight = max_in_flight

    async def run(self, jobs: list[Callable[[], Awaitable[Optional[T]]]], label: str = "job") -> list[T]:
        semaphore = asyncio.Semaphore(self.max_in_flight)

        async def _guarded(index: int, job) -> Optional[T]:
            async with semaphore:
                try:
                    return await job()
                except Exception as e:
                    logger.warning("%s %d failed: %s", label, index + 1, e)
                    return None

        results = await asyncio.gather(*(_guarded(i, job) for i, job in enumerate(jobs)))
        return [r for r in results if r is not None]
