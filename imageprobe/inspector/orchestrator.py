"""Orchestrates concurrent inspection of a batch of images."""

import asyncio
import logging
import time
from collections.abc import Callable

from imageprobe.inspector.image_inspector import ImageInspector
from imageprobe.models.model_inspection import InspectionBatchResult, InspectionResult

logger = logging.getLogger(__name__)


class InspectionOrchestrator:
    """Runs one inspection task per image and gathers exactly one result each."""

    def __init__(self, inspector: ImageInspector, concurrency: int | None = None):
        """Initialize InspectionOrchestrator.

        Args:
            inspector: ImageInspector used for every image
            concurrency: Optional cap on in-flight inspections (default: unbounded,
                         every image runs at once)

        Raises:
            ValueError: If concurrency is given and below 1
        """
        if concurrency is not None and concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.inspector = inspector
        self.concurrency = concurrency

    async def run_batch(
        self,
        images: list[str],
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> InspectionBatchResult:
        """Inspect all images concurrently.

        Each task sends its result on a queue sized to the batch, so sends
        never block. The queue is drained only after every task has finished,
        and results keep their completion order, not input order.

        Args:
            images: Image identifiers to inspect
            progress_callback: Optional callback for progress updates (completed, total)

        Returns:
            InspectionBatchResult with one result per image
        """
        start_time = time.time()
        total = len(images)
        results_queue: asyncio.Queue[InspectionResult] = asyncio.Queue(maxsize=max(total, 1))
        semaphore = asyncio.Semaphore(self.concurrency) if self.concurrency is not None else None
        completed = 0

        async def inspect_one(image: str) -> None:
            """Inspect a single image and send its result."""
            nonlocal completed

            if semaphore is not None:
                async with semaphore:
                    result = await self._safe_inspect(image)
            else:
                result = await self._safe_inspect(image)

            results_queue.put_nowait(result)
            completed += 1
            if progress_callback:
                progress_callback(completed, total)

        logger.info(f"Inspecting {total} images...")
        await asyncio.gather(*[inspect_one(image) for image in images])

        results: list[InspectionResult] = []
        while not results_queue.empty():
            results.append(results_queue.get_nowait())

        failures = {r.image: r.error for r in results if r.error is not None}
        failed = sum(1 for r in results if r.error is not None)
        duration = time.time() - start_time
        logger.info(
            f"Inspected {total} images in {duration:.1f}s "
            f"({total - failed} ok, {failed} failed)"
        )

        return InspectionBatchResult(
            total=total,
            succeeded=len(results) - failed,
            failed=failed,
            results=results,
            failures=failures,
            duration_seconds=duration,
        )

    def run_batch_sync(self, images: list[str]) -> InspectionBatchResult:
        """Blocking wrapper around run_batch for non-async callers."""
        return asyncio.run(self.run_batch(images))

    async def _safe_inspect(self, image: str) -> InspectionResult:
        """Run the inspector, turning any escaped exception into an error result."""
        try:
            return await self.inspector.inspect(image)
        except Exception as e:
            logger.exception(f"Inspection task for {image} raised unexpectedly")
            return InspectionResult(image=image, error=f"unexpected error: {e}")
