"""
Batch processing: cost estimation, job registry and task dispatch.

Each image in a batch is an independent task. Status is pulled by the caller;
there is no push channel and no cancellation. The registry is process-wide
and jobs are never evicted.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Set

from garment_synth.config import BATCH_MAX_IN_FLIGHT, MAX_IMAGES_PER_BATCH
from garment_synth.core.errors import BatchNotFound, GarmentSynthError, ValidationError
from garment_synth.core.models import (
    BatchImageRequest,
    BatchJob,
    BatchTask,
    Enhancement,
    Priority,
    TaskStatus,
)
from garment_synth.core.prompt_templates import build_enhancement_prompt
from garment_synth.core.provider import Provider, SynthesisOptions
from garment_synth.core.rate_limit import RateLimiter, check_batch_size, enforce_rate_limit
from garment_synth.services.synthesis_service import _log, require_image_url

SECONDS_PER_IMAGE = 2


@dataclass(frozen=True)
class BatchPricing:
    """Per-image pricing in USD."""

    base_cost: float = 0.036
    color_correction: float = 0.003
    edge_optimization: float = 0.004
    batch_discount: float = 0.20
    batch_threshold: int = 10
    low_priority_discount: float = 0.30

    def surcharge(self, enhancement: Enhancement) -> float:
        if enhancement is Enhancement.COLOR_CORRECTION:
            return self.color_correction
        if enhancement is Enhancement.EDGE_OPTIMIZATION:
            return self.edge_optimization
        return 0.0


DEFAULT_PRICING = BatchPricing()


def image_cost(image: BatchImageRequest, pricing: BatchPricing = DEFAULT_PRICING) -> float:
    """Base cost plus one surcharge per distinct enhancement."""
    return pricing.base_cost + sum(
        pricing.surcharge(enhancement) for enhancement in set(image.enhancements)
    )


def estimate_batch_cost(
    images: Sequence[BatchImageRequest],
    priority: Priority = Priority.NORMAL,
    pricing: BatchPricing = DEFAULT_PRICING,
) -> float:
    """Total cost of a batch. Discounts compose multiplicatively over the enhanced cost."""
    total = sum(image_cost(image, pricing) for image in images)

    if len(images) >= pricing.batch_threshold:
        total *= 1 - pricing.batch_discount
    if Priority(priority) is Priority.LOW:
        total *= 1 - pricing.low_priority_discount

    return total


def estimate_batch_time(image_count: int) -> int:
    return image_count * SECONDS_PER_IMAGE


class BatchRegistry:
    """In-process store of batch jobs keyed by batch id."""

    def __init__(self) -> None:
        self._jobs: Dict[str, BatchJob] = {}

    def add(self, job: BatchJob) -> None:
        self._jobs[job.batch_id] = job

    def get(self, batch_id: str) -> Optional[BatchJob]:
        return self._jobs.get(batch_id)


# -------------------------
# Runners
# -------------------------
class BatchRunner(ABC):
    """Moves batch tasks through their lifecycle."""

    id_prefix = "batch"
    is_demo = False

    @abstractmethod
    def start(self, job: BatchJob) -> None:
        ...

    def refresh(self, job: BatchJob) -> None:
        """Hook run on every status query."""


class LiveBatchRunner(BatchRunner):
    """Dispatches one provider call per task, bounded by a max-in-flight semaphore."""

    def __init__(self, provider: Provider, max_in_flight: int = BATCH_MAX_IN_FLIGHT):
        self.provider = provider
        self.max_in_flight = max(1, max_in_flight)
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._pending: Set[asyncio.Task] = set()

    def _get_semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_in_flight)
        return self._semaphore

    def start(self, job: BatchJob) -> None:
        for task in job.tasks:
            handle = asyncio.create_task(self.run_task(job.batch_id, task))
            self._pending.add(handle)
            handle.add_done_callback(self._pending.discard)

    async def run_task(self, batch_id: str, task: BatchTask) -> None:
        async with self._get_semaphore():
            task.status = TaskStatus.PROCESSING
            _log(logging.DEBUG, "batch_task_started", batch_id=batch_id, task_id=task.task_id)
            try:
                result = await self.provider.synthesize(
                    build_enhancement_prompt(task.enhancements),
                    [task.image_url],
                    SynthesisOptions(num_images=1, output_format="png"),
                )
            except GarmentSynthError as exc:
                task.status = TaskStatus.FAILED
                task.error = str(exc)
                _log(
                    logging.WARNING,
                    "batch_task_failed",
                    batch_id=batch_id,
                    task_id=task.task_id,
                    error=str(exc),
                )
                return

            task.result_url = result.primary_url
            task.status = TaskStatus.COMPLETED
            _log(logging.INFO, "batch_task_completed", batch_id=batch_id, task_id=task.task_id)

    async def drain(self) -> None:
        """Wait for every dispatched task to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending))


class DemoBatchRunner(BatchRunner):
    """
    Fabricates deterministic progress for demo batches.

    After the n-th status query the first n tasks are completed, the next one
    is processing and the rest are pending.
    """

    id_prefix = "demo-batch"
    is_demo = True

    def __init__(self, placeholder_url: str):
        self.placeholder_url = placeholder_url
        self._queries: Dict[str, int] = {}

    def start(self, job: BatchJob) -> None:
        self._queries[job.batch_id] = 0

    def refresh(self, job: BatchJob) -> None:
        queries = self._queries.get(job.batch_id, 0) + 1
        self._queries[job.batch_id] = queries

        for idx, task in enumerate(job.tasks):
            if idx < queries:
                task.status = TaskStatus.COMPLETED
                task.result_url = self.placeholder_url
            elif idx == queries:
                task.status = TaskStatus.PROCESSING
            else:
                task.status = TaskStatus.PENDING


# -------------------------
# Orchestrator
# -------------------------
def _parse_priority(priority: str | Priority) -> Priority:
    try:
        return Priority(priority)
    except ValueError as exc:
        raise ValidationError("priority must be 'normal' or 'low'") from exc


class BatchService:
    def __init__(
        self,
        runner: BatchRunner,
        rate_limiter: RateLimiter,
        registry: Optional[BatchRegistry] = None,
        pricing: BatchPricing = DEFAULT_PRICING,
        max_images: int = MAX_IMAGES_PER_BATCH,
    ):
        self.runner = runner
        self.rate_limiter = rate_limiter
        self.registry = registry or BatchRegistry()
        self.pricing = pricing
        self.max_images = max_images

    def validate(self, images: Sequence[BatchImageRequest]) -> None:
        if not images:
            raise ValidationError("An image list is required")
        check_batch_size(len(images), self.max_images)
        for idx, image in enumerate(images):
            require_image_url(image.image_url, f"images[{idx}].imageUrl")

    def _new_batch_id(self) -> str:
        return f"{self.runner.id_prefix}-{uuid.uuid4().hex}"

    async def submit_batch(
        self,
        images: Sequence[BatchImageRequest],
        priority: str | Priority,
        client_id: str,
    ) -> BatchJob:
        self.validate(images)
        parsed_priority = _parse_priority(priority)
        enforce_rate_limit(
            self.rate_limiter,
            client_id,
            message=(
                f"Rate limit exceeded: at most {self.max_images} images per batch and "
                f"{self.rate_limiter.max_requests} batches per "
                f"{int(self.rate_limiter.window_seconds // 60)} minutes"
            ),
        )

        batch_id = self._new_batch_id()
        job = BatchJob(
            batch_id=batch_id,
            tasks=[
                BatchTask(
                    task_id=f"{batch_id}-task-{idx}",
                    image_url=image.image_url,
                    enhancements=tuple(image.enhancements),
                )
                for idx, image in enumerate(images)
            ],
            priority=parsed_priority,
            estimated_cost=estimate_batch_cost(images, parsed_priority, self.pricing),
            estimated_time=estimate_batch_time(len(images)),
            is_demo=self.runner.is_demo,
        )
        self.registry.add(job)
        self.runner.start(job)

        _log(
            logging.INFO,
            "batch_submitted",
            batch_id=batch_id,
            client_id=client_id,
            total_images=job.total_images,
            priority=parsed_priority.value,
            estimated_cost=round(job.estimated_cost, 4),
            demo=job.is_demo,
            created_at=job.created_at.isoformat(),
        )
        return job

    def get_batch_status(self, batch_id: str) -> BatchJob:
        if not batch_id:
            raise ValidationError("batchId is required")

        job = self.registry.get(batch_id)
        if job is None:
            raise BatchNotFound(f"Batch not found: {batch_id}")

        self.runner.refresh(job)
        return job


__all__ = [
    "BatchPricing",
    "DEFAULT_PRICING",
    "image_cost",
    "estimate_batch_cost",
    "estimate_batch_time",
    "BatchRegistry",
    "BatchRunner",
    "LiveBatchRunner",
    "DemoBatchRunner",
    "BatchService",
]
