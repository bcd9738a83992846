import asyncio

import pytest

from garment_synth.core.errors import (
    BatchNotFound,
    ProviderFailure,
    RateLimitExceeded,
    ValidationError,
)
from garment_synth.core.models import BatchImageRequest, Enhancement, Priority, TaskStatus
from garment_synth.core.provider import JobHandle, PollStatus, Provider
from garment_synth.core.rate_limit import InMemoryRateLimiter
from garment_synth.services.batch_service import (
    DEFAULT_PRICING,
    BatchService,
    DemoBatchRunner,
    LiveBatchRunner,
    estimate_batch_cost,
    estimate_batch_time,
    image_cost,
)

from .conftest import FakeProvider, make_result

BASE = DEFAULT_PRICING.base_cost
PLACEHOLDER = "https://cdn.example.com/demo.png"


def images(count, *enhancements):
    return [
        BatchImageRequest(f"https://example.com/photo-{idx}.jpg", tuple(enhancements))
        for idx in range(count)
    ]


@pytest.fixture
def batch_limiter(clock):
    return InMemoryRateLimiter(300, 3, clock=clock, name="batch")


@pytest.fixture
def demo_service(batch_limiter):
    return BatchService(DemoBatchRunner(PLACEHOLDER), batch_limiter)


# -------------------------
# Pricing
# -------------------------
def test_cost_below_discount_threshold():
    assert estimate_batch_cost(images(9)) == pytest.approx(9 * BASE)


def test_cost_with_volume_discount():
    assert estimate_batch_cost(images(10)) == pytest.approx(10 * BASE * 0.8)


def test_cost_with_volume_and_low_priority_discounts():
    assert estimate_batch_cost(images(10), Priority.LOW) == pytest.approx(
        10 * BASE * 0.8 * 0.7
    )


def test_enhancements_add_surcharges_once():
    image = BatchImageRequest(
        "https://example.com/a.jpg",
        (Enhancement.COLOR_CORRECTION, Enhancement.EDGE_OPTIMIZATION, Enhancement.COLOR_CORRECTION),
    )
    assert image_cost(image) == pytest.approx(0.036 + 0.003 + 0.004)


def test_low_priority_discount_applies_to_small_batches():
    assert estimate_batch_cost(images(2, Enhancement.COLOR_CORRECTION), "low") == pytest.approx(
        2 * (BASE + 0.003) * 0.7
    )


def test_estimated_time_is_two_seconds_per_image():
    assert estimate_batch_time(7) == 14


# -------------------------
# Submission
# -------------------------
async def test_submit_creates_pending_tasks(demo_service):
    job = await demo_service.submit_batch(images(3), "normal", "client")

    assert job.batch_id.startswith("demo-batch-")
    assert job.is_demo
    assert job.total_images == 3
    assert job.estimated_time == 6
    assert [task.task_id for task in job.tasks] == [
        f"{job.batch_id}-task-{idx}" for idx in range(3)
    ]
    assert all(task.status is TaskStatus.PENDING for task in job.tasks)


async def test_fifty_images_accepted_fifty_one_rejected(demo_service, batch_limiter):
    job = await demo_service.submit_batch(images(50), "normal", "client")
    assert job.total_images == 50

    with pytest.raises(ValidationError, match="at most 50"):
        await demo_service.submit_batch(images(51), "normal", "client")
    assert batch_limiter.status("client").count == 1


@pytest.mark.parametrize(
    "batch, priority, message",
    [
        ([], "normal", "image list is required"),
        (images(1), "urgent", "priority"),
        ([BatchImageRequest("")], "normal", r"images\[0\].imageUrl is required"),
    ],
)
async def test_invalid_batches_rejected(demo_service, batch, priority, message):
    with pytest.raises(ValidationError, match=message):
        await demo_service.submit_batch(batch, priority, "client")


async def test_fourth_batch_in_window_is_rate_limited(demo_service, clock):
    for _ in range(3):
        await demo_service.submit_batch(images(1), "normal", "client")

    with pytest.raises(RateLimitExceeded, match="3 batches per 5 minutes"):
        await demo_service.submit_batch(images(1), "normal", "client")

    clock.advance(301)
    await demo_service.submit_batch(images(1), "normal", "client")


# -------------------------
# Status
# -------------------------
async def test_demo_progress_advances_one_task_per_query(demo_service):
    job = await demo_service.submit_batch(images(3), "normal", "client")

    first = demo_service.get_batch_status(job.batch_id)
    assert [task.status for task in first.tasks] == [
        TaskStatus.COMPLETED,
        TaskStatus.PROCESSING,
        TaskStatus.PENDING,
    ]
    assert first.tasks[0].result_url == PLACEHOLDER

    demo_service.get_batch_status(job.batch_id)
    third = demo_service.get_batch_status(job.batch_id)
    assert all(task.status is TaskStatus.COMPLETED for task in third.tasks)


def test_unknown_batch_not_found(demo_service):
    with pytest.raises(BatchNotFound):
        demo_service.get_batch_status("batch-missing")


def test_status_requires_batch_id(demo_service):
    with pytest.raises(ValidationError, match="batchId is required"):
        demo_service.get_batch_status("")


async def test_live_runner_processes_each_image_independently(batch_limiter):
    provider = FakeProvider(
        [
            "https://cdn.example.com/out-0.png",
            ProviderFailure("upstream error", "fake"),
            "https://cdn.example.com/out-2.png",
        ]
    )
    runner = LiveBatchRunner(provider, max_in_flight=1)
    service = BatchService(runner, batch_limiter)

    job = await service.submit_batch(
        images(3, Enhancement.EDGE_OPTIMIZATION), Priority.NORMAL, "client"
    )
    assert job.batch_id.startswith("batch-")
    assert not job.is_demo

    await runner.drain()
    job = service.get_batch_status(job.batch_id)

    assert [task.status for task in job.tasks] == [
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
        TaskStatus.COMPLETED,
    ]
    assert job.tasks[0].result_url == "https://cdn.example.com/out-0.png"
    assert job.tasks[1].error == "upstream error"
    assert job.tasks[1].result_url is None
    assert len(provider.calls) == 3
    assert all(len(call[1]) == 1 for call in provider.calls)
    assert "garment edges" in provider.calls[0][0]


class GatedProvider(Provider):
    """Holds every call open until released and tracks peak concurrency."""

    name = "gated"

    def __init__(self):
        super().__init__(poll_interval=0, max_attempts=1)
        self.release = asyncio.Event()
        self.started = 0
        self.in_flight = 0
        self.peak = 0

    async def submit(self, prompt, image_urls, options):
        self.started += 1
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await self.release.wait()
        finally:
            self.in_flight -= 1
        return JobHandle(provider=self.name, result=make_result(image_urls[0] + "?done"))

    async def poll(self, handle):
        return PollStatus(state="IN_PROGRESS")


async def test_live_runner_bounds_calls_in_flight(batch_limiter):
    provider = GatedProvider()
    runner = LiveBatchRunner(provider, max_in_flight=2)
    service = BatchService(runner, batch_limiter)

    job = await service.submit_batch(images(5), "normal", "client")
    for _ in range(5):
        await asyncio.sleep(0)

    assert provider.started == 2
    assert provider.in_flight == 2
    assert [task.status for task in job.tasks] == [
        TaskStatus.PROCESSING,
        TaskStatus.PROCESSING,
        TaskStatus.PENDING,
        TaskStatus.PENDING,
        TaskStatus.PENDING,
    ]

    provider.release.set()
    await runner.drain()

    assert provider.started == 5
    assert provider.peak == 2
    assert all(task.status is TaskStatus.COMPLETED for task in job.tasks)
    assert job.tasks[4].result_url == "https://example.com/photo-4.jpg?done"
