"""Demo provider used when no provider credential is configured."""

import asyncio
from typing import Any, Sequence

from garment_synth.config import DEMO_DELAY_SECONDS, logger
from garment_synth.core.models import SynthesisResult, SynthesizedImage
from garment_synth.core.provider import (
    STATUS_COMPLETED,
    JobHandle,
    PollStatus,
    Provider,
    SynthesisOptions,
)

DEMO_IMAGE_URL = (
    "https://images.unsplash.com/photo-1595950653106-6c9ebd614d3a?w=512&h=768&fit=crop"
)

DEMO_RESULT = SynthesisResult(
    images=(
        SynthesizedImage(
            url=DEMO_IMAGE_URL,
            content_type="image/jpeg",
            width=512,
            height=768,
            file_name="demo-synthesis.jpg",
        ),
    ),
    inference_seconds=1.5,
    provider_used="demo",
    is_demo=True,
)


class DemoProvider(Provider):
    """Returns a fixed placeholder result without any network call."""

    name = "demo"

    def __init__(self, delay_seconds: float = DEMO_DELAY_SECONDS, **kwargs: Any):
        super().__init__(**kwargs)
        self.delay_seconds = delay_seconds
        self.calls = 0

    async def submit(
        self,
        prompt: str,
        image_urls: Sequence[str],
        options: SynthesisOptions,
    ) -> JobHandle:
        self.calls += 1
        logger.info(
            "Demo mode: returning placeholder result",
            extra={"image_count": len(image_urls)},
        )
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        return JobHandle(provider=self.name, result=DEMO_RESULT)

    async def poll(self, handle: JobHandle) -> PollStatus:
        return PollStatus(state=STATUS_COMPLETED, result=DEMO_RESULT)


__all__ = ["DEMO_IMAGE_URL", "DEMO_RESULT", "DemoProvider"]
