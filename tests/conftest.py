from typing import List, Optional, Sequence, Tuple, Union

import pytest

from garment_synth.core.models import SynthesisResult, SynthesizedImage
from garment_synth.core.provider import JobHandle, PollStatus, Provider, SynthesisOptions
from garment_synth.core.rate_limit import InMemoryRateLimiter

PERSON_URL = "https://example.com/person.jpg"
SHIRT_URL = "https://example.com/shirt.png"
PANTS_URL = "https://example.com/pants.png"
COAT_URL = "https://example.com/coat.png"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_result(url: str, provider: str = "fake") -> SynthesisResult:
    return SynthesisResult(
        images=(SynthesizedImage(url=url),),
        inference_seconds=0.5,
        provider_used=provider,
    )


Outcome = Union[str, SynthesisResult, Exception]


class FakeProvider(Provider):
    """Records every call and answers from a script of urls, results or errors."""

    name = "fake"

    def __init__(self, outcomes: Optional[Sequence[Outcome]] = None):
        super().__init__(poll_interval=0, max_attempts=1)
        self.outcomes: List[Outcome] = list(outcomes or [])
        self.calls: List[Tuple[str, List[str]]] = []

    async def submit(
        self,
        prompt: str,
        image_urls: Sequence[str],
        options: SynthesisOptions,
    ) -> JobHandle:
        self.calls.append((prompt, list(image_urls)))
        index = len(self.calls)
        outcome = (
            self.outcomes[index - 1]
            if index <= len(self.outcomes)
            else f"https://cdn.example.com/result-{index}.png"
        )
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, str):
            outcome = make_result(outcome)
        return JobHandle(provider=self.name, result=outcome)

    async def poll(self, handle: JobHandle) -> PollStatus:
        raise AssertionError("FakeProvider results are always synchronous")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock: FakeClock) -> InMemoryRateLimiter:
    return InMemoryRateLimiter(60, 10, clock=clock, name="synthesize")


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()
