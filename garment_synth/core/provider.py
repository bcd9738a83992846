"""
Provider interface for remote image-synthesis services.

Every provider speaks the same submit/poll protocol:
- submit() sends the instruction and image references and returns a JobHandle.
  A handle either embeds a finished result or carries an opaque request id.
- poll() reports the job's current state.
- synthesize() drives both, suspending between polls with asyncio.sleep.

Transport failures are classified here so orchestrators only ever see the
errors in garment_synth.core.errors.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from garment_synth.config import POLL_INTERVAL_SECONDS, POLL_MAX_ATTEMPTS, logger
from garment_synth.core.errors import (
    InsufficientCredit,
    ProviderAuthError,
    ProviderError,
    ProviderFailure,
    ProviderNotFound,
    ProviderRateLimited,
    ProviderTimeout,
)
from garment_synth.core.models import SynthesisResult, SynthesizedImage

STATUS_COMPLETED = "COMPLETED"
STATUS_FAILED = "FAILED"


@dataclass(slots=True)
class SynthesisOptions:
    num_images: int = 1
    output_format: str = "png"


@dataclass(slots=True)
class JobHandle:
    provider: str
    request_id: Optional[str] = None
    result: Optional[SynthesisResult] = None
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class PollStatus:
    state: str
    result: Optional[SynthesisResult] = None
    error: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.state == STATUS_COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.state == STATUS_FAILED


def classify_http_error(
    status_code: int, provider: str, message: str = ""
) -> ProviderError:
    """Map an upstream HTTP status onto the provider error taxonomy."""
    detail = f"{provider}: HTTP {status_code}" + (f" - {message}" if message else "")

    if status_code in (401, 403):
        return ProviderAuthError(f"{provider}: invalid API key", provider, detail)
    if status_code == 404:
        return ProviderNotFound(f"{provider}: API endpoint not found", provider, detail)
    if status_code == 402:
        return InsufficientCredit(f"{provider}: insufficient credit", provider, detail)
    if status_code == 429:
        return ProviderRateLimited(f"{provider}: rate limit reached", provider, detail)
    return ProviderFailure(message or f"HTTP {status_code}", provider, detail)


def normalize_images(raw_images: Sequence[Dict[str, Any]]) -> List[SynthesizedImage]:
    """Convert provider image dicts (snake or camel case) into SynthesizedImage."""
    images = []
    for raw in raw_images or []:
        url = raw.get("url")
        if not url:
            continue
        images.append(
            SynthesizedImage(
                url=url,
                content_type=raw.get("content_type") or raw.get("contentType") or "image/png",
                width=raw.get("width"),
                height=raw.get("height"),
                file_name=raw.get("file_name") or raw.get("fileName"),
            )
        )
    return images


class Provider(ABC):
    """A remote image-synthesis capability reached over a submit/poll protocol."""

    name = "provider"

    def __init__(
        self,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_attempts: int = POLL_MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self._sleep = sleep

    @abstractmethod
    async def submit(
        self,
        prompt: str,
        image_urls: Sequence[str],
        options: SynthesisOptions,
    ) -> JobHandle:
        ...

    @abstractmethod
    async def poll(self, handle: JobHandle) -> PollStatus:
        ...

    async def synthesize(
        self,
        prompt: str,
        image_urls: Sequence[str],
        options: Optional[SynthesisOptions] = None,
    ) -> SynthesisResult:
        """Submit a job and wait for its result; never retries on failure."""
        options = options or SynthesisOptions()
        handle = await self.submit(prompt, image_urls, options)

        if handle.result is not None:
            logger.info(
                "Provider returned result synchronously",
                extra={"provider": self.name},
            )
            return handle.result

        if not handle.request_id:
            raise ProviderFailure(
                "Provider response carried neither a result nor a request id",
                self.name,
            )

        return await self._wait_for_result(handle)

    async def _wait_for_result(self, handle: JobHandle) -> SynthesisResult:
        for attempt in range(1, self.max_attempts + 1):
            status = await self.poll(handle)

            if status.is_completed:
                if status.result is None:
                    raise ProviderFailure(
                        "Provider reported completion without images", self.name
                    )
                logger.info(
                    "Provider job completed",
                    extra={
                        "provider": self.name,
                        "request_id": handle.request_id,
                        "attempt": attempt,
                    },
                )
                return status.result

            if status.is_failed:
                raise ProviderFailure(
                    status.error or "Provider reported failure", self.name
                )

            logger.debug(
                "Provider job still running",
                extra={
                    "provider": self.name,
                    "request_id": handle.request_id,
                    "state": status.state,
                    "attempt": attempt,
                },
            )
            await self._sleep(self.poll_interval)

        raise ProviderTimeout(
            f"Timed out waiting for {self.name} result after {self.max_attempts} attempts",
            self.name,
        )


__all__ = [
    "STATUS_COMPLETED",
    "STATUS_FAILED",
    "SynthesisOptions",
    "JobHandle",
    "PollStatus",
    "classify_http_error",
    "normalize_images",
    "Provider",
]
