"""Service wiring. The provider is chosen once here, never per request."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from supabase import Client

from garment_synth import config
from garment_synth.config import logger
from garment_synth.core.demo import DEMO_IMAGE_URL, DemoProvider
from garment_synth.core.errors import ConfigurationError
from garment_synth.core.fal_client import FalProvider
from garment_synth.core.gemini import GeminiProvider
from garment_synth.core.provider import Provider
from garment_synth.core.rate_limit import RateLimiter, build_rate_limiter
from garment_synth.services.batch_service import (
    BatchRunner,
    BatchService,
    DemoBatchRunner,
    LiveBatchRunner,
)
from garment_synth.services.multi_garment_service import MultiGarmentService
from garment_synth.services.synthesis_service import SynthesisService


@dataclass(slots=True)
class ServiceContainer:
    provider: Provider
    synth_limiter: RateLimiter
    batch_limiter: RateLimiter
    synthesis: SynthesisService
    multi_garment: MultiGarmentService
    batch: BatchService

    @property
    def is_demo(self) -> bool:
        return isinstance(self.provider, DemoProvider)


def select_provider(
    provider_name: str = config.SYNTH_PROVIDER,
    fal_key: Optional[str] = config.FAL_KEY,
    gemini_key: Optional[str] = config.GEMINI_KEY,
    demo_mode: bool = config.DEMO_MODE,
    **provider_kwargs: Any,
) -> Provider:
    """Pick the live provider, or the demo provider when no credential is usable."""
    if demo_mode:
        logger.warning("DEMO_MODE enabled: provider calls return placeholder results")
        return DemoProvider()

    try:
        if provider_name == "gemini":
            provider: Provider = GeminiProvider(api_key=gemini_key, **provider_kwargs)
        elif provider_name == "fal":
            provider = FalProvider(api_key=fal_key, **provider_kwargs)
        else:
            raise ValueError(f"Unknown SYNTH_PROVIDER: {provider_name}")
    except ConfigurationError as exc:
        logger.warning(f"{exc.message}; running in demo mode")
        return DemoProvider()

    logger.info(f"Using live provider: {provider.name}")
    return provider


def select_batch_runner(provider: Provider, max_in_flight: int = config.BATCH_MAX_IN_FLIGHT) -> BatchRunner:
    if isinstance(provider, DemoProvider):
        return DemoBatchRunner(DEMO_IMAGE_URL)
    return LiveBatchRunner(provider, max_in_flight=max_in_flight)


def build_services(
    provider: Optional[Provider] = None,
    synth_limiter: Optional[RateLimiter] = None,
    batch_limiter: Optional[RateLimiter] = None,
    batch_runner: Optional[BatchRunner] = None,
    rate_limit_backend: str = config.RATE_LIMIT_BACKEND,
    supabase_client: Optional[Client] = None,
) -> ServiceContainer:
    provider = provider or select_provider()

    synth_limiter = synth_limiter or build_rate_limiter(
        rate_limit_backend,
        config.SYNTH_RATE_WINDOW_SECONDS,
        config.SYNTH_RATE_MAX_REQUESTS,
        name="synthesize",
        supabase_client=supabase_client,
    )
    batch_limiter = batch_limiter or build_rate_limiter(
        rate_limit_backend,
        config.BATCH_RATE_WINDOW_SECONDS,
        config.BATCH_RATE_MAX_REQUESTS,
        name="batch",
        supabase_client=supabase_client,
    )

    return ServiceContainer(
        provider=provider,
        synth_limiter=synth_limiter,
        batch_limiter=batch_limiter,
        synthesis=SynthesisService(provider, synth_limiter),
        multi_garment=MultiGarmentService(provider, synth_limiter),
        batch=BatchService(
            batch_runner or select_batch_runner(provider), batch_limiter
        ),
    )


__all__ = [
    "ServiceContainer",
    "select_provider",
    "select_batch_runner",
    "build_services",
]
