"""Single garment synthesis: validate, rate-limit, build the prompt, call the provider."""

from __future__ import annotations

import logging
import time
from typing import Any, List

from garment_synth.config import logger
from garment_synth.core.errors import ValidationError
from garment_synth.core.models import BuiltPrompt, SynthesisResult, TryOnRequest
from garment_synth.core.prompt_templates import build_natural_language_prompt, build_prompt
from garment_synth.core.provider import Provider, SynthesisOptions
from garment_synth.core.rate_limit import RateLimiter, enforce_rate_limit
from garment_synth.core.validators import sanitize_prompt, validate_image_url


def _log(level: int, message: str, **context: Any) -> None:
    """Helper to emit structured logs with contextual metadata."""
    logger.log(level, "%s | context=%s", message, context)


def require_image_url(url: str | None, label: str) -> str:
    if not url:
        raise ValidationError(f"{label} is required")
    if not validate_image_url(url):
        raise ValidationError(f"Invalid image URL provided for {label}")
    return url


def validate_tryon_request(request: TryOnRequest) -> None:
    """Fail fast on missing or malformed input, before any network call."""
    require_image_url(request.person_image, "personImageUrl")

    has_garment = bool(request.garment_image)
    has_instruction = bool(
        request.natural_language_instruction
        and request.natural_language_instruction.strip()
    )

    if request.use_natural_language_mode and not has_instruction:
        raise ValidationError(
            "naturalLanguageInstruction is required in natural language mode"
        )
    if has_garment and has_instruction:
        raise ValidationError(
            "Provide either garmentImageUrl or naturalLanguageInstruction, not both"
        )
    if not has_garment and not has_instruction:
        raise ValidationError(
            "garmentImageUrl is required unless naturalLanguageInstruction is given"
        )

    if has_garment:
        require_image_url(request.garment_image, "garmentImageUrl")


class SynthesisService:
    """Orchestrates exactly one provider call per try-on request."""

    def __init__(self, provider: Provider, rate_limiter: RateLimiter):
        self.provider = provider
        self.rate_limiter = rate_limiter

    def resolve_prompt(self, request: TryOnRequest) -> BuiltPrompt:
        if request.is_natural_language:
            instruction = sanitize_prompt(request.natural_language_instruction or "")
            return BuiltPrompt(instruction=build_natural_language_prompt(instruction))

        built = build_prompt(request)
        if request.custom_prompt and request.custom_prompt.strip():
            return BuiltPrompt(
                instruction=sanitize_prompt(request.custom_prompt), plan=built.plan
            )
        return built

    async def synthesize_outfit(
        self, request: TryOnRequest, client_id: str
    ) -> SynthesisResult:
        enforce_rate_limit(self.rate_limiter, client_id)
        validate_tryon_request(request)

        prompt = self.resolve_prompt(request)
        image_urls: List[str] = [request.person_image]
        if not request.is_natural_language:
            image_urls.append(request.garment_image)

        started = time.time()
        _log(
            logging.INFO,
            "synthesis_started",
            client_id=client_id,
            provider=self.provider.name,
            garment_type=getattr(request.garment_type, "value", request.garment_type),
            natural_language=request.is_natural_language,
            plan=prompt.plan.to_dict() if prompt.plan else None,
        )

        result = await self.provider.synthesize(
            prompt.instruction,
            image_urls,
            SynthesisOptions(num_images=1, output_format="png"),
        )

        _log(
            logging.INFO,
            "synthesis_completed",
            client_id=client_id,
            provider=result.provider_used,
            demo=result.is_demo,
            image_count=len(result.images),
            elapsed_ms=int((time.time() - started) * 1000),
        )
        return result


__all__ = ["SynthesisService", "validate_tryon_request", "require_image_url", "_log"]
