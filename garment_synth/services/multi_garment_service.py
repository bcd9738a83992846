"""
Multi-garment synthesis.

Garments are applied one at a time and each step consumes the image produced
by the previous one, so the order of the request is significant and the steps
cannot run in parallel. The chain is a fold over GarmentStep results: a step
either yields the next image or the error that stopped it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from garment_synth.core.errors import GarmentSynthError, ProviderFailure, ValidationError
from garment_synth.core.models import (
    LAYERABLE_GARMENT_TYPES,
    GarmentSpec,
    GarmentType,
    MultiGarmentRequest,
    MultiGarmentResult,
    SynthesisResult,
    TryOnRequest,
)
from garment_synth.core.prompt_templates import build_multi_garment_prompt, build_prompt
from garment_synth.core.provider import Provider, SynthesisOptions
from garment_synth.core.rate_limit import RateLimiter, enforce_rate_limit
from garment_synth.services.synthesis_service import _log, require_image_url

MAX_GARMENTS = 3


@dataclass(frozen=True, slots=True)
class GarmentStep:
    """Outcome of applying one garment: either a result or an error."""

    garment: GarmentSpec
    result: Optional[SynthesisResult] = None
    error: Optional[GarmentSynthError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None and bool(self.result.images)


@dataclass(slots=True)
class _ChainState:
    image: str
    result: Optional[SynthesisResult]
    applied: List[GarmentType]
    failed: Optional[GarmentStep] = None


def validate_multi_garment_request(request: MultiGarmentRequest) -> None:
    require_image_url(request.person_image, "personImageUrl")

    if not request.garments:
        raise ValidationError("At least one garment image is required")
    if len(request.garments) > MAX_GARMENTS:
        raise ValidationError(
            f"At most {MAX_GARMENTS} garments can be changed at the same time"
        )

    allowed = {garment_type.value for garment_type in LAYERABLE_GARMENT_TYPES}
    for idx, garment in enumerate(request.garments):
        if getattr(garment.type, "value", garment.type) not in allowed:
            raise ValidationError(
                f"garments[{idx}].type must be one of upper, lower, outer"
            )
        require_image_url(garment.image_url, f"garments[{idx}].imageUrl")


class MultiGarmentService:
    def __init__(
        self,
        provider: Provider,
        rate_limiter: RateLimiter,
        abort_on_failure: bool = False,
    ):
        self.provider = provider
        self.rate_limiter = rate_limiter
        self.abort_on_failure = abort_on_failure

    async def apply_garment(
        self,
        image: str,
        garment: GarmentSpec,
        request: MultiGarmentRequest,
    ) -> GarmentStep:
        """Apply a single garment to `image`; errors are captured, not raised."""
        prompt = build_prompt(
            TryOnRequest(
                person_image=image,
                garment_image=garment.image_url,
                garment_type=GarmentType(garment.type),
                preserve_pose=request.preserve_pose,
                preserve_background=request.preserve_background,
            )
        )
        try:
            result = await self.provider.synthesize(
                prompt.instruction,
                [image, garment.image_url],
                SynthesisOptions(num_images=1, output_format="png"),
            )
        except GarmentSynthError as exc:
            return GarmentStep(garment=garment, error=exc)

        return GarmentStep(garment=garment, result=result)

    async def synthesize_multiple(
        self, request: MultiGarmentRequest, client_id: str
    ) -> MultiGarmentResult:
        # The limiter cost is the garment count, so validate before charging
        validate_multi_garment_request(request)
        enforce_rate_limit(self.rate_limiter, client_id, cost=len(request.garments))

        _log(
            logging.INFO,
            "multi_garment_started",
            client_id=client_id,
            garments=[GarmentType(g.type).value for g in request.garments],
        )
        _log(
            logging.DEBUG,
            "multi_garment_instruction",
            client_id=client_id,
            instruction=" | ".join(
                build_multi_garment_prompt(
                    request.garments, request.preserve_pose, request.preserve_background
                ).splitlines()
            ),
        )

        state = _ChainState(image=request.person_image, result=None, applied=[])
        for garment in request.garments:
            step = await self.apply_garment(state.image, garment, request)
            state = self._fold(state, step)
            if state.failed:
                break

        return self._finish(state, client_id)

    def _fold(self, state: _ChainState, step: GarmentStep) -> _ChainState:
        if not step.ok:
            return _ChainState(
                image=state.image,
                result=state.result,
                applied=state.applied,
                failed=step,
            )
        return _ChainState(
            image=step.result.primary_url,
            result=step.result,
            applied=[*state.applied, GarmentType(step.garment.type)],
        )

    def _finish(self, state: _ChainState, client_id: str) -> MultiGarmentResult:
        failed = state.failed
        error = None
        if failed is not None:
            error = failed.error or ProviderFailure("Provider returned no images")
            _log(
                logging.WARNING,
                "multi_garment_step_failed",
                client_id=client_id,
                garment=GarmentType(failed.garment.type).value,
                applied=[t.value for t in state.applied],
                error=str(error),
            )
            # Nothing to carry forward, or the caller asked for all-or-nothing
            if state.result is None or self.abort_on_failure:
                raise error

        _log(
            logging.INFO,
            "multi_garment_completed",
            client_id=client_id,
            applied=[t.value for t in state.applied],
            partial=failed is not None,
        )
        return MultiGarmentResult(
            result=state.result,
            processed_garments=tuple(state.applied),
            failed_garment=GarmentType(failed.garment.type) if failed else None,
            error=str(error) if error else None,
        )


__all__ = [
    "MAX_GARMENTS",
    "GarmentStep",
    "MultiGarmentService",
    "validate_multi_garment_request",
]
