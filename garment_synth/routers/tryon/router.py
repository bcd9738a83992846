"""FastAPI router for garment synthesis endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from garment_synth.config import logger
from garment_synth.core.errors import GarmentSynthError
from garment_synth.core.models import (
    BatchImageRequest,
    BatchJob,
    GarmentSpec,
    MultiGarmentRequest,
    TryOnRequest,
)
from garment_synth.core.prompt_templates import detect_garment_type, preservation_plan_for
from garment_synth.services.container import ServiceContainer

from .dependencies import get_services
from .models import (
    BatchRequest,
    BatchResponse,
    BatchTaskPayload,
    DetectGarmentRequest,
    DetectGarmentResponse,
    MultiSynthesizeRequest,
    MultiSynthesizeResponse,
    PreservationPlanPayload,
    RateLimitResponse,
    SynthesizeRequest,
    SynthesizeResponse,
    Timings,
)
from .utils import get_client_key, to_image_payloads

router = APIRouter(prefix="/api/v1", tags=["Garment Synthesis"])


def _unexpected(exc: Exception, message: str) -> GarmentSynthError:
    logger.error(message, exc_info=True)
    return GarmentSynthError(details=f"{message}: {exc}")


def _batch_response(job: BatchJob) -> BatchResponse:
    return BatchResponse(
        success=True,
        batch_id=job.batch_id,
        total_images=job.total_images,
        estimated_cost=round(job.estimated_cost, 6),
        estimated_time=job.estimated_time,
        priority=job.priority.value,
        tasks=[
            BatchTaskPayload(
                task_id=task.task_id,
                image_url=task.image_url,
                status=task.status.value,
                result_url=task.result_url,
                error=task.error,
            )
            for task in job.tasks
        ],
        demo=job.is_demo,
    )


@router.post("/synthesize", response_model=SynthesizeResponse, response_model_exclude_none=True)
async def synthesize(
    payload: SynthesizeRequest,
    request: Request,
    response: Response,
    services: ServiceContainer = Depends(get_services),
) -> SynthesizeResponse:
    """Apply one garment (or a free-text edit) to a person image."""

    client_key = get_client_key(request)
    logger.info(
        "Synthesis request received",
        extra={"client_key": client_key, "garment_type": payload.garment_type.value},
    )

    tryon_request = TryOnRequest(
        person_image=payload.person_image_url,
        garment_image=payload.garment_image_url,
        garment_type=payload.garment_type,
        replacement_mode=payload.replacement_mode,
        preserve_pose=payload.preserve_pose,
        preserve_background=payload.preserve_background,
        mask_region=payload.mask_region,
        natural_language_instruction=payload.natural_language_instruction,
        use_natural_language_mode=payload.use_natural_language_mode,
        custom_prompt=payload.prompt,
    )

    try:
        result = await services.synthesis.synthesize_outfit(tryon_request, client_key)
    except GarmentSynthError:
        raise
    except Exception as exc:
        raise _unexpected(exc, "Unexpected error in synthesis request") from exc

    response.headers["X-RateLimit-Remaining"] = str(
        services.synth_limiter.status(client_key).remaining
    )

    return SynthesizeResponse(
        success=True,
        images=to_image_payloads(result),
        timings=Timings(inference=result.inference_seconds),
        api_used=result.provider_used,
        demo=result.is_demo,
    )


@router.post(
    "/multi-synthesize",
    response_model=MultiSynthesizeResponse,
    response_model_exclude_none=True,
)
async def multi_synthesize(
    payload: MultiSynthesizeRequest,
    request: Request,
    services: ServiceContainer = Depends(get_services),
) -> MultiSynthesizeResponse:
    """Apply up to three garments in order, each on top of the previous result."""

    client_key = get_client_key(request)
    logger.info(
        "Multi-garment request received",
        extra={"client_key": client_key, "garment_count": len(payload.garments)},
    )

    multi_request = MultiGarmentRequest(
        person_image=payload.person_image_url,
        garments=[
            GarmentSpec(type=garment.type, image_url=garment.image_url)
            for garment in payload.garments
        ],
        preserve_pose=payload.preserve_pose,
        preserve_background=payload.preserve_background,
    )

    try:
        outcome = await services.multi_garment.synthesize_multiple(
            multi_request, client_key
        )
    except GarmentSynthError:
        raise
    except Exception as exc:
        raise _unexpected(exc, "Unexpected error in multi-garment request") from exc

    return MultiSynthesizeResponse(
        success=True,
        images=to_image_payloads(outcome.result),
        processed_garments=list(outcome.processed_garments),
        failed_garment=outcome.failed_garment,
        message=outcome.error,
        demo=outcome.result.is_demo,
    )


@router.post("/batch-process", response_model=BatchResponse, response_model_exclude_none=True)
async def submit_batch(
    payload: BatchRequest,
    request: Request,
    services: ServiceContainer = Depends(get_services),
) -> BatchResponse:
    """Start processing a batch of images under shared pricing options."""

    client_key = get_client_key(request)
    images = [
        BatchImageRequest(image_url=image.image_url, enhancements=tuple(image.enhancements))
        for image in payload.images
    ]

    try:
        job = await services.batch.submit_batch(images, payload.priority, client_key)
    except GarmentSynthError:
        raise
    except Exception as exc:
        raise _unexpected(exc, "Unexpected error starting batch") from exc

    return _batch_response(job)


@router.get("/batch-process", response_model=BatchResponse, response_model_exclude_none=True)
async def get_batch_status(
    batch_id: Optional[str] = Query(default=None, alias="batchId"),
    services: ServiceContainer = Depends(get_services),
) -> BatchResponse:
    """Report the current per-task status of a batch."""

    try:
        job = services.batch.get_batch_status(batch_id or "")
    except GarmentSynthError:
        raise
    except Exception as exc:
        raise _unexpected(exc, "Unexpected error checking batch status") from exc

    return _batch_response(job)


@router.post("/detect-garment-type", response_model=DetectGarmentResponse)
async def detect_garment(payload: DetectGarmentRequest) -> DetectGarmentResponse:
    """Classify a garment description and report which regions it affects."""

    garment_type = detect_garment_type(payload.description)
    plan = preservation_plan_for(garment_type)
    return DetectGarmentResponse(
        garment_type=garment_type,
        plan=PreservationPlanPayload(
            affected_region=plan.affected_region,
            preserved_regions=list(plan.preserved_regions),
        ),
    )


@router.get("/ratelimit", response_model=RateLimitResponse)
async def check_rate_limit_status(
    request: Request,
    services: ServiceContainer = Depends(get_services),
) -> RateLimitResponse:
    """Report the remaining synthesis requests for the caller."""

    client_key = get_client_key(request)
    status = services.synth_limiter.status(client_key)

    message = (
        f"You have {status.remaining} requests left in this window"
        if status.allowed
        else f"Rate limit reached; resets at {status.reset_at}"
    )

    return RateLimitResponse(
        allowed=status.allowed,
        remaining=status.remaining,
        reset_at=status.reset_at,
        count=status.count,
        limit=status.limit,
        message=message,
    )


@router.get("/health")
async def health_check(
    services: ServiceContainer = Depends(get_services),
) -> dict:
    """Simple health check endpoint."""

    return {
        "status": "healthy",
        "service": "garment-synthesis-api",
        "version": "1.0.0",
        "provider": services.provider.name,
        "demo": services.is_demo,
    }
