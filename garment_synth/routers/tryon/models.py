"""Pydantic models used by the try-on router."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from garment_synth.core.models import (
    BodyRegion,
    Enhancement,
    GarmentType,
    ReplacementMode,
)


class CamelModel(BaseModel):
    """Accepts and emits camelCase JSON while keeping snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -------------------------
# Requests
# -------------------------
class SynthesizeRequest(CamelModel):
    """Request payload for single garment synthesis."""

    person_image_url: Optional[str] = Field(None, description="Person image URL")
    garment_image_url: Optional[str] = Field(
        None, description="Garment image URL (omit in natural language mode)"
    )
    garment_type: GarmentType = GarmentType.UPPER
    replacement_mode: ReplacementMode = ReplacementMode.REPLACE
    preserve_pose: bool = True
    preserve_background: bool = True
    mask_region: Optional[BodyRegion] = None
    prompt: Optional[str] = Field(None, description="Optional custom instruction")
    natural_language_instruction: Optional[str] = None
    use_natural_language_mode: bool = False


class GarmentPayload(CamelModel):
    type: GarmentType
    image_url: Optional[str] = None


class MultiSynthesizeRequest(CamelModel):
    """Request payload for applying up to three garments in order."""

    person_image_url: Optional[str] = None
    garments: List[GarmentPayload] = Field(default_factory=list)
    preserve_pose: bool = True
    preserve_background: bool = True


class BatchImagePayload(CamelModel):
    image_url: Optional[str] = None
    enhancements: List[Enhancement] = Field(default_factory=list)


class BatchRequest(CamelModel):
    images: List[BatchImagePayload] = Field(default_factory=list)
    priority: str = "normal"


class DetectGarmentRequest(CamelModel):
    description: Optional[str] = None


# -------------------------
# Responses
# -------------------------
class ImagePayload(CamelModel):
    url: str
    content_type: str
    width: Optional[int] = None
    height: Optional[int] = None
    file_name: Optional[str] = None


class Timings(CamelModel):
    inference: float


class SynthesizeResponse(CamelModel):
    """Response model for a successful synthesis."""

    success: bool
    images: List[ImagePayload]
    timings: Timings
    api_used: str
    demo: bool


class MultiSynthesizeResponse(CamelModel):
    success: bool
    images: List[ImagePayload]
    processed_garments: List[GarmentType]
    failed_garment: Optional[GarmentType] = None
    message: Optional[str] = Field(
        None, description="Reason the chain stopped early, when it did"
    )
    demo: bool


class BatchTaskPayload(CamelModel):
    task_id: str
    image_url: str
    status: str
    result_url: Optional[str] = None
    error: Optional[str] = None


class BatchResponse(CamelModel):
    success: bool
    batch_id: str
    total_images: int
    estimated_cost: float
    estimated_time: int = Field(..., description="Estimated processing time in seconds")
    priority: str
    tasks: List[BatchTaskPayload]
    demo: bool


class PreservationPlanPayload(CamelModel):
    affected_region: BodyRegion
    preserved_regions: List[str]


class DetectGarmentResponse(CamelModel):
    garment_type: GarmentType
    plan: PreservationPlanPayload


class RateLimitResponse(CamelModel):
    """Rate limit status details for the requester."""

    allowed: bool
    remaining: int
    reset_at: str
    count: int
    limit: int
    message: str


class ErrorResponse(CamelModel):
    """Generic error payload."""

    success: bool = False
    error: str
    details: Optional[str] = None
