"""Domain dataclasses shared by the prompt builder, providers and services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class GarmentType(str, Enum):
    UPPER = "upper"
    LOWER = "lower"
    DRESS = "dress"
    OUTER = "outer"


# Garment types accepted by the multi-garment flow
LAYERABLE_GARMENT_TYPES = (GarmentType.UPPER, GarmentType.LOWER, GarmentType.OUTER)


class ReplacementMode(str, Enum):
    REPLACE = "replace"
    OVERLAY = "overlay"


class BodyRegion(str, Enum):
    UPPER_BODY = "upper_body"
    LOWER_BODY = "lower_body"
    FULL_BODY = "full_body"


class Enhancement(str, Enum):
    COLOR_CORRECTION = "colorCorrection"
    EDGE_OPTIMIZATION = "edgeOptimization"


class Priority(str, Enum):
    NORMAL = "normal"
    LOW = "low"


class TaskStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# -------------------------
# Try-on requests
# -------------------------
@dataclass(slots=True)
class TryOnRequest:
    """A single garment application (or free-text edit) on a person image."""

    person_image: str
    garment_image: Optional[str] = None
    garment_type: GarmentType = GarmentType.UPPER
    replacement_mode: ReplacementMode = ReplacementMode.REPLACE
    preserve_pose: bool = True
    preserve_background: bool = True
    mask_region: Optional[BodyRegion] = None
    natural_language_instruction: Optional[str] = None
    use_natural_language_mode: bool = False
    custom_prompt: Optional[str] = None

    @property
    def is_natural_language(self) -> bool:
        if self.use_natural_language_mode:
            return True
        return not self.garment_image and bool(self.natural_language_instruction)


@dataclass(frozen=True, slots=True)
class PreservationPlan:
    affected_region: BodyRegion
    preserved_regions: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "affectedRegion": self.affected_region.value,
            "preservedRegions": list(self.preserved_regions),
        }


@dataclass(frozen=True, slots=True)
class BuiltPrompt:
    instruction: str
    plan: Optional[PreservationPlan] = None


@dataclass(frozen=True, slots=True)
class GarmentSpec:
    type: GarmentType
    image_url: str


@dataclass(slots=True)
class MultiGarmentRequest:
    person_image: str
    garments: List[GarmentSpec]
    preserve_pose: bool = True
    preserve_background: bool = True


# -------------------------
# Results
# -------------------------
@dataclass(frozen=True, slots=True)
class SynthesizedImage:
    url: str
    content_type: str = "image/png"
    width: Optional[int] = None
    height: Optional[int] = None
    file_name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SynthesisResult:
    images: Tuple[SynthesizedImage, ...]
    inference_seconds: float
    provider_used: str
    is_demo: bool = False
    request_id: Optional[str] = None

    @property
    def primary_url(self) -> Optional[str]:
        return self.images[0].url if self.images else None


@dataclass(frozen=True, slots=True)
class MultiGarmentResult:
    result: SynthesisResult
    processed_garments: Tuple[GarmentType, ...]
    failed_garment: Optional[GarmentType] = None
    error: Optional[str] = None

    @property
    def is_partial(self) -> bool:
        return self.failed_garment is not None


# -------------------------
# Batch
# -------------------------
@dataclass(frozen=True, slots=True)
class BatchImageRequest:
    image_url: str
    enhancements: Tuple[Enhancement, ...] = ()


@dataclass(slots=True)
class BatchTask:
    task_id: str
    image_url: str
    status: TaskStatus = TaskStatus.PENDING
    result_url: Optional[str] = None
    error: Optional[str] = None
    enhancements: Tuple[Enhancement, ...] = ()


@dataclass(slots=True)
class BatchJob:
    batch_id: str
    tasks: List[BatchTask]
    priority: Priority
    estimated_cost: float
    estimated_time: int
    is_demo: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def total_images(self) -> int:
        return len(self.tasks)


__all__ = [
    "GarmentType",
    "LAYERABLE_GARMENT_TYPES",
    "ReplacementMode",
    "BodyRegion",
    "Enhancement",
    "Priority",
    "TaskStatus",
    "TryOnRequest",
    "PreservationPlan",
    "BuiltPrompt",
    "GarmentSpec",
    "MultiGarmentRequest",
    "SynthesizedImage",
    "SynthesisResult",
    "MultiGarmentResult",
    "BatchImageRequest",
    "BatchTask",
    "BatchJob",
]
