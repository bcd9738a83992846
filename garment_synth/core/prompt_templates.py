"""Prompt templates and builders for garment synthesis flows."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from garment_synth.core.models import (
    BodyRegion,
    BuiltPrompt,
    Enhancement,
    GarmentSpec,
    GarmentType,
    PreservationPlan,
    ReplacementMode,
    TryOnRequest,
)


# --- SINGLE GARMENT TEMPLATES ---

GARMENT_TEMPLATES = {
    GarmentType.UPPER: (
        "Replace ONLY the upper body clothing (shirt, top, blouse) with the garment from the second image. "
        "Keep the original pants, skirt, or lower body clothing unchanged."
    ),
    GarmentType.LOWER: (
        "Replace ONLY the lower body clothing (pants, skirt, shorts) with the garment from the second image. "
        "Keep the original top, shirt, or upper body clothing unchanged."
    ),
    GarmentType.DRESS: (
        "Replace the entire outfit with the dress from the second image. "
        "Keep any outer layers (jacket, coat) if present."
    ),
    GarmentType.OUTER: (
        "Add or replace ONLY the outer layer (jacket, coat, cardigan) with the garment from the second image. "
        "Keep all inner clothing (shirt, pants) completely unchanged."
    ),
}

MASK_REGION_CLAUSES = {
    BodyRegion.UPPER_BODY: "Focus modification only on the upper body area (above waist).",
    BodyRegion.LOWER_BODY: "Focus modification only on the lower body area (below waist).",
    BodyRegion.FULL_BODY: "Allow modifications to the full body clothing.",
}

PRESERVATION_PLANS = {
    GarmentType.UPPER: PreservationPlan(
        BodyRegion.UPPER_BODY, ("legs", "shoes", "lower_clothing")
    ),
    GarmentType.LOWER: PreservationPlan(
        BodyRegion.LOWER_BODY, ("torso", "arms", "upper_clothing")
    ),
    GarmentType.DRESS: PreservationPlan(
        BodyRegion.FULL_BODY, ("head", "arms", "shoes", "outer_layers")
    ),
    GarmentType.OUTER: PreservationPlan(
        BodyRegion.UPPER_BODY, ("inner_clothing", "pants", "shirt")
    ),
}


@dataclass(frozen=True)
class PromptDefaults:
    """Fixed clauses appended to garment synthesis prompts."""

    reference_only: str = (
        "Extract ONLY the CLOTHING/GARMENT from the second image, ignoring any face, person, or body in that image. "
        "Keep the FIRST person's exact face, facial features, hair, and skin tone unchanged."
    )
    replace_mode: str = (
        "Remove the original clothing in this region completely and make the new garment fit naturally on the FIRST person's body."
    )
    overlay_mode: str = (
        "Add the garment as an additional layer on top of the person's existing clothing. "
        "Do not remove the original clothing; keep it visible where it would naturally show."
    )
    pose: str = (
        "IMPORTANT: Preserve the exact pose including sitting, standing, or any body position. "
        "Do not change the person's posture, arm positions, or leg positions."
    )
    background: str = (
        "Keep the background exactly as it is. Do not modify any background elements."
    )
    closing: str = (
        "Ensure natural fabric draping, realistic shadows, and proper fit. "
        "Maintain photo-realistic quality and natural lighting."
    )


DEFAULTS = PromptDefaults()


def _join(clauses: Iterable[str]) -> str:
    return " ".join(clause for clause in clauses if clause)


def preservation_plan_for(garment_type: GarmentType) -> PreservationPlan:
    return PRESERVATION_PLANS[GarmentType(garment_type)]


def build_prompt(request: TryOnRequest) -> BuiltPrompt:
    """Render the instruction for a single garment application.

    Pure and deterministic: identical requests always yield identical text.
    Natural-language requests are routed to build_natural_language_prompt.
    """
    if request.is_natural_language:
        return BuiltPrompt(
            instruction=build_natural_language_prompt(
                request.natural_language_instruction or ""
            ),
            plan=None,
        )

    garment_type = GarmentType(request.garment_type)
    mode = ReplacementMode(request.replacement_mode)

    clauses = [
        GARMENT_TEMPLATES[garment_type],
        DEFAULTS.reference_only,
        DEFAULTS.overlay_mode if mode is ReplacementMode.OVERLAY else DEFAULTS.replace_mode,
    ]
    if request.preserve_pose:
        clauses.append(DEFAULTS.pose)
    if request.preserve_background:
        clauses.append(DEFAULTS.background)
    if request.mask_region:
        clauses.append(MASK_REGION_CLAUSES[BodyRegion(request.mask_region)])
    clauses.append(DEFAULTS.closing)

    return BuiltPrompt(
        instruction=_join(clauses),
        plan=preservation_plan_for(garment_type),
    )


# --- MULTI GARMENT ---

MULTI_GARMENT_LINES = {
    GarmentType.UPPER: "- Upper body clothing (shirt, top) with the provided upper garment",
    GarmentType.LOWER: "- Lower body clothing (pants, skirt) with the provided lower garment",
    GarmentType.OUTER: "- Add or replace outer layer (jacket, coat) with the provided outer garment",
}


def build_multi_garment_prompt(
    garments: Sequence[GarmentSpec],
    preserve_pose: bool = True,
    preserve_background: bool = True,
) -> str:
    """Combined instruction describing every region touched by a multi-garment request."""
    types = {GarmentType(garment.type) for garment in garments}

    lines = ["Replace the following clothing items simultaneously:"]
    for garment_type in (GarmentType.UPPER, GarmentType.LOWER, GarmentType.OUTER):
        if garment_type in types:
            lines.append(MULTI_GARMENT_LINES[garment_type])

    if len(garments) < 3:
        if GarmentType.UPPER not in types:
            lines.append("KEEP the original upper body clothing unchanged.")
        if GarmentType.LOWER not in types:
            lines.append("KEEP the original lower body clothing unchanged.")

    if preserve_pose:
        lines.append(
            "IMPORTANT: Maintain the exact same pose, body position, and posture."
        )
    if preserve_background:
        lines.append("Keep the background exactly as it is.")

    lines.append(
        "Ensure natural fit, realistic shadows, and proper fabric draping for all garments."
    )
    return "\n".join(lines)


# --- NATURAL LANGUAGE ---

NATURAL_LANGUAGE_TEMPLATE = """Modify the person's clothing in this image according to the following instructions: {INSTRUCTION}
CRITICAL: Keep the person's EXACT face, facial features, facial expression, eye shape, nose, mouth, and face structure UNCHANGED.
Preserve the person's original identity, hair style, hair color, skin tone, and body shape EXACTLY as they are.
Keep the person's pose, body position, and background exactly the same.
FOCUS ONLY ON CLOTHING: The instructions refer ONLY to clothing/garments/accessories to change.
ONLY change what is explicitly mentioned in the instructions, typically clothing or accessories.
DO NOT alter the person's face or identity in any way.
Ensure the modifications look natural and realistic and maintain the photo-realistic quality of the image."""


def build_natural_language_prompt(instruction: str) -> str:
    return NATURAL_LANGUAGE_TEMPLATE.format(INSTRUCTION=instruction.strip())


# --- BATCH ENHANCEMENT ---

ENHANCEMENT_CLAUSES = {
    Enhancement.COLOR_CORRECTION: "Correct color balance and exposure so fabric colors look true to life.",
    Enhancement.EDGE_OPTIMIZATION: "Clean up garment edges and seams so they blend naturally with the body.",
}


def build_enhancement_prompt(enhancements: Sequence[Enhancement] = ()) -> str:
    """Instruction used for each independent batch task."""
    clauses = ["Refine this try-on photo while keeping the person, pose, and garments unchanged."]
    for enhancement in Enhancement:
        if enhancement in enhancements:
            clauses.append(ENHANCEMENT_CLAUSES[enhancement])
    clauses.append("Maintain photo-realistic quality and natural lighting.")
    return _join(clauses)


# --- GARMENT TYPE DETECTION ---

OUTER_KEYWORDS = (
    "jacket", "coat", "blazer", "cardigan", "hoodie",
    "ジャケット", "コート", "カーディガン", "パーカー", "アウター",
)
DRESS_KEYWORDS = (
    "dress", "overall", "jumpsuit",
    "ワンピース", "ドレス", "オーバーオール",
)
LOWER_KEYWORDS = (
    "pants", "trousers", "jeans", "skirt", "shorts",
    "パンツ", "ズボン", "スカート", "ジーンズ", "ショーツ",
)

# Checked in this order; the first category with a hit wins
DETECTION_ORDER = (
    (GarmentType.OUTER, OUTER_KEYWORDS),
    (GarmentType.DRESS, DRESS_KEYWORDS),
    (GarmentType.LOWER, LOWER_KEYWORDS),
)


def detect_garment_type(description: Optional[str]) -> GarmentType:
    """Classify free text into a garment type, defaulting to upper."""
    if not description:
        return GarmentType.UPPER

    text = description.lower()
    for garment_type, keywords in DETECTION_ORDER:
        if any(keyword in text for keyword in keywords):
            return garment_type
    return GarmentType.UPPER


__all__ = [
    "GARMENT_TEMPLATES",
    "MASK_REGION_CLAUSES",
    "PRESERVATION_PLANS",
    "DEFAULTS",
    "PromptDefaults",
    "preservation_plan_for",
    "build_prompt",
    "build_multi_garment_prompt",
    "build_natural_language_prompt",
    "build_enhancement_prompt",
    "detect_garment_type",
]
