"""Utility helpers for the try-on router."""

from typing import Optional

from fastapi import Request

from garment_synth.core.models import SynthesisResult
from garment_synth.routers.tryon.models import ImagePayload

UNKNOWN_CLIENT = "unknown"


def get_client_ip(request: Request) -> Optional[str]:
    """Extract the requester IP from common proxy headers."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    cf_ip = request.headers.get("CF-Connecting-IP")
    if cf_ip:
        return cf_ip

    if request.client:
        return request.client.host

    return None


def get_client_key(request: Request) -> str:
    """Identifier used for rate limiting; every unidentified caller shares one key."""
    return get_client_ip(request) or UNKNOWN_CLIENT


def to_image_payloads(result: SynthesisResult) -> list[ImagePayload]:
    return [
        ImagePayload(
            url=image.url,
            content_type=image.content_type,
            width=image.width,
            height=image.height,
            file_name=image.file_name,
        )
        for image in result.images
    ]
