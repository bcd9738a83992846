import base64
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from garment_synth.config import GEMINI_KEY, GEMINI_MODEL, logger
from garment_synth.core.errors import ConfigurationError, ProviderFailure
from garment_synth.core.models import SynthesisResult, SynthesizedImage
from garment_synth.core.provider import (
    STATUS_FAILED,
    JobHandle,
    PollStatus,
    Provider,
    SynthesisOptions,
    classify_http_error,
)
from garment_synth.core.validators import is_url

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
REQUEST_TIMEOUT_SECONDS = 120.0
FETCH_TIMEOUT_SECONDS = 60.0


class GeminiProvider(Provider):
    """
    Gemini image model behind the common provider interface.

    generateContent answers synchronously with inline image data, so submit()
    always returns a handle with an embedded result and poll() is never used.
    """

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = GEMINI_KEY,
        model: str = GEMINI_MODEL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        if not api_key:
            raise ConfigurationError("GEMINI_KEY is not configured")
        self.api_key = api_key.strip()
        self.model = model
        self.transport = transport
        self.timeout = timeout

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self.transport)

    async def submit(
        self,
        prompt: str,
        image_urls: Sequence[str],
        options: SynthesisOptions,
    ) -> JobHandle:
        # Order: person image first, then garments, then the text prompt
        content_parts: List[Dict[str, Any]] = []
        for idx, reference in enumerate(image_urls):
            label = "person image" if idx == 0 else f"garment image {idx}"
            mime_type, data = await self._prepare_image_input(reference, label)
            content_parts.append({"inline_data": {"mime_type": mime_type, "data": data}})
        content_parts.append({"text": prompt})

        payload = {
            "contents": [{"parts": content_parts}],
            "generationConfig": {
                "temperature": 0.4,
                "topK": 32,
                "topP": 1,
                "candidateCount": options.num_images,
                "maxOutputTokens": 4096,
            },
        }
        url = f"{GEMINI_BASE_URL}/{self.model}:generateContent"

        started = time.monotonic()
        try:
            async with self._client(self.timeout) as client:
                response = await client.post(
                    url,
                    json=payload,
                    headers={
                        "Content-Type": "application/json",
                        "x-goog-api-key": self.api_key,
                    },
                )
                response.raise_for_status()
                api_result = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                f"Gemini API HTTP error: {exc.response.status_code} - {exc.response.text[:500]}"
            )
            raise classify_http_error(
                exc.response.status_code, self.name, exc.response.text[:200]
            ) from exc
        except httpx.RequestError as exc:
            raise ProviderFailure(
                f"Network error calling Gemini API: {exc}", self.name
            ) from exc

        images = self._extract_images(api_result)
        return JobHandle(
            provider=self.name,
            result=SynthesisResult(
                images=tuple(images),
                inference_seconds=round(time.monotonic() - started, 3),
                provider_used=self.name,
                is_demo=False,
            ),
        )

    async def poll(self, handle: JobHandle) -> PollStatus:
        return PollStatus(
            state=STATUS_FAILED, error="Gemini requests complete synchronously"
        )

    def _extract_images(self, api_result: Dict[str, Any]) -> List[SynthesizedImage]:
        if "error" in api_result:
            raise ProviderFailure(str(api_result["error"]), self.name)

        candidates = api_result.get("candidates") or []
        if not candidates:
            raise ProviderFailure("Gemini API returned no candidates", self.name)

        images = []
        for candidate in candidates:
            parts = candidate.get("content", {}).get("parts", [])
            for part in parts:
                # Check both camelCase and snake_case formats
                inline = part.get("inlineData") or part.get("inline_data")
                if inline and inline.get("data"):
                    mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
                    images.append(
                        SynthesizedImage(
                            url=f"data:{mime_type};base64,{inline['data']}",
                            content_type=mime_type,
                        )
                    )

        if not images:
            raise ProviderFailure("No image found in Gemini API response", self.name)
        return images

    async def _prepare_image_input(self, reference: str, label: str) -> Tuple[str, str]:
        """Normalize an image reference (URL or data URI) to (mime type, raw base64)."""
        if is_url(reference):
            logger.info(f"Fetching {label} from URL: {reference[:80]}")
            try:
                async with self._client(FETCH_TIMEOUT_SECONDS) as client:
                    response = await client.get(reference)
                    response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise ProviderFailure(
                    f"Failed to fetch {label}: HTTP {exc.response.status_code}",
                    self.name,
                ) from exc
            except httpx.RequestError as exc:
                raise ProviderFailure(
                    f"Network error fetching {label}: {exc}", self.name
                ) from exc

            mime_type = response.headers.get("content-type", "image/jpeg").split(";")[0]
            return mime_type, base64.b64encode(response.content).decode("utf-8")

        if reference.startswith("data:"):
            header, _, data = reference.partition(",")
            if not data:
                raise ProviderFailure(f"Invalid data URI provided for {label}", self.name)
            mime_type = header[len("data:"):].split(";")[0] or "image/jpeg"
            return mime_type, data

        raise ProviderFailure(
            f"Gemini cannot fetch the {label}: only http(s) URLs and data URIs are supported",
            self.name,
        )


__all__ = ["GeminiProvider", "GEMINI_BASE_URL"]
