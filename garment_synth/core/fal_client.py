import re
from typing import Any, Dict, Optional, Sequence

import httpx

from garment_synth.config import FAL_BASE_URL, IS_DEVELOPMENT, logger
from garment_synth.core.errors import ConfigurationError, ProviderFailure
from garment_synth.core.models import SynthesisResult
from garment_synth.core.provider import (
    STATUS_COMPLETED,
    JobHandle,
    PollStatus,
    Provider,
    SynthesisOptions,
    classify_http_error,
    normalize_images,
)

EDIT_ENDPOINT = "nano-banana/edit"
REQUEST_TIMEOUT_SECONDS = 120.0


def clean_api_key(key: str) -> str:
    """Strip whitespace and embedded CR/LF/TAB characters from a credential."""
    return re.sub(r"[\r\n\t]", "", key.strip())


class FalProvider(Provider):
    """fal.ai nano-banana image edit endpoint."""

    name = "nanoBanana"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = FAL_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        if not api_key:
            raise ConfigurationError("FAL_KEY is not configured")
        self.api_key = clean_api_key(api_key)
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Key {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.request(
                    method, url, headers=self._headers(), **kwargs
                )
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as exc:
            logger.error(
                "fal.ai API error",
                extra={
                    "url": url,
                    "status_code": exc.response.status_code,
                    "body": exc.response.text[:500],
                },
            )
            raise classify_http_error(
                exc.response.status_code, self.name, _error_message(exc.response)
            ) from exc
        except httpx.RequestError as exc:
            raise ProviderFailure(
                f"Network error calling fal.ai: {exc}", self.name
            ) from exc

    def _to_result(self, payload: Dict[str, Any], request_id: Optional[str]) -> SynthesisResult:
        images = normalize_images(payload.get("images") or [])
        if not images:
            raise ProviderFailure("No image found in fal.ai response", self.name)

        timings = payload.get("timings") or {}
        return SynthesisResult(
            images=tuple(images),
            inference_seconds=float(timings.get("inference") or 0.0),
            provider_used=self.name,
            is_demo=False,
            request_id=payload.get("request_id") or request_id,
        )

    async def submit(
        self,
        prompt: str,
        image_urls: Sequence[str],
        options: SynthesisOptions,
    ) -> JobHandle:
        payload = {
            "prompt": prompt,
            "image_urls": list(image_urls),
            "num_images": options.num_images,
            "output_format": options.output_format,
            "sync_mode": False,
        }
        url = f"{self.base_url}/{EDIT_ENDPOINT}"

        if IS_DEVELOPMENT:
            logger.debug(f"fal.ai: submitting request to {url}")
            logger.debug(f"fal.ai: prompt: {prompt}")

        response = await self._request("POST", url, json=payload)
        data = response.json()

        if data.get("images"):
            return JobHandle(provider=self.name, result=self._to_result(data, None))

        request_id = data.get("request_id")
        logger.info("fal.ai job queued", extra={"request_id": request_id})
        return JobHandle(provider=self.name, request_id=request_id)

    async def poll(self, handle: JobHandle) -> PollStatus:
        url = f"{self.base_url}/requests/{handle.request_id}/status"
        response = await self._request("GET", url)

        # 202 means the job is accepted but not finished
        if response.status_code == 202:
            return PollStatus(state="IN_PROGRESS")

        data = response.json()
        state = str(data.get("status") or "UNKNOWN").upper()

        if state != STATUS_COMPLETED:
            return PollStatus(state=state, error=_payload_error(data))

        if not data.get("images"):
            result_response = await self._request(
                "GET", f"{self.base_url}/requests/{handle.request_id}"
            )
            data = result_response.json()

        return PollStatus(
            state=STATUS_COMPLETED,
            result=self._to_result(data, handle.request_id),
        )


def _payload_error(data: Dict[str, Any]) -> Optional[str]:
    error = data.get("error")
    if isinstance(error, dict):
        return error.get("message") or str(error)
    return str(error) if error else None


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict):
        detail = data.get("detail") or data.get("error") or data.get("message")
        if detail:
            return str(detail)[:200]
    return response.text[:200]


__all__ = ["FalProvider", "clean_api_key", "EDIT_ENDPOINT"]
