import base64
import json

import httpx
import pytest

from garment_synth.core.errors import (
    ConfigurationError,
    ProviderAuthError,
    ProviderFailure,
)
from garment_synth.core.gemini import GEMINI_BASE_URL, GeminiProvider

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"
PERSON_DATA_URI = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()


def gemini_response(mime_type="image/png", data="b3V0cHV0"):
    return {
        "candidates": [
            {"content": {"parts": [{"text": "done"}, {"inlineData": {"mimeType": mime_type, "data": data}}]}}
        ]
    }


def make_provider(handler):
    return GeminiProvider(
        api_key=" gemini-key ",
        model="test-model",
        transport=httpx.MockTransport(handler),
    )


def test_missing_key_is_configuration_error():
    with pytest.raises(ConfigurationError):
        GeminiProvider(api_key="")


async def test_fetches_urls_and_returns_inline_image():
    sent = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        if request.method == "GET":
            return httpx.Response(200, content=b"garment", headers={"content-type": "image/jpeg"})
        return httpx.Response(200, json=gemini_response())

    result = await make_provider(handler).synthesize(
        "put the shirt on", [PERSON_DATA_URI, "https://example.com/shirt.jpg"]
    )

    post = sent[-1]
    assert str(post.url) == f"{GEMINI_BASE_URL}/test-model:generateContent"
    assert post.headers["x-goog-api-key"] == "gemini-key"
    parts = json.loads(post.content)["contents"][0]["parts"]
    assert parts[0]["inline_data"]["mime_type"] == "image/png"
    assert parts[1]["inline_data"] == {
        "mime_type": "image/jpeg",
        "data": base64.b64encode(b"garment").decode(),
    }
    assert parts[2] == {"text": "put the shirt on"}

    assert result.primary_url == "data:image/png;base64,b3V0cHV0"
    assert result.provider_used == "gemini"


async def test_response_without_image_is_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "no"}]}}]})

    with pytest.raises(ProviderFailure, match="No image"):
        await make_provider(handler).synthesize("prompt", [PERSON_DATA_URI])


async def test_auth_error_is_classified():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, text="forbidden")

    with pytest.raises(ProviderAuthError):
        await make_provider(handler).synthesize("prompt", [PERSON_DATA_URI])


async def test_blob_reference_is_a_provider_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(ProviderFailure, match="cannot fetch the person image") as excinfo:
        await make_provider(handler).synthesize("prompt", ["blob:abc"])
    assert excinfo.value.provider == "gemini"


async def test_empty_data_uri_is_a_provider_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(ProviderFailure, match="Invalid data URI"):
        await make_provider(handler).synthesize("prompt", ["data:image/png;base64,"])
