import json

import httpx
import pytest

from garment_synth.core.errors import (
    ConfigurationError,
    InsufficientCredit,
    ProviderAuthError,
    ProviderFailure,
    ProviderNotFound,
    ProviderRateLimited,
    ProviderTimeout,
)
from garment_synth.core.fal_client import FalProvider, clean_api_key
from garment_synth.core.provider import classify_http_error, normalize_images

BASE_URL = "https://fal.test/fal-ai"
SUBMIT_URL = f"{BASE_URL}/nano-banana/edit"
IMAGES = [{"url": "https://cdn.fal.test/out.png", "content_type": "image/png", "width": 768}]


class Sleeps:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def make_provider(handler, max_attempts=5, sleep=None):
    return FalProvider(
        api_key="fal-key\r\n",
        base_url=BASE_URL,
        transport=httpx.MockTransport(handler),
        poll_interval=2.0,
        max_attempts=max_attempts,
        sleep=sleep or Sleeps(),
    )


def queued_then(statuses, final=None):
    """Handler that queues a job and answers status polls from `statuses` in order."""
    seen = {"polls": 0, "requests": []}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["requests"].append(request)
        path = request.url.path
        if request.method == "POST":
            return httpx.Response(200, json={"request_id": "req-1"})
        if path.endswith("/status"):
            answer = statuses[min(seen["polls"], len(statuses) - 1)]
            seen["polls"] += 1
            if isinstance(answer, httpx.Response):
                return answer
            return httpx.Response(200, json=answer)
        return httpx.Response(200, json=final or {"images": IMAGES})

    return handler, seen


def test_missing_key_is_configuration_error():
    with pytest.raises(ConfigurationError):
        FalProvider(api_key=None)


def test_clean_api_key_strips_control_characters():
    assert clean_api_key("  ab\r\nc\td ") == "abcd"


async def test_synchronous_result_skips_polling():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200, json={"images": IMAGES, "timings": {"inference": 3.2}, "request_id": "r"}
        )

    result = await make_provider(handler).synthesize("prompt", ["p", "g"])

    assert len(requests) == 1
    sent = requests[0]
    assert str(sent.url) == SUBMIT_URL
    assert sent.headers["Authorization"] == "Key fal-key"
    body = json.loads(sent.content)
    assert body["image_urls"] == ["p", "g"]
    assert body["num_images"] == 1
    assert body["sync_mode"] is False
    assert result.primary_url == "https://cdn.fal.test/out.png"
    assert result.inference_seconds == 3.2
    assert result.provider_used == "nanoBanana"
    assert result.is_demo is False


async def test_polls_until_completed_and_fetches_result():
    handler, seen = queued_then(
        [{"status": "IN_QUEUE"}, {"status": "IN_PROGRESS"}, {"status": "COMPLETED"}]
    )
    sleeps = Sleeps()

    result = await make_provider(handler, sleep=sleeps).synthesize("prompt", ["p"])

    assert result.primary_url == "https://cdn.fal.test/out.png"
    assert result.request_id == "req-1"
    assert seen["polls"] == 3
    assert sleeps.delays == [2.0, 2.0]
    assert str(seen["requests"][-1].url) == f"{BASE_URL}/requests/req-1"


async def test_completed_status_with_images_needs_no_extra_fetch():
    handler, seen = queued_then([{"status": "COMPLETED", "images": IMAGES}])

    await make_provider(handler).synthesize("prompt", ["p"])

    assert len(seen["requests"]) == 2


async def test_accepted_status_code_means_still_running():
    handler, seen = queued_then(
        [httpx.Response(202, json={}), {"status": "COMPLETED", "images": IMAGES}]
    )

    result = await make_provider(handler).synthesize("prompt", ["p"])

    assert result.images
    assert seen["polls"] == 2


async def test_failed_job_raises_provider_failure():
    handler, _ = queued_then(
        [{"status": "FAILED", "error": {"message": "content policy violation"}}]
    )

    with pytest.raises(ProviderFailure, match="content policy violation"):
        await make_provider(handler).synthesize("prompt", ["p"])


async def test_gives_up_after_max_attempts():
    handler, seen = queued_then([{"status": "IN_PROGRESS"}])
    sleeps = Sleeps()

    with pytest.raises(ProviderTimeout):
        await make_provider(handler, max_attempts=3, sleep=sleeps).synthesize("prompt", ["p"])

    assert seen["polls"] == 3
    assert len(sleeps.delays) == 3


async def test_completed_without_images_is_failure():
    handler, _ = queued_then([{"status": "COMPLETED"}], final={"images": []})

    with pytest.raises(ProviderFailure, match="No image"):
        await make_provider(handler).synthesize("prompt", ["p"])


async def test_missing_request_id_is_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "IN_QUEUE"})

    with pytest.raises(ProviderFailure, match="request id"):
        await make_provider(handler).synthesize("prompt", ["p"])


@pytest.mark.parametrize(
    "status_code, error_type",
    [
        (401, ProviderAuthError),
        (403, ProviderAuthError),
        (404, ProviderNotFound),
        (402, InsufficientCredit),
        (429, ProviderRateLimited),
        (500, ProviderFailure),
    ],
)
async def test_http_errors_are_classified(status_code, error_type):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json={"detail": "upstream says no"})

    with pytest.raises(error_type) as excinfo:
        await make_provider(handler).synthesize("prompt", ["p"])

    assert excinfo.value.provider == "nanoBanana"
    assert "upstream says no" in excinfo.value.details


async def test_network_error_is_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProviderFailure, match="Network error"):
        await make_provider(handler).synthesize("prompt", ["p"])


def test_classify_http_error_statuses():
    assert classify_http_error(429, "x").status_code == 429
    assert classify_http_error(402, "x").status_code == 402
    assert classify_http_error(401, "x").status_code == 500
    assert isinstance(classify_http_error(418, "x", "teapot"), ProviderFailure)


def test_normalize_images_accepts_both_key_styles():
    images = normalize_images(
        [
            {"url": "a", "contentType": "image/jpeg", "fileName": "a.jpg"},
            {"url": "b", "content_type": "image/webp", "file_name": "b.webp"},
            {"content_type": "image/png"},
        ]
    )
    assert [(i.url, i.content_type, i.file_name) for i in images] == [
        ("a", "image/jpeg", "a.jpg"),
        ("b", "image/webp", "b.webp"),
    ]
