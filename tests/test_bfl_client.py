import base64

import httpx
import pytest

from backend.errors import PollingTimeout
from backend.model import GenerateRequest, ModelVariant, endpoint_for
from config.settings import settings


def make_request(**kwargs) -> GenerateRequest:
    data = {"prompt": "a cat", "apiKey": "test-key"}
    data.update(kwargs)
    return GenerateRequest(**data)


# --- validation ---------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"apiKey": "test-key"},
        {"prompt": "a cat"},
        {"prompt": "   ", "apiKey": "test-key"},
        {"prompt": "a cat", "apiKey": ""},
        {},
    ],
)
async def test_missing_prompt_or_key_is_rejected_without_network(provider, make_client, body):
    result = await make_client().submit(GenerateRequest(**body))

    assert result.status_code == 400
    assert result.error == "Missing prompt or API key"
    assert result.url is None
    assert provider.requests == []


# --- endpoint selection -------------------------------------------------


def test_endpoint_selection_is_pure():
    assert endpoint_for(ModelVariant.parse("4b")) == settings.BFL_API_4B
    assert endpoint_for(ModelVariant.parse("9b")) == settings.BFL_API_9B
    assert endpoint_for(ModelVariant.parse(None)) == settings.BFL_API_9B
    assert endpoint_for(ModelVariant.parse("something-else")) == settings.BFL_API_9B
    assert endpoint_for(ModelVariant.parse("4b")) == endpoint_for(ModelVariant.parse("4b"))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "variant, expected",
    [
        ("4b", "https://api.bfl.ai/v1/flux-2-klein-4b"),
        ("9b", "https://api.bfl.ai/v1/flux-2-klein-9b"),
        (None, "https://api.bfl.ai/v1/flux-2-klein-9b"),
    ],
)
async def test_variant_targets_its_endpoint(provider, make_client, variant, expected):
    provider.queue_json({"sample": "https://x/img.png"})

    await make_client().submit(make_request(variant=variant))

    assert len(provider.requests) == 1
    assert str(provider.requests[0].url) == expected


# --- submission ---------------------------------------------------------


@pytest.mark.asyncio
async def test_direct_sample_returns_without_polling(provider, make_client):
    provider.queue_json({"sample": "https://x/img.png"})

    result = await make_client().submit(make_request())

    assert result.ok
    assert result.url == "https://x/img.png"
    assert result.status_code == 200
    assert result.body() == {"url": "https://x/img.png"}
    assert len(provider.requests) == 1


@pytest.mark.asyncio
async def test_payload_and_credential_header(provider, make_client):
    provider.queue_json({"sample": "https://x/img.png"})

    await make_client().submit(make_request())

    request = provider.requests[0]
    assert request.method == "POST"
    assert request.headers["X-Key"] == "test-key"
    assert request.headers["Content-Type"] == "application/json"
    assert provider.body(0) == {
        "prompt": "a cat",
        "width": 768,
        "height": 768,
        "prompt_upsampling": False,
    }


@pytest.mark.asyncio
async def test_inline_image_forwarded_unchanged(provider, make_client):
    provider.queue_json({"sample": "https://x/img.png"})

    await make_client().submit(make_request(image="iVBORw0KGgoAAAANSUhEUg=="))

    assert provider.body(0)["input_image"] == "iVBORw0KGgoAAAANSUhEUg=="
    assert len(provider.requests) == 1


@pytest.mark.asyncio
async def test_image_url_fetched_once_and_encoded(provider, make_client):
    raw = b"\x89PNG\r\n\x1a\nfake image bytes"
    provider.queue_bytes(raw)
    provider.queue_json({"sample": "https://x/edited.png"})

    result = await make_client().submit(make_request(imageUrl="https://x/previous.png"))

    assert result.url == "https://x/edited.png"
    assert len(provider.requests) == 2
    fetch, submit = provider.requests
    assert fetch.method == "GET"
    assert str(fetch.url) == "https://x/previous.png"
    assert provider.body(1)["input_image"] == base64.b64encode(raw).decode()


@pytest.mark.asyncio
async def test_inline_image_wins_over_url(provider, make_client):
    provider.queue_json({"sample": "https://x/img.png"})

    await make_client().submit(make_request(image="abc", imageUrl="https://x/ignored.png"))

    assert len(provider.requests) == 1
    assert provider.body(0)["input_image"] == "abc"


@pytest.mark.asyncio
async def test_reference_fetch_failure(provider, make_client):
    provider.queue_text("gone", status_code=404)

    result = await make_client().submit(make_request(imageUrl="https://x/missing.png"))

    assert result.status_code == 404
    assert "reference image" in result.error
    assert len(provider.requests) == 1


@pytest.mark.asyncio
async def test_reference_fetch_network_error(provider, make_client):
    provider.queue_error(httpx.ConnectError("connection refused"))

    result = await make_client().submit(make_request(imageUrl="https://x/down.png"))

    assert result.status_code == 502
    assert "reference image" in result.error


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body, expected",
    [
        ({"detail": "Invalid key", "message": "m", "error": "e"}, "Invalid key"),
        ({"message": "Out of credits", "error": "e"}, "Out of credits"),
        ({"error": "Rate limited"}, "Rate limited"),
    ],
)
async def test_submit_error_message_preference(provider, make_client, body, expected):
    provider.queue_json(body, status_code=402)

    result = await make_client().submit(make_request())

    assert result.error == expected
    assert result.status_code == 402


@pytest.mark.asyncio
async def test_submit_error_falls_back_to_text(provider, make_client):
    provider.queue_text("Service Unavailable", status_code=503)

    result = await make_client().submit(make_request())

    assert result.error == "Service Unavailable"
    assert result.status_code == 503


@pytest.mark.asyncio
async def test_submit_error_falls_back_to_generic(provider, make_client):
    provider.queue_text("", status_code=500)

    result = await make_client().submit(make_request())

    assert result.error == "BFL API error (500)"
    assert result.status_code == 500


@pytest.mark.asyncio
async def test_missing_polling_handle(provider, make_client):
    provider.queue_json({})

    result = await make_client().submit(make_request())

    assert result.error == "no polling handle in response"
    assert result.status_code == 500
    assert result.body() == {"error": "no polling handle in response"}


# --- polling ------------------------------------------------------------


@pytest.mark.asyncio
async def test_polls_until_ready(provider, make_client):
    provider.queue_json({"polling_url": "https://x/poll/1"})
    provider.queue_json({"status": "Pending"})
    provider.queue_json({"status": "Pending"})
    provider.queue_json({"status": "Ready", "result": {"sample": "https://x/final.png"}})

    result = await make_client().submit(make_request())

    assert result.url == "https://x/final.png"
    assert result.status_code == 200
    assert len(provider.requests) == 4
    for poll in provider.requests[1:]:
        assert poll.method == "GET"
        assert str(poll.url) == "https://x/poll/1"
        assert poll.headers["X-Key"] == "test-key"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["Failed", "Moderated", "Content Moderated", "Error", "Unknown"])
async def test_non_pending_status_is_terminal_failure(provider, make_client, status):
    provider.queue_json({"polling_url": "https://x/poll/1"})
    provider.queue_json({"status": status})

    result = await make_client().submit(make_request())

    assert result.status_code == 500
    assert status in result.error
    assert len(provider.requests) == 2


@pytest.mark.asyncio
async def test_ready_without_sample_is_failure(provider, make_client):
    provider.queue_json({"polling_url": "https://x/poll/1"})
    provider.queue_json({"status": "Ready", "result": {}})

    result = await make_client().submit(make_request())

    assert result.error == "generation failed: Ready"
    assert result.status_code == 500


@pytest.mark.asyncio
async def test_failure_prefers_explicit_message(provider, make_client):
    provider.queue_json({"polling_url": "https://x/poll/1"})
    provider.queue_json({"status": "Failed", "message": "NSFW content detected", "detail": "d"})

    result = await make_client().submit(make_request())

    assert result.error == "NSFW content detected"


@pytest.mark.asyncio
async def test_poll_http_error(provider, make_client):
    provider.queue_json({"polling_url": "https://x/poll/1"})
    provider.queue_json({"status": "Pending"})
    provider.queue_json({"detail": "Task not found"}, status_code=404)

    result = await make_client().submit(make_request())

    assert result.error == "Task not found"
    assert result.status_code == 404
    assert len(provider.requests) == 3


@pytest.mark.asyncio
async def test_poll_http_error_generic_fallback(provider, make_client):
    provider.queue_json({"polling_url": "https://x/poll/1"})
    provider.queue_text("", status_code=502)

    result = await make_client().submit(make_request())

    assert result.error == "Poll error (502)"
    assert result.status_code == 502


@pytest.mark.asyncio
async def test_bounded_polling_times_out(provider, make_client):
    provider.queue_json({"polling_url": "https://x/poll/1"})
    for _ in range(3):
        provider.queue_json({"status": "Pending"})

    client = make_client(max_attempts=3)
    result = await client.submit(make_request())

    assert result.status_code == PollingTimeout.status_code
    assert "polling timeout" in result.error
    assert len(provider.requests) == 4
