from __future__ import annotations

import asyncio
import json
import time

import httpx
import pytest

from manim_studio.errors import ApiError
from manim_studio.integrations.manim_client import (
    ManimHttpClient,
    _error_from_response,
    _extract_detail,
)
from manim_studio.utils.cancellation import CancellationToken


@pytest.mark.asyncio
async def test_call_returns_parsed_json_and_sends_headers(backend, make_client) -> None:
    backend.route("GET", "/ai-status", httpx.Response(200, json={"ready_for_ai": True}))
    client = make_client(headers={"X-Client": "cli"})

    payload = await client.get_ai_status()

    assert payload == {"ready_for_ai": True}
    request = backend.requests[0]
    assert request.headers["Accept"] == "application/json"
    assert request.headers["X-Client"] == "cli"


@pytest.mark.asyncio
async def test_generate_video_posts_json_body(backend, make_client) -> None:
    backend.route(
        "POST",
        "/generate-video",
        httpx.Response(200, json={"status": "success", "video_id": "abc"}),
    )
    client = make_client()

    response = await client.generate_video({"prompt": "circle", "quality": "low", "use_ai": False})

    assert response["video_id"] == "abc"
    body = json.loads(backend.requests[0].content)
    assert body == {"prompt": "circle", "quality": "low", "use_ai": False}


@pytest.mark.asyncio
async def test_error_body_detail_becomes_message(backend, make_client) -> None:
    backend.route(
        "POST",
        "/generate-video",
        httpx.Response(422, json={"detail": "quality must be low, medium or high"}),
    )
    client = make_client()

    with pytest.raises(ApiError) as excinfo:
        await client.generate_video({"prompt": "x"})

    error = excinfo.value
    assert error.status_code == 422
    assert error.message == "Failed to generate video: quality must be low, medium or high"
    assert error.data == {"detail": "quality must be low, medium or high"}


@pytest.mark.asyncio
async def test_unparsable_error_body_falls_back_to_status_line(backend, make_client) -> None:
    backend.route("GET", "/", httpx.Response(502, text="<html>bad gateway</html>"))
    client = make_client()

    with pytest.raises(ApiError) as excinfo:
        await client.call("GET", "/")

    assert excinfo.value.status_code == 502
    assert excinfo.value.message == "HTTP 502: Bad Gateway"
    assert excinfo.value.data is None


@pytest.mark.asyncio
async def test_invalid_json_on_success_is_a_server_fault(backend, make_client) -> None:
    backend.route("GET", "/", httpx.Response(200, text="not json"))
    client = make_client()

    with pytest.raises(ApiError) as excinfo:
        await client.call("GET", "/")

    assert excinfo.value.status_code == 502
    assert excinfo.value.data == {"body": "not json"}


@pytest.mark.asyncio
async def test_connection_failure_maps_to_service_unavailable() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = ManimHttpClient(base_url="http://manim.test", transport=httpx.MockTransport(_handler))

    with pytest.raises(ApiError) as excinfo:
        await client.get_api_status()

    assert excinfo.value.status_code == 503
    assert excinfo.value.message.startswith("Failed to get API status: ")


@pytest.mark.asyncio
async def test_hanging_request_times_out_at_configured_boundary(backend, make_client) -> None:
    async def _hang(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json={})

    backend.route("GET", "/", _hang)
    client = make_client(timeout_ms=150)

    started = time.monotonic()
    with pytest.raises(ApiError) as excinfo:
        await client.call("GET", "/")
    elapsed = time.monotonic() - started

    assert excinfo.value.status_code == 408
    assert excinfo.value.message == "Request timeout"
    assert 0.14 <= elapsed < 1.0


@pytest.mark.asyncio
async def test_cancellation_during_call_aborts_request(backend, make_client) -> None:
    aborted = asyncio.Event()

    async def _hang(request: httpx.Request) -> httpx.Response:
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            aborted.set()
            raise
        return httpx.Response(200, json={})

    backend.route("GET", "/status/job-1", _hang)
    client = make_client(timeout_ms=5_000)
    token = CancellationToken()
    asyncio.get_running_loop().call_later(0.05, token.signal)

    started = time.monotonic()
    with pytest.raises(ApiError) as excinfo:
        await client.call("GET", "/status/job-1", token=token)

    assert excinfo.value.status_code == 499
    assert time.monotonic() - started < 1.0
    assert aborted.is_set()


@pytest.mark.asyncio
async def test_signaled_token_short_circuits_before_network(backend, make_client) -> None:
    client = make_client()
    token = CancellationToken()
    token.signal()

    with pytest.raises(ApiError) as excinfo:
        await client.call("GET", "/", token=token)

    assert excinfo.value.status_code == 499
    assert backend.requests == []


@pytest.mark.asyncio
async def test_timeout_and_cancellation_are_distinguishable(backend, make_client) -> None:
    async def _hang(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json={})

    backend.route("GET", "/", _hang)

    with pytest.raises(ApiError) as timed_out:
        await make_client(timeout_ms=50).call("GET", "/")

    token = CancellationToken()
    asyncio.get_running_loop().call_later(0.02, token.signal)
    with pytest.raises(ApiError) as cancelled:
        await make_client(timeout_ms=5_000).call("GET", "/", token=token)

    assert timed_out.value.timed_out and not timed_out.value.cancelled
    assert cancelled.value.cancelled and not cancelled.value.timed_out


@pytest.mark.asyncio
async def test_download_returns_raw_bytes(backend, make_client) -> None:
    backend.route(
        "GET",
        "/download/vid-9",
        httpx.Response(200, content=b"\x00\x01mp4", headers={"Content-Type": "video/mp4"}),
    )
    client = make_client()

    content = await client.download_video("vid-9")

    assert content == b"\x00\x01mp4"


@pytest.mark.asyncio
async def test_delete_wraps_not_found(backend, make_client) -> None:
    backend.route("DELETE", "/delete/missing", httpx.Response(404, json={"detail": "Video not found"}))
    client = make_client()

    with pytest.raises(ApiError) as excinfo:
        await client.delete_video("missing")

    assert excinfo.value.status_code == 404
    assert excinfo.value.message == "Failed to delete video: Video not found"


@pytest.mark.asyncio
async def test_blank_video_id_is_rejected_locally(backend, make_client) -> None:
    client = make_client()

    with pytest.raises(ApiError) as excinfo:
        await client.get_video_status("  ")

    assert excinfo.value.status_code == 400
    assert excinfo.value.message == "Video ID is required"
    assert backend.requests == []


def test_download_url_quotes_identifier() -> None:
    client = ManimHttpClient(base_url="http://manim.test/")

    assert client.download_url("a b/c") == "http://manim.test/download/a%20b%2Fc"


def test_extract_detail_joins_validation_messages() -> None:
    payload = {"detail": [{"loc": ["body", "prompt"], "msg": "field required"}, {"msg": "bad"}]}

    assert _extract_detail(payload) == "field required; bad"
    assert _extract_detail(["not", "a", "mapping"]) is None


def test_error_from_response_keeps_status_and_payload() -> None:
    response = httpx.Response(409, json={"message": "already deleting"})

    error = _error_from_response(response)

    assert error.status_code == 409
    assert error.message == "already deleting"
    assert error.data == {"message": "already deleting"}
