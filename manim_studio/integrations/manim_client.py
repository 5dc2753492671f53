"""Async HTTP client for the Manim rendering backend."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from functools import lru_cache
import time
from typing import Any
from urllib.parse import quote

import httpx

from manim_studio.config import DEFAULT_BASE_URL, DEFAULT_TIMEOUT_MS, ClientConfig, load_client_config
from manim_studio.errors import (
    STATUS_BAD_GATEWAY,
    STATUS_UNAVAILABLE,
    ApiError,
    cancelled_error,
    timeout_error,
    validation_error,
)
from manim_studio.logging import get_logger
from manim_studio.utils.cancellation import CancellationToken, check_cancelled

logger = get_logger(__name__)

_DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}


@dataclass(slots=True)
class ManimHttpClient:
    """HTTPX based client for the ``/generate-video`` family of endpoints.

    Each call runs under ``timeout_ms`` and can be aborted through a
    :class:`CancellationToken`. Failures always surface as
    :class:`~manim_studio.errors.ApiError`.
    """

    base_url: str = DEFAULT_BASE_URL
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    transport: httpx.AsyncBaseTransport | None = None
    headers: Mapping[str, str] | None = None

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ManimHttpClient:
        return cls(base_url=config.base_url, timeout_ms=config.timeout_ms, transport=transport)

    async def call(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        token: CancellationToken | None = None,
        timeout_ms: int | None = None,
    ) -> Any:
        """Issue one request and return the decoded JSON body."""

        response = await self._request(method, path, json=json, token=token, timeout_ms=timeout_ms)
        return self._decode_json(response)

    async def get_api_status(self, *, timeout_ms: int | None = None) -> Any:
        with _wrap_errors("Failed to get API status"):
            return await self.call("GET", "/", timeout_ms=timeout_ms)

    async def get_ai_status(self) -> Any:
        with _wrap_errors("Failed to get AI status"):
            return await self.call("GET", "/ai-status")

    async def generate_video(
        self, payload: Mapping[str, Any], *, token: CancellationToken | None = None
    ) -> Any:
        with _wrap_errors("Failed to generate video"):
            return await self.call("POST", "/generate-video", json=dict(payload), token=token)

    async def get_video_status(
        self, video_id: str, *, token: CancellationToken | None = None
    ) -> Any:
        path = f"/status/{_quote_id(video_id)}"
        with _wrap_errors("Failed to get video status"):
            return await self.call("GET", path, token=token)

    async def download_video(
        self, video_id: str, *, token: CancellationToken | None = None
    ) -> bytes:
        path = f"/download/{_quote_id(video_id)}"
        with _wrap_errors("Failed to download video"):
            response = await self._request("GET", path, token=token)
        return response.content

    async def delete_video(
        self, video_id: str, *, token: CancellationToken | None = None
    ) -> Any:
        path = f"/delete/{_quote_id(video_id)}"
        with _wrap_errors("Failed to delete video"):
            return await self.call("DELETE", path, token=token)

    def download_url(self, video_id: str) -> str:
        return f"{self.base_url.rstrip('/')}/download/{_quote_id(video_id)}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        token: CancellationToken | None = None,
        timeout_ms: int | None = None,
    ) -> httpx.Response:
        check_cancelled(token, "Request was cancelled")

        effective_ms = max(1, int(timeout_ms or self.timeout_ms))
        timeout_seconds = effective_ms / 1000
        started = time.monotonic()

        request_task = asyncio.create_task(
            self._perform_request(method, path, json=json, timeout_ms=effective_ms)
        )
        waiters: set[asyncio.Future[Any]] = {request_task}
        cancel_task: asyncio.Task[bool] | None = None
        if token is not None:
            cancel_task = asyncio.create_task(token.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if token is not None and token.is_signaled:
                await _abort(request_task)
                logger.debug("%s %s cancelled after %.0fms", method, path, _since(started))
                raise cancelled_error("Request was cancelled")
            if request_task not in done:
                await _abort(request_task)
                logger.warning("%s %s timed out after %sms", method, path, effective_ms)
                raise timeout_error(timeout_ms=effective_ms)
            return request_task.result()
        finally:
            if cancel_task is not None and not cancel_task.done():
                cancel_task.cancel()
            if not request_task.done():
                request_task.cancel()

    async def _perform_request(
        self,
        method: str,
        path: str,
        *,
        json: Any,
        timeout_ms: int,
    ) -> httpx.Response:
        headers = dict(_DEFAULT_HEADERS)
        if self.headers:
            headers.update(self.headers)
        started = time.monotonic()
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url.rstrip("/"),
                timeout=httpx.Timeout(timeout_ms / 1000),
                headers=headers,
                transport=self.transport,
            ) as client:
                response = await client.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            raise timeout_error(timeout_ms=timeout_ms) from exc
        except httpx.HTTPError as exc:
            raise ApiError(
                f"Could not reach the rendering service: {exc}", STATUS_UNAVAILABLE
            ) from exc

        logger.debug(
            "%s %s -> %s in %.0fms", method, path, response.status_code, _since(started)
        )
        if response.is_success:
            return response
        raise _error_from_response(response)

    @staticmethod
    def _decode_json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(
                "Rendering service returned invalid JSON",
                STATUS_BAD_GATEWAY,
                {"body": response.text[:500]},
            ) from exc


async def _abort(task: asyncio.Task[Any]) -> None:
    """Cancel ``task`` and wait until its connection has been released."""

    if not task.done():
        task.cancel()
    await asyncio.wait({task})
    if not task.cancelled():
        # Consume the outcome so a late failure is not reported as unhandled.
        task.exception()


def _since(started: float) -> float:
    return (time.monotonic() - started) * 1000


def _quote_id(video_id: str) -> str:
    text = str(video_id).strip() if video_id is not None else ""
    if not text:
        raise validation_error("Video ID is required", data={"field": "video_id"})
    return quote(text, safe="")


def _error_from_response(response: httpx.Response) -> ApiError:
    data: Any = None
    if response.content:
        try:
            data = response.json()
        except ValueError:
            data = None
    detail = _extract_detail(data)
    message = detail or f"HTTP {response.status_code}: {response.reason_phrase}"
    return ApiError(message, response.status_code, data)


def _extract_detail(data: Any) -> str | None:
    if not isinstance(data, Mapping):
        return None
    for key in ("detail", "message", "error"):
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, list):
            # FastAPI validation errors: [{"loc": [...], "msg": "..."}]
            messages = [
                str(item.get("msg")) for item in value if isinstance(item, Mapping) and item.get("msg")
            ]
            if messages:
                return "; ".join(messages)
    return None


@contextmanager
def _wrap_errors(prefix: str) -> Iterator[None]:
    try:
        yield
    except ApiError as exc:
        raise exc.wrap(prefix) from exc


@lru_cache(maxsize=1)
def get_default_client() -> ManimHttpClient:
    """Return a process wide client built from the environment."""

    return ManimHttpClient.from_config(load_client_config())


__all__ = ["ManimHttpClient", "get_default_client"]
