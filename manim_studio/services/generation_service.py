"""Submit generation jobs and follow them to a terminal status."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
import time
from typing import Any

from manim_studio.config import DEFAULT_MAX_PROMPT_LENGTH, DEFAULT_POLL_INTERVAL_MS, ClientConfig
from manim_studio.core.types import GenerationRequest, GenerationResult, JobHandle, JobState, JobStatus
from manim_studio.errors import (
    STATUS_INTERNAL_ERROR,
    STATUS_NOT_FOUND,
    ApiError,
    cancelled_error,
)
from manim_studio.integrations.manim_client import ManimHttpClient
from manim_studio.logging import get_logger
from manim_studio.logging_events import elapsed_ms, log_event
from manim_studio.utils.cancellation import CancellationToken, check_cancelled

logger = get_logger(__name__)

ProgressCallback = Callable[[JobStatus], None]

SUBMISSION_CANCELLED = "Video generation was cancelled"
POLLING_CANCELLED = "Status polling was cancelled"

_SCALARS = (str, int, float, bool, type(None))


class GenerationService:
    """Drive one generation from submission to its terminal status.

    Polling policy:

    * every observed snapshot is passed to ``on_progress``, duplicates included;
    * ``ready`` resolves, ``not_found`` raises 404 and ``error`` raises 500;
    * unrecognised status tags are treated like ``generating``;
    * a failed status query is never retried and fails the poll at once.
    """

    def __init__(
        self,
        client: ManimHttpClient,
        *,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        max_prompt_length: int = DEFAULT_MAX_PROMPT_LENGTH,
    ) -> None:
        self._client = client
        self._poll_interval_ms = max(1, int(poll_interval_ms))
        self._max_prompt_length = max(1, int(max_prompt_length))

    @classmethod
    def from_config(cls, config: ClientConfig, client: ManimHttpClient | None = None) -> GenerationService:
        return cls(
            client or ManimHttpClient.from_config(config),
            poll_interval_ms=config.poll_interval_ms,
            max_prompt_length=config.max_prompt_length,
        )

    @property
    def poll_interval_seconds(self) -> float:
        return self._poll_interval_ms / 1000

    async def submit(
        self,
        request: GenerationRequest,
        *,
        token: CancellationToken | None = None,
    ) -> JobHandle:
        """Validate ``request`` and start a generation job on the backend."""

        request.validate(max_prompt_length=self._max_prompt_length)

        try:
            response = await self._client.generate_video(request.to_payload(), token=token)
        except ApiError as exc:
            if exc.cancelled:
                raise cancelled_error(SUBMISSION_CANCELLED) from exc
            raise

        video_id = _extract_video_id(response)
        if not isinstance(response, Mapping) or response.get("status") != "success" or not video_id:
            raise ApiError("Video generation failed", STATUS_INTERNAL_ERROR, response)

        handle = JobHandle(job_id=video_id, response=response)
        log_event(
            logger,
            "generation.submitted",
            job_id=handle.job_id,
            quality=str(request.to_payload()["quality"]),
            use_ai=bool(request.use_ai),
        )
        return handle

    async def get_status(
        self, job_id: str, *, token: CancellationToken | None = None
    ) -> JobStatus:
        payload = await self._client.get_video_status(job_id, token=token)
        return JobStatus.from_payload(job_id, payload)

    async def poll(
        self,
        job_id: str,
        on_progress: ProgressCallback | None = None,
        *,
        token: CancellationToken | None = None,
    ) -> JobStatus:
        """Query ``/status/{job_id}`` until the job reaches a terminal state."""

        started = time.monotonic()
        attempts = 0
        while True:
            check_cancelled(token, POLLING_CANCELLED)
            try:
                snapshot = await self.get_status(job_id, token=token)
            except ApiError as exc:
                if exc.cancelled:
                    raise cancelled_error(POLLING_CANCELLED) from exc
                raise
            attempts += 1
            log_event(
                logger,
                "generation.progress",
                job_id=job_id,
                status=snapshot.status,
                poll=attempts,
                meta=_progress_meta(snapshot),
                level="debug",
            )

            if on_progress is not None:
                on_progress(snapshot)

            state = snapshot.state
            if state is JobState.READY:
                log_event(
                    logger,
                    "generation.completed",
                    job_id=job_id,
                    polls=attempts,
                    duration_ms=elapsed_ms(started),
                )
                return snapshot
            if state is JobState.NOT_FOUND:
                raise ApiError("Video not found", STATUS_NOT_FOUND, snapshot.to_dict())
            if state is JobState.ERROR:
                raise ApiError(
                    _server_failure_message(snapshot.payload),
                    STATUS_INTERNAL_ERROR,
                    snapshot.to_dict(),
                )
            if state is None:
                logger.debug("Job %s reported unknown status %r", job_id, snapshot.status)

            await self._sleep(token)

    async def generate_with_polling(
        self,
        request: GenerationRequest,
        on_progress: ProgressCallback | None = None,
        *,
        token: CancellationToken | None = None,
    ) -> GenerationResult:
        """Submit ``request`` and poll the resulting job to completion."""

        try:
            handle = await self.submit(request, token=token)
            final_status = await self.poll(handle.job_id, on_progress, token=token)
        except ApiError as exc:
            if exc.cancelled:
                log_event(logger, "generation.cancelled", status_code=exc.status_code)
            raise
        return GenerationResult(handle=handle, final_status=final_status)

    async def _sleep(self, token: CancellationToken | None) -> None:
        if token is None:
            await asyncio.sleep(self.poll_interval_seconds)
            return
        await token.wait(self.poll_interval_seconds)


def _extract_video_id(response: Any) -> str | None:
    if not isinstance(response, Mapping):
        return None
    value = response.get("video_id")
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _server_failure_message(payload: Mapping[str, Any]) -> str:
    for key in ("error", "message", "detail"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return f"Video generation failed on the server: {value.strip()}"
    return "Video generation failed on the server"


def _progress_meta(snapshot: JobStatus) -> dict[str, Any] | None:
    meta = {
        key: value
        for key, value in snapshot.payload.items()
        if key != "status" and isinstance(key, str) and isinstance(value, _SCALARS)
    }
    return meta or None


__all__ = [
    "GenerationService",
    "POLLING_CANCELLED",
    "ProgressCallback",
    "SUBMISSION_CANCELLED",
]