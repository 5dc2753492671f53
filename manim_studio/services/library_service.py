"""Operations on already generated videos: download and batch delete."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
import re

from manim_studio.config import DEFAULT_DELETE_CONCURRENCY, ClientConfig
from manim_studio.core.types import DeleteOutcome
from manim_studio.errors import ApiError, validation_error
from manim_studio.integrations.manim_client import ManimHttpClient
from manim_studio.logging import get_logger
from manim_studio.logging_events import log_event
from manim_studio.utils.cancellation import CancellationToken
from manim_studio.utils.concurrency import settle_all

logger = get_logger(__name__)

DEFAULT_FILENAME_TEMPLATE = "manim_animation_{video_id}.mp4"
_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.-]")


class LibraryService:
    """Manage rendered artifacts stored by the backend."""

    def __init__(
        self,
        client: ManimHttpClient,
        *,
        delete_concurrency: int | None = DEFAULT_DELETE_CONCURRENCY,
    ) -> None:
        self._client = client
        self._delete_concurrency = delete_concurrency

    @classmethod
    def from_config(cls, config: ClientConfig, client: ManimHttpClient | None = None) -> LibraryService:
        return cls(
            client or ManimHttpClient.from_config(config),
            delete_concurrency=config.delete_concurrency,
        )

    async def delete_many(self, ids: Sequence[str]) -> list[DeleteOutcome]:
        """Delete every id concurrently; failures are reported per item."""

        settled = await settle_all(
            list(ids),
            self._client.delete_video,
            limit=self._delete_concurrency,
        )
        outcomes: list[DeleteOutcome] = []
        for entry in settled:
            if entry.ok:
                outcomes.append(DeleteOutcome(id=entry.item, success=True))
                continue
            error = entry.error
            if not isinstance(error, ApiError):
                logger.error("Unexpected failure deleting %s", entry.item, exc_info=error)
            message = error.message if isinstance(error, ApiError) else str(error)
            outcomes.append(
                DeleteOutcome(id=entry.item, success=False, error_message=message or repr(error))
            )

        failed = sum(1 for outcome in outcomes if not outcome.success)
        log_event(
            logger,
            "library.delete_many",
            requested=len(outcomes),
            failed=failed,
        )
        return outcomes

    async def download_to_path(
        self,
        video_id: str,
        destination: str | Path | None = None,
        *,
        token: CancellationToken | None = None,
    ) -> Path:
        """Fetch the rendered video and write it to ``destination``.

        A directory destination receives the default ``manim_animation_<id>.mp4``
        filename. Characters other than letters, digits, ``.``, ``_`` and ``-``
        in the id are replaced so the file always lands inside that directory.
        """

        target = _resolve_destination(video_id, destination)
        content = await self._client.download_video(video_id, token=token)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        logger.info("Saved video %s to %s (%d bytes)", video_id, target, len(content))
        return target


def _resolve_destination(video_id: str, destination: str | Path | None) -> Path:
    safe_id = _UNSAFE_FILENAME_CHARS.sub("_", str(video_id or "").strip()).strip("._")
    if not safe_id:
        raise validation_error("Video ID is required", data={"field": "video_id"})
    filename = DEFAULT_FILENAME_TEMPLATE.format(video_id=safe_id)
    if destination is None:
        return Path.cwd() / filename
    path = Path(destination)
    if path.is_dir():
        return path / filename
    return path


__all__ = ["LibraryService"]
