"""Backend health probe."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from manim_studio.config import DEFAULT_HEALTH_TIMEOUT_MS, ClientConfig
from manim_studio.core.types import HealthReport
from manim_studio.errors import ApiError
from manim_studio.integrations.manim_client import ManimHttpClient
from manim_studio.logging import get_logger

logger = get_logger(__name__)


class HealthService:
    """Execute a fast liveness check against ``GET /``."""

    def __init__(
        self,
        client: ManimHttpClient,
        *,
        timeout_ms: int = DEFAULT_HEALTH_TIMEOUT_MS,
    ) -> None:
        self._client = client
        self._timeout_ms = max(1, int(timeout_ms))

    @classmethod
    def from_config(cls, config: ClientConfig, client: ManimHttpClient | None = None) -> HealthService:
        return cls(
            client or ManimHttpClient.from_config(config),
            timeout_ms=config.health_timeout_ms,
        )

    async def check(self) -> HealthReport:
        try:
            payload = await self._client.get_api_status(timeout_ms=self._timeout_ms)
        except ApiError as exc:
            logger.warning("Health check failed: %s", exc.message)
            return HealthReport(healthy=False, error=exc.message)

        if not isinstance(payload, Mapping):
            return HealthReport(healthy=True)
        return HealthReport(
            healthy=True,
            status=_optional_str(payload.get("status")),
            version=_optional_str(payload.get("version")),
            ai_available=_optional_bool(payload.get("ai_available")),
        )


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _optional_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    return None


__all__ = ["HealthService"]
