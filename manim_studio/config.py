"""Client configuration resolved from the process environment."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
import os
from typing import Any
from urllib.parse import urlparse

from manim_studio.logging import get_logger

logger = get_logger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT_MS = 300_000
DEFAULT_POLL_INTERVAL_MS = 2_000
DEFAULT_MAX_PROMPT_LENGTH = 2_000
DEFAULT_QUALITY = "medium"
DEFAULT_DELETE_CONCURRENCY = 4
DEFAULT_HEALTH_TIMEOUT_MS = 5_000
DEFAULT_LOG_LEVEL = "INFO"

QUALITY_CHOICES: tuple[str, ...] = ("low", "medium", "high")


@dataclass(slots=True, frozen=True)
class ClientConfig:
    """Settings for :class:`~manim_studio.integrations.manim_client.ManimHttpClient`."""

    base_url: str = DEFAULT_BASE_URL
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    max_prompt_length: int = DEFAULT_MAX_PROMPT_LENGTH
    default_quality: str = DEFAULT_QUALITY
    delete_concurrency: int = DEFAULT_DELETE_CONCURRENCY
    health_timeout_ms: int = DEFAULT_HEALTH_TIMEOUT_MS
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000

    def with_overrides(self, **changes: Any) -> ClientConfig:
        """Return a copy with every non-``None`` override applied."""

        applied = {key: value for key, value in changes.items() if value is not None}
        if not applied:
            return self
        return replace(self, **applied)


def get_env(name: str, default: str | None = None, env: Mapping[str, str] | None = None) -> str | None:
    source = os.environ if env is None else env
    value = source.get(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped or default


def _parse_positive_int(env: Mapping[str, str] | None, name: str, default: int) -> int:
    raw = get_env(name, env=env)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r; using %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Ignoring non-positive %s=%r; using %s", name, raw, default)
        return default
    return value


def _parse_base_url(env: Mapping[str, str] | None) -> str:
    raw = get_env("MANIM_API_URL", env=env)
    if raw is None:
        return DEFAULT_BASE_URL
    parsed = urlparse(raw)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        logger.warning("Ignoring invalid MANIM_API_URL=%r; using %s", raw, DEFAULT_BASE_URL)
        return DEFAULT_BASE_URL
    return raw.rstrip("/")


def _parse_quality(env: Mapping[str, str] | None) -> str:
    raw = get_env("MANIM_DEFAULT_QUALITY", env=env)
    if raw is None:
        return DEFAULT_QUALITY
    quality = raw.lower()
    if quality not in QUALITY_CHOICES:
        logger.warning(
            "Ignoring invalid MANIM_DEFAULT_QUALITY=%r; using %s", raw, DEFAULT_QUALITY
        )
        return DEFAULT_QUALITY
    return quality


def load_client_config(env: Mapping[str, str] | None = None) -> ClientConfig:
    """Build a :class:`ClientConfig` from ``env`` (defaults to ``os.environ``)."""

    return ClientConfig(
        base_url=_parse_base_url(env),
        timeout_ms=_parse_positive_int(env, "MANIM_API_TIMEOUT_MS", DEFAULT_TIMEOUT_MS),
        poll_interval_ms=_parse_positive_int(
            env, "MANIM_POLL_INTERVAL_MS", DEFAULT_POLL_INTERVAL_MS
        ),
        max_prompt_length=_parse_positive_int(
            env, "MANIM_MAX_PROMPT_LENGTH", DEFAULT_MAX_PROMPT_LENGTH
        ),
        default_quality=_parse_quality(env),
        delete_concurrency=_parse_positive_int(
            env, "MANIM_DELETE_CONCURRENCY", DEFAULT_DELETE_CONCURRENCY
        ),
        health_timeout_ms=_parse_positive_int(
            env, "MANIM_HEALTH_TIMEOUT_MS", DEFAULT_HEALTH_TIMEOUT_MS
        ),
        log_level=(get_env("LOG_LEVEL", env=env) or DEFAULT_LOG_LEVEL).upper(),
    )


__all__ = [
    "ClientConfig",
    "DEFAULT_BASE_URL",
    "DEFAULT_POLL_INTERVAL_MS",
    "DEFAULT_TIMEOUT_MS",
    "QUALITY_CHOICES",
    "get_env",
    "load_client_config",
]
