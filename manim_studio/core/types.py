"""Request, status and result DTOs exchanged with the rendering backend."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from manim_studio.config import DEFAULT_MAX_PROMPT_LENGTH
from manim_studio.errors import validation_error


class Quality(str, Enum):
    """Render quality presets accepted by ``/generate-video``."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class JobState(str, Enum):
    """Status tags reported by ``/status/{id}``."""

    GENERATING = "generating"
    READY = "ready"
    NOT_FOUND = "not_found"
    ERROR = "error"


_QUALITY_VALUES = frozenset(item.value for item in Quality)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _freeze_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze_value(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze_value(item) for item in value)
    return value


def _freeze(payload: Mapping[str, Any] | None) -> Mapping[str, Any]:
    """Return a read-only copy; nested mappings and lists are frozen too."""

    return _freeze_value(payload or {})


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    return value


@dataclass(slots=True, frozen=True)
class GenerationRequest:
    """A single prompt submission."""

    prompt: str
    quality: str = Quality.MEDIUM.value
    use_ai: bool = True

    def validate(self, *, max_prompt_length: int = DEFAULT_MAX_PROMPT_LENGTH) -> None:
        """Raise ``ApiError(400)`` naming the first invalid field."""

        prompt = self.prompt if isinstance(self.prompt, str) else ""
        if not prompt.strip():
            raise validation_error("Prompt is required", data={"field": "prompt"})
        if len(prompt.strip()) > max_prompt_length:
            raise validation_error(
                f"Prompt exceeds the maximum length of {max_prompt_length} characters",
                data={"field": "prompt", "max_length": max_prompt_length},
            )
        quality = self.quality.value if isinstance(self.quality, Quality) else self.quality
        if not isinstance(quality, str) or quality not in _QUALITY_VALUES:
            raise validation_error(
                f"Invalid quality option: {quality}",
                data={"field": "quality", "allowed": sorted(_QUALITY_VALUES)},
            )

    def to_payload(self) -> dict[str, Any]:
        quality = self.quality.value if isinstance(self.quality, Quality) else self.quality
        return {
            "prompt": self.prompt.strip(),
            "quality": quality,
            "use_ai": bool(self.use_ai),
        }


@dataclass(slots=True, frozen=True)
class JobHandle:
    """Identifies a submitted job together with the raw submission response."""

    job_id: str
    response: Mapping[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        object.__setattr__(self, "response", _freeze(self.response))


@dataclass(slots=True, frozen=True)
class JobStatus:
    """Immutable snapshot of a job as reported by one status query."""

    job_id: str
    status: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    observed_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", _freeze(self.payload))

    @classmethod
    def from_payload(cls, job_id: str, payload: Any) -> JobStatus:
        if not isinstance(payload, Mapping):
            return cls(job_id=job_id, status="", payload={"raw": payload})
        raw = payload.get("status")
        status = str(raw).strip().lower() if raw is not None else ""
        return cls(job_id=job_id, status=status, payload=payload)

    @property
    def state(self) -> JobState | None:
        """Return the known :class:`JobState`, or ``None`` for unknown tags."""

        try:
            return JobState(self.status)
        except ValueError:
            return None

    @property
    def size(self) -> int | None:
        value = self.payload.get("size")
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.isdigit():
            return int(value)
        return None

    def to_dict(self) -> dict[str, Any]:
        return {**_thaw(self.payload), "status": self.status, "job_id": self.job_id}


@dataclass(slots=True, frozen=True)
class GenerationResult:
    """Outcome of a completed generation: submission fields plus final status."""

    handle: JobHandle
    final_status: JobStatus

    @property
    def job_id(self) -> str:
        return self.handle.job_id

    @property
    def submission(self) -> Mapping[str, Any]:
        return self.handle.response

    def to_dict(self) -> dict[str, Any]:
        return {**_thaw(self.handle.response), "final_status": self.final_status.to_dict()}


@dataclass(slots=True, frozen=True)
class DeleteOutcome:
    """Per-item result of a batch delete."""

    id: str
    success: bool
    error_message: str | None = None


@dataclass(slots=True, frozen=True)
class HealthReport:
    """Summary of a backend health probe."""

    healthy: bool
    status: str | None = None
    version: str | None = None
    ai_available: bool | None = None
    error: str | None = None


__all__ = [
    "DeleteOutcome",
    "GenerationRequest",
    "GenerationResult",
    "HealthReport",
    "JobHandle",
    "JobState",
    "JobStatus",
    "Quality",
]
