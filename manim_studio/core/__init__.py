"""Manim Studio domain exports."""

from .types import (
    DeleteOutcome,
    GenerationRequest,
    GenerationResult,
    HealthReport,
    JobHandle,
    JobState,
    JobStatus,
    Quality,
)

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
