"""Utility helpers for Manim Studio."""

from __future__ import annotations

from .cancellation import CancellationToken

__all__ = ["CancellationToken"]
