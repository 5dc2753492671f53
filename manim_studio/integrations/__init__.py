"""Clients for the remote rendering backend."""

from .manim_client import ManimHttpClient, get_default_client

__all__ = ["ManimHttpClient", "get_default_client"]
