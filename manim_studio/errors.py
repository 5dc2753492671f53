"""Typed error model for the Manim Studio client."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

STATUS_BAD_REQUEST = 400
STATUS_NOT_FOUND = 404
STATUS_TIMEOUT = 408
STATUS_CANCELLED = 499
STATUS_INTERNAL_ERROR = 500
STATUS_BAD_GATEWAY = 502
STATUS_UNAVAILABLE = 503


class ErrorKind(str, Enum):
    """Coarse classification of an :class:`ApiError` status code."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    CLIENT = "client"
    SERVER = "server"


class ApiError(Exception):
    """Failure raised by every client operation.

    ``status_code`` follows HTTP semantics with two client-side additions:
    ``408`` when the transport deadline expired and ``499`` when the caller
    cancelled the operation.
    """

    __slots__ = ("message", "status_code", "data")

    def __init__(self, message: str, status_code: int, data: Any | None = None) -> None:
        if status_code is None:
            raise TypeError("ApiError requires a status code")
        super().__init__(message)
        self.message = message
        self.status_code = int(status_code)
        self.data = data

    def __repr__(self) -> str:
        return f"ApiError(status_code={self.status_code}, message={self.message!r})"

    @property
    def kind(self) -> ErrorKind:
        code = self.status_code
        if code == STATUS_CANCELLED:
            return ErrorKind.CANCELLED
        if code == STATUS_TIMEOUT:
            return ErrorKind.TIMEOUT
        if code == STATUS_NOT_FOUND:
            return ErrorKind.NOT_FOUND
        if code in {STATUS_BAD_REQUEST, 422}:
            return ErrorKind.VALIDATION
        if 400 <= code < 500:
            return ErrorKind.CLIENT
        return ErrorKind.SERVER

    @property
    def cancelled(self) -> bool:
        return self.status_code == STATUS_CANCELLED

    @property
    def timed_out(self) -> bool:
        return self.status_code == STATUS_TIMEOUT

    def wrap(self, prefix: str) -> ApiError:
        """Return a copy whose message is prefixed, keeping status and data."""

        return ApiError(f"{prefix}: {self.message}", self.status_code, self.data)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "message": self.message,
            "status_code": self.status_code,
            "kind": self.kind.value,
        }
        if self.data is not None:
            payload["data"] = self.data
        return payload


def validation_error(message: str, *, data: Mapping[str, Any] | None = None) -> ApiError:
    return ApiError(message, STATUS_BAD_REQUEST, data)


def cancelled_error(message: str = "Request was cancelled") -> ApiError:
    return ApiError(message, STATUS_CANCELLED)


def timeout_error(message: str = "Request timeout", *, timeout_ms: int | None = None) -> ApiError:
    data = {"timeout_ms": timeout_ms} if timeout_ms is not None else None
    return ApiError(message, STATUS_TIMEOUT, data)


_USER_MESSAGES: Mapping[ErrorKind, str] = {
    ErrorKind.CANCELLED: "Video generation was cancelled.",
    ErrorKind.TIMEOUT: "Generation timed out. Please try again with a simpler prompt.",
    ErrorKind.NOT_FOUND: "The requested video could not be found.",
}


def describe_error(error: ApiError) -> str:
    """Return the text shown to a user for ``error``."""

    kind = error.kind
    if kind in _USER_MESSAGES:
        return _USER_MESSAGES[kind]
    if kind is ErrorKind.SERVER:
        return f"The rendering service failed: {error.message}"
    return error.message or "An unexpected error occurred"


__all__ = [
    "ApiError",
    "ErrorKind",
    "STATUS_BAD_GATEWAY",
    "STATUS_BAD_REQUEST",
    "STATUS_CANCELLED",
    "STATUS_INTERNAL_ERROR",
    "STATUS_NOT_FOUND",
    "STATUS_TIMEOUT",
    "STATUS_UNAVAILABLE",
    "cancelled_error",
    "describe_error",
    "timeout_error",
    "validation_error",
]
