"""Cooperative cancellation shared across one generation attempt."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from manim_studio.errors import cancelled_error
from manim_studio.logging import get_logger

logger = get_logger(__name__)

Listener = Callable[[], None]

__all__ = ["CancellationToken", "check_cancelled"]


class CancellationToken:
    """Monotonic signal observed by the transport and the status poller.

    A token starts unsignaled and can be signaled exactly once; further calls
    to :meth:`signal` are no-ops. Listeners run synchronously inside
    :meth:`signal`.
    """

    def __init__(self) -> None:
        self._signaled = False
        self._event = asyncio.Event()
        self._listeners: list[Listener] = []

    def __repr__(self) -> str:
        return f"CancellationToken(signaled={self._signaled})"

    @property
    def is_signaled(self) -> bool:
        return self._signaled

    def signal(self) -> None:
        if self._signaled:
            return
        self._signaled = True
        self._event.set()
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            _notify(listener)

    def on_signaled(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it.

        Listeners registered on an already signaled token run immediately.
        """

        if self._signaled:
            _notify(listener)
            return lambda: None
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    async def wait(self, timeout: float | None = None) -> bool:
        """Sleep until signaled or ``timeout`` seconds elapse.

        Returns ``True`` when the token was signaled.
        """

        if self._signaled:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def raise_if_signaled(self, message: str = "Request was cancelled") -> None:
        if self._signaled:
            raise cancelled_error(message)


def check_cancelled(token: CancellationToken | None, message: str) -> None:
    if token is not None:
        token.raise_if_signaled(message)


def _notify(listener: Listener) -> None:
    try:
        listener()
    except Exception:
        logger.exception("Cancellation listener failed")
