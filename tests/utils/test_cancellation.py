from __future__ import annotations

import asyncio
import time

import pytest

from manim_studio.errors import ApiError
from manim_studio.utils.cancellation import CancellationToken, check_cancelled


def test_signal_is_idempotent_and_monotonic() -> None:
    token = CancellationToken()
    calls: list[str] = []
    token.on_signaled(lambda: calls.append("fired"))

    assert token.is_signaled is False
    token.signal()
    token.signal()

    assert token.is_signaled is True
    assert calls == ["fired"]


def test_listener_registered_after_signal_runs_immediately() -> None:
    token = CancellationToken()
    token.signal()
    calls: list[int] = []

    token.on_signaled(lambda: calls.append(1))

    assert calls == [1]


def test_unsubscribed_listener_is_not_called() -> None:
    token = CancellationToken()
    calls: list[int] = []
    unsubscribe = token.on_signaled(lambda: calls.append(1))

    unsubscribe()
    unsubscribe()
    token.signal()

    assert calls == []


def test_failing_listener_does_not_block_others() -> None:
    token = CancellationToken()
    calls: list[str] = []

    def _boom() -> None:
        raise RuntimeError("listener failure")

    token.on_signaled(_boom)
    token.on_signaled(lambda: calls.append("second"))
    token.signal()

    assert calls == ["second"]


def test_raise_if_signaled_uses_cancelled_status() -> None:
    token = CancellationToken()
    token.raise_if_signaled()
    check_cancelled(None, "ignored")
    token.signal()

    with pytest.raises(ApiError) as excinfo:
        check_cancelled(token, "Status polling was cancelled")

    assert excinfo.value.status_code == 499
    assert excinfo.value.message == "Status polling was cancelled"


@pytest.mark.asyncio
async def test_wait_times_out_without_signal() -> None:
    token = CancellationToken()

    assert await token.wait(0.01) is False


@pytest.mark.asyncio
async def test_wait_returns_early_when_signaled() -> None:
    token = CancellationToken()
    asyncio.get_running_loop().call_later(0.02, token.signal)

    started = time.monotonic()
    signaled = await token.wait(5)

    assert signaled is True
    assert time.monotonic() - started < 1.0


def test_failing_late_listener_is_contained() -> None:
    token = CancellationToken()
    token.signal()

    def _boom() -> None:
        raise RuntimeError("late listener failure")

    unsubscribe = token.on_signaled(_boom)
    unsubscribe()

    assert token.is_signaled is True
