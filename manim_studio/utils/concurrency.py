"""Concurrency primitives for batch operations against the backend."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

__all__ = ["Settled", "bounded", "settle_all"]

T = TypeVar("T")
R = TypeVar("R")


@dataclass(slots=True, frozen=True)
class Settled(Generic[T, R]):
    """Outcome of one item: either ``value`` or ``error`` is populated."""

    item: T
    value: R | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@asynccontextmanager
async def bounded(semaphore: asyncio.Semaphore | None):
    """Hold ``semaphore`` for the duration of the block when one is given."""

    if semaphore is None:
        yield
        return
    async with semaphore:
        yield


async def settle_all(
    items: Sequence[T],
    operation: Callable[[T], Awaitable[R]],
    *,
    limit: int | None = None,
) -> list[Settled[T, R]]:
    """Run ``operation`` for every item concurrently and collect each outcome.

    A failing item never cancels the others. Results follow the input order.
    """

    if not items:
        return []
    semaphore = asyncio.Semaphore(max(1, int(limit))) if limit else None

    async def _run(item: T) -> R:
        async with bounded(semaphore):
            return await operation(item)

    item_list = list(items)
    tasks = [asyncio.create_task(_run(item)) for item in item_list]
    gathered: list[Any] = await asyncio.gather(*tasks, return_exceptions=True)

    results: list[Settled[T, R]] = []
    for item, outcome in zip(item_list, gathered):
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome
        if isinstance(outcome, Exception):
            results.append(Settled(item=item, error=outcome))
        else:
            results.append(Settled(item=item, value=outcome))
    return results
