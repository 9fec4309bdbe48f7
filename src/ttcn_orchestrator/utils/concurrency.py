"""Async concurrency primitives used by the generator, runner and aggregator."""

from __future__ import annotations

import asyncio
import inspect
from contextlib import asynccontextmanager, suppress
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator, Awaitable

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation token backed by ``asyncio.Event``."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class BoundedSemaphore:
    """Small wrapper over ``asyncio.Semaphore`` with usage diagnostics."""

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self._limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._in_use = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def available(self) -> int:
        return self._limit - self._in_use

    async def acquire(self) -> None:
        # Cancellation while waiting here does not acquire a permit.
        await self._semaphore.acquire()
        self._in_use += 1

    def release(self) -> None:
        if self._in_use <= 0:
            raise RuntimeError("release called more times than acquire")
        self._in_use -= 1
        self._semaphore.release()

    @asynccontextmanager
    async def permit(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()


async def await_or_cancel(
    awaitable: Awaitable[T],
    cancel_token: CancellationToken,
) -> tuple[bool, T | None]:
    """Await ``awaitable`` unless ``cancel_token`` fires first.

    Returns ``(True, value)`` when the awaitable finished and ``(False, None)``
    when cancellation won the race. A cancelled awaitable is cancelled and
    awaited before returning. Exceptions raised by the awaitable propagate.
    """

    if cancel_token.is_cancelled:
        _close_unscheduled_coroutine(awaitable)
        return False, None

    task: asyncio.Future[T] = asyncio.ensure_future(awaitable)
    cancel_wait_task = asyncio.create_task(cancel_token.wait())
    try:
        done, _ = await asyncio.wait(
            {task, cancel_wait_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
        if task in done:
            return True, task.result()

        task.cancel()
        with suppress(asyncio.CancelledError, StopAsyncIteration):
            await task
        return False, None
    except asyncio.CancelledError:
        task.cancel()
        with suppress(asyncio.CancelledError, StopAsyncIteration):
            await task
        raise
    finally:
        cancel_wait_task.cancel()
        with suppress(asyncio.CancelledError):
            await cancel_wait_task


async def iterate_until_cancelled(
    source: AsyncIterable[T],
    cancel_token: CancellationToken,
) -> AsyncIterator[T]:
    """Yield items from ``source`` until it is exhausted or cancellation fires."""

    iterator = aiter(source)
    while not cancel_token.is_cancelled:
        try:
            completed, item = await await_or_cancel(anext(iterator), cancel_token)
        except StopAsyncIteration:
            return
        if not completed:
            return
        yield item  # type: ignore[misc]


def _close_unscheduled_coroutine(awaitable: Awaitable[object]) -> None:
    # If cancellation/validation fails before scheduling, close raw coroutine objects
    # so CPython does not emit "coroutine was never awaited" at GC time.
    if inspect.iscoroutine(awaitable):
        awaitable.close()


__all__ = [
    "BoundedSemaphore",
    "CancellationToken",
    "await_or_cancel",
    "iterate_until_cancelled",
]
