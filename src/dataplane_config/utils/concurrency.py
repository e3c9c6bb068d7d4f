"""Async primitives for concurrent source collection and the polling loop."""

from __future__ import annotations

import asyncio
import inspect
from contextlib import asynccontextmanager, suppress
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Iterable

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation token backed by ``asyncio.Event``."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None

    def cancel(self) -> None:
        self._event.set()

    def cancel_threadsafe(self) -> None:
        """Cancel from a thread that is not running the token's event loop."""
        loop = self._loop
        if loop is None or loop.is_closed():
            self._event.set()
            return
        loop.call_soon_threadsafe(self._event.set)

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        self._loop = asyncio.get_running_loop()
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise asyncio.CancelledError("operation cancelled")


class BoundedSemaphore:
    """Small wrapper over ``asyncio.Semaphore`` with usage diagnostics."""

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self._limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._in_use = 0
        self._peak = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def peak(self) -> int:
        return self._peak

    async def acquire(self) -> None:
        # Cancellation while waiting here does not acquire a permit.
        await self._semaphore.acquire()
        self._in_use += 1
        self._peak = max(self._peak, self._in_use)

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


async def gather_bounded(
    coroutines: Iterable[Awaitable[T]],
    semaphore: BoundedSemaphore,
    cancel_token: CancellationToken | None = None,
) -> list[T]:
    """Await every coroutine, at most ``semaphore.limit`` at a time.

    Results keep input order. The first exception cancels the remaining work
    and propagates.
    """

    token = cancel_token or CancellationToken()

    async def run_one(coroutine: Awaitable[T]) -> T:
        async with semaphore.permit():
            token.raise_if_cancelled()
            return await coroutine

    tasks = [asyncio.create_task(run_one(coroutine)) for coroutine in coroutines]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        with suppress(Exception):
            await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def run_with_timeout(
    coroutine: Awaitable[T],
    timeout_seconds: float,
    cancel_token: CancellationToken | None = None,
) -> T:
    """Run ``coroutine`` with timeout and cooperative cancellation support."""
    if timeout_seconds <= 0:
        _close_unscheduled_coroutine(coroutine)
        raise ValueError("timeout_seconds must be > 0")

    token = cancel_token or CancellationToken()
    if token.is_cancelled:
        _close_unscheduled_coroutine(coroutine)
        raise asyncio.CancelledError("operation cancelled")

    task: asyncio.Task[T] = asyncio.create_task(_await_value(coroutine))
    cancel_wait_task = asyncio.create_task(token.wait())

    try:
        done, _ = await asyncio.wait(
            {task, cancel_wait_task},
            timeout=timeout_seconds,
            return_when=asyncio.FIRST_COMPLETED,
        )

        if task in done:
            return await task

        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        if cancel_wait_task in done and token.is_cancelled:
            raise asyncio.CancelledError("operation cancelled")
        raise TimeoutError(f"operation timed out after {timeout_seconds} seconds")
    finally:
        cancel_wait_task.cancel()
        with suppress(asyncio.CancelledError):
            await cancel_wait_task


async def wait_for_wakeup(
    wakeup: asyncio.Event,
    timeout_seconds: float,
    cancel_token: CancellationToken,
) -> bool:
    """Sleep until ``wakeup`` is set, the timeout expires or the token is cancelled.

    Returns ``True`` when woken early by ``wakeup``; the event is cleared.
    """

    if cancel_token.is_cancelled:
        return False

    wakeup_task = asyncio.create_task(wakeup.wait())
    cancel_task = asyncio.create_task(cancel_token.wait())
    try:
        done, _ = await asyncio.wait(
            {wakeup_task, cancel_task},
            timeout=max(timeout_seconds, 0.0),
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        for task in (wakeup_task, cancel_task):
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    woken = wakeup_task in done and not cancel_token.is_cancelled
    if woken:
        wakeup.clear()
    return woken


async def _await_value(awaitable: Awaitable[T]) -> T:
    return await awaitable


def _close_unscheduled_coroutine(awaitable: Awaitable[object]) -> None:
    # Close raw coroutine objects that were never scheduled so CPython does not
    # emit "coroutine was never awaited" at GC time.
    if inspect.iscoroutine(awaitable):
        awaitable.close()


__all__ = [
    "BoundedSemaphore",
    "CancellationToken",
    "gather_bounded",
    "run_with_timeout",
    "wait_for_wakeup",
]
