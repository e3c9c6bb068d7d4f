"""
In-process update bus.

Delivers each published snapshot update to every subscriber, plain function
or coroutine function, in subscription order. A subscriber that raises is
recorded as a ``DispatchError`` and skipped; the publisher and the remaining
subscribers are unaffected. The most recent events are kept for ``replay`` so
a late subscriber can catch up on the current generation.

It integrates with:
- `ConfigResolver`, which publishes one `ConfigUpdate` per committed pass
- `severity_listener` and any other consumer applying live parameters
"""

from __future__ import annotations

import asyncio
import inspect
import threading
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Final, Generic, Protocol, TypeVar

_ERROR_HISTORY: Final[int] = 1024


class BusEvent(Protocol):
    @property
    def event_id(self) -> str: ...


EventT = TypeVar("EventT", bound=BusEvent)
_T = TypeVar("_T")
Subscriber = Callable[[EventT], object]


@dataclass(frozen=True, slots=True)
class DispatchError:
    """Subscriber failure captured without interrupting the publisher."""

    stage: str
    event_id: str
    target: str
    error_type: str
    message: str

    @classmethod
    def from_exception(cls, event: BusEvent, target: str, exc: BaseException) -> DispatchError:
        return cls(
            stage="subscriber",
            event_id=event.event_id,
            target=target,
            error_type=type(exc).__name__,
            message=str(exc),
        )


class EventBus(Generic[EventT]):
    """Fan-out of events to sync and async subscribers with a bounded history."""

    def __init__(self, *, buffer_size: int = 64) -> None:
        if not isinstance(buffer_size, int) or isinstance(buffer_size, bool):
            raise ValueError(f"buffer_size must be an integer, got {type(buffer_size).__name__}")
        if buffer_size <= 0:
            raise ValueError("buffer_size must be > 0")

        self._lock = threading.RLock()
        self._history: deque[EventT] = deque(maxlen=buffer_size)
        self._errors: deque[DispatchError] = deque(maxlen=_ERROR_HISTORY)
        self._subscribers: dict[int, Subscriber[EventT]] = {}
        self._next_token = 1
        self._background: set[asyncio.Task[None]] = set()

    def subscribe(self, callback: Subscriber[EventT]) -> int:
        """Register ``callback`` and return the token used to unsubscribe it."""

        if not callable(callback):
            raise ValueError("callback must be callable")
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = callback
        return token

    def unsubscribe(self, token: int) -> bool:
        with self._lock:
            return self._subscribers.pop(token, None) is not None

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: EventT) -> tuple[DispatchError, ...]:
        """Deliver ``event`` from synchronous code.

        Coroutine results are scheduled on the running loop when called from
        one (``drain_async`` waits for them) and run to completion otherwise.
        """

        try:
            loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        errors: list[DispatchError] = []
        for name, callback in self._begin(event):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    if loop is None:
                        asyncio.run(_awaited(result))
                    else:
                        self._track(loop.create_task(_awaited(result)), event, name)
            except Exception as exc:  # noqa: BLE001
                errors.append(DispatchError.from_exception(event, name, exc))
        return self._finish(errors)

    async def publish_async(self, event: EventT) -> tuple[DispatchError, ...]:
        """Deliver ``event`` and await each coroutine subscriber in turn."""

        errors: list[DispatchError] = []
        for name, callback in self._begin(event):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: BLE001
                errors.append(DispatchError.from_exception(event, name, exc))
        return self._finish(errors)

    async def drain_async(self) -> tuple[DispatchError, ...]:
        """Wait for subscriber tasks scheduled by ``publish``; return all recorded errors."""

        with self._lock:
            pending = tuple(self._background)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return self.dispatch_errors()

    def replay(self, *, limit: int | None = None) -> tuple[EventT, ...]:
        """Buffered events in publish order, newest last."""

        with self._lock:
            events = tuple(self._history)
        return _tail(events, limit)

    def dispatch_errors(self, *, limit: int | None = None) -> tuple[DispatchError, ...]:
        with self._lock:
            errors = tuple(self._errors)
        return _tail(errors, limit)

    def _begin(self, event: EventT) -> tuple[tuple[str, Subscriber[EventT]], ...]:
        with self._lock:
            self._history.append(event)
            return tuple((_callback_name(callback), callback) for callback in self._subscribers.values())

    def _finish(self, errors: list[DispatchError]) -> tuple[DispatchError, ...]:
        if errors:
            with self._lock:
                self._errors.extend(errors)
        return tuple(errors)

    def _track(self, task: asyncio.Task[None], event: EventT, name: str) -> None:
        with self._lock:
            self._background.add(task)

        def done(finished: asyncio.Task[None]) -> None:
            with self._lock:
                self._background.discard(finished)
                if finished.cancelled():
                    return
                exc = finished.exception()
                if exc is not None:
                    self._errors.append(DispatchError.from_exception(event, name, exc))

        task.add_done_callback(done)


async def _awaited(awaitable: Awaitable[object]) -> None:
    await awaitable


def _callback_name(callback: object) -> str:
    name = getattr(callback, "__name__", None)
    if isinstance(name, str) and name:
        return name
    return type(callback).__name__


def _tail(items: tuple[_T, ...], limit: int | None) -> tuple[_T, ...]:
    if limit is None:
        return items
    if not isinstance(limit, int):
        raise ValueError(f"limit must be an integer, got {type(limit).__name__}")
    if limit <= 0:
        return ()
    return items[-limit:]


__all__ = [
    "BusEvent",
    "DispatchError",
    "EventBus",
    "Subscriber",
]
