"""
dataplane-config — config file change watcher.

File: src/dataplane_config/sources/watch.py
Last updated: 2026-10-19

Purpose
- Turn filesystem notifications for the agent's config files into early
  resolution requests.

What should be included in this file
- ``ConfigFileWatcher`` scheduling a ``watchdog`` observer on the parent
  directory of every watched file.
- An event handler that only reacts to create, modify, move and delete events
  touching a watched file.

Functional requirements
- ``on_change`` is invoked from the observer thread and must be thread-safe
  (``ConfigResolver.request_resolution`` is).
- Directories that do not exist yet are skipped; mtime polling covers them.

Non-functional requirements
- ``stop`` joins the observer thread and is idempotent.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, Final

import structlog
from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

_RELEVANT_EVENTS: Final[frozenset[str]] = frozenset(
    {EVENT_TYPE_CREATED, EVENT_TYPE_DELETED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED}
)

ObserverFactory = Callable[[], BaseObserver]


def _path_forms(path: str | bytes | Path) -> frozenset[Path]:
    candidate = Path(os.fsdecode(path)).expanduser()
    return frozenset({candidate.absolute(), candidate.resolve()})


class _ConfigFileEventHandler(FileSystemEventHandler):
    def __init__(self, paths: frozenset[Path], on_change: Callable[[], None]) -> None:
        super().__init__()
        self._paths = paths
        self._on_change = on_change

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _RELEVANT_EVENTS:
            return
        touched = [event.src_path]
        destination = getattr(event, "dest_path", "")
        if destination:
            touched.append(destination)
        if any(_path_forms(path) & self._paths for path in touched):
            self._on_change()


class ConfigFileWatcher:
    """Calls ``on_change`` whenever one of ``paths`` is written, replaced or removed."""

    def __init__(
        self,
        paths: Iterable[str | Path],
        on_change: Callable[[], None],
        *,
        observer_factory: ObserverFactory | None = None,
        logger: Any | None = None,
    ) -> None:
        self._files = tuple(Path(path).expanduser().absolute() for path in paths)
        watched: set[Path] = set()
        for path in self._files:
            watched |= _path_forms(path)
        self._handler = _ConfigFileEventHandler(frozenset(watched), on_change)
        self._observer_factory: ObserverFactory = observer_factory if observer_factory is not None else Observer
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._lock = threading.Lock()
        self._observer: BaseObserver | None = None

    @property
    def paths(self) -> tuple[Path, ...]:
        return self._files

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._observer is not None

    @property
    def handler(self) -> FileSystemEventHandler:
        return self._handler

    def start(self) -> None:
        """Schedule every existing parent directory and start observing.

        Raises ``OSError`` when the platform notification facility is
        unavailable; callers fall back to mtime polling.
        """

        with self._lock:
            if self._observer is not None:
                return
            observer = self._observer_factory()
            directories = sorted({path.parent for path in self._files})
            scheduled: list[str] = []
            for directory in directories:
                if not directory.is_dir():
                    self._logger.debug("config.watch.skipped", directory=str(directory))
                    continue
                observer.schedule(self._handler, str(directory), recursive=False)
                scheduled.append(str(directory))
            observer.daemon = True
            observer.start()
            self._observer = observer
        self._logger.info("config.watch.started", directories=scheduled)

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        observer.join(timeout)
        self._logger.info("config.watch.stopped")

    def __enter__(self) -> ConfigFileWatcher:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


__all__ = ["ConfigFileWatcher", "ObserverFactory"]
