"""
dataplane-config — structured agent logging.

File: src/dataplane_config/observability/logging.py
Last updated: 2026-10-19

Purpose
- Write one JSON object per line for every log event emitted by the engine,
  whether it comes from stdlib ``logging`` or from ``structlog``.

What should be included in this file
- ``LoggingConfig`` and ``setup_structured_logging`` returning a
  ``StructuredLoggingHandle`` (flush, shutdown, live level changes).
- Correlation fields (``agent_id``, ``pass_id``, ``generation``,
  ``source_id``) held in a contextvar and stamped on every record.
- Redaction of sensitive keys and credential-looking substrings.
- Mapping of agent severity names (``Debug`` .. ``Fatal``, ``None``) to
  stdlib levels, plus a bus listener that follows a ``LogSeverity*`` field.

Functional requirements
- Logging never blocks the caller; records beyond the queue bound are dropped
  and counted.
- Correlation captured on the emitting thread, not the writer thread.

Non-functional requirements
- Output keys are sorted so lines are byte-stable for identical events.
"""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import math
import queue
import re
import sys
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from types import MappingProxyType
from typing import Any, Final

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_REDACTED: Final[str] = "***REDACTED***"

_CORRELATION_KEYS: Final[tuple[str, ...]] = ("agent_id", "pass_id", "generation", "source_id")

# Matched against lowercased keys, so CamelCase parameter names such as
# ``IPSecPSKFile`` and ``PrometheusReporterKeyFile`` are caught too.
_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "psk",
    "keyfile",
    "key_file",
    "private_key",
    "api_key",
    "authorization",
    "credential",
)

_SENSITIVE_ASSIGNMENT: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(psk|token|password|secret|passphrase|authorization)\b\s*([:=])\s*([^\s,;]+)"
)
_BEARER_TOKEN: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")

# Agent severities; ``None`` silences the sink entirely.
_SEVERITY_LEVELS: Final[Mapping[str, int]] = MappingProxyType(
    {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
        "fatal": logging.CRITICAL,
        "none": logging.CRITICAL + 10,
    }
)

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "correlation"}

_CORRELATION: contextvars.ContextVar[tuple[tuple[str, str], ...]] = contextvars.ContextVar(
    "dataplane_config_correlation", default=()
)

_ACTIVE_LOCK = threading.Lock()
_ACTIVE: StructuredLoggingHandle | None = None
_ATEXIT_REGISTERED = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    agent_id: str
    log_dir: Path | str = Path("/var/log/calico")
    logger_name: str = "dataplane_config"
    level: int | str = "Info"
    queue_size: int = 4096
    log_filename: str = "dataplane-config.jsonl"
    log_to_stdout: bool = False
    configure_structlog: bool = True


class _JsonLineFormatter(logging.Formatter):
    def __init__(self, agent_id: str) -> None:
        super().__init__()
        self._agent_id = agent_id

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, JSONValue] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": _redact_text(record.getMessage()),
        }
        entry.update(_correlation_of(record, self._agent_id))

        fields = {
            key: _redact(key, _to_json(value))
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRIBUTES and key not in _CORRELATION_KEYS and not key.startswith("_")
        }
        if fields:
            entry["fields"] = fields
        return json.dumps(entry, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    """Enqueue without blocking; count what does not fit."""

    def __init__(self, log_queue: queue.Queue[Any]) -> None:
        super().__init__(log_queue)
        self._dropped_lock = threading.Lock()
        self._dropped = 0

    @property
    def dropped(self) -> int:
        with self._dropped_lock:
            return self._dropped

    def prepare(self, record: logging.LogRecord) -> Any:
        context = get_correlation_context()
        if context:
            record.correlation = context
        return super().prepare(record)

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._dropped_lock:
                self._dropped += 1


class StructuredLoggingHandle:
    """Live logging setup: the logger, its sinks and the background writer."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        agent_id: str,
        log_path: Path,
        log_queue: queue.Queue[Any],
        queue_handler: _DroppingQueueHandler,
        sinks: tuple[logging.Handler, ...],
        listener: logging.handlers.QueueListener,
    ) -> None:
        self.logger = logger
        self.agent_id = agent_id
        self.log_path = log_path
        self._queue = log_queue
        self._queue_handler = queue_handler
        self._sinks = sinks
        self._listener = listener
        self._lock = threading.Lock()
        self._closed = False

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    @property
    def level(self) -> int:
        return self.logger.level

    def set_level(self, level: int | str) -> None:
        """Change the threshold of the logger and every sink at runtime."""

        resolved = severity_to_level(level)
        self.logger.setLevel(resolved)
        self._queue_handler.setLevel(resolved)
        for sink in self._sinks:
            sink.setLevel(resolved)

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while self._queue.unfinished_tasks > 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        for sink in self._sinks:
            sink.flush()

    def shutdown(self) -> None:
        with self._lock:
            if self._closed:
                return
            # Stopping the listener drains everything queued before it.
            self._listener.stop()
            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()
            for sink in self._sinks:
                sink.flush()
                sink.close()
            self._closed = True


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Install queue-backed JSON-lines logging and return its handle.

    Any previously installed handle is shut down first. With
    ``config.configure_structlog`` set, ``structlog.get_logger(name)`` events
    reach the same sink, their key-value pairs under ``fields``.
    """

    agent_id = _non_empty("agent_id", config.agent_id)
    logger_name = _non_empty("logger_name", config.logger_name)
    log_filename = _non_empty("log_filename", config.log_filename)
    if Path(log_filename).name != log_filename:
        raise ValueError("log_filename must not include path separators")
    if not isinstance(config.queue_size, int) or config.queue_size <= 0:
        raise ValueError("queue_size must be a positive integer")
    level = severity_to_level(config.level)

    shutdown_logging()

    log_dir = Path(config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / log_filename

    formatter = _JsonLineFormatter(agent_id)
    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stdout:
        sinks.append(logging.StreamHandler(sys.stdout))
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(logger_name)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    logger.setLevel(level)
    logger.propagate = False

    log_queue: queue.Queue[Any] = queue.Queue(maxsize=config.queue_size)
    queue_handler = _DroppingQueueHandler(log_queue)
    queue_handler.setLevel(level)
    listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)
    listener.start()
    logger.addHandler(queue_handler)

    if config.configure_structlog:
        configure_structlog()

    handle = StructuredLoggingHandle(
        logger=logger,
        agent_id=agent_id,
        log_path=log_path,
        log_queue=log_queue,
        queue_handler=queue_handler,
        sinks=tuple(sinks),
        listener=listener,
    )
    global _ACTIVE, _ATEXIT_REGISTERED
    with _ACTIVE_LOCK:
        _ACTIVE = handle
        if not _ATEXIT_REGISTERED:
            atexit.register(shutdown_logging)
            _ATEXIT_REGISTERED = True
    return handle


def configure_structlog() -> None:
    """Route structlog events through stdlib logging as message plus ``extra``."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    """Shut down ``handle``, or the active handle when none is given."""

    global _ACTIVE
    with _ACTIVE_LOCK:
        target = handle if handle is not None else _ACTIVE
        if target is _ACTIVE:
            _ACTIVE = None
    if target is not None:
        target.shutdown()


def severity_to_level(value: int | str) -> int:
    """Translate an agent severity (``Info``, ``Fatal``...) or stdlib level name."""

    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if not isinstance(value, str):
        raise ValueError(f"level must be int or str, got {type(value).__name__}")
    name = value.strip()
    mapped = _SEVERITY_LEVELS.get(name.lower())
    if mapped is not None:
        return mapped
    parsed = logging.getLevelName(name.upper())
    if isinstance(parsed, int):
        return parsed
    raise ValueError(f"unsupported log severity {value!r}")


def severity_listener(
    handle: StructuredLoggingHandle,
    field: str = "LogSeverityFile",
) -> Callable[[Any], None]:
    """Bus subscriber applying ``field`` of each published snapshot to ``handle``.

    ``LogSeverity*`` parameters apply live, so the level follows the
    configuration without a restart.
    """

    def apply(update: Any) -> None:
        if any(change.field == field for change in update.changes):
            handle.set_level(update.snapshot.value(field))

    apply.__name__ = f"severity_listener[{field}]"
    return apply


def get_correlation_context() -> dict[str, str]:
    return dict(_CORRELATION.get())


@contextmanager
def correlation_scope(**fields: str | int | None) -> Iterator[None]:
    """Bind correlation fields for the duration of the block; ``None`` unbinds."""

    state = get_correlation_context()
    for key, value in fields.items():
        if value is None:
            state.pop(key, None)
        else:
            state[key] = _non_empty(f"correlation field {key}", str(value))
    token = _CORRELATION.set(tuple(state.items()))
    try:
        yield
    finally:
        _CORRELATION.reset(token)


def is_sensitive_key(key: str) -> bool:
    """Return ``True`` when values stored under ``key`` must not be logged."""

    lowered = key.lower()
    return any(term in lowered for term in _SENSITIVE_KEY_TERMS)


def _correlation_of(record: logging.LogRecord, agent_id: str) -> dict[str, str]:
    merged = {"agent_id": agent_id}
    captured = getattr(record, "correlation", None)
    if isinstance(captured, Mapping):
        merged.update({str(key): str(value) for key, value in captured.items()})
    for key in _CORRELATION_KEYS:
        value = getattr(record, key, None)
        if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value).strip():
            merged[key] = str(value).strip()
    return merged


def _to_json(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_to_json(item) for item in value), key=str)
    return str(value)


def _redact(key: str | None, value: JSONValue) -> JSONValue:
    if key is not None and is_sensitive_key(key):
        return _REDACTED
    if isinstance(value, str):
        return _redact_text(value)
    if isinstance(value, list):
        return [_redact(None, item) for item in value]
    if isinstance(value, dict):
        return {item_key: _redact(item_key, item) for item_key, item in value.items()}
    return value


def _redact_text(text: str) -> str:
    text = _SENSITIVE_ASSIGNMENT.sub(lambda match: f"{match.group(1)}{match.group(2)}{_REDACTED}", text)
    return _BEARER_TOKEN.sub(f"Bearer {_REDACTED}", text)


def _non_empty(label: str, value: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{label} must be a non-empty string")
    return value.strip()


__all__ = [
    "JSONValue",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "get_correlation_context",
    "is_sensitive_key",
    "setup_structured_logging",
    "severity_listener",
    "severity_to_level",
    "shutdown_logging",
]
