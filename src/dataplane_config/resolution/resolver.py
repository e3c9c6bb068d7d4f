"""
Configuration resolution engine.

Drives one resolution pass end to end:
- collect raw overrides from every source (sequentially for ``resolve``,
  concurrently with a per-source timeout for ``resolve_async``)
- merge by source rank, coerce, validate and fall back to defaults per field
- build the next immutable snapshot and publish it with its change records

Passes are numbered by a monotonic ticket taken when the pass is triggered.
Building and committing happen one pass at a time; a pass whose ticket is
older than the last committed one is discarded, so a slow pass can never
overwrite a newer snapshot. Committed updates are delivered in commit order by
one publisher at a time, whichever path committed them, so subscribers never
see an older generation after a newer one.

It integrates with:
- `ParameterRegistry` for descriptors and alias lookup
- `EventBus` for subscriber notification
- `structlog` for machine-parseable decision logs
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections import deque
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import structlog

from dataplane_config.constants import (
    DEFAULT_MAX_CONCURRENT_SOURCES,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_SOURCE_TIMEOUT_SECONDS,
)
from dataplane_config.observability.events import DispatchError, EventBus, Subscriber
from dataplane_config.observability.logging import correlation_scope
from dataplane_config.registry.registry import ParameterRegistry, default_registry
from dataplane_config.resolution.coercion import CoercionError, coerce
from dataplane_config.resolution.diagnostics import (
    DiagnosticCollector,
    DiagnosticStage,
    ResolutionReport,
    log_report,
)
from dataplane_config.resolution.merge import MergedRawMap, check_sources, merge
from dataplane_config.resolution.snapshot import (
    ChangeRecord,
    ConfigSnapshot,
    InitialChangePolicy,
    Outcome,
    ResolvedValue,
    SnapshotBuilder,
    initial_snapshot,
)
from dataplane_config.resolution.validation import validate
from dataplane_config.sources.base import RawSource, SourceError, SourceInfo, source_info
from dataplane_config.sources.file import ConfigFileSource
from dataplane_config.sources.watch import ConfigFileWatcher, ObserverFactory
from dataplane_config.utils.concurrency import (
    BoundedSemaphore,
    CancellationToken,
    gather_bounded,
    run_with_timeout,
    wait_for_wakeup,
)

_Collected = tuple[SourceInfo, Mapping[str, str]]


@dataclass(frozen=True, slots=True)
class ResolverSettings:
    """Tunables of the engine itself (not of the agent)."""

    initial_change_policy: InitialChangePolicy = InitialChangePolicy.DIVERGENCE_FROM_DEFAULT
    source_timeout_seconds: float = DEFAULT_SOURCE_TIMEOUT_SECONDS
    max_concurrent_sources: int = DEFAULT_MAX_CONCURRENT_SOURCES
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    file_check_interval_seconds: float = 1.0
    watch_config_files: bool = True

    def __post_init__(self) -> None:
        if self.source_timeout_seconds <= 0:
            raise ValueError("source_timeout_seconds must be > 0")
        if self.max_concurrent_sources <= 0:
            raise ValueError("max_concurrent_sources must be > 0")
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be > 0")
        if self.file_check_interval_seconds <= 0:
            raise ValueError("file_check_interval_seconds must be > 0")


@dataclass(frozen=True, slots=True)
class ConfigUpdate:
    """Delivered to subscribers after every committed pass."""

    snapshot: ConfigSnapshot
    changes: tuple[ChangeRecord, ...]
    report: ResolutionReport

    @property
    def event_id(self) -> str:
        return f"config-generation-{self.snapshot.generation}"

    @property
    def restart_required(self) -> bool:
        return any(change.requires_restart for change in self.changes)


@dataclass(frozen=True, slots=True)
class PassResult:
    pass_id: int
    committed: bool
    snapshot: ConfigSnapshot
    changes: tuple[ChangeRecord, ...]
    report: ResolutionReport
    dispatch_errors: tuple[DispatchError, ...] = field(default=())


class ConfigResolver:
    """Owns the current snapshot and runs resolution passes over ``sources``."""

    def __init__(
        self,
        sources: Sequence[RawSource],
        *,
        registry: ParameterRegistry | None = None,
        settings: ResolverSettings | None = None,
        bus: EventBus[ConfigUpdate] | None = None,
        logger: Any | None = None,
        observer_factory: ObserverFactory | None = None,
    ) -> None:
        self._sources = tuple(sources)
        check_sources([source_info(source) for source in self._sources])

        self._registry = registry if registry is not None else default_registry()
        self._settings = settings if settings is not None else ResolverSettings()
        self._bus: EventBus[ConfigUpdate] = bus if bus is not None else EventBus()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._observer_factory = observer_factory
        self._builder = SnapshotBuilder(
            self._registry,
            initial_change_policy=self._settings.initial_change_policy,
        )

        self._ticket_lock = threading.Lock()
        self._next_ticket = 0
        self._pass_lock = threading.Lock()
        self._commit_lock = threading.Lock()
        self._current = initial_snapshot(self._registry)
        self._last_committed_ticket = 0
        self._publish_lock = threading.Lock()
        self._pending_updates: deque[ConfigUpdate] = deque()
        self._publishing = False

        self._request_lock = threading.Lock()
        self._resolution_requested = False
        self._wakeup: asyncio.Event | None = None
        self._wakeup_loop: asyncio.AbstractEventLoop | None = None

    @property
    def registry(self) -> ParameterRegistry:
        return self._registry

    @property
    def sources(self) -> tuple[RawSource, ...]:
        return self._sources

    @property
    def bus(self) -> EventBus[ConfigUpdate]:
        return self._bus

    def current_snapshot(self) -> ConfigSnapshot:
        """Latest committed snapshot; generation 0 (all defaults) before any pass."""

        with self._commit_lock:
            return self._current

    def subscribe(self, listener: Subscriber[ConfigUpdate]) -> int:
        return self._bus.subscribe(listener)

    def unsubscribe(self, token: int) -> bool:
        return self._bus.unsubscribe(token)

    def resolve(self) -> PassResult:
        """Run one pass, collecting sources sequentially on the calling thread."""

        ticket = self._take_ticket()
        with correlation_scope(pass_id=ticket):
            collector = DiagnosticCollector(ticket)
            collected = [self._collect_one(source, collector) for source in self._sources]
            with self._pass_lock:
                result = self._build_and_commit(ticket, collected, collector)
            delivered = self._publish_pending()
        return _with_dispatch_errors(result, delivered)

    async def resolve_async(self, cancel_token: CancellationToken | None = None) -> PassResult:
        """Run one pass, collecting all sources concurrently in worker threads."""

        ticket = self._take_ticket()
        with correlation_scope(pass_id=ticket):
            collector = DiagnosticCollector(ticket)
            semaphore = BoundedSemaphore(self._settings.max_concurrent_sources)
            collected = await gather_bounded(
                (self._collect_one_async(source, collector, cancel_token) for source in self._sources),
                semaphore,
                cancel_token,
            )
            result = await asyncio.to_thread(self._build_and_commit_locked, ticket, collected, collector)
            delivered = await self._publish_pending_async()
        return _with_dispatch_errors(result, delivered)

    def request_resolution(self) -> None:
        """Ask the polling loop for an early pass; safe from any thread."""

        with self._request_lock:
            self._resolution_requested = True
            wakeup, loop = self._wakeup, self._wakeup_loop
        if wakeup is not None and loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(wakeup.set)

    async def run_polling(
        self,
        cancel_token: CancellationToken,
        *,
        interval_seconds: float | None = None,
    ) -> int:
        """Resolve now, then on every interval, request or config file change.

        Config files are watched with ``watchdog`` while the loop runs; their
        mtimes are also polled every ``file_check_interval_seconds``.

        Returns the number of passes run once ``cancel_token`` is cancelled.
        """

        interval = interval_seconds if interval_seconds is not None else self._settings.poll_interval_seconds
        if interval <= 0:
            raise ValueError("interval_seconds must be > 0")

        wakeup = asyncio.Event()
        with self._request_lock:
            self._wakeup = wakeup
            self._wakeup_loop = asyncio.get_running_loop()
            self._resolution_requested = False

        watcher = self._start_file_watcher()
        passes = 0
        try:
            if not await self._polling_pass(cancel_token):
                return passes
            passes += 1
            next_full_pass = time.monotonic() + interval
            while not cancel_token.is_cancelled:
                timeout = min(self._settings.file_check_interval_seconds, next_full_pass - time.monotonic())
                await wait_for_wakeup(wakeup, timeout, cancel_token)
                if cancel_token.is_cancelled:
                    break

                reason = self._trigger_reason(next_full_pass)
                if reason is None:
                    continue
                self._logger.debug("config.resolution.triggered", reason=reason)
                if not await self._polling_pass(cancel_token):
                    break
                passes += 1
                next_full_pass = time.monotonic() + interval
        finally:
            with self._request_lock:
                self._wakeup = None
                self._wakeup_loop = None
            if watcher is not None:
                await asyncio.to_thread(watcher.stop)
        return passes

    def _start_file_watcher(self) -> ConfigFileWatcher | None:
        if not self._settings.watch_config_files:
            return None
        paths = [source.path for source in self._sources if isinstance(source, ConfigFileSource)]
        if not paths:
            return None
        watcher = ConfigFileWatcher(
            paths,
            self.request_resolution,
            observer_factory=self._observer_factory,
            logger=self._logger,
        )
        try:
            watcher.start()
        except OSError as exc:
            # mtime polling in the loop below still notices edits.
            self._logger.warning("config.watch.unavailable", error=str(exc))
            return None
        return watcher

    async def _polling_pass(self, cancel_token: CancellationToken) -> bool:
        try:
            await self.resolve_async(cancel_token)
        except asyncio.CancelledError:
            if cancel_token.is_cancelled:
                return False
            raise
        return True

    def _trigger_reason(self, next_full_pass: float) -> str | None:
        with self._request_lock:
            requested = self._resolution_requested
            self._resolution_requested = False
        if requested:
            return "requested"
        if self._any_source_changed():
            return "source-changed"
        if time.monotonic() >= next_full_pass:
            return "interval"
        return None

    def _any_source_changed(self) -> bool:
        for source in self._sources:
            changed = getattr(source, "changed", None)
            if not callable(changed):
                continue
            try:
                if changed():
                    return True
            except SourceError:
                # Let the pass itself record the failure.
                return True
        return False

    def _take_ticket(self) -> int:
        with self._ticket_lock:
            self._next_ticket += 1
            return self._next_ticket

    # Committed updates are queued in commit order and delivered by one
    # publisher at a time. A pass that finds another publisher active leaves
    # its update to that publisher.

    def _publish_pending(self) -> dict[int, tuple[DispatchError, ...]]:
        delivered: dict[int, tuple[DispatchError, ...]] = {}
        if not self._claim_publisher():
            return delivered
        try:
            while True:
                update = self._next_pending_update()
                if update is None:
                    return delivered
                delivered[update.snapshot.generation] = self._bus.publish(update)
        except BaseException:
            self._release_publisher()
            raise

    async def _publish_pending_async(self) -> dict[int, tuple[DispatchError, ...]]:
        delivered: dict[int, tuple[DispatchError, ...]] = {}
        if not self._claim_publisher():
            return delivered
        try:
            while True:
                update = self._next_pending_update()
                if update is None:
                    return delivered
                delivered[update.snapshot.generation] = await self._bus.publish_async(update)
        except BaseException:
            self._release_publisher()
            raise

    def _claim_publisher(self) -> bool:
        with self._publish_lock:
            if self._publishing or not self._pending_updates:
                return False
            self._publishing = True
            return True

    def _next_pending_update(self) -> ConfigUpdate | None:
        with self._publish_lock:
            if self._pending_updates:
                return self._pending_updates.popleft()
            self._publishing = False
            return None

    def _release_publisher(self) -> None:
        with self._publish_lock:
            self._publishing = False

    def _collect_one(self, source: RawSource, collector: DiagnosticCollector) -> _Collected:
        info = source_info(source)
        with correlation_scope(source_id=info.source_id):
            try:
                values = _as_raw_mapping(source.collect())
            except Exception as exc:  # noqa: BLE001
                return self._record_source_failure(info, exc, collector)
        collector.source_ok(info.source_id, info.rank, len(values))
        return info, values

    async def _collect_one_async(
        self,
        source: RawSource,
        collector: DiagnosticCollector,
        cancel_token: CancellationToken | None,
    ) -> _Collected:
        info = source_info(source)
        with correlation_scope(source_id=info.source_id):
            try:
                raw = await run_with_timeout(
                    asyncio.to_thread(source.collect),
                    self._settings.source_timeout_seconds,
                    cancel_token,
                )
                values = _as_raw_mapping(raw)
            except Exception as exc:  # noqa: BLE001
                return self._record_source_failure(info, exc, collector)
        collector.source_ok(info.source_id, info.rank, len(values))
        return info, values

    def _record_source_failure(
        self,
        info: SourceInfo,
        exc: Exception,
        collector: DiagnosticCollector,
    ) -> _Collected:
        reason = str(exc) if isinstance(exc, SourceError) else f"{type(exc).__name__}: {exc}"
        collector.source_failed(info.source_id, info.rank, reason)
        self._logger.warning(
            "config.source.failed",
            source_id=info.source_id,
            rank=info.rank,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return info, MappingProxyType({})

    def _build_and_commit_locked(
        self,
        ticket: int,
        collected: Sequence[_Collected],
        collector: DiagnosticCollector,
    ) -> PassResult:
        with correlation_scope(pass_id=ticket), self._pass_lock:
            return self._build_and_commit(ticket, collected, collector)

    def _build_and_commit(
        self,
        ticket: int,
        collected: Sequence[_Collected],
        collector: DiagnosticCollector,
    ) -> PassResult:
        # Caller holds the pass lock.
        with self._commit_lock:
            previous = self._current
            newest_ticket = self._last_committed_ticket

        if ticket < newest_ticket:
            report = collector.report(None)
            self._logger.info(
                "config.resolution.superseded",
                pass_id=ticket,
                committed_pass_id=newest_ticket,
                generation=previous.generation,
            )
            log_report(report, self._logger)
            return PassResult(
                pass_id=ticket,
                committed=False,
                snapshot=previous,
                changes=(),
                report=report,
            )

        merged = merge(collected, self._registry)
        for unknown in merged.unknown_keys:
            collector.add(
                DiagnosticStage.UNKNOWN_KEY,
                field=unknown.key,
                source=unknown.source_id,
                raw_value=unknown.raw,
                reason="no parameter with this name",
            )
        resolved = self._resolve_fields(merged, collector)
        snapshot, changes = self._builder.build(resolved, previous)

        report = collector.report(snapshot.generation)
        with self._commit_lock:
            self._current = snapshot
            self._last_committed_ticket = ticket
        with self._publish_lock:
            self._pending_updates.append(ConfigUpdate(snapshot=snapshot, changes=changes, report=report))

        with correlation_scope(generation=snapshot.generation):
            log_report(report, self._logger)
            self._logger.info(
                "config.resolution.committed",
                pass_id=ticket,
                generation=snapshot.generation,
                overridden=len(snapshot.overridden()),
                changed=[change.field for change in changes],
                restart_required=any(change.requires_restart for change in changes),
                diagnostics=len(report.diagnostics),
            )

        return PassResult(
            pass_id=ticket,
            committed=True,
            snapshot=snapshot,
            changes=changes,
            report=report,
        )

    def _resolve_fields(
        self,
        merged: MergedRawMap,
        collector: DiagnosticCollector,
    ) -> dict[str, ResolvedValue]:
        resolved: dict[str, ResolvedValue] = {}
        for name, winner in merged.values.items():
            descriptor = self._registry.descriptor_for(name)
            if descriptor is None:
                continue
            fallback = ResolvedValue(
                value=descriptor.default,
                outcome=Outcome.FALLBACK,
                source=winner.source_id,
                raw=winner.raw,
            )
            try:
                value = coerce(descriptor, winner.raw)
            except CoercionError as exc:
                collector.add(
                    DiagnosticStage.COERCION,
                    field=name,
                    source=winner.source_id,
                    raw_value=winner.raw,
                    reason=exc.reason,
                )
                resolved[name] = fallback
                continue

            issue = validate(descriptor, value)
            if issue is not None:
                collector.add(
                    DiagnosticStage.VALIDATION,
                    field=name,
                    source=winner.source_id,
                    raw_value=winner.raw,
                    reason=issue.reason,
                )
                resolved[name] = fallback
                continue

            resolved[name] = ResolvedValue(
                value=value,
                outcome=Outcome.OVERRIDDEN,
                source=winner.source_id,
                raw=winner.raw,
            )
        return resolved


def _as_raw_mapping(values: object) -> Mapping[str, str]:
    if not isinstance(values, Mapping):
        raise TypeError(f"collect() must return a mapping, got {type(values).__name__}")
    return MappingProxyType({str(key): str(value) for key, value in values.items()})


def _with_dispatch_errors(
    result: PassResult,
    delivered: Mapping[int, tuple[DispatchError, ...]],
) -> PassResult:
    errors = delivered.get(result.snapshot.generation, ()) if result.committed else ()
    if not errors:
        return result
    return PassResult(
        pass_id=result.pass_id,
        committed=result.committed,
        snapshot=result.snapshot,
        changes=result.changes,
        report=result.report,
        dispatch_errors=errors,
    )


__all__ = [
    "ConfigResolver",
    "ConfigUpdate",
    "PassResult",
    "ResolverSettings",
]
