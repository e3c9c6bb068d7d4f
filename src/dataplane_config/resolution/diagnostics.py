"""
dataplane-config — per-pass diagnostics.

File: src/dataplane_config/resolution/diagnostics.py
Last updated: 2026-10-19

Purpose
- Collect every non-fatal problem found during one resolution pass and emit
  them as a single structured log event.

What should be included in this file
- ``Diagnostic`` and ``DiagnosticStage``.
- ``SourceStatus`` recording what each source contributed.
- ``DiagnosticCollector`` (mutable, one per pass) and the immutable
  ``ResolutionReport`` it produces.
- ``log_report`` writing the ``config.resolution.diagnostics`` event.

Functional requirements
- One report per pass, including passes with no problems.
- The log event carries a list of ``{field, source, raw_value, reason, stage}``.

Non-functional requirements
- Raw values of sensitive fields are redacted before logging.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Final

import structlog

from dataplane_config.observability.logging import is_sensitive_key

_REDACTED: Final[str] = "***REDACTED***"


class DiagnosticStage(StrEnum):
    SOURCE = "source"
    COERCION = "coercion"
    VALIDATION = "validation"
    UNKNOWN_KEY = "unknown-key"


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """One rejected input: which field (or key), from where, and why."""

    field: str
    source: str
    raw_value: str | None
    reason: str
    stage: DiagnosticStage

    def to_log_dict(self) -> dict[str, Any]:
        raw_value = self.raw_value
        if raw_value is not None and is_sensitive_key(self.field):
            raw_value = _REDACTED
        return {
            "field": self.field,
            "source": self.source,
            "raw_value": raw_value,
            "reason": self.reason,
            "stage": self.stage.value,
        }


@dataclass(frozen=True, slots=True)
class SourceStatus:
    source_id: str
    rank: int
    ok: bool
    key_count: int = 0
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ResolutionReport:
    pass_id: int
    generation: int | None
    diagnostics: tuple[Diagnostic, ...]
    sources: tuple[SourceStatus, ...]

    @property
    def ok(self) -> bool:
        return not self.diagnostics

    def by_stage(self, stage: DiagnosticStage) -> tuple[Diagnostic, ...]:
        return tuple(item for item in self.diagnostics if item.stage is stage)

    def for_field(self, name: str) -> tuple[Diagnostic, ...]:
        return tuple(item for item in self.diagnostics if item.field == name)


class DiagnosticCollector:
    """Accumulates diagnostics and source statuses during one pass."""

    def __init__(self, pass_id: int) -> None:
        self.pass_id = pass_id
        self._diagnostics: list[Diagnostic] = []
        self._sources: list[SourceStatus] = []

    def add(
        self,
        stage: DiagnosticStage,
        *,
        field: str,
        source: str,
        raw_value: str | None,
        reason: str,
    ) -> None:
        self._diagnostics.append(
            Diagnostic(field=field, source=source, raw_value=raw_value, reason=reason, stage=stage)
        )

    def source_ok(self, source_id: str, rank: int, key_count: int) -> None:
        self._sources.append(SourceStatus(source_id=source_id, rank=rank, ok=True, key_count=key_count))

    def source_failed(self, source_id: str, rank: int, error: str) -> None:
        self._sources.append(SourceStatus(source_id=source_id, rank=rank, ok=False, error=error))
        self.add(DiagnosticStage.SOURCE, field="", source=source_id, raw_value=None, reason=error)

    def report(self, generation: int | None) -> ResolutionReport:
        sources = tuple(sorted(self._sources, key=lambda status: status.rank))
        return ResolutionReport(
            pass_id=self.pass_id,
            generation=generation,
            diagnostics=tuple(self._diagnostics),
            sources=sources,
        )


def log_report(report: ResolutionReport, logger: Any | None = None) -> None:
    """Emit ``report`` as one structured event; a warning when it has entries."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    entries: Sequence[dict[str, Any]] = [item.to_log_dict() for item in report.diagnostics]
    emit = log.warning if entries else log.debug
    emit(
        "config.resolution.diagnostics",
        pass_id=report.pass_id,
        generation=report.generation,
        count=len(entries),
        diagnostics=entries,
        failed_sources=[status.source_id for status in report.sources if not status.ok],
    )


__all__ = [
    "Diagnostic",
    "DiagnosticCollector",
    "DiagnosticStage",
    "ResolutionReport",
    "SourceStatus",
    "log_report",
]
