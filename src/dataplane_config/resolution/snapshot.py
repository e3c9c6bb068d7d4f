"""
dataplane-config — immutable configuration snapshots and change detection.

File: src/dataplane_config/resolution/snapshot.py
Last updated: 2026-10-19

Purpose
- Assemble per-field resolved values into a complete, read-only snapshot and
  diff it against the previously published one.

What should be included in this file
- ``Outcome``, ``ResolvedValue``, ``ChangeRecord`` and ``InitialChangePolicy``.
- ``ConfigSnapshot``: read-only mapping of canonical name to ``ResolvedValue``.
- ``SnapshotBuilder`` owning the generation counter.

Functional requirements
- Every registered field is present in every snapshot.
- Generations strictly increase across builds.
- The first build's change records follow ``InitialChangePolicy``.

Non-functional requirements
- Snapshots are never mutated after construction and are safe to share
  across threads.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from dataplane_config.resolution.coercion import format_value

if TYPE_CHECKING:
    from dataplane_config.registry.descriptors import FieldDescriptor
    from dataplane_config.registry.registry import ParameterRegistry


class Outcome(StrEnum):
    DEFAULT = "default"
    OVERRIDDEN = "overridden"
    FALLBACK = "fallback"


class InitialChangePolicy(StrEnum):
    """Which change records the first published snapshot produces."""

    DIVERGENCE_FROM_DEFAULT = "divergence-from-default"
    SUPPRESS = "suppress"
    ALL = "all"


@dataclass(frozen=True, slots=True)
class ResolvedValue:
    """Typed value of one field plus where it came from.

    ``source`` and ``raw`` name the winning override; for ``FALLBACK`` they
    name the rejected one.
    """

    value: Any
    outcome: Outcome
    source: str | None = None
    raw: str | None = None


@dataclass(frozen=True, slots=True)
class ChangeRecord:
    field: str
    old_value: Any
    new_value: Any
    requires_restart: bool


class ConfigSnapshot(Mapping[str, ResolvedValue]):
    """Complete, immutable view of the configuration at one generation."""

    __slots__ = ("_generation", "_registry", "_values")

    def __init__(
        self,
        generation: int,
        values: Mapping[str, ResolvedValue],
        registry: ParameterRegistry,
    ) -> None:
        self._generation = generation
        self._values: Mapping[str, ResolvedValue] = MappingProxyType(dict(values))
        self._registry = registry

    @property
    def generation(self) -> int:
        return self._generation

    def value(self, name: str) -> Any:
        """Typed value of ``name`` (canonical name or alias, any case)."""

        return self.resolved(name).value

    def resolved(self, name: str) -> ResolvedValue:
        descriptor = self._registry.descriptor_for(name)
        if descriptor is None:
            raise KeyError(name)
        return self._values[descriptor.name]

    def __getitem__(self, name: str) -> ResolvedValue:
        return self.resolved(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def overridden(self) -> Mapping[str, ResolvedValue]:
        """Fields whose value came from a source rather than the default."""

        return MappingProxyType(
            {name: item for name, item in self._values.items() if item.outcome is Outcome.OVERRIDDEN}
        )

    def to_dict(self) -> dict[str, str]:
        """Wire-encoded values keyed by canonical name, suitable for a JSON dump."""

        rendered: dict[str, str] = {}
        for descriptor in self._registry.all_descriptors():
            rendered[descriptor.name] = format_value(descriptor, self._values[descriptor.name].value)
        return rendered

    def __repr__(self) -> str:
        return f"ConfigSnapshot(generation={self._generation}, fields={len(self._values)})"


def default_values(registry: ParameterRegistry) -> dict[str, ResolvedValue]:
    return {
        descriptor.name: ResolvedValue(value=descriptor.default, outcome=Outcome.DEFAULT)
        for descriptor in registry.all_descriptors()
    }


def initial_snapshot(registry: ParameterRegistry) -> ConfigSnapshot:
    """Generation-0 snapshot holding every default, published before any pass."""

    return ConfigSnapshot(0, default_values(registry), registry)


class SnapshotBuilder:
    """Builds successive snapshots and the change records between them."""

    def __init__(
        self,
        registry: ParameterRegistry,
        *,
        initial_change_policy: InitialChangePolicy = InitialChangePolicy.DIVERGENCE_FROM_DEFAULT,
    ) -> None:
        self._registry = registry
        self._policy = initial_change_policy
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def build(
        self,
        resolved: Mapping[str, ResolvedValue],
        previous: ConfigSnapshot | None,
    ) -> tuple[ConfigSnapshot, tuple[ChangeRecord, ...]]:
        """Return the next snapshot and its changes relative to ``previous``.

        ``previous`` of ``None`` or generation 0 marks the first build, whose
        records are governed by the initial change policy.
        """

        values = default_values(self._registry)
        for name, item in resolved.items():
            if name not in values:
                raise KeyError(f"unknown field {name!r}")
            values[name] = item

        with self._lock:
            self._generation += 1
            generation = self._generation

        snapshot = ConfigSnapshot(generation, values, self._registry)
        descriptors = self._registry.all_descriptors()
        if previous is None or previous.generation == 0:
            changes = self._initial_changes(descriptors, snapshot)
        else:
            changes = tuple(
                _change(descriptor, previous.value(descriptor.name), snapshot.value(descriptor.name))
                for descriptor in descriptors
                if previous.value(descriptor.name) != snapshot.value(descriptor.name)
            )
        return snapshot, changes

    def _initial_changes(
        self,
        descriptors: tuple[FieldDescriptor, ...],
        snapshot: ConfigSnapshot,
    ) -> tuple[ChangeRecord, ...]:
        if self._policy is InitialChangePolicy.SUPPRESS:
            return ()
        if self._policy is InitialChangePolicy.ALL:
            return tuple(
                _change(descriptor, descriptor.default, snapshot.value(descriptor.name))
                for descriptor in descriptors
            )
        return tuple(
            _change(descriptor, descriptor.default, snapshot.value(descriptor.name))
            for descriptor in descriptors
            if snapshot.value(descriptor.name) != descriptor.default
        )


def _change(descriptor: FieldDescriptor, old: Any, new: Any) -> ChangeRecord:
    return ChangeRecord(
        field=descriptor.name,
        old_value=old,
        new_value=new,
        requires_restart=descriptor.requires_restart,
    )


__all__ = [
    "ChangeRecord",
    "ConfigSnapshot",
    "InitialChangePolicy",
    "Outcome",
    "ResolvedValue",
    "SnapshotBuilder",
    "default_values",
    "initial_snapshot",
]
