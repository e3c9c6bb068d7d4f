"""
dataplane-config — precedence merger.

File: src/dataplane_config/resolution/merge.py
Last updated: 2026-10-19

Purpose
- Combine the raw mappings collected from every source into one map keyed by
  canonical field name, honouring the fixed source ranking.

What should be included in this file
- ``merge`` plus its result types ``MergedValue``, ``UnknownKey`` and
  ``MergedRawMap``.
- ``MergeError`` for inconsistent source configuration.

Functional requirements
- Aliases are mapped to canonical names before precedence is applied.
- Lower rank wins; the first source supplying a field by any name wins.
- Within one source the canonical name beats an alias, and an earlier alias
  beats a later one.
- Blank values are treated as not supplied.
- Keys matching no field are reported, never fatal.

Non-functional requirements
- Deterministic for a given input; no logging.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from dataplane_config.sources.base import SourceInfo

if TYPE_CHECKING:
    from dataplane_config.registry.registry import ParameterRegistry


class MergeError(ValueError):
    """Raised when two sources share a rank or an identity."""


@dataclass(frozen=True, slots=True)
class MergedValue:
    raw: str
    source_id: str
    key_used: str


@dataclass(frozen=True, slots=True)
class UnknownKey:
    key: str
    source_id: str
    raw: str


@dataclass(frozen=True, slots=True)
class MergedRawMap:
    values: Mapping[str, MergedValue] = field(default_factory=lambda: MappingProxyType({}))
    unknown_keys: tuple[UnknownKey, ...] = ()

    def get(self, name: str) -> MergedValue | None:
        return self.values.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self.values

    def __len__(self) -> int:
        return len(self.values)


def merge(
    collected: Sequence[tuple[SourceInfo, Mapping[str, str]]],
    registry: ParameterRegistry,
) -> MergedRawMap:
    """Apply source precedence to ``collected`` (any order) and return the winners."""

    check_sources([info for info, _ in collected])

    winners: dict[str, MergedValue] = {}
    unknown: list[UnknownKey] = []
    for info, values in sorted(collected, key=lambda item: item[0].rank):
        claimed: dict[str, tuple[int, MergedValue]] = {}
        for key, raw in values.items():
            descriptor = registry.descriptor_for(key)
            if descriptor is None:
                unknown.append(UnknownKey(key=key, source_id=info.source_id, raw=raw))
                continue
            if descriptor.name in winners or not raw.strip():
                continue
            name_index = _name_index(descriptor.names, key)
            current = claimed.get(descriptor.name)
            if current is None or name_index < current[0]:
                claimed[descriptor.name] = (
                    name_index,
                    MergedValue(raw=raw, source_id=info.source_id, key_used=key),
                )
        for name, (_, merged) in claimed.items():
            winners[name] = merged

    return MergedRawMap(values=MappingProxyType(winners), unknown_keys=tuple(unknown))


def _name_index(names: tuple[str, ...], key: str) -> int:
    lowered = key.lower()
    for index, name in enumerate(names):
        if name.lower() == lowered:
            return index
    return len(names)


def check_sources(infos: Sequence[SourceInfo]) -> None:
    """Raise ``MergeError`` when two sources share an id or a rank."""

    seen_ids: set[str] = set()
    seen_ranks: dict[int, str] = {}
    for info in infos:
        if info.source_id in seen_ids:
            raise MergeError(f"duplicate source id {info.source_id!r}")
        seen_ids.add(info.source_id)
        other = seen_ranks.get(info.rank)
        if other is not None:
            raise MergeError(f"sources {other!r} and {info.source_id!r} share rank {info.rank}")
        seen_ranks[info.rank] = info.source_id


__all__ = [
    "MergeError",
    "MergedRawMap",
    "MergedValue",
    "UnknownKey",
    "check_sources",
    "merge",
]
