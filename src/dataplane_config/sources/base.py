"""
dataplane-config — raw source contract.

File: src/dataplane_config/sources/base.py
Last updated: 2026-10-19

Purpose
- Define what every override source provides to the resolution engine.

What should be included in this file
- ``RawSource`` protocol, ``SourceInfo`` identity/rank pair and ``SourceError``.
- ``MappingSource`` for callers that already hold string overrides.
- ``to_wire`` rendering structured values (YAML/TOML/datastore) to the string
  encodings the coercion layer parses.

Functional requirements
- ``collect`` returns raw strings keyed by whatever name the source used;
  alias resolution happens later, in the merger.
- I/O failures surface as ``SourceError``; the engine decides how to degrade.

Non-functional requirements
- Sources must be safe to call from a worker thread.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Final, Protocol, runtime_checkable

from dataplane_config.constants import SourceRank

# An explicitly empty list, as opposed to an omitted one.
_EMPTY_LIST: Final[str] = "none"


class SourceError(Exception):
    """Raised when a source cannot produce its overrides."""

    def __init__(self, source_id: str, message: str) -> None:
        self.source_id = source_id
        super().__init__(f"{source_id}: {message}")


@dataclass(frozen=True, slots=True)
class SourceInfo:
    source_id: str
    rank: int


@runtime_checkable
class RawSource(Protocol):
    """Anything that can produce raw, untyped overrides."""

    @property
    def source_id(self) -> str: ...

    @property
    def rank(self) -> int: ...

    def collect(self) -> Mapping[str, str]: ...


def source_info(source: RawSource) -> SourceInfo:
    return SourceInfo(source_id=source.source_id, rank=int(source.rank))


class MappingSource:
    """Static in-memory overrides."""

    def __init__(self, source_id: str, rank: SourceRank | int, values: Mapping[str, Any]) -> None:
        self._source_id = source_id
        self._rank = rank
        self._values = MappingProxyType(
            {str(key): rendered for key, value in values.items() if (rendered := to_wire(value)) is not None}
        )

    @property
    def source_id(self) -> str:
        return self._source_id

    @property
    def rank(self) -> int:
        return int(self._rank)

    def collect(self) -> Mapping[str, str]:
        return self._values

    def __repr__(self) -> str:
        return f"MappingSource(source_id={self._source_id!r}, rank={self.rank}, keys={len(self._values)})"


def to_wire(value: Any) -> str | None:
    """Render a structured value to its wire string; ``None`` means absent.

    Lists are comma joined and an empty list becomes ``none``. Proto-port
    objects become ``proto:port[:net]``, route-table-range objects become
    ``min,max`` and other mappings become ``key=value`` pairs.
    """

    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, Mapping):
        return _mapping_to_wire(value)
    if isinstance(value, (list, tuple)):
        if not value:
            return _EMPTY_LIST
        rendered = [to_wire(item) for item in value]
        return ",".join(item for item in rendered if item is not None)
    return str(value)


def _mapping_to_wire(value: Mapping[Any, Any]) -> str:
    if "port" in value:
        protocol = str(value.get("protocol") or "tcp").lower()
        rendered = f"{protocol}:{value['port']}"
        net = value.get("net")
        return f"{rendered}:{net}" if net else rendered
    if "min" in value and "max" in value:
        return f"{value['min']},{value['max']}"
    return ",".join(f"{key}={'' if item is None else to_wire(item)}" for key, item in value.items())


__all__ = [
    "MappingSource",
    "RawSource",
    "SourceError",
    "SourceInfo",
    "source_info",
    "to_wire",
]
