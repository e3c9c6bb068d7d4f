"""
dataplane-config — field descriptors and typed value shapes.

File: src/dataplane_config/registry/descriptors.py
Last updated: 2026-10-19

Purpose
- Define the static metadata describing each tunable parameter and the
  structured value types produced by coercion.

What should be included in this file
- ``ValueKind`` and ``UnitScale`` enumerations.
- ``ParameterSpec`` (declaration, defaults in wire form) and ``FieldDescriptor``
  (compiled form with typed default and resolved validator callables).
- Immutable value types: ``ProtoPort``, ``PortRange``, ``RouteTableRange``.

Functional requirements
- Descriptors are immutable; a field's kind and validators never change after
  registry construction.

Non-functional requirements
- Pure data: no I/O and no imports from the resolution package.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from enum import StrEnum
from typing import Any

Validator = Callable[[Any], None]


class ValueKind(StrEnum):
    """Value kinds understood by the coercion layer."""

    BOOL = "bool"
    INT = "int"
    BITMASK = "bitmask"
    PORT_RANGE = "int-range"
    PORT_RANGE_LIST = "int-range-list"
    DURATION = "duration"
    STRING = "string"
    REGEX = "regex"
    ENUM = "enum"
    STRING_LIST = "string-list"
    KEY_VALUE_LIST = "key-value-list"
    PROTO_PORT_LIST = "proto-port-list"
    ROUTE_TABLE_RANGE = "route-table-range"


class UnitScale(StrEnum):
    """Unit applied to bare numeric duration literals."""

    SECONDS = "seconds"
    MILLISECONDS = "milliseconds"

    @property
    def unit(self) -> timedelta:
        if self is UnitScale.MILLISECONDS:
            return timedelta(milliseconds=1)
        return timedelta(seconds=1)


@dataclass(frozen=True, slots=True)
class ProtoPort:
    """Protocol, port and optional source/destination CIDR."""

    protocol: str
    port: int
    net: str = ""

    def __str__(self) -> str:
        if self.net:
            return f"{self.protocol}:{self.port}:{self.net}"
        return f"{self.protocol}:{self.port}"


@dataclass(frozen=True, slots=True)
class PortRange:
    """Inclusive port range; a single port has ``first == last``."""

    first: int
    last: int

    def __str__(self) -> str:
        if self.first == self.last:
            return str(self.first)
        return f"{self.first}:{self.last}"


@dataclass(frozen=True, slots=True)
class RouteTableRange:
    """Inclusive range of Linux routing table indices."""

    min: int
    max: int

    def __str__(self) -> str:
        return f"{self.min},{self.max}"


@dataclass(frozen=True, slots=True)
class ParameterSpec:
    """Declaration of one parameter, with its default in wire form.

    ``default`` is the string a source would supply for the default value, or
    ``None`` for parameters whose default is "unset". It is parsed and validated
    once, when the registry is built.
    """

    name: str
    kind: ValueKind
    default: str | None
    aliases: tuple[str, ...] = ()
    unit: UnitScale | None = None
    rules: tuple[str, ...] = ()
    choices: tuple[str, ...] = ()
    live_apply: bool = False
    description: str = ""


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    """Compiled, immutable metadata for one configurable field."""

    name: str
    kind: ValueKind
    default: Any
    default_raw: str | None
    aliases: tuple[str, ...]
    unit: UnitScale | None
    rules: tuple[str, ...]
    validators: tuple[Validator, ...]
    choices: tuple[str, ...]
    live_apply: bool
    description: str

    @property
    def requires_restart(self) -> bool:
        return not self.live_apply

    @property
    def names(self) -> tuple[str, ...]:
        return (self.name, *self.aliases)


__all__ = [
    "FieldDescriptor",
    "ParameterSpec",
    "PortRange",
    "ProtoPort",
    "RouteTableRange",
    "UnitScale",
    "Validator",
    "ValueKind",
]
