"""
dataplane-config — raw string coercion into typed field values.

File: src/dataplane_config/resolution/coercion.py
Last updated: 2026-10-19

Purpose
- Convert the raw strings supplied by sources into the value kind declared by a
  field descriptor, and render typed values back to their wire encoding.

What should be included in this file
- One parser per ``ValueKind`` in an explicit function table.
- ``coerce`` (string -> typed value) and ``format_value`` (typed value -> string).
- ``CoercionError`` carrying field, raw value and reason.

Functional requirements
- Bare numeric durations are scaled by the descriptor's unit.
- ``none`` yields an explicitly empty list for list kinds.
- Range checks beyond what the type itself implies are left to validation.

Non-functional requirements
- Pure functions; no logging and no side effects.
"""

from __future__ import annotations

import ipaddress
import re
from collections.abc import Callable, Mapping
from datetime import timedelta
from types import MappingProxyType
from typing import Any, Final

from dataplane_config.constants import MAX_PORT, MAX_UINT32
from dataplane_config.registry.descriptors import (
    FieldDescriptor,
    PortRange,
    ProtoPort,
    RouteTableRange,
    UnitScale,
    ValueKind,
)

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"true", "yes", "1"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"false", "no", "0"})
_NONE_SENTINEL: Final[str] = "none"
_DEFAULT_PROTOCOL: Final[str] = "tcp"
_PROTOCOLS: Final[frozenset[str]] = frozenset({"tcp", "udp", "sctp"})

_INTEGER: Final[re.Pattern[str]] = re.compile(r"^[+-]?\d+$")
_HEX_MASK: Final[re.Pattern[str]] = re.compile(r"^0[xX][0-9A-Fa-f]+$")
_DECIMAL_MASK: Final[re.Pattern[str]] = re.compile(r"^[0-9]+$")
_NUMERIC: Final[re.Pattern[str]] = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)$")
_DURATION_PART: Final[re.Pattern[str]] = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_KEY_VALUE_PAIR: Final[re.Pattern[str]] = re.compile(r"^([A-Za-z0-9_-]+)=([^,]*)$")
_ROUTE_TABLE_RANGE: Final[re.Pattern[str]] = re.compile(r"^(\d+)\s*[,:-]\s*(\d+)$")
_PORT_RANGE: Final[re.Pattern[str]] = re.compile(r"^(\d+)(?:\s*[:-]\s*(\d+))?$")

# Seconds per unit suffix; timedelta resolution is one microsecond.
_DURATION_UNITS: Final[Mapping[str, float]] = MappingProxyType(
    {
        "ns": 1e-9,
        "us": 1e-6,
        "µs": 1e-6,
        "μs": 1e-6,
        "ms": 1e-3,
        "s": 1.0,
        "m": 60.0,
        "h": 3600.0,
    }
)


class CoercionError(ValueError):
    """Raised when a raw string cannot be parsed as a field's declared kind."""

    def __init__(self, field: str, raw: str, reason: str) -> None:
        self.field = field
        self.raw = raw
        self.reason = reason
        super().__init__(f"{field}: cannot parse {raw!r}: {reason}")


def coerce(descriptor: FieldDescriptor, raw: str) -> Any:
    """Parse ``raw`` into the typed value declared by ``descriptor``."""

    parser = _PARSERS[descriptor.kind]
    try:
        return parser(descriptor, raw)
    except ValueError as exc:
        raise CoercionError(descriptor.name, raw, str(exc)) from exc


def format_value(descriptor: FieldDescriptor, value: Any) -> str:
    """Render a typed value back to the wire encoding accepted by ``coerce``."""

    if value is None:
        return ""

    kind = descriptor.kind
    if kind is ValueKind.BOOL:
        return "true" if value else "false"
    if kind is ValueKind.BITMASK:
        return f"{value:#010x}"
    if kind is ValueKind.DURATION:
        return format_duration(value)
    if kind is ValueKind.KEY_VALUE_LIST:
        return ",".join(f"{key}={item}" for key, item in value.items())
    if kind in (ValueKind.STRING_LIST, ValueKind.PROTO_PORT_LIST, ValueKind.PORT_RANGE_LIST):
        if not value:
            return _NONE_SENTINEL
        return ",".join(str(item) for item in value)
    return str(value)


def format_duration(value: timedelta) -> str:
    """Render a duration with the coarsest exact unit among ``s``, ``ms``, ``us``."""

    micros = (value.days * 86_400 + value.seconds) * 1_000_000 + value.microseconds
    if micros % 1_000_000 == 0:
        return f"{micros // 1_000_000}s"
    if micros % 1_000 == 0:
        return f"{micros // 1_000}ms"
    return f"{micros}us"


def _parse_bool(_descriptor: FieldDescriptor, raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ValueError("must be a boolean (true/false/yes/no/1/0)")


def _parse_int(_descriptor: FieldDescriptor, raw: str) -> int:
    text = raw.strip()
    if not _INTEGER.match(text):
        raise ValueError("must be a base-10 integer")
    return int(text, 10)


def _parse_bitmask(_descriptor: FieldDescriptor, raw: str) -> int:
    text = raw.strip()
    if _HEX_MASK.match(text):
        value = int(text[2:], 16)
    elif _DECIMAL_MASK.match(text):
        value = int(text, 10)
    else:
        raise ValueError("must be a hexadecimal or decimal 32-bit mask")
    if not 0 <= value <= MAX_UINT32:
        raise ValueError("must fit in 32 bits")
    return value


def _parse_duration(descriptor: FieldDescriptor, raw: str) -> timedelta:
    try:
        return _duration_from_text(descriptor, raw.strip())
    except OverflowError as exc:
        raise ValueError("duration out of range") from exc


def _duration_from_text(descriptor: FieldDescriptor, text: str) -> timedelta:
    if _NUMERIC.match(text):
        scale = descriptor.unit or UnitScale.SECONDS
        return scale.unit * float(text)

    negative = text.startswith("-")
    body = text[1:] if negative or text.startswith("+") else text
    if not body:
        raise ValueError("must be a number or a duration such as 90s, 250ms or 1m30s")

    seconds = 0.0
    position = 0
    while position < len(body):
        match = _DURATION_PART.match(body, position)
        if match is None:
            raise ValueError("must be a number or a duration such as 90s, 250ms or 1m30s")
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    return timedelta(seconds=-seconds if negative else seconds)


def _parse_string(_descriptor: FieldDescriptor, raw: str) -> str:
    return raw.strip()


def _parse_regex(_descriptor: FieldDescriptor, raw: str) -> str:
    pattern = raw.strip()
    try:
        re.compile(pattern)
    except re.error as exc:
        raise ValueError(f"invalid regular expression: {exc}") from exc
    return pattern


def _parse_enum(descriptor: FieldDescriptor, raw: str) -> str:
    text = raw.strip()
    if text not in descriptor.choices:
        allowed = ", ".join(repr(choice) for choice in descriptor.choices)
        raise ValueError(f"must be one of {allowed}")
    return text


def _split_list(raw: str) -> tuple[str, ...] | None:
    text = raw.strip()
    if text.lower() == _NONE_SENTINEL:
        return None
    return tuple(item for item in (part.strip() for part in text.split(",")) if item)


def _parse_string_list(_descriptor: FieldDescriptor, raw: str) -> tuple[str, ...]:
    return _split_list(raw) or ()


def _parse_key_value_list(_descriptor: FieldDescriptor, raw: str) -> Mapping[str, str]:
    text = raw.strip()
    pairs: dict[str, str] = {}
    if not text:
        return MappingProxyType(pairs)
    for element in text.split(","):
        if not element:
            continue
        match = _KEY_VALUE_PAIR.match(element)
        if match is None:
            raise ValueError(f"invalid key=value pair {element!r}")
        key, value = match.groups()
        pairs.pop(key, None)
        pairs[key] = value
    return MappingProxyType(pairs)


def _parse_proto_port_list(_descriptor: FieldDescriptor, raw: str) -> tuple[ProtoPort, ...]:
    elements = _split_list(raw)
    if elements is None:
        return ()
    return tuple(_parse_proto_port(element) for element in elements)


def _parse_proto_port(element: str) -> ProtoPort:
    head, _, rest = element.partition(":")
    if head.isdigit():
        protocol, port_text, net_text = _DEFAULT_PROTOCOL, head, rest
    else:
        protocol = head.lower()
        port_text, _, net_text = rest.partition(":")
        if protocol not in _PROTOCOLS:
            raise ValueError(f"unsupported protocol {head!r} in {element!r}")

    port = _parse_port_number(port_text, element)
    net = ""
    if net_text:
        try:
            net = str(ipaddress.ip_network(net_text, strict=False))
        except ValueError as exc:
            raise ValueError(f"invalid CIDR {net_text!r} in {element!r}") from exc
    return ProtoPort(protocol=protocol, port=port, net=net)


def _parse_port_number(text: str, context: str) -> int:
    if not text.isdigit():
        raise ValueError(f"invalid port {text!r} in {context!r}")
    port = int(text, 10)
    if port > MAX_PORT:
        raise ValueError(f"port {port} out of range in {context!r}")
    return port


def _parse_port_range_text(text: str) -> PortRange:
    match = _PORT_RANGE.match(text)
    if match is None:
        raise ValueError(f"invalid port range {text!r}")
    first = _parse_port_number(match.group(1), text)
    last = first if match.group(2) is None else _parse_port_number(match.group(2), text)
    return PortRange(first=first, last=last)


def _parse_port_range(_descriptor: FieldDescriptor, raw: str) -> PortRange:
    return _parse_port_range_text(raw.strip())


def _parse_port_range_list(_descriptor: FieldDescriptor, raw: str) -> tuple[PortRange, ...]:
    elements = _split_list(raw)
    if elements is None:
        return ()
    return tuple(_parse_port_range_text(element) for element in elements)


def _parse_route_table_range(_descriptor: FieldDescriptor, raw: str) -> RouteTableRange:
    match = _ROUTE_TABLE_RANGE.match(raw.strip())
    if match is None:
        raise ValueError("must be a pair of table indices such as 1,250 or 1:250")
    return RouteTableRange(min=int(match.group(1)), max=int(match.group(2)))


_PARSERS: Final[Mapping[ValueKind, Callable[[FieldDescriptor, str], Any]]] = MappingProxyType(
    {
        ValueKind.BOOL: _parse_bool,
        ValueKind.INT: _parse_int,
        ValueKind.BITMASK: _parse_bitmask,
        ValueKind.PORT_RANGE: _parse_port_range,
        ValueKind.PORT_RANGE_LIST: _parse_port_range_list,
        ValueKind.DURATION: _parse_duration,
        ValueKind.STRING: _parse_string,
        ValueKind.REGEX: _parse_regex,
        ValueKind.ENUM: _parse_enum,
        ValueKind.STRING_LIST: _parse_string_list,
        ValueKind.KEY_VALUE_LIST: _parse_key_value_list,
        ValueKind.PROTO_PORT_LIST: _parse_proto_port_list,
        ValueKind.ROUTE_TABLE_RANGE: _parse_route_table_range,
    }
)


__all__ = [
    "CoercionError",
    "coerce",
    "format_duration",
    "format_value",
]
