"""
dataplane-config — semantic validation of coerced values.

File: src/dataplane_config/resolution/validation.py
Last updated: 2026-10-19

Purpose
- Check typed values against the constraints attached to each field.

What should be included in this file
- Kind-level checks applied to every field of a kind.
- The rule table mapping rule strings (``gt=0``, ``port``, ``hostOrIP``...) to
  validator callables, and ``resolve_rule`` used at registry construction.
- ``validate`` returning a ``ValidationIssue`` or ``None``.

Functional requirements
- Validators raise ``ValidationError`` with a human readable reason.
- A value failing validation never reaches a snapshot; the caller falls back
  to the field default.

Non-functional requirements
- Validators are pure and cheap; regexes are compiled once at import.
"""

from __future__ import annotations

import ipaddress
import operator
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import timedelta
from types import MappingProxyType
from typing import Any, Final

from dataplane_config.constants import MAX_PORT, ROUTE_TABLE_MAX, ROUTE_TABLE_MIN
from dataplane_config.registry.descriptors import (
    FieldDescriptor,
    PortRange,
    RouteTableRange,
    Validator,
    ValueKind,
)

_HOSTNAME: Final[re.Pattern[str]] = re.compile(
    r"^(?=.{1,253}$)[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*$"
)
_INTERFACE_NAME: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_.-]{1,15}$")
_INTERFACE_PREFIX: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_.-]+$")
_INTERFACE_FILTER: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9:._-]{1,15}\+?$")
_REGION: Final[re.Pattern[str]] = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")
_K8S_SERVICE: Final[re.Pattern[str]] = re.compile(
    r"^k8s-service:(?:[a-z0-9]([-a-z0-9.]*[a-z0-9])?/)?[a-z0-9]([-a-z0-9.]*[a-z0-9])?(?::\d+)?$"
)
_BRACKETED_V6: Final[re.Pattern[str]] = re.compile(r"^\[([0-9A-Fa-f:.]+)\]:(\d+)$")
_V4_WITH_PORT: Final[re.Pattern[str]] = re.compile(r"^([0-9.]+):(\d+)$")
_MARK_MASK_MIN_BITS: Final[int] = 8
_NONE_SENTINEL: Final[str] = "none"


class ValidationError(ValueError):
    """Raised by a validator when a value violates a field constraint."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class UnknownRuleError(ValueError):
    """Raised when a rule string names no known validator."""


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    field: str
    value: Any
    reason: str


def validate(descriptor: FieldDescriptor, value: Any) -> ValidationIssue | None:
    """Run the kind-level check, then every rule attached to ``descriptor``."""

    if value is None:
        return None
    checks = (*_KIND_CHECKS.get(descriptor.kind, ()), *descriptor.validators)
    for check in checks:
        try:
            check(value)
        except ValidationError as exc:
            return ValidationIssue(field=descriptor.name, value=value, reason=exc.reason)
    return None


def resolve_rule(rule: str) -> Validator:
    """Translate a rule string into its validator callable."""

    name, sep, argument = rule.partition("=")
    if sep:
        comparator = _COMPARATORS.get(name)
        if comparator is None:
            raise UnknownRuleError(f"unknown comparison rule {rule!r}")
        try:
            bound = int(argument, 10)
        except ValueError as exc:
            raise UnknownRuleError(f"rule {rule!r} needs an integer bound") from exc
        return _comparison(name, comparator, bound)

    validator = _NAMED_RULES.get(rule)
    if validator is None:
        raise UnknownRuleError(f"unknown validation rule {rule!r}")
    return validator


def _comparison(name: str, comparator: Callable[[Any, Any], bool], bound: int) -> Validator:
    symbol = _COMPARISON_SYMBOLS[name]

    def check(value: Any) -> None:
        if not comparator(value, bound):
            raise ValidationError(f"must be {symbol} {bound}")

    return check


# Kind-level checks.


def _non_negative_duration(value: timedelta) -> None:
    if value < timedelta(0):
        raise ValidationError("duration must not be negative")


def _route_table_bounds(value: RouteTableRange) -> None:
    if not ROUTE_TABLE_MIN <= value.min <= value.max <= ROUTE_TABLE_MAX:
        raise ValidationError(
            f"route table range must satisfy {ROUTE_TABLE_MIN} <= min <= max <= {ROUTE_TABLE_MAX}"
        )


def _ordered_port_range(value: PortRange) -> None:
    if value.first > value.last:
        raise ValidationError(f"port range {value} is reversed")


def _ordered_port_ranges(value: tuple[PortRange, ...]) -> None:
    for item in value:
        _ordered_port_range(item)


# Named rules.


def _port(value: int) -> None:
    if not 1 <= value <= MAX_PORT:
        raise ValidationError(f"must be a port number between 1 and {MAX_PORT}")


def _non_empty(value: str) -> None:
    if not value:
        raise ValidationError("must not be empty")


def _is_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def _ip(value: str) -> None:
    if not _is_ip(value):
        raise ValidationError(f"{value!r} is not an IP address")


def _ip_or_empty(value: str) -> None:
    if value:
        _ip(value)


def _cidr_list(value: tuple[str, ...]) -> None:
    for entry in value:
        try:
            ipaddress.ip_network(entry, strict=False)
        except ValueError as exc:
            raise ValidationError(f"{entry!r} is not a CIDR") from exc


def _host_or_ip(value: str) -> None:
    if value and not (_is_ip(value) or _HOSTNAME.match(value)):
        raise ValidationError(f"{value!r} is neither a hostname nor an IP address")


def _metadata_addr(value: str) -> None:
    if value.lower() == _NONE_SENTINEL:
        return
    if not value:
        raise ValidationError("must be 'none', an IP address or a hostname")
    _host_or_ip(value)


def _openstack_region(value: str) -> None:
    if value and not _REGION.match(value):
        raise ValidationError(f"{value!r} is not a valid region name")


def _interface_name(value: str) -> None:
    if not _INTERFACE_NAME.match(value):
        raise ValidationError(f"{value!r} is not a valid interface name")


def _interface_prefix(value: str) -> None:
    prefixes = value.split(",")
    if not all(_INTERFACE_PREFIX.match(prefix) for prefix in prefixes):
        raise ValidationError(f"{value!r} is not a comma-separated list of interface prefixes")


def _interface_filter(value: str) -> None:
    if value and not _INTERFACE_FILTER.match(value):
        raise ValidationError(f"{value!r} is not a valid interface filter")


def _interface_exclude(value: tuple[str, ...]) -> None:
    for entry in value:
        if len(entry) >= 2 and entry.startswith("/") and entry.endswith("/"):
            try:
                re.compile(entry[1:-1])
            except re.error as exc:
                raise ValidationError(f"invalid interface regex {entry!r}: {exc}") from exc
        elif not _INTERFACE_NAME.match(entry):
            raise ValidationError(f"{entry!r} is not a valid interface name")


def _ip_or_k8s_service(value: tuple[str, ...]) -> None:
    for entry in value:
        if _K8S_SERVICE.match(entry) or _is_ip(entry):
            continue
        match = _BRACKETED_V6.match(entry) or _V4_WITH_PORT.match(entry)
        if match and _is_ip(match.group(1)) and int(match.group(2)) <= MAX_PORT:
            continue
        raise ValidationError(f"{entry!r} is neither an IP[:port] nor a k8s-service reference")


def _mark_mask(value: int) -> None:
    if bin(value).count("1") < _MARK_MASK_MIN_BITS:
        raise ValidationError(f"mark mask must have at least {_MARK_MASK_MIN_BITS} bits set")


def _file_path_or_none(value: str) -> None:
    if value.lower() == _NONE_SENTINEL:
        return
    if not value.startswith("/"):
        raise ValidationError(f"{value!r} must be an absolute path or 'none'")


def _digits(value: str) -> None:
    if not value.isdigit():
        raise ValidationError(f"{value!r} must contain only digits")


_KIND_CHECKS: Final[Mapping[ValueKind, tuple[Validator, ...]]] = MappingProxyType(
    {
        ValueKind.DURATION: (_non_negative_duration,),
        ValueKind.ROUTE_TABLE_RANGE: (_route_table_bounds,),
        ValueKind.PORT_RANGE: (_ordered_port_range,),
        ValueKind.PORT_RANGE_LIST: (_ordered_port_ranges,),
    }
)

_COMPARATORS: Final[Mapping[str, Callable[[Any, Any], bool]]] = MappingProxyType(
    {"gt": operator.gt, "gte": operator.ge, "lt": operator.lt, "lte": operator.le}
)
_COMPARISON_SYMBOLS: Final[Mapping[str, str]] = MappingProxyType(
    {"gt": ">", "gte": ">=", "lt": "<", "lte": "<="}
)

_NAMED_RULES: Final[Mapping[str, Validator]] = MappingProxyType(
    {
        "port": _port,
        "nonEmpty": _non_empty,
        "ip": _ip,
        "ipOrEmpty": _ip_or_empty,
        "cidrList": _cidr_list,
        "hostOrIP": _host_or_ip,
        "metadataAddr": _metadata_addr,
        "openstackRegion": _openstack_region,
        "interfaceName": _interface_name,
        "interfacePrefix": _interface_prefix,
        "ifaceFilter": _interface_filter,
        "interfaceExclude": _interface_exclude,
        "ipOrK8sService": _ip_or_k8s_service,
        "markMask": _mark_mask,
        "filePathOrNone": _file_path_or_none,
        "digits": _digits,
    }
)


__all__ = [
    "UnknownRuleError",
    "ValidationError",
    "ValidationIssue",
    "resolve_rule",
    "validate",
]
