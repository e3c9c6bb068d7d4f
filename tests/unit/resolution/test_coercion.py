"""
dataplane-config — unit tests for raw value coercion

File: tests/unit/resolution/test_coercion.py
Last updated: 2026-10-19

Purpose
- Validate parsing of every value kind and rendering back to wire strings.

What this test file should cover
- Boolean, integer, bitmask, duration (both unit scales and textual forms).
- List kinds including the ``none`` sentinel.
- Proto-port parsing with defaults, CIDRs and error cases.
- Round trip through ``format_value``.

Functional requirements
- Offline and deterministic.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from dataplane_config.registry.descriptors import (
    FieldDescriptor,
    ParameterSpec,
    PortRange,
    ProtoPort,
    RouteTableRange,
    UnitScale,
    ValueKind,
)
from dataplane_config.registry.registry import compile_descriptor, default_registry
from dataplane_config.resolution.coercion import CoercionError, coerce, format_value


def _descriptor(kind: ValueKind, **kwargs: object) -> FieldDescriptor:
    spec = ParameterSpec(name=f"Test{kind.name.title()}", kind=kind, default=None, **kwargs)  # type: ignore[arg-type]
    return compile_descriptor(spec)


def _registered(name: str) -> FieldDescriptor:
    descriptor = default_registry().descriptor_for(name)
    assert descriptor is not None
    return descriptor


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("true", True),
        ("TRUE", True),
        ("yes", True),
        ("1", True),
        (" false ", False),
        ("No", False),
        ("0", False),
    ],
)
def test_bool_accepts_documented_literals(raw: str, expected: bool) -> None:
    assert coerce(_descriptor(ValueKind.BOOL), raw) is expected


@pytest.mark.parametrize("raw", ["on", "off", "t", "", "2"])
def test_bool_rejects_other_literals(raw: str) -> None:
    with pytest.raises(CoercionError) as excinfo:
        coerce(_descriptor(ValueKind.BOOL), raw)
    assert excinfo.value.field == "TestBool"
    assert excinfo.value.raw == raw


def test_int_is_base_ten_only() -> None:
    descriptor = _descriptor(ValueKind.INT)

    assert coerce(descriptor, " 42 ") == 42
    assert coerce(descriptor, "-7") == -7
    for raw in ("0x10", "1_000", "4.5", "ten"):
        with pytest.raises(CoercionError):
            coerce(descriptor, raw)


def test_bitmask_accepts_hex_and_decimal_within_32_bits() -> None:
    descriptor = _descriptor(ValueKind.BITMASK)

    assert coerce(descriptor, "0xff000000") == 0xFF000000
    assert coerce(descriptor, "0XFFFFFFFF") == 0xFFFFFFFF
    assert coerce(descriptor, "4278190080") == 0xFF000000
    with pytest.raises(CoercionError, match="32 bits"):
        coerce(descriptor, "0x100000000")
    with pytest.raises(CoercionError):
        coerce(descriptor, "0xzz")


@pytest.mark.parametrize("raw", ["0x-ffffffff", "-1", "0x ff", "0xff_00", "+255", "0x", "0b1010"])
def test_bitmask_rejects_signs_separators_and_other_bases(raw: str) -> None:
    with pytest.raises(CoercionError, match="32-bit mask"):
        coerce(_registered("IptablesMarkMask"), raw)


def test_bare_duration_is_scaled_by_declared_unit() -> None:
    seconds = _descriptor(ValueKind.DURATION, unit=UnitScale.SECONDS)
    millis = _descriptor(ValueKind.DURATION, unit=UnitScale.MILLISECONDS)

    assert coerce(seconds, "10") == timedelta(seconds=10)
    assert coerce(millis, "10") == timedelta(milliseconds=10)
    assert coerce(seconds, "1.5") == timedelta(milliseconds=1500)
    assert coerce(seconds, "0") == timedelta(0)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("90s", timedelta(seconds=90)),
        ("1m30s", timedelta(seconds=90)),
        ("250ms", timedelta(milliseconds=250)),
        ("2h", timedelta(hours=2)),
        ("1500us", timedelta(microseconds=1500)),
        ("1500µs", timedelta(microseconds=1500)),
        ("2000ns", timedelta(microseconds=2)),
    ],
)
def test_textual_duration_groups(raw: str, expected: timedelta) -> None:
    descriptor = _descriptor(ValueKind.DURATION, unit=UnitScale.MILLISECONDS)

    assert coerce(descriptor, raw) == expected


@pytest.mark.parametrize("raw", ["ten seconds", "10x", "s", "1m30", ""])
def test_malformed_durations_are_rejected(raw: str) -> None:
    with pytest.raises(CoercionError):
        coerce(_descriptor(ValueKind.DURATION, unit=UnitScale.SECONDS), raw)


def test_negative_duration_parses_so_validation_can_reject_it() -> None:
    descriptor = _descriptor(ValueKind.DURATION, unit=UnitScale.SECONDS)

    assert coerce(descriptor, "-5") == timedelta(seconds=-5)
    assert coerce(descriptor, "-1m") == timedelta(minutes=-1)


@pytest.mark.parametrize(
    ("unit", "raw"),
    [
        (UnitScale.SECONDS, "99999999999999"),
        (UnitScale.MILLISECONDS, "9" * 400),
        (UnitScale.SECONDS, "99999999999999h"),
        (UnitScale.SECONDS, "1" + "0" * 400 + "s"),
    ],
)
def test_oversized_duration_is_a_coercion_error(unit: UnitScale, raw: str) -> None:
    with pytest.raises(CoercionError, match="out of range"):
        coerce(_descriptor(ValueKind.DURATION, unit=unit), raw)


def test_regex_must_compile() -> None:
    descriptor = _descriptor(ValueKind.REGEX)

    assert coerce(descriptor, "^(en|eth).*") == "^(en|eth).*"
    with pytest.raises(CoercionError, match="regular expression"):
        coerce(descriptor, "([a-z]")


def test_enum_is_case_sensitive() -> None:
    descriptor = _descriptor(ValueKind.ENUM, choices=("Drop", "Accept"))

    assert coerce(descriptor, "Accept") == "Accept"
    with pytest.raises(CoercionError, match="must be one of"):
        coerce(descriptor, "accept")


def test_string_list_strips_entries_and_drops_empties() -> None:
    descriptor = _descriptor(ValueKind.STRING_LIST)

    assert coerce(descriptor, " eth0 , ,wlan0,") == ("eth0", "wlan0")
    assert coerce(descriptor, "NONE") == ()


def test_key_value_list_keeps_last_duplicate_and_allows_empty_values() -> None:
    descriptor = _descriptor(ValueKind.KEY_VALUE_LIST)

    parsed = coerce(descriptor, "Bpf=true,Iptables=,Bpf=false")

    assert dict(parsed) == {"Iptables": "", "Bpf": "false"}
    assert dict(coerce(descriptor, "")) == {}
    with pytest.raises(TypeError):
        parsed["new"] = "x"  # type: ignore[index]


@pytest.mark.parametrize("raw", ["novalue", "bad key=1", "a=1, b=2", "=x"])
def test_key_value_list_rejects_malformed_pairs(raw: str) -> None:
    with pytest.raises(CoercionError):
        coerce(_descriptor(ValueKind.KEY_VALUE_LIST), raw)


def test_proto_port_list_defaults_protocol_and_normalises_cidr() -> None:
    descriptor = _registered("FailsafeInboundHostPorts")

    parsed = coerce(descriptor, "22, UDP:68, tcp:179:10.0.0.1/8, 443:fd00::1/64, sctp:9")

    assert parsed == (
        ProtoPort("tcp", 22),
        ProtoPort("udp", 68),
        ProtoPort("tcp", 179, "10.0.0.0/8"),
        ProtoPort("tcp", 443, "fd00::/64"),
        ProtoPort("sctp", 9),
    )


def test_proto_port_none_sentinel_means_explicitly_empty() -> None:
    assert coerce(_registered("FailsafeOutboundHostPorts"), "none") == ()


@pytest.mark.parametrize(
    "raw",
    ["icmp:22", "tcp:70000", "tcp:ssh", "tcp:22:not-a-cidr", "tcp:"],
)
def test_proto_port_list_rejects_bad_elements(raw: str) -> None:
    with pytest.raises(CoercionError):
        coerce(_registered("FailsafeInboundHostPorts"), raw)


def test_route_table_range_separators() -> None:
    descriptor = _registered("RouteTableRange")

    for raw in ("1,250", "1:250", "1-250", " 1 , 250 "):
        assert coerce(descriptor, raw) == RouteTableRange(1, 250)
    with pytest.raises(CoercionError):
        coerce(descriptor, "1")


def test_port_range_and_port_range_list() -> None:
    single = _registered("NATPortRange")
    ranges = _registered("KubeNodePortRanges")

    assert coerce(single, "32768:65535") == PortRange(32768, 65535)
    assert coerce(single, "8080") == PortRange(8080, 8080)
    assert coerce(ranges, "30000:32767, 40000-40100") == (
        PortRange(30000, 32767),
        PortRange(40000, 40100),
    )
    with pytest.raises(CoercionError):
        coerce(single, "70000")


@pytest.mark.parametrize(
    ("name", "raw"),
    [
        ("IPIPEnabled", "true"),
        ("IPIPMTU", "1400"),
        ("IptablesMarkMask", "0xffff0000"),
        ("IptablesLockTimeout", "1m30s"),
        ("IptablesLockProbeInterval", "250ms"),
        ("InterfaceExclude", "kube-ipvs0,/^veth.*/"),
        ("FailsafeInboundHostPorts", "tcp:22:10.0.0.0/8,udp:68"),
        ("FailsafeInboundHostPorts", "none"),
        ("RouteTableRange", "10:20"),
        ("KubeNodePortRanges", "30000:32767,40000"),
        ("NATPortRange", "32768:65535"),
    ],
)
def test_format_value_round_trips(name: str, raw: str) -> None:
    descriptor = _registered(name)
    value = coerce(descriptor, raw)

    assert coerce(descriptor, format_value(descriptor, value)) == value


def test_format_value_of_unset_optional_is_empty() -> None:
    assert format_value(_registered("NATPortRange"), None) == ""


_PROTO_PORTS = st.builds(
    ProtoPort,
    protocol=st.sampled_from(("tcp", "udp", "sctp")),
    port=st.integers(min_value=0, max_value=65535),
    net=st.sampled_from(("", "10.0.0.0/8", "192.168.1.0/24", "fd00::/64", "0.0.0.0/0")),
)


@settings(max_examples=100, deadline=None)
@given(st.lists(_PROTO_PORTS, min_size=1, max_size=8))
def test_proto_port_list_round_trip_preserves_order(items: list[ProtoPort]) -> None:
    descriptor = _registered("FailsafeInboundHostPorts")

    rendered = format_value(descriptor, tuple(items))

    assert coerce(descriptor, rendered) == tuple(items)
