"""
dataplane-config — unit tests for the parameter registry

File: tests/unit/registry/test_registry.py
Last updated: 2026-10-19

Purpose
- Validate descriptor compilation, alias lookup and construction-time failures.

What this test file should cover
- Case-insensitive lookup of canonical names, legacy aliases and env-style names.
- Typed defaults parsed from their wire form.
- Fatal errors for inconsistent declarations.

Functional requirements
- Offline and deterministic.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from dataplane_config.registry.descriptors import (
    ParameterSpec,
    ProtoPort,
    RouteTableRange,
    UnitScale,
    ValueKind,
)
from dataplane_config.registry.parameters import PARAMETERS
from dataplane_config.registry.registry import ParameterRegistry, RegistryError, default_registry


def test_default_registry_is_built_once_and_covers_every_declaration() -> None:
    registry = default_registry()

    assert registry is default_registry()
    assert len(registry) == len(PARAMETERS)
    assert [descriptor.name for descriptor in registry.all_descriptors()] == [
        spec.name for spec in PARAMETERS
    ]


def test_lookup_ignores_case_and_accepts_aliases() -> None:
    registry = default_registry()

    canonical = registry.descriptor_for("IptablesLockTimeout")
    assert canonical is not None
    assert registry.descriptor_for("IPTABLESLOCKTIMEOUT") is canonical
    assert registry.descriptor_for("iptablesLockTimeout") is canonical
    assert registry.descriptor_for("IptablesLockTimeoutSecs") is canonical
    assert registry.canonical_name_for("IPTABLESLOCKTIMEOUTSECS") == "IptablesLockTimeout"
    assert registry.descriptor_for("NoSuchParameter") is None
    assert registry.canonical_name_for("NoSuchParameter") is None
    assert "ipinipenabled" in registry


def test_defaults_are_typed() -> None:
    registry = default_registry()

    lock_timeout = registry.descriptor_for("IptablesLockTimeout")
    lock_retry_interval = registry.descriptor_for("IptablesLockProbeInterval")
    route_tables = registry.descriptor_for("RouteTableRange")
    failsafe_in = registry.descriptor_for("FailsafeInboundHostPorts")
    nat_port_range = registry.descriptor_for("NATPortRange")
    assert lock_timeout is not None and lock_retry_interval is not None
    assert route_tables is not None and failsafe_in is not None and nat_port_range is not None

    assert lock_timeout.default == timedelta(0)
    assert lock_timeout.unit is UnitScale.SECONDS
    assert lock_retry_interval.default == timedelta(milliseconds=50)
    assert route_tables.default == RouteTableRange(min=1, max=250)
    assert ProtoPort(protocol="tcp", port=22) in failsafe_in.default
    assert nat_port_range.default is None


def test_live_apply_controls_restart_requirement() -> None:
    registry = default_registry()

    severity = registry.descriptor_for("LogSeverityScreen")
    lock_timeout = registry.descriptor_for("IptablesLockTimeout")
    assert severity is not None and lock_timeout is not None

    assert severity.live_apply is True
    assert severity.requires_restart is False
    assert lock_timeout.requires_restart is True


def test_every_descriptor_has_resolved_validators_for_its_rules() -> None:
    for descriptor in default_registry().all_descriptors():
        assert len(descriptor.validators) == len(descriptor.rules), descriptor.name


def test_duplicate_alias_is_rejected_case_insensitively() -> None:
    specs = (
        ParameterSpec("FirstParam", ValueKind.BOOL, "false", aliases=("SharedAlias",)),
        ParameterSpec("SecondParam", ValueKind.BOOL, "false", aliases=("sharedalias",)),
    )

    with pytest.raises(RegistryError, match="already used"):
        ParameterRegistry(specs)


def test_duplicate_canonical_name_is_rejected() -> None:
    specs = (
        ParameterSpec("SameName", ValueKind.INT, "1"),
        ParameterSpec("SAMENAME", ValueKind.INT, "2"),
    )

    with pytest.raises(RegistryError):
        ParameterRegistry(specs)


@pytest.mark.parametrize(
    ("spec", "message"),
    [
        (ParameterSpec("Mode", ValueKind.ENUM, "A"), "no allowed values"),
        (ParameterSpec("Delay", ValueKind.DURATION, "5"), "no unit scale"),
        (ParameterSpec("Port", ValueKind.INT, "80", rules=("bogusRule",)), "unknown validation rule"),
        (ParameterSpec("Count", ValueKind.INT, "5", rules=("between=3",)), "unknown comparison rule"),
        (ParameterSpec("Count", ValueKind.INT, "five"), "default is malformed"),
        (ParameterSpec("Count", ValueKind.INT, "0", rules=("gt=0",)), "is invalid"),
        (
            ParameterSpec("Range", ValueKind.ROUTE_TABLE_RANGE, "10,5"),
            "is invalid",
        ),
    ],
)
def test_inconsistent_declarations_are_fatal(spec: ParameterSpec, message: str) -> None:
    with pytest.raises(RegistryError, match=message):
        ParameterRegistry((spec,))


def test_unset_default_is_allowed_for_optional_fields() -> None:
    registry = ParameterRegistry((ParameterSpec("Optional", ValueKind.PORT_RANGE, None),))

    descriptor = registry.descriptor_for("optional")
    assert descriptor is not None
    assert descriptor.default is None
    assert descriptor.default_raw is None


def test_alias_differing_only_by_case_is_rejected() -> None:
    spec = ParameterSpec("IPv6Support", ValueKind.BOOL, "true", aliases=("Ipv6Support",))

    with pytest.raises(RegistryError, match="only differs from the name by case"):
        ParameterRegistry((spec,))


def test_shipped_declarations_have_no_case_insensitive_collisions() -> None:
    seen: set[str] = set()
    for spec in PARAMETERS:
        for name in (spec.name, *spec.aliases):
            assert name.lower() not in seen, name
            seen.add(name.lower())

    registry = default_registry()
    assert registry.descriptor_for("Ipv6Support") is registry.descriptor_for("IPv6Support")
    assert registry.descriptor_for("IptablesMarkMask") is not None
