"""Environment source: prefix matching and in-memory mapping sources."""

from __future__ import annotations

import pytest

from dataplane_config.constants import SourceRank
from dataplane_config.sources import EnvironmentSource, MappingSource, RawSource
from dataplane_config.sources.base import to_wire


def test_prefix_is_case_insensitive_and_stripped() -> None:
    source = EnvironmentSource(
        {
            "FELIX_IPTABLESLOCKTIMEOUTSECS": "5",
            "felix_HealthPort": "9100",
            "FELIX_": "ignored",
            "PATH": "/usr/bin",
            "XFELIX_IPIPMTU": "1",
        }
    )

    assert dict(source.collect()) == {"IPTABLESLOCKTIMEOUTSECS": "5", "HealthPort": "9100"}
    assert source.source_id == "environment"
    assert source.rank == SourceRank.ENVIRONMENT
    assert isinstance(source, RawSource)


def test_reads_process_environment_by_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FELIX_LOGSEVERITYSCREEN", "Debug")

    assert EnvironmentSource().collect()["LOGSEVERITYSCREEN"] == "Debug"


def test_custom_prefix() -> None:
    source = EnvironmentSource({"DP_HEALTHPORT": "1", "FELIX_HEALTHPORT": "2"}, prefix="dp_")

    assert dict(source.collect()) == {"HEALTHPORT": "1"}


def test_mapping_source_renders_structured_values() -> None:
    source = MappingSource(
        "datastore-global",
        SourceRank.DATASTORE_GLOBAL,
        {
            "IPIPEnabled": True,
            "HealthPort": 9100,
            "NATPortRange": None,
            "InterfaceExclude": [],
        },
    )

    assert dict(source.collect()) == {
        "IPIPEnabled": "true",
        "HealthPort": "9100",
        "InterfaceExclude": "none",
    }
    assert source.rank == 40


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ([{"protocol": "UDP", "port": 53}, {"port": 22, "net": "10.0.0.0/8"}], "udp:53,tcp:22:10.0.0.0/8"),
        ({"min": 1, "max": 250}, "1,250"),
        ({"Bpf": True, "Iptables": None}, "Bpf=true,Iptables="),
        (["eth0", "eth1"], "eth0,eth1"),
        (1.5, "1.5"),
    ],
)
def test_to_wire(value: object, expected: str) -> None:
    assert to_wire(value) == expected
