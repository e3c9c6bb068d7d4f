"""
dataplane-config — unit tests for the config file source

File: tests/unit/sources/test_config_file_source.py
Last updated: 2026-10-19

Purpose
- Validate INI, YAML and TOML parsing into raw wire strings.

What this test file should cover
- Section handling (``[global]`` and section-less files).
- Missing file behaviour, optional and required.
- Parse errors surfacing as ``SourceError``.
- Change detection via modification time.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from dataplane_config.sources import ConfigFileSource, SourceError


def test_ini_global_section(tmp_path: Path) -> None:
    path = tmp_path / "felix.cfg"
    path.write_text(
        "[global]\nIptablesLockTimeoutSecs = 5\nLogSeverityScreen=Debug\n\n[other]\nHealthPort = 1\n",
        encoding="utf-8",
    )

    values = ConfigFileSource(path).collect()

    assert dict(values) == {"IptablesLockTimeoutSecs": "5", "LogSeverityScreen": "Debug"}


def test_ini_without_section_header_is_read_as_global(tmp_path: Path) -> None:
    path = tmp_path / "felix.cfg"
    path.write_text("HealthPort = 9100\n", encoding="utf-8")

    assert dict(ConfigFileSource(path).collect()) == {"HealthPort": "9100"}


def test_ini_with_only_other_sections_yields_nothing(tmp_path: Path) -> None:
    path = tmp_path / "felix.cfg"
    path.write_text("[log]\nLevel = debug\n", encoding="utf-8")

    assert dict(ConfigFileSource(path).collect()) == {}


def test_yaml_merges_global_section_over_top_level(tmp_path: Path) -> None:
    path = tmp_path / "felix.yaml"
    path.write_text(
        "HealthPort: 9100\n"
        "IPIPEnabled: true\n"
        "global:\n"
        "  HealthPort: 9200\n"
        "  FailsafeInboundHostPorts:\n"
        "    - protocol: udp\n"
        "      port: 68\n"
        "    - port: 22\n"
        "  InterfaceExclude: []\n",
        encoding="utf-8",
    )

    values = ConfigFileSource(path).collect()

    assert dict(values) == {
        "HealthPort": "9200",
        "IPIPEnabled": "true",
        "FailsafeInboundHostPorts": "udp:68,tcp:22",
        "InterfaceExclude": "none",
    }


def test_empty_yaml_is_no_overrides(tmp_path: Path) -> None:
    path = tmp_path / "felix.yml"
    path.write_text("", encoding="utf-8")

    assert dict(ConfigFileSource(path).collect()) == {}


def test_toml(tmp_path: Path) -> None:
    path = tmp_path / "felix.toml"
    path.write_text(
        'LogSeverityScreen = "Warning"\n\n[global]\nRouteTableRange = { min = 10, max = 20 }\n',
        encoding="utf-8",
    )

    values = ConfigFileSource(path).collect()

    assert dict(values) == {"LogSeverityScreen": "Warning", "RouteTableRange": "10,20"}


@pytest.mark.parametrize(
    ("name", "content"),
    [
        ("bad.yaml", "HealthPort: [unterminated\n"),
        ("list.yaml", "- a\n- b\n"),
        ("bad.toml", "HealthPort = \n"),
        ("section.yaml", "global: 5\n"),
    ],
)
def test_malformed_files_raise_source_error(tmp_path: Path, name: str, content: str) -> None:
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")

    with pytest.raises(SourceError) as excinfo:
        ConfigFileSource(path).collect()
    assert excinfo.value.source_id == "config-file"
    assert name in str(excinfo.value)


def test_missing_file_is_optional_by_default(tmp_path: Path) -> None:
    assert dict(ConfigFileSource(tmp_path / "absent.cfg").collect()) == {}


def test_missing_required_file_raises(tmp_path: Path) -> None:
    with pytest.raises(SourceError, match="not found"):
        ConfigFileSource(tmp_path / "absent.cfg", required=True).collect()


def test_changed_tracks_modification_time(tmp_path: Path) -> None:
    path = tmp_path / "felix.cfg"
    path.write_text("HealthPort = 1\n", encoding="utf-8")
    source = ConfigFileSource(path)

    assert source.changed() is True
    source.collect()
    assert source.changed() is False

    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))
    assert source.changed() is True
    source.collect()
    assert source.changed() is False

    path.unlink()
    assert source.changed() is True
