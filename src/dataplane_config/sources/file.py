"""
dataplane-config — local config file source.

File: src/dataplane_config/sources/file.py
Last updated: 2026-10-19

Purpose
- Read overrides from the agent's local configuration file.

What should be included in this file
- YAML (``.yaml``/``.yml``) loading via ``yaml.safe_load``.
- TOML loading via ``tomllib``.
- INI-style ``key = value`` loading via ``configparser`` (``[global]`` section
  or no section at all).
- mtime polling (``changed``) so the engine can re-resolve on edits.

Functional requirements
- A missing file yields no overrides unless the source is marked required.
- Structured values (booleans, lists, proto-port tables) are rendered to the
  same wire strings an environment variable would carry.

Non-functional requirements
- Parse errors and unreadable files raise ``SourceError`` naming the path.
"""

from __future__ import annotations

import configparser
import threading
import tomllib
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any, Final

import yaml

from dataplane_config.constants import (
    CONFIG_FILE_SECTION,
    DEFAULT_CONFIG_FILE,
    SOURCE_CONFIG_FILE,
    SourceRank,
)
from dataplane_config.sources.base import SourceError, to_wire

_YAML_SUFFIXES: Final[frozenset[str]] = frozenset({".yaml", ".yml"})
_TOML_SUFFIXES: Final[frozenset[str]] = frozenset({".toml"})


class ConfigFileSource:
    """Overrides read from one file on disk."""

    def __init__(
        self,
        path: str | Path = DEFAULT_CONFIG_FILE,
        *,
        required: bool = False,
        source_id: str = SOURCE_CONFIG_FILE,
        rank: SourceRank | int = SourceRank.CONFIG_FILE,
    ) -> None:
        self._path = Path(path).expanduser()
        self._required = required
        self._source_id = source_id
        self._rank = rank
        self._lock = threading.Lock()
        self._seen_mtime_ns: int | None = None
        self._observed = False

    @property
    def source_id(self) -> str:
        return self._source_id

    @property
    def rank(self) -> int:
        return int(self._rank)

    @property
    def path(self) -> Path:
        return self._path

    def collect(self) -> Mapping[str, str]:
        mtime_ns = self._stat_mtime_ns()
        with self._lock:
            self._seen_mtime_ns = mtime_ns
            self._observed = True

        if mtime_ns is None:
            if self._required:
                raise SourceError(self._source_id, f"config file not found: {self._path}")
            return MappingProxyType({})

        raw = self._load()
        rendered: dict[str, str] = {}
        for key, value in raw.items():
            wire = to_wire(value)
            if wire is not None:
                rendered[str(key)] = wire
        return MappingProxyType(rendered)

    def changed(self) -> bool:
        """Return ``True`` when the file's mtime differs from the last collect."""

        mtime_ns = self._stat_mtime_ns()
        with self._lock:
            if not self._observed:
                return True
            return mtime_ns != self._seen_mtime_ns

    def _stat_mtime_ns(self) -> int | None:
        try:
            return self._path.stat().st_mtime_ns
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise SourceError(self._source_id, f"unable to stat {self._path}: {exc}") from exc

    def _load(self) -> Mapping[str, Any]:
        suffix = self._path.suffix.lower()
        if suffix in _YAML_SUFFIXES:
            return self._load_yaml()
        if suffix in _TOML_SUFFIXES:
            return self._load_toml()
        return self._load_ini()

    def _read_text(self) -> str:
        try:
            return self._path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise SourceError(self._source_id, f"unable to read config file {self._path}: {exc}") from exc

    def _load_yaml(self) -> Mapping[str, Any]:
        try:
            parsed = yaml.safe_load(self._read_text())
        except yaml.YAMLError as exc:
            raise SourceError(self._source_id, f"invalid YAML in {self._path}: {exc}") from exc
        if parsed is None:
            return {}
        return self._flatten_root(parsed)

    def _load_toml(self) -> Mapping[str, Any]:
        try:
            with self._path.open("rb") as handle:
                parsed = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise SourceError(self._source_id, f"invalid TOML in {self._path}: {exc}") from exc
        except OSError as exc:
            raise SourceError(self._source_id, f"unable to read config file {self._path}: {exc}") from exc
        return self._flatten_root(parsed)

    def _load_ini(self) -> Mapping[str, Any]:
        text = self._read_text()
        parser = configparser.ConfigParser(interpolation=None, strict=False)
        parser.optionxform = str  # type: ignore[assignment,method-assign]
        try:
            try:
                parser.read_string(text, source=str(self._path))
            except configparser.MissingSectionHeaderError:
                parser.read_string(f"[{CONFIG_FILE_SECTION}]\n{text}", source=str(self._path))
        except configparser.Error as exc:
            raise SourceError(self._source_id, f"invalid config file {self._path}: {exc}") from exc

        if not parser.has_section(CONFIG_FILE_SECTION):
            return {}
        return dict(parser.items(CONFIG_FILE_SECTION))

    def _flatten_root(self, parsed: Any) -> Mapping[str, Any]:
        if not isinstance(parsed, dict):
            raise SourceError(self._source_id, f"config root must be a mapping: {self._path}")
        flattened = {key: value for key, value in parsed.items() if key != CONFIG_FILE_SECTION}
        section = parsed.get(CONFIG_FILE_SECTION)
        if isinstance(section, dict):
            flattened.update(section)
        elif section is not None:
            raise SourceError(self._source_id, f"'{CONFIG_FILE_SECTION}' section must be a mapping: {self._path}")
        return flattened

    def __repr__(self) -> str:
        return f"ConfigFileSource(path={str(self._path)!r}, required={self._required})"


__all__ = ["ConfigFileSource"]
