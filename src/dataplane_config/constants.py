"""Stable constants shared across the resolution engine."""

from __future__ import annotations

from enum import IntEnum
from pathlib import PurePosixPath
from typing import Final

# Environment overrides.
ENV_PREFIX: Final[str] = "FELIX_"

# Local config file.
DEFAULT_CONFIG_FILE: Final[PurePosixPath] = PurePosixPath("/etc/calico/felix.cfg")
CONFIG_FILE_SECTION: Final[str] = "global"

# Datastore objects.
GLOBAL_OBJECT_NAME: Final[str] = "default"
HOST_OBJECT_PREFIX: Final[str] = "node."


class SourceRank(IntEnum):
    """Fixed source precedence; lower rank wins."""

    ENVIRONMENT = 10
    CONFIG_FILE = 20
    DATASTORE_PER_HOST = 30
    DATASTORE_GLOBAL = 40


# Well-known source identities.
SOURCE_ENVIRONMENT: Final[str] = "environment"
SOURCE_CONFIG_FILE: Final[str] = "config-file"
SOURCE_DATASTORE_PER_HOST: Final[str] = "datastore-per-host"
SOURCE_DATASTORE_GLOBAL: Final[str] = "datastore-global"

# Engine defaults.
DEFAULT_SOURCE_TIMEOUT_SECONDS: Final[float] = 10.0
DEFAULT_MAX_CONCURRENT_SOURCES: Final[int] = 4
DEFAULT_POLL_INTERVAL_SECONDS: Final[float] = 30.0

# Bounds shared by several validators.
MAX_PORT: Final[int] = 65535
MAX_UINT32: Final[int] = 0xFFFFFFFF
ROUTE_TABLE_MIN: Final[int] = 1
ROUTE_TABLE_MAX: Final[int] = 250
ROUTING_RULE_PRIORITY_MAX: Final[int] = 32766

__all__ = [
    "CONFIG_FILE_SECTION",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_MAX_CONCURRENT_SOURCES",
    "DEFAULT_POLL_INTERVAL_SECONDS",
    "DEFAULT_SOURCE_TIMEOUT_SECONDS",
    "ENV_PREFIX",
    "GLOBAL_OBJECT_NAME",
    "HOST_OBJECT_PREFIX",
    "MAX_PORT",
    "MAX_UINT32",
    "ROUTE_TABLE_MAX",
    "ROUTE_TABLE_MIN",
    "ROUTING_RULE_PRIORITY_MAX",
    "SOURCE_CONFIG_FILE",
    "SOURCE_DATASTORE_GLOBAL",
    "SOURCE_DATASTORE_PER_HOST",
    "SOURCE_ENVIRONMENT",
    "SourceRank",
]
