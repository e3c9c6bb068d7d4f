"""Environment-variable overrides (``FELIX_<NAME>``)."""

from __future__ import annotations

import os
from collections.abc import Mapping
from types import MappingProxyType

from dataplane_config.constants import ENV_PREFIX, SOURCE_ENVIRONMENT, SourceRank


class EnvironmentSource:
    """Collect variables whose name starts with ``prefix``, case-insensitively.

    The prefix is stripped; the remainder is matched against parameter names
    and aliases by the registry, which also ignores case, so
    ``FELIX_IPTABLESLOCKTIMEOUTSECS`` reaches ``IptablesLockTimeout``.
    """

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        *,
        prefix: str = ENV_PREFIX,
        source_id: str = SOURCE_ENVIRONMENT,
        rank: SourceRank | int = SourceRank.ENVIRONMENT,
    ) -> None:
        self._environ = environ
        self._prefix = prefix.upper()
        self._source_id = source_id
        self._rank = rank

    @property
    def source_id(self) -> str:
        return self._source_id

    @property
    def rank(self) -> int:
        return int(self._rank)

    def collect(self) -> Mapping[str, str]:
        environ = os.environ if self._environ is None else self._environ
        prefix_length = len(self._prefix)
        collected: dict[str, str] = {}
        for key, value in environ.items():
            if len(key) > prefix_length and key.upper().startswith(self._prefix):
                collected[key[prefix_length:]] = value
        return MappingProxyType(collected)


__all__ = ["EnvironmentSource"]
