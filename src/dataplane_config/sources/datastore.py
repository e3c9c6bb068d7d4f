"""
dataplane-config — datastore configuration objects.

File: src/dataplane_config/sources/datastore.py
Last updated: 2026-10-19

Purpose
- Adapt already-fetched datastore configuration objects (the cluster-wide
  ``default`` object and the per-host ``node.<hostname>`` object) to the raw
  source contract.

What should be included in this file
- ``DatastoreSource`` wrapping a fetch callable.
- Constructors for the global and per-host objects with their fixed ranks.

Functional requirements
- ``fetch`` returns the object's ``spec`` mapping keyed by JSON field names,
  or ``None`` when the object does not exist (no overrides).
- Typed JSON values are rendered to wire strings before merging.
- Exceptions raised by ``fetch`` surface as ``SourceError``.

Non-functional requirements
- No client library dependency; fetching and watching live with the caller.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any

from dataplane_config.constants import (
    GLOBAL_OBJECT_NAME,
    HOST_OBJECT_PREFIX,
    SOURCE_DATASTORE_GLOBAL,
    SOURCE_DATASTORE_PER_HOST,
    SourceRank,
)
from dataplane_config.sources.base import SourceError, to_wire

SpecFetcher = Callable[[], Mapping[str, Any] | None]


class DatastoreSource:
    """Overrides taken from one datastore configuration object."""

    def __init__(
        self,
        source_id: str,
        rank: SourceRank | int,
        fetch: SpecFetcher,
        *,
        object_name: str | None = None,
    ) -> None:
        self._source_id = source_id
        self._rank = rank
        self._fetch = fetch
        self._object_name = object_name

    @classmethod
    def global_object(cls, fetch: SpecFetcher) -> DatastoreSource:
        return cls(
            SOURCE_DATASTORE_GLOBAL,
            SourceRank.DATASTORE_GLOBAL,
            fetch,
            object_name=GLOBAL_OBJECT_NAME,
        )

    @classmethod
    def per_host(cls, hostname: str, fetch: SpecFetcher) -> DatastoreSource:
        if not hostname:
            raise ValueError("hostname must not be empty")
        return cls(
            SOURCE_DATASTORE_PER_HOST,
            SourceRank.DATASTORE_PER_HOST,
            fetch,
            object_name=f"{HOST_OBJECT_PREFIX}{hostname}",
        )

    @property
    def source_id(self) -> str:
        return self._source_id

    @property
    def rank(self) -> int:
        return int(self._rank)

    @property
    def object_name(self) -> str | None:
        return self._object_name

    def collect(self) -> Mapping[str, str]:
        try:
            spec = self._fetch()
        except SourceError:
            raise
        except Exception as exc:
            raise SourceError(self._source_id, f"fetch of {self._object_name or 'object'} failed: {exc}") from exc

        if spec is None:
            return MappingProxyType({})
        if not isinstance(spec, Mapping):
            raise SourceError(self._source_id, f"spec must be a mapping, got {type(spec).__name__}")

        rendered: dict[str, str] = {}
        for key, value in spec.items():
            wire = to_wire(value)
            if wire is not None:
                rendered[str(key)] = wire
        return MappingProxyType(rendered)

    def __repr__(self) -> str:
        return f"DatastoreSource(source_id={self._source_id!r}, object_name={self._object_name!r})"


__all__ = ["DatastoreSource", "SpecFetcher"]
