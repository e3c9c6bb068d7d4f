"""Raw override sources: environment, config file, datastore objects."""

from dataplane_config.sources.base import MappingSource, RawSource, SourceError, SourceInfo
from dataplane_config.sources.datastore import DatastoreSource
from dataplane_config.sources.environment import EnvironmentSource
from dataplane_config.sources.file import ConfigFileSource
from dataplane_config.sources.watch import ConfigFileWatcher

__all__ = [
    "ConfigFileSource",
    "ConfigFileWatcher",
    "DatastoreSource",
    "EnvironmentSource",
    "MappingSource",
    "RawSource",
    "SourceError",
    "SourceInfo",
]
