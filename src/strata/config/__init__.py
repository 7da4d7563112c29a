"""
Layered configuration: store, schema binding, sources, watchers and the manager facade.
"""

from strata.config.coercion import coerce, format_duration, parse_duration
from strata.config.formats import config_type_for, decode_payload
from strata.config.manager import ConfigManager, new
from strata.config.options import ManagerOptions, ReloadFailurePolicy
from strata.config.providers import ConfigProvider, LocalConfigProvider, RemoteConfigProvider
from strata.config.remote import (
    Fetcher,
    RemoteProvider,
    fetch_with_timeout,
    get_fetcher,
    register_fetcher,
)
from strata.config.rwlock import ReadWriteLock
from strata.config.schema import SchemaBinder
from strata.config.store import SettingsStore, deep_merge, flatten, unflatten
from strata.config.watchers import (
    CancelScope,
    ConfigWatcher,
    LocalConfigWatcher,
    RemoteConfigWatcher,
)

__all__ = [
    "ConfigManager",
    "new",
    "ManagerOptions",
    "ReloadFailurePolicy",
    "SettingsStore",
    "SchemaBinder",
    "ReadWriteLock",
    "ConfigProvider",
    "LocalConfigProvider",
    "RemoteConfigProvider",
    "ConfigWatcher",
    "LocalConfigWatcher",
    "RemoteConfigWatcher",
    "CancelScope",
    "RemoteProvider",
    "Fetcher",
    "register_fetcher",
    "get_fetcher",
    "fetch_with_timeout",
    "config_type_for",
    "decode_payload",
    "coerce",
    "parse_duration",
    "format_duration",
    "flatten",
    "unflatten",
    "deep_merge",
]
