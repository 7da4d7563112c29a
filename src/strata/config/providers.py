"""
Configuration providers.

A provider performs one load: it stages a fresh store (defaults, source
data, environment overlay), binds the optional schema, and only then
publishes the staged store and schema under the write lock. A failed load
leaves the previous store and schema untouched.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

from strata.config.formats import config_type_for, decode_payload
from strata.config.remote import Fetcher, RemoteProvider, fetch_with_timeout, get_fetcher
from strata.config.rwlock import ReadWriteLock
from strata.config.schema import SchemaBinder
from strata.config.store import SettingsStore
from strata.core.exceptions import (
    RemoteSourceError,
    SourceNotFoundError,
    SourceReadError,
    StrataError,
)
from strata.core.logging import AsyncLogger, PerformanceLogger, SensitiveDataMasker


class ConfigProvider(Protocol):
    """Performs exactly one load of the store from one source."""

    def load(self) -> None: ...


class _StagingProvider:
    source_label = "file"

    def __init__(
        self,
        store: SettingsStore,
        lock: ReadWriteLock,
        logger: AsyncLogger,
        defaults: Optional[Dict[str, Any]] = None,
        env_prefix: str = "",
        binder: Optional[SchemaBinder] = None,
    ) -> None:
        self._store = store
        self._lock = lock
        self._logger = logger
        self._defaults = dict(defaults or {})
        self._env_prefix = env_prefix
        self._binder = binder
        self._masker = SensitiveDataMasker()
        self._perf = PerformanceLogger(logger.component)

    def _stage(self, data: Optional[Dict[str, Any]]) -> SettingsStore:
        staged = SettingsStore()
        for key, value in self._defaults.items():
            staged.set_default(key, value)
            self._logger.debug("Setting default value", key=key)
        if self._env_prefix:
            staged.enable_env(self._env_prefix)
        if data is not None:
            staged.merge_config(data, source=self.source_label)
        return staged

    def _publish(self, data: Optional[Dict[str, Any]]) -> None:
        with self._lock.write():
            staged = self._stage(data)
            settings = staged.all_settings()
            bound = self._binder.bind(settings) if self._binder is not None else None
            self._store.replace_with(staged)
            if self._binder is not None:
                self._binder.commit(bound)

        self._logger.debug(
            "Configuration loaded",
            source=self.source_label,
            settings=self._masker.mask_settings(settings),
        )


class LocalConfigProvider(_StagingProvider):
    """Loads a YAML, JSON or TOML file plus defaults and environment."""

    source_label = "file"

    def __init__(
        self,
        path: Union[str, Path, None],
        store: SettingsStore,
        lock: ReadWriteLock,
        logger: AsyncLogger,
        config_type: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(store, lock, logger, **kwargs)
        self.path = Path(path) if path else None
        self.config_type = config_type or (config_type_for(self.path) if self.path else "yaml")

    def load(self) -> None:
        with self._perf.measure("config_load", source=str(self.path)):
            data = self._read()
            self._publish(data)

    def _read(self) -> Optional[Dict[str, Any]]:
        """Decoded file content, or None when the file is absent but defaults exist."""
        try:
            if self.path is None:
                raise FileNotFoundError("no configuration path")
            raw = self.path.read_bytes()
        except FileNotFoundError:
            if not self._defaults:
                error = SourceNotFoundError(
                    f"no configuration file found at {self.path} and no defaults provided",
                    context={"path": str(self.path)},
                )
                error.add_suggestion("Create the file or pass defaults")
                raise error
            self._logger.debug("No configuration file, using defaults", path=str(self.path))
            return None
        except OSError as e:
            raise SourceReadError(
                f"error reading config file: {e}",
                context={"path": str(self.path)},
                cause=e,
            ) from e

        return decode_payload(raw, self.config_type, source=str(self.path))


class RemoteConfigProvider(_StagingProvider):
    """Loads a JSON payload from a remote source, with an internal deadline."""

    source_label = "remote"

    def __init__(
        self,
        descriptor: RemoteProvider,
        store: SettingsStore,
        lock: ReadWriteLock,
        logger: AsyncLogger,
        timeout: float = 30.0,
        fetcher: Optional[Fetcher] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(store, lock, logger, **kwargs)
        self.descriptor = descriptor
        self.timeout = timeout
        self._fetcher = fetcher

    @property
    def fetcher(self) -> Fetcher:
        return self._fetcher or get_fetcher(self.descriptor.type)

    def fetch(self) -> Dict[str, Any]:
        """Fetch and decode the current payload without touching the store."""
        try:
            payload = fetch_with_timeout(self.fetcher, self.descriptor, self.timeout)
        except StrataError:
            raise
        except Exception as e:
            raise RemoteSourceError(
                f"error reading remote config: {e}",
                context={"type": self.descriptor.type, "endpoint": self.descriptor.endpoint},
                cause=e,
            ) from e

        return decode_payload(payload, "json", source=self.descriptor.endpoint)

    def load(self) -> None:
        with self._perf.measure("config_load", source=self.descriptor.endpoint):
            data = self.fetch()
            self._publish(data)
        self._logger.debug(
            "Successfully loaded remote configuration", endpoint=self.descriptor.endpoint
        )
