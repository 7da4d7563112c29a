"""
ConfigManager: the facade over one store, one provider and one optional watcher.

Precedence, highest first: environment > remote source | local file > defaults.
Local and remote sources are exclusive; the choice is made once, at construction.

Usage:
    cfg = strata.new("config.yaml", schema=AppConfig, env_prefix="SYNX",
                     defaults={"server.port": 8080}, watch=True)
    cfg.load()
    cfg.get_int("server.port")
"""

import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from strata.config.coercion import coerce
from strata.config.options import ManagerOptions, ReloadFailurePolicy
from strata.config.providers import ConfigProvider, LocalConfigProvider, RemoteConfigProvider
from strata.config.rwlock import ReadWriteLock
from strata.config.schema import SchemaBinder
from strata.config.store import SettingsStore
from strata.config.watchers import (
    CancelScope,
    ConfigWatcher,
    LocalConfigWatcher,
    RemoteConfigWatcher,
)
from strata.core.exceptions import (
    ConfigurationError,
    KeyNotSetError,
    ManagerClosedError,
    StrataError,
    WatchSetupError,
)
from strata.core.logging import AsyncLogger, SensitiveDataMasker, logger as package_logger


class ConfigManager:
    """
    Thread-safe, typed view over layered configuration.

    Getters take the shared side of a reader-writer lock; a load publishes
    under the exclusive side, so readers see either the previous or the new
    configuration, never a mix.
    """

    def __init__(
        self,
        path: Union[str, Path, None] = None,
        logger: Optional[AsyncLogger] = None,
        **options: Any,
    ) -> None:
        try:
            self.options = ManagerOptions(**options)
        except PydanticValidationError as e:
            raise ConfigurationError(f"invalid config manager options: {e}", cause=e) from e

        self.path = Path(path) if path else None
        self.logger = logger or package_logger.child("config")
        self._store = SettingsStore()
        self._lock = ReadWriteLock()
        self._load_lock = threading.Lock()
        self._close_lock = threading.Lock()
        self._closed = False
        self._done = threading.Event()
        self._masker = SensitiveDataMasker()

        opts = self.options
        self._binder = SchemaBinder(opts.schema_) if opts.schema_ is not None else None
        shared: Dict[str, Any] = {
            "defaults": opts.defaults,
            "env_prefix": opts.env_prefix,
            "binder": self._binder,
        }

        self.provider: ConfigProvider
        self.watcher: Optional[ConfigWatcher] = None
        if opts.remote is not None:
            self.provider = RemoteConfigProvider(
                opts.remote,
                self._store,
                self._lock,
                self.logger,
                timeout=opts.remote_timeout,
                fetcher=opts.remote_fetcher,
                **shared,
            )
            if opts.watch:
                self.watcher = RemoteConfigWatcher(
                    opts.remote,
                    self.logger,
                    poll_interval=opts.poll_interval,
                    timeout=opts.remote_timeout,
                    fetcher=opts.remote_fetcher,
                )
        else:
            self.provider = LocalConfigProvider(
                self.path,
                self._store,
                self._lock,
                self.logger,
                config_type=opts.config_type,
                **shared,
            )
            if opts.watch:
                self.watcher = LocalConfigWatcher(self.path, self.logger)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        with self._close_lock:
            return self._closed

    def _ensure_open(self) -> None:
        if self.closed:
            raise ManagerClosedError()

    def _source_name(self) -> str:
        remote = self.options.remote
        if remote is not None:
            return f"{remote.type}://{remote.endpoint}/{remote.path}"
        return str(self.path) if self.path else "defaults"

    def load(self) -> None:
        """
        Reload every layer from the configured source.

        Raises:
            ManagerClosedError: close() was called
            SourceNotFoundError, SourceReadError, SchemaDecodeError,
            ValidationFailedError, OperationTimeoutError: from the provider,
            unchanged; the previous configuration stays in place
        """
        self._ensure_open()
        with self._load_lock:
            self._ensure_open()
            try:
                self.provider.load()
            except StrataError as e:
                self.logger.error(
                    "Configuration load failed",
                    code=e.code,
                    source=self._masker.mask(self._source_name()),
                    error=self._masker.mask(str(e)),
                )
                raise

    def watch(
        self,
        cancel: Any,
        on_change: Callable[[], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        """
        Reload and notify on every change of the source; returns immediately.

        ``cancel`` is a threading.Event (or anything with ``is_set()``); setting
        it, or closing the manager, stops the subscription. A failed reload is
        logged and passed to ``on_error``; whether ``on_change`` still runs
        depends on the reload failure policy.

        Raises:
            WatchSetupError: missing cancellation signal, watching not enabled,
                or the source cannot be watched
            ManagerClosedError: close() was called
        """
        if cancel is None or not callable(getattr(cancel, "is_set", None)):
            raise WatchSetupError("cancellation signal cannot be None")
        self._ensure_open()
        if self.watcher is None:
            error = WatchSetupError("watching is not enabled for this config manager")
            error.add_suggestion("Construct the manager with watch=True")
            raise error

        policy = self.options.reload_failure_policy

        def reload_and_notify() -> None:
            try:
                self.load()
            except Exception as e:  # the subscription stays alive
                # load() already logged its own failures
                if not isinstance(e, StrataError):
                    self.logger.error(
                        "Failed to reload configuration", error=self._masker.mask(str(e))
                    )
                if on_error is not None:
                    self._run_callback(on_error, e)
                if policy is ReloadFailurePolicy.SKIP:
                    return
            self._run_callback(on_change)

        self.watcher.watch(CancelScope(cancel, self._done), reload_and_notify)

    def _run_callback(self, callback: Callable[..., None], *args: Any) -> None:
        try:
            callback(*args)
        except Exception as e:  # logged; the watcher thread keeps running
            self.logger.error(
                "Configuration change callback failed", error=self._masker.mask(str(e))
            )

    def close(self) -> None:
        """Mark the manager closed and stop its watchers. Idempotent."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
            self._done.set()
        self.logger.info("Config manager closed")

    def __enter__(self) -> "ConfigManager":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, key: str) -> Any:
        with self._lock.read():
            return self._store.get(key)

    def get_string(self, key: str) -> str:
        with self._lock.read():
            return self._store.get_string(key)

    def get_int(self, key: str) -> int:
        with self._lock.read():
            return self._store.get_int(key)

    def get_float(self, key: str) -> float:
        with self._lock.read():
            return self._store.get_float(key)

    def get_bool(self, key: str) -> bool:
        with self._lock.read():
            return self._store.get_bool(key)

    def get_string_slice(self, key: str) -> List[str]:
        with self._lock.read():
            return self._store.get_string_slice(key)

    def get_string_map(self, key: str) -> Dict[str, Any]:
        with self._lock.read():
            return self._store.get_string_map(key)

    def get_duration(self, key: str) -> timedelta:
        with self._lock.read():
            return self._store.get_duration(key)

    def get_time(self, key: str) -> datetime:
        with self._lock.read():
            return self._store.get_time(key)

    def is_set(self, key: str) -> bool:
        with self._lock.read():
            return self._store.is_set(key)

    def get_schema(self) -> Optional[Any]:
        """The bound schema object, or None without a schema or before the first load."""
        if self._binder is None:
            return None
        with self._lock.read():
            return self._binder.current

    def all_keys(self) -> List[str]:
        with self._lock.read():
            return self._store.all_keys()

    def all_settings(self) -> Dict[str, Any]:
        with self._lock.read():
            return self._store.all_settings()

    def source_of(self, key: str) -> Optional[str]:
        """Layer supplying ``key``: env, override, file, remote, default or None."""
        with self._lock.read():
            return self._store.source_of(key)

    # ------------------------------------------------------------------
    # Strict reads
    # ------------------------------------------------------------------

    def lookup(self, key: str) -> Tuple[Any, bool]:
        """``(value, found)`` for call sites that must tell absent from zero."""
        with self._lock.read():
            return self._store.lookup(key)

    def require(self, key: str, as_type: Optional[type] = None) -> Any:
        """
        Value of a key that must be configured.

        Raises:
            KeyNotSetError: No layer holds the key
            CoercionError: The value cannot be converted to ``as_type``
        """
        value, found = self.lookup(key)
        if not found:
            self.logger.error("Required config missing", key=key)
            raise KeyNotSetError(key)
        if as_type is None:
            return value
        return coerce(value, as_type)


def new(
    path: Union[str, Path, None] = None,
    logger: Optional[AsyncLogger] = None,
    **options: Any,
) -> ConfigManager:
    """Create a ConfigManager from a path, a logger and keyword options."""
    return ConfigManager(path, logger, **options)
