"""
Change watchers.

LocalConfigWatcher subscribes to filesystem events for the config file with
a watchdog observer. RemoteConfigWatcher polls the remote source on an
interval. Both return immediately and deliver notifications from a
background thread until cancelled.
"""

import os
import threading
import time
from pathlib import Path
from typing import Any, Callable, Optional, Protocol, Union

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from strata.config.remote import Fetcher, RemoteProvider, fetch_with_timeout, get_fetcher
from strata.core.exceptions import WatchSetupError
from strata.core.logging import AsyncLogger, SensitiveDataMasker

_CHANGE_EVENTS = {EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED}


class CancelScope:
    """
    Cooperative cancellation over one or more signals.

    Cancelled as soon as any of the wrapped events (anything with ``is_set()``)
    is set, e.g. the caller's event or the manager's close signal.
    """

    def __init__(self, *signals: Any, granularity: float = 0.05) -> None:
        self._signals = [signal for signal in signals if signal is not None]
        self._granularity = granularity

    def cancelled(self) -> bool:
        return any(signal.is_set() for signal in self._signals)

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; True when cancelled meanwhile."""
        if len(self._signals) == 1 and callable(getattr(self._signals[0], "wait", None)):
            return bool(self._signals[0].wait(timeout))
        # several signals, or objects exposing only is_set(): poll
        remaining = timeout
        while remaining > 0:
            if self.cancelled():
                return True
            step = min(self._granularity, remaining)
            time.sleep(step)
            remaining -= step
        return self.cancelled()


class ConfigWatcher(Protocol):
    """Observes a source and calls ``on_change`` for every detected change."""

    def watch(self, scope: CancelScope, on_change: Callable[[], None]) -> None: ...


class _FileChangeHandler(FileSystemEventHandler):
    def __init__(
        self, target: str, scope: CancelScope, on_change: Callable[[], None], logger: AsyncLogger
    ) -> None:
        super().__init__()
        self._target = target
        self._scope = scope
        self._on_change = on_change
        self._logger = logger

    def _touches_target(self, event: FileSystemEvent) -> bool:
        paths = [event.src_path, getattr(event, "dest_path", "")]
        return any(path and os.path.realpath(path) == self._target for path in paths)

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _CHANGE_EVENTS:
            return
        if not self._touches_target(event):
            return
        if self._scope.cancelled():
            return
        self._logger.info("Local configuration changed", file=self._target, event=event.event_type)
        self._on_change()


class LocalConfigWatcher:
    """Watches the configuration file through its parent directory."""

    def __init__(self, path: Union[str, Path, None], logger: AsyncLogger) -> None:
        self.path = Path(path) if path else None
        self._logger = logger

    def watch(self, scope: CancelScope, on_change: Callable[[], None]) -> None:
        if self.path is None:
            raise WatchSetupError("no configuration path to watch")
        target = os.path.realpath(self.path)
        directory = os.path.dirname(target)
        if not os.path.isdir(directory):
            raise WatchSetupError(
                f"cannot watch {self.path}: directory {directory} does not exist",
                context={"path": str(self.path)},
            )

        observer = Observer()
        observer.daemon = True
        observer.schedule(
            _FileChangeHandler(target, scope, on_change, self._logger), directory, recursive=False
        )
        try:
            observer.start()
        except OSError as e:
            raise WatchSetupError(
                f"cannot watch {self.path}: {e}", context={"path": str(self.path)}, cause=e
            ) from e

        def stop_when_cancelled() -> None:
            while not scope.wait(0.5):
                pass
            observer.stop()
            observer.join(timeout=2.0)
            self._logger.debug("Local watcher stopped", file=target)

        threading.Thread(target=stop_when_cancelled, name="strata-watch-stop", daemon=True).start()
        self._logger.debug("Local watcher started", file=target)


class RemoteConfigWatcher:
    """Polls the remote source and notifies after every successful check."""

    def __init__(
        self,
        descriptor: RemoteProvider,
        logger: AsyncLogger,
        poll_interval: float = 10.0,
        timeout: float = 30.0,
        fetcher: Optional[Fetcher] = None,
    ) -> None:
        self.descriptor = descriptor
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._fetcher = fetcher
        self._logger = logger
        self._masker = SensitiveDataMasker()

    def _check(self) -> None:
        fetcher = self._fetcher or get_fetcher(self.descriptor.type)
        fetch_with_timeout(fetcher, self.descriptor, self.timeout)

    def watch(self, scope: CancelScope, on_change: Callable[[], None]) -> None:
        def poll() -> None:
            while not scope.wait(self.poll_interval):
                try:
                    self._check()
                except Exception as e:  # polling failures never end the loop
                    self._logger.error(
                        "Error watching remote config",
                        error=self._masker.mask(str(e)),
                        backoff_seconds=self.poll_interval,
                    )
                    continue
                if scope.cancelled():
                    break
                self._logger.debug("Remote configuration check completed")
                on_change()
            self._logger.debug("Remote watcher stopped", endpoint=self.descriptor.endpoint)

        threading.Thread(target=poll, name="strata-remote-poll", daemon=True).start()
