"""
strata - layered, typed, watchable application configuration.

Merges defaults, a YAML/JSON/TOML file or a remote key-value source, and
environment variables into one thread-safe view, optionally bound to a
pydantic model or dataclass.
"""

from strata._version import __version__, __version_info__

# Core components
from strata.core import (
    logger,
    configure_logging,
    retry_call,
    StrataError,
    ConfigurationError,
    SourceNotFoundError,
    SourceReadError,
    SourceParseError,
    RemoteSourceError,
    FieldError,
    SchemaDecodeError,
    ValidationFailedError,
    OperationTimeoutError,
    ManagerClosedError,
    WatchSetupError,
    KeyNotSetError,
    CoercionError,
)

# Configuration
from strata.config import (
    ConfigManager,
    new,
    ManagerOptions,
    ReloadFailurePolicy,
    RemoteProvider,
    register_fetcher,
)

__all__ = [
    "__version__",
    "__version_info__",
    # Core
    "logger",
    "configure_logging",
    "retry_call",
    # Errors
    "StrataError",
    "ConfigurationError",
    "SourceNotFoundError",
    "SourceReadError",
    "SourceParseError",
    "RemoteSourceError",
    "FieldError",
    "SchemaDecodeError",
    "ValidationFailedError",
    "OperationTimeoutError",
    "ManagerClosedError",
    "WatchSetupError",
    "KeyNotSetError",
    "CoercionError",
    # Configuration
    "ConfigManager",
    "new",
    "ManagerOptions",
    "ReloadFailurePolicy",
    "RemoteProvider",
    "register_fetcher",
]
