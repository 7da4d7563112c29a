"""
strata core module.

Exports the error hierarchy, logging and shared utilities.
"""

# Exceptions and errors
from strata.core.exceptions import (
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

# Logging
from strata.core.logging import (
    AsyncLogger,
    SensitiveDataMasker,
    PerformanceLogger,
    configure_logging,
    logger,  # Pre-configured package logger
)

# Utilities
from strata.core.utils import retry_call, with_retry

__all__ = [
    # Exceptions
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
    # Logging
    "AsyncLogger",
    "SensitiveDataMasker",
    "PerformanceLogger",
    "configure_logging",
    "logger",
    # Utilities
    "retry_call",
    "with_retry",
]
