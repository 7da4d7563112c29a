"""
Structured logging for strata on top of loguru.
"""

import re
import sys
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Pattern, TextIO, Union

from loguru import logger as loguru_logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {extra[component]} | {message}"


class AsyncLogger:
    """
    Component logger with flat format.

    Format: timestamp | level | component | message
    Context is passed as keyword arguments and bound into the record.
    """

    def __init__(self, component: str, debug_mode: bool = False):
        self.component = component
        self.debug_mode = debug_mode

    def child(self, name: str) -> "AsyncLogger":
        """Logger for a sub-component, e.g. strata.config."""
        return AsyncLogger(f"{self.component}.{name}", debug_mode=self.debug_mode)

    def log(self, level: str, message: str, **context: Any) -> None:
        loguru_logger.bind(component=self.component, **context).log(level, message)

    def debug(self, message: str, **context: Any) -> None:
        self.log("DEBUG", message, **context)

    def info(self, message: str, **context: Any) -> None:
        self.log("INFO", message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self.log("WARNING", message, **context)

    def error(self, message: str, include_trace: Optional[bool] = None, **context: Any) -> None:
        """
        Log ERROR with optional stack trace.

        Args:
            message: Error message
            include_trace: Whether to include the stack trace (None = follow debug_mode)
            **context: Additional context
        """
        should_include_trace = include_trace if include_trace is not None else self.debug_mode

        if should_include_trace:
            import traceback

            context["stack_trace"] = traceback.format_exc()

        self.log("ERROR", message, **context)


_sink_id: Optional[int] = None


def configure_logging(
    level: str = "INFO", sink: Union[str, TextIO, None] = None, enqueue: bool = True
) -> int:
    """
    Install the strata sink, replacing a previously installed one.

    The library never adds sinks on import; applications (and the CLI) call this.
    Returns the loguru handler id.
    """
    global _sink_id
    if _sink_id is not None:
        try:
            loguru_logger.remove(_sink_id)
        except ValueError:
            pass
    options: Dict[str, Any] = {
        "format": LOG_FORMAT,
        "level": level.upper(),
        "enqueue": enqueue,
        "filter": lambda record: "component" in record["extra"],
    }
    if isinstance(sink, str):
        options.update(rotation="10 MB", compression="zip")
    _sink_id = loguru_logger.add(sink if sink is not None else sys.stderr, **options)
    return _sink_id


class SensitiveDataMasker:
    """
    Masks sensitive data before it reaches the logs.

    Masked:
    - Values of keys that look like credentials (password, secret, token, api_key...)
    - key=value pairs with long credential values inside free text
    """

    DEFAULT_KEY_PATTERN = re.compile(
        r"(pass(word)?|secret|token|api[_-]?key|private[_-]?key|credential)", re.IGNORECASE
    )
    MASK = "***"

    def __init__(self, patterns: Optional[List[Pattern]] = None):
        self.patterns = patterns or [self.DEFAULT_KEY_PATTERN]

    def is_sensitive(self, key: str) -> bool:
        return any(pattern.search(key) for pattern in self.patterns)

    def mask_settings(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """
        Copy of a nested settings mapping with sensitive leaves replaced.

        Example:
        - {"redis": {"password": "hunter2"}} -> {"redis": {"password": "***"}}
        """
        masked: Dict[str, Any] = {}
        for key, value in settings.items():
            if isinstance(value, dict):
                masked[key] = self.mask_settings(value)
            elif self.is_sensitive(str(key)) and value not in (None, ""):
                masked[key] = self.MASK
            else:
                masked[key] = value
        return masked

    def mask(self, text: str) -> str:
        """
        Mask credential-looking key=value pairs in free text.

        Example:
        - "token=abc123def456" -> "token=***"
        """
        return re.sub(
            r"(api_key|token|secret|password|key)=[^\s&]{4,}",
            r"\1=***",
            text,
            flags=re.IGNORECASE,
        )


class PerformanceLogger:
    """
    Logger for operation durations.
    """

    def __init__(self, component: str = "performance"):
        self.logger = AsyncLogger(component)

    @contextmanager
    def measure(self, operation: str, **context: Any) -> Iterator[None]:
        """
        Context manager to time an operation.

        Usage:
        ```
        with perf_logger.measure("config_load", source="app.yaml"):
            provider.load()
        ```
        """
        start = time.perf_counter()
        try:
            yield
        finally:
            duration = time.perf_counter() - start
            self.logger.debug(
                "Operation completed", operation=operation, duration_ms=duration * 1000, **context
            )


logger = AsyncLogger("strata")
