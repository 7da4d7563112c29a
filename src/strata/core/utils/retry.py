"""
Caller-side retry for configuration loads.

ConfigManager.load() never retries; callers that want a policy wrap it:

    retry_call(cfg.load, max_attempts=5, logger=logger)
"""

import time
from functools import wraps
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

T = TypeVar('T')

BACKOFF_STRATEGIES = ("exponential", "linear", "constant")


def backoff_delay(strategy: str, attempt: int, initial_delay: float, max_delay: float) -> float:
    """Seconds to wait after the zero-based ``attempt`` failed."""
    if strategy == "exponential":
        delay = initial_delay * (2**attempt)
    elif strategy == "linear":
        delay = initial_delay * (attempt + 1)
    elif strategy == "constant":
        delay = initial_delay
    else:
        raise ValueError(f"unknown backoff strategy '{strategy}', use one of {BACKOFF_STRATEGIES}")
    return min(delay, max_delay)


def _is_retryable(exc: Exception) -> bool:
    # StrataError subclasses decide; foreign exceptions are assumed transient
    check = getattr(exc, "is_retryable", None)
    return bool(check()) if callable(check) else True


def retry_call(
    func: Callable[[], T],
    max_attempts: int = 3,
    backoff: str = "exponential",
    initial_delay: float = 0.5,
    max_delay: float = 30.0,
    retry_on: Tuple[Type[Exception], ...] = (Exception,),
    logger: Optional[Any] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``func`` until it succeeds, a non-retryable error occurs, or attempts run out.

    Only exceptions in ``retry_on`` are retried, and of those only the ones whose
    ``is_retryable()`` (when present) returns true: timeouts and remote failures
    are retried, a missing file or a validation failure is raised at once.

    Args:
        func: Zero-argument callable, e.g. ``cfg.load``
        max_attempts: Total number of calls
        backoff: "exponential", "linear" or "constant"
        initial_delay: First delay in seconds
        max_delay: Upper bound of any delay
        retry_on: Exception types eligible for retry
        logger: AsyncLogger receiving one warning per failed attempt
        sleep: Sleep function (replaced in tests)

    Raises:
        The first non-retryable exception, or the last one when attempts run out
    """
    if max_attempts < 1:
        raise RuntimeError("max_attempts must be at least 1")

    attempt = 0
    while True:
        try:
            return func()
        except retry_on as e:
            if not _is_retryable(e):
                raise
            if attempt + 1 >= max_attempts:
                if logger:
                    logger.error("Giving up after retries", attempts=max_attempts, error=str(e))
                raise
            delay = backoff_delay(backoff, attempt, initial_delay, max_delay)
            if logger:
                logger.warning(
                    "Attempt failed, retrying",
                    attempt=attempt + 1,
                    max_attempts=max_attempts,
                    delay=delay,
                    error=str(e),
                )
            sleep(delay)
            attempt += 1


def with_retry(max_attempts: int = 3, backoff: str = "exponential", **kwargs):
    """Decorator form of retry_call."""

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **func_kwargs):
            return retry_call(
                lambda: func(*args, **func_kwargs),
                max_attempts=max_attempts,
                backoff=backoff,
                **kwargs,
            )

        return wrapper

    return decorator
