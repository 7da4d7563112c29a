"""
Core utilities module for strata.
"""

from .datetime_utils import (
    ZERO_TIME,
    utc_now,
    ensure_utc,
    parse_iso_datetime,
    format_iso,
)

from .retry import retry_call, with_retry

__all__ = [
    # Datetime utilities
    'ZERO_TIME',
    'utc_now',
    'ensure_utc',
    'parse_iso_datetime',
    'format_iso',
    # Retry utilities
    'retry_call',
    'with_retry',
]
