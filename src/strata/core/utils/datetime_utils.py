"""
Datetime helpers for strata.

All datetimes are handled in UTC. Naive values read from configuration
sources are assumed to already be UTC.
"""

from datetime import datetime, timezone

# Zero value returned by time accessors when a key is absent or unparsable
ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    """Current datetime in UTC with timezone info."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Ensure datetime is in UTC timezone.

    Naive datetimes are tagged as UTC, aware ones are converted.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    if dt.tzinfo == timezone.utc:
        return dt
    return dt.astimezone(timezone.utc)


def parse_iso_datetime(iso_string: str) -> datetime:
    """
    Parse ISO datetime string to an aware UTC datetime.

    Handles the forms commonly found in configuration files:
    - 2024-01-01
    - 2024-01-01T12:00:00
    - 2024-01-01T12:00:00Z
    - 2024-01-01 12:00:00+02:00

    Raises:
        ValueError: If the string is not an ISO datetime
    """
    text = iso_string.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def format_iso(dt: datetime) -> str:
    """Format datetime as ISO string with 'Z' suffix."""
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")
