"""Value coercion for typed configuration accessors.

The ``to_*`` functions are strict and raise ``CoercionError``; the store wraps
them and falls back to ``zero_value`` for the lenient getters.
"""

from __future__ import annotations

import json
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, List

from strata.core.exceptions import CoercionError
from strata.core.utils.datetime_utils import ZERO_TIME, ensure_utc, parse_iso_datetime

_TRUE = {"1", "t", "true", "y", "yes", "on"}
_FALSE = {"0", "f", "false", "n", "no", "off"}

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def to_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, datetime):
        return ensure_utc(value).isoformat().replace("+00:00", "Z")
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return format_duration(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    raise CoercionError(value, "string")


def to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        try:
            return int(value)
        except (ValueError, OverflowError):
            raise CoercionError(value, "int") from None
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return int(text, 0)
        except ValueError:
            raise CoercionError(value, "int") from None
    raise CoercionError(value, "int")


def to_float(value: Any) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            raise CoercionError(value, "float") from None
    raise CoercionError(value, "float")


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
    raise CoercionError(value, "bool")


def parse_duration(text: str) -> timedelta:
    """Parse a duration like ``"1h30m"``, ``"150ms"`` or ``"-2.5s"``."""
    raw = text.strip()
    sign = 1.0
    if raw and raw[0] in "+-":
        sign = -1.0 if raw[0] == "-" else 1.0
        raw = raw[1:]
    if raw == "0":
        return timedelta(0)
    if not raw:
        raise CoercionError(text, "duration")
    position = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(raw):
        if match.start() != position:
            raise CoercionError(text, "duration")
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(raw):
        raise CoercionError(text, "duration")
    return timedelta(seconds=sign * seconds)


def format_duration(value: timedelta) -> str:
    """Inverse of parse_duration for whole-second and sub-second values."""
    total = value.total_seconds()
    if total == 0:
        return "0s"
    sign = "-" if total < 0 else ""
    total = abs(total)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    parts = []
    if hours:
        parts.append(f"{int(hours)}h")
    if minutes:
        parts.append(f"{int(minutes)}m")
    if seconds:
        parts.append(f"{seconds:g}s")
    return sign + "".join(parts)


def to_duration(value: Any) -> timedelta:
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise CoercionError(value, "duration")
    try:
        if isinstance(value, (int, float)):
            return timedelta(seconds=value)
        if isinstance(value, str):
            text = value.strip()
            try:
                return timedelta(seconds=float(text))
            except ValueError:
                return parse_duration(text)
    except (OverflowError, ValueError):
        raise CoercionError(value, "duration") from None
    raise CoercionError(value, "duration")


def to_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, bool):
        raise CoercionError(value, "time")
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise CoercionError(value, "time") from None
    if isinstance(value, str):
        try:
            return parse_iso_datetime(value)
        except ValueError:
            raise CoercionError(value, "time") from None
    raise CoercionError(value, "time")


def to_string_slice(value: Any) -> List[str]:
    if isinstance(value, (list, tuple, set)):
        return [to_string(item) for item in value]
    if isinstance(value, str):
        trimmed = value.strip()
        if trimmed.startswith("["):
            try:
                parsed = json.loads(trimmed)
            except json.JSONDecodeError:
                raise CoercionError(value, "string slice") from None
            if isinstance(parsed, list):
                return [to_string(item) for item in parsed]
        if "," in trimmed:
            return [item.strip() for item in trimmed.split(",") if item.strip()]
        return trimmed.split()
    raise CoercionError(value, "string slice")


def to_string_map(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return {str(key): item for key, item in value.items()}
    if isinstance(value, str):
        try:
            parsed = json.loads(value.strip())
        except json.JSONDecodeError:
            raise CoercionError(value, "string map") from None
        if isinstance(parsed, dict):
            return {str(key): item for key, item in parsed.items()}
    raise CoercionError(value, "string map")


CONVERTERS: Dict[Any, Callable[[Any], Any]] = {
    str: to_string,
    int: to_int,
    float: to_float,
    bool: to_bool,
    timedelta: to_duration,
    datetime: to_time,
    list: to_string_slice,
    dict: to_string_map,
}


def zero_value(target: Any) -> Any:
    """Zero value returned by lenient getters for a converter target type."""
    if target is datetime:
        return ZERO_TIME
    if target is timedelta:
        return timedelta(0)
    return target()


def coerce(value: Any, target: Any) -> Any:
    """Strictly convert ``value`` to ``target`` (one of the CONVERTERS keys)."""
    try:
        converter = CONVERTERS[target]
    except KeyError:
        raise TypeError(f"unsupported target type: {target!r}") from None
    if value is None:
        raise CoercionError(value, getattr(target, "__name__", str(target)))
    return converter(value)
