"""
Layered key/value settings store.

Keys are dotted paths into nested mappings (``server.port``). Values resolve
through the layers, highest first:

1. Environment overlay (``<PREFIX>_SERVER_PORT``), when a prefix is enabled
2. Overrides set with ``set()``
3. Source data merged with ``merge_config()`` (file or remote)
4. Defaults set with ``set_default()``

The store itself is not synchronized; ConfigManager guards it with a
reader-writer lock.
"""

from __future__ import annotations

import copy
import os
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from strata.config.coercion import coerce, zero_value
from strata.core.exceptions import CoercionError

_MISSING = object()


def flatten(nested: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flatten nested dict to dotpath map. Empty mappings are kept as leaves."""
    items: Dict[str, Any] = {}
    for key, value in nested.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict) and value:
            items.update(flatten(value, full_key))
        else:
            items[full_key] = value
    return items


def unflatten(dotmap: Dict[str, Any]) -> Dict[str, Any]:
    """Convert dotpath map to nested dict."""
    nested: Dict[str, Any] = {}
    for key, value in dotmap.items():
        parts = key.split(".")
        cursor = nested
        for part in parts[:-1]:
            if part not in cursor or not isinstance(cursor[part], dict):
                cursor[part] = {}
            cursor = cursor[part]
        cursor[parts[-1]] = value
    return nested


def deep_merge(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``update`` into ``base`` in place; mappings merge, everything else replaces."""
    for key, value in update.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            deep_merge(base[key], value)
        else:
            base[key] = copy.deepcopy(value)
    return base


def _normalize(mapping: Dict[Any, Any]) -> Dict[str, Any]:
    """Stringify keys and expand dotted keys into nested sections."""
    nested: Dict[str, Any] = {}
    for key, value in mapping.items():
        if isinstance(value, dict):
            value = _normalize(value)
        parts = str(key).split(".")
        deep_merge(nested, _nest(parts, value))
    return nested


def _nest(parts: List[str], value: Any) -> Dict[str, Any]:
    for part in reversed(parts):
        value = {part: value}
    return value


def _lookup(layer: Dict[str, Any], parts: List[str]) -> Any:
    cursor: Any = layer
    for part in parts:
        if not isinstance(cursor, dict) or part not in cursor:
            return _MISSING
        cursor = cursor[part]
    return cursor


class SettingsStore:
    """
    Ordered key/value container with defaults, source data, overrides
    and an optional environment overlay.
    """

    def __init__(self, env_prefix: str = "") -> None:
        self._defaults: Dict[str, Any] = {}
        self._config: Dict[str, Any] = {}
        self._overrides: Dict[str, Any] = {}
        self._config_source = "file"
        self._env_prefix = ""
        if env_prefix:
            self.enable_env(env_prefix)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set(self, key: str, value: Any) -> None:
        """Set an override; beats source data and defaults."""
        deep_merge(self._overrides, _nest(key.split("."), value))

    def set_default(self, key: str, value: Any) -> None:
        deep_merge(self._defaults, _nest(key.split("."), value))

    def merge_config(self, mapping: Dict[Any, Any], source: str = "file") -> None:
        """Merge decoded source data into the source layer."""
        deep_merge(self._config, _normalize(mapping))
        self._config_source = source

    def enable_env(self, prefix: str) -> None:
        """Resolve keys from ``<PREFIX>_<KEY>`` environment variables first."""
        self._env_prefix = prefix.upper().rstrip("_")

    def reset(self) -> None:
        """Drop source data and overrides, keeping registered defaults."""
        self._config = {}
        self._overrides = {}
        self._config_source = "file"

    def replace_with(self, other: "SettingsStore") -> None:
        """Take over every layer of ``other`` (used to publish a staged load)."""
        self._defaults = other._defaults
        self._config = other._config
        self._overrides = other._overrides
        self._config_source = other._config_source
        self._env_prefix = other._env_prefix

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def env_prefix(self) -> str:
        return self._env_prefix

    def env_key(self, key: str) -> str:
        """Environment variable name that overrides ``key``."""
        return f"{self._env_prefix}_{key.replace('.', '_')}".upper()

    def _env_value(self, key: str) -> Any:
        if not self._env_prefix:
            return _MISSING
        value = os.environ.get(self.env_key(key))
        if value is None or value == "":
            return _MISSING
        return value

    def _layers(self) -> List[Tuple[str, Dict[str, Any]]]:
        """Layers from highest to lowest precedence."""
        return [
            ("override", self._overrides),
            (self._config_source, self._config),
            ("default", self._defaults),
        ]

    def _merged(self) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        for _, layer in reversed(self._layers()):
            deep_merge(merged, layer)
        return merged

    def _overlay_env(self, tree: Dict[str, Any], prefix: str) -> Dict[str, Any]:
        for key, value in tree.items():
            full_key = f"{prefix}.{key}" if prefix else key
            if isinstance(value, dict) and value:
                self._overlay_env(value, full_key)
            else:
                env_value = self._env_value(full_key)
                if env_value is not _MISSING:
                    tree[key] = env_value
        return tree

    def get(self, key: str) -> Any:
        """Resolved value for ``key`` or None when no layer holds it."""
        env_value = self._env_value(key)
        if env_value is not _MISSING:
            return env_value

        parts = key.split(".")
        found = [_lookup(layer, parts) for _, layer in self._layers()]
        top = next((value for value in found if value is not _MISSING), _MISSING)
        if top is _MISSING:
            return None
        if not isinstance(top, dict):
            return copy.deepcopy(top)

        # A section: merge it across layers, lowest first
        section: Dict[str, Any] = {}
        for value in reversed(found):
            if value is _MISSING:
                continue
            if isinstance(value, dict):
                deep_merge(section, value)
            else:
                section = {}
        return self._overlay_env(section, key)

    def lookup(self, key: str) -> Tuple[Any, bool]:
        """``(value, found)``; tells an absent key apart from a stored None."""
        if not self.is_set(key):
            return None, False
        return self.get(key), True

    def is_set(self, key: str) -> bool:
        if self._env_value(key) is not _MISSING:
            return True
        parts = key.split(".")
        return any(_lookup(layer, parts) is not _MISSING for _, layer in self._layers())

    def source_of(self, key: str) -> Optional[str]:
        """Name of the layer that supplies ``key``."""
        if self._env_value(key) is not _MISSING:
            return "env"
        parts = key.split(".")
        for name, layer in self._layers():
            if _lookup(layer, parts) is not _MISSING:
                return name
        return None

    def all_keys(self) -> List[str]:
        """Every leaf key holding a value in any layer."""
        return sorted(flatten(self._merged()))

    def all_settings(self) -> Dict[str, Any]:
        """Nested snapshot of every resolved setting, environment applied."""
        return self._overlay_env(self._merged(), "")

    # ------------------------------------------------------------------
    # Typed reads (never raise)
    # ------------------------------------------------------------------

    def get_typed(self, key: str, target: Any) -> Any:
        """Value coerced to ``target``, or its zero value when absent or unconvertible."""
        value = self.get(key)
        if value is None:
            return zero_value(target)
        try:
            return coerce(value, target)
        except CoercionError:
            return zero_value(target)

    def get_string(self, key: str) -> str:
        return self.get_typed(key, str)

    def get_int(self, key: str) -> int:
        return self.get_typed(key, int)

    def get_float(self, key: str) -> float:
        return self.get_typed(key, float)

    def get_bool(self, key: str) -> bool:
        return self.get_typed(key, bool)

    def get_duration(self, key: str) -> timedelta:
        return self.get_typed(key, timedelta)

    def get_time(self, key: str) -> datetime:
        return self.get_typed(key, datetime)

    def get_string_slice(self, key: str) -> List[str]:
        return self.get_typed(key, list)

    def get_string_map(self, key: str) -> Dict[str, Any]:
        return self.get_typed(key, dict)
