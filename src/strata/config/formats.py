"""Decoding of raw configuration payloads into mappings."""

import json
import tomllib
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import yaml

from strata.core.exceptions import SourceParseError


def _load_yaml(text: str) -> Any:
    return yaml.safe_load(text)


def _load_toml(text: str) -> Any:
    return tomllib.loads(text)


DECODERS: Dict[str, Callable[[str], Any]] = {
    "yaml": _load_yaml,
    "yml": _load_yaml,
    "json": json.loads,
    "toml": _load_toml,
}


def config_type_for(path: Union[str, Path]) -> str:
    """
    Config type from the file extension.

    Files without an extension (``.myapp``, ``config``) are read as YAML.
    """
    suffix = Path(path).suffix
    return suffix[1:].lower() if suffix else "yaml"


def decode_payload(payload: Union[str, bytes], config_type: str, source: Optional[str] = None) -> Dict[str, Any]:
    """
    Decode a payload into a mapping.

    Raises:
        SourceParseError: Unsupported type, undecodable payload, or a
            top-level value that is not a mapping
    """
    config_type = config_type.lower().lstrip(".")
    decoder = DECODERS.get(config_type)
    if decoder is None:
        error = SourceParseError(
            f"unsupported config type '{config_type}'",
            context={"source": source, "config_type": config_type},
        )
        error.add_suggestion(f"Use one of: {', '.join(sorted(DECODERS))}")
        raise error

    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SourceParseError(
                "configuration payload is not valid UTF-8",
                context={"source": source, "config_type": config_type},
                cause=e,
            ) from e

    try:
        data = decoder(payload)
    except (yaml.YAMLError, json.JSONDecodeError, tomllib.TOMLDecodeError) as e:
        raise SourceParseError(
            f"error decoding {config_type} configuration: {e}",
            context={"source": source, "config_type": config_type},
            cause=e,
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SourceParseError(
            f"{config_type} configuration must be a mapping, got {type(data).__name__}",
            context={"source": source, "config_type": config_type},
        )
    return data
