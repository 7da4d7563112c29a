"""
Construction-time options for ConfigManager.
"""

from enum import Enum
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from strata.config.remote import RemoteProvider


class ReloadFailurePolicy(str, Enum):
    """
    What a watch does when the reload triggered by a change fails.

    NOTIFY: log the failure, then notify with the last known good data
    SKIP: log the failure and do not notify
    """

    NOTIFY = "notify"
    SKIP = "skip"


class ManagerOptions(BaseModel):
    """Validated options; every field is optional."""

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    schema_: Optional[Any] = Field(None, alias="schema", description="pydantic model or dataclass")
    env_prefix: str = Field("", description="Prefix of overriding environment variables")
    defaults: Dict[str, Any] = Field(default_factory=dict, description="Dotted-key defaults")
    remote: Optional[RemoteProvider] = Field(None, description="Remote source descriptor")
    watch: bool = Field(False, description="Build a change watcher")
    poll_interval: float = Field(10.0, gt=0, description="Remote polling interval in seconds")
    remote_timeout: float = Field(30.0, gt=0, description="Deadline of a remote load in seconds")
    config_type: Optional[str] = Field(None, description="Overrides the file extension")
    remote_fetcher: Optional[Callable[..., Any]] = Field(
        None, description="Fetcher used instead of the registered one"
    )
    reload_failure_policy: ReloadFailurePolicy = ReloadFailurePolicy.NOTIFY

    @field_validator("env_prefix")
    @classmethod
    def _strip_prefix(cls, value: str) -> str:
        return value.strip().rstrip("_")

    @field_validator("defaults")
    @classmethod
    def _string_keys(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        for key in value:
            if not isinstance(key, str) or not key:
                raise ValueError(f"default keys must be non-empty strings, got {key!r}")
        return value
