"""
Unified exception hierarchy for strata.

Single source of the errors raised by configuration loading, binding,
watching and the strict accessors.
"""

import secrets
from datetime import datetime
from typing import Dict, Any, Optional, List

from pydantic import BaseModel, Field

from strata.core.utils.datetime_utils import utc_now, format_iso


class StrataError(Exception):
    """
    Base error for strata.

    Features:
    1. Structured serialization
    2. Rich context
    3. Resolution suggestions
    4. Unique ID for tracking
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        self.id: str = secrets.token_hex(16)
        self.timestamp: datetime = utc_now()
        self.message: str = message
        self.code: str = code or self.__class__.__name__
        self.context: Dict[str, Any] = context or {}
        self.cause: Optional[Exception] = cause
        self.suggestions: List[str] = []
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize to a plain dictionary.

        Returns:
            {
                "error_id": "hex32chars",
                "code": "SourceNotFoundError",
                "message": "no configuration file found at app.yaml ...",
                "timestamp": "2024-01-20T10:30:00Z",
                "context": {...}
            }
        """
        result: Dict[str, Any] = {
            "error_id": self.id,
            "code": self.code,
            "message": self.message,
            "timestamp": format_iso(self.timestamp),
            "context": self.context,
        }

        if self.cause:
            result["cause"] = {"type": type(self.cause).__name__, "message": str(self.cause)}

        if self.suggestions:
            result["suggestions"] = self.suggestions

        return result

    def add_suggestion(self, suggestion: str) -> None:
        """Add a resolution hint, ignoring empty values and duplicates."""
        if not suggestion or not isinstance(suggestion, str):
            return
        if suggestion not in self.suggestions:
            self.suggestions.append(suggestion)

    def is_retryable(self) -> bool:
        """Whether retrying the same operation may succeed."""
        return False


class ConfigurationError(StrataError):
    """Invalid construction options or unsupported source settings."""

    pass


class SourceNotFoundError(StrataError):
    """No configuration source exists and no defaults were provided."""

    pass


class SourceReadError(StrataError):
    """The configuration source could not be read."""

    pass


class SourceParseError(SourceReadError):
    """The configuration payload could not be decoded into a mapping."""

    pass


class RemoteSourceError(SourceReadError):
    """
    Remote source failure (connection, auth, HTTP status, unknown type).

    Tracking:
    - Provider type
    - Endpoint
    """

    def is_retryable(self) -> bool:
        """Remote failures are usually transient."""
        return True


class FieldError(BaseModel):
    """A single schema violation."""

    field: str = Field(..., description="Dotted path of the failing field")
    value: Any = Field(None, description="Value received for the field")
    rule: str = Field(..., description="Name of the violated rule")
    message: str = Field(..., description="Explanation of the failure")


class _FieldFailure(StrataError):
    def __init__(
        self,
        message: str,
        field: str,
        rule: str,
        errors: Optional[List[FieldError]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        self.field = field
        self.rule = rule
        self.errors: List[FieldError] = errors or []
        super().__init__(
            message,
            context={
                "field": field,
                "rule": rule,
                "errors": [error.model_dump(mode="json") for error in self.errors],
            },
            cause=cause,
        )


class SchemaDecodeError(_FieldFailure):
    """A configured value cannot be coerced into the schema field type."""

    pass


class ValidationFailedError(_FieldFailure):
    """
    Schema validation failed.

    `field` and `rule` describe the first violation; `errors` keeps all of them.
    """

    pass


class OperationTimeoutError(StrataError, TimeoutError):
    """A remote operation exceeded its internal deadline."""

    def is_retryable(self) -> bool:
        return True


class ManagerClosedError(StrataError):
    """Operation attempted after close()."""

    def __init__(self, message: str = "config manager is closed", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class WatchSetupError(StrataError):
    """A watch subscription could not be registered."""

    pass


class KeyNotSetError(StrataError):
    """A strictly required key has no value in any layer."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"configuration key '{key}' is not set", context={"key": key})


class CoercionError(StrataError, ValueError):
    """A value cannot be converted to the requested type."""

    def __init__(self, value: Any, target: str) -> None:
        self.value = value
        self.target = target
        super().__init__(
            f"cannot convert {type(value).__name__} value to {target}",
            context={"target": target, "value_type": type(value).__name__},
        )
