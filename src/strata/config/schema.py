"""
Schema binding and validation.

A schema is a pydantic model or a dataclass (class or instance). Field
constraints are declared the pydantic way:

    class Server(BaseModel):
        port: int = Field(ge=1, le=65535)
        level: Literal["debug", "info", "warn", "error"]
        endpoint: HttpUrl
        hosts: List[Annotated[str, Field(min_length=1)]]

Binding validates the settings snapshot into a fresh object; the caller's
object is only updated by ``commit()``, once the whole load has succeeded.
"""

import dataclasses
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from strata.core.exceptions import (
    ConfigurationError,
    FieldError,
    SchemaDecodeError,
    ValidationFailedError,
)

# Error types that mean "the value could not be read as the field type"
# rather than "the value broke a rule".
_DECODE_ERROR_TYPES = {
    "int_parsing",
    "int_parsing_size",
    "int_from_float",
    "float_parsing",
    "bool_parsing",
    "datetime_parsing",
    "datetime_from_date_parsing",
    "date_parsing",
    "date_from_datetime_parsing",
    "time_parsing",
    "time_delta_parsing",
    "decimal_parsing",
    "bytes_invalid_encoding",
}


def is_decode_error(error_type: str) -> bool:
    return error_type.endswith("_type") or error_type in _DECODE_ERROR_TYPES


def _field_path(loc: tuple) -> str:
    return ".".join(str(part) for part in loc) or "<root>"


def _printable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return type(value).__name__


class SchemaBinder:
    """
    Unmarshals settings into a typed schema and reports the first violation.

    Policy: the raised error names the first failing field and rule; every
    failure is listed in ``errors``. Decoding failures are reported before
    rule violations, as SchemaDecodeError.
    """

    def __init__(self, schema: Any) -> None:
        schema_type = schema if isinstance(schema, type) else type(schema)
        if not (issubclass(schema_type, BaseModel) or dataclasses.is_dataclass(schema_type)):
            raise ConfigurationError(
                f"schema must be a pydantic model or a dataclass, got {schema_type.__name__}",
                context={"schema": schema_type.__name__},
            )
        self.schema_type = schema_type
        self._target: Optional[Any] = None if isinstance(schema, type) else schema
        self._current: Optional[Any] = self._target
        self._adapter = TypeAdapter(schema_type)

    @property
    def current(self) -> Optional[Any]:
        """The last committed schema object (the caller's instance when one was given)."""
        return self._current

    def bind(self, settings: Dict[str, Any]) -> Any:
        """
        Validate a settings snapshot into a new schema object.

        Raises:
            SchemaDecodeError: A value cannot be coerced to its field type
            ValidationFailedError: A field constraint is violated
        """
        try:
            return self._adapter.validate_python(settings)
        except PydanticValidationError as e:
            raise self._translate(e) from e

    def commit(self, bound: Any) -> None:
        """Publish a bound object, writing it into the caller's instance if any."""
        if self._target is None:
            self._current = bound
            return
        _copy_fields(self._target, bound)
        self._current = self._target

    def _translate(self, error: PydanticValidationError) -> Exception:
        details: List[FieldError] = []
        decode_details: List[FieldError] = []
        for item in error.errors():
            value = item.get("input")
            # an absent, null or empty value breaks the required rule, whatever the field type
            required = item["type"] == "missing" or value is None or value == ""
            detail = FieldError(
                field=_field_path(item["loc"]),
                value=None if required else _printable(value),
                rule="required" if required else item["type"],
                message=item["msg"],
            )
            details.append(detail)
            if not required and is_decode_error(item["type"]):
                decode_details.append(detail)

        if decode_details:
            first = decode_details[0]
            return SchemaDecodeError(
                f"cannot decode field '{first.field}': {first.message}",
                field=first.field,
                rule=first.rule,
                errors=details,
                cause=error,
            )
        first = details[0]
        return ValidationFailedError(
            f"validation failed for field '{first.field}': {first.rule}",
            field=first.field,
            rule=first.rule,
            errors=details,
            cause=error,
        )


def _copy_fields(target: Any, source: Any) -> None:
    if isinstance(target, BaseModel):
        for name in type(target).model_fields:
            object.__setattr__(target, name, getattr(source, name))
        object.__setattr__(target, "__pydantic_fields_set__", set(source.model_fields_set))
        if source.__pydantic_extra__ is not None:
            object.__setattr__(target, "__pydantic_extra__", dict(source.__pydantic_extra__))
    else:
        for field in dataclasses.fields(target):
            object.__setattr__(target, field.name, getattr(source, field.name))
