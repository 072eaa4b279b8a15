"""Field type capability table.

Every :class:`FieldType` maps to a :class:`FieldTypeDescriptor` carrying the
shape its stored value takes and the function that checks and coerces a raw
value. Validation functions return the canonical value or raise
:class:`InvalidValue`; they never look at other fields.
"""

import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable

from pydantic import EmailStr, TypeAdapter, ValidationError

from formflow.models.fields import FieldDefinition, FieldType
from formflow.models.responses import FieldErrorKind

NUMBER_PATTERN = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")

_EMAIL = TypeAdapter(EmailStr)


class ValueShape(str, Enum):
    STRING = "string"
    NUMBER = "number"
    STRING_LIST = "string_list"
    FILE_REF = "file_ref"


class InvalidValue(Exception):
    """A raw value failed its field type's rule."""

    def __init__(self, kind: FieldErrorKind, message: str, **context):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.context = context


@dataclass(frozen=True)
class FieldTypeDescriptor:
    value_shape: ValueShape
    validate: Callable[[Any, FieldDefinition], Any]
    is_choice: bool = False
    is_multi: bool = False


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def group_key(value: Any) -> str:
    """Key a stored value is counted under in a distribution."""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return format_number(value)
    return str(value)


def _message(field: FieldDefinition, default: str) -> str:
    if field.constraints and field.constraints.message:
        return field.constraints.message
    return default


def _require_string(value: Any) -> str:
    if not isinstance(value, str):
        raise InvalidValue(FieldErrorKind.INVALID_FORMAT, "Value must be a string")
    return value


def _validate_text(value: Any, field: FieldDefinition) -> str:
    value = _require_string(value)
    pattern = field.constraints.pattern if field.constraints else None
    if pattern and not re.search(pattern, value):
        raise InvalidValue(
            FieldErrorKind.INVALID_FORMAT, _message(field, "Invalid format"), pattern=pattern,
        )
    return value


def _validate_email(value: Any, field: FieldDefinition) -> str:
    value = _require_string(value).strip()
    try:
        return _EMAIL.validate_python(value)
    except ValidationError:
        raise InvalidValue(FieldErrorKind.INVALID_FORMAT, _message(field, "Invalid email address")) from None


def _parse_number(value: Any) -> float:
    if isinstance(value, bool):
        raise InvalidValue(FieldErrorKind.INVALID_FORMAT, "Value must be a number")
    if isinstance(value, str):
        value = value.strip()
        if not NUMBER_PATTERN.match(value):
            raise InvalidValue(FieldErrorKind.INVALID_FORMAT, "Value must be a number")
    elif not isinstance(value, (int, float)):
        raise InvalidValue(FieldErrorKind.INVALID_FORMAT, "Value must be a number")
    try:
        number = float(value)
    except OverflowError:
        raise InvalidValue(FieldErrorKind.INVALID_FORMAT, "Value must be a finite number") from None
    if not math.isfinite(number):
        raise InvalidValue(FieldErrorKind.INVALID_FORMAT, "Value must be a finite number")
    return number


def _validate_number(value: Any, field: FieldDefinition) -> int | float:
    number = _parse_number(value)
    c = field.constraints
    if c and c.minimum is not None and number < c.minimum:
        raise InvalidValue(
            FieldErrorKind.OUT_OF_RANGE,
            f"Value must be at least {format_number(c.minimum)}",
            minimum=c.minimum,
        )
    if c and c.maximum is not None and number > c.maximum:
        raise InvalidValue(
            FieldErrorKind.OUT_OF_RANGE,
            f"Value must be at most {format_number(c.maximum)}",
            maximum=c.maximum,
        )
    return int(number) if number.is_integer() else number


def _validate_date(value: Any, field: FieldDefinition) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = _require_string(value).strip()
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError:
        pass
    try:
        # fromisoformat before 3.11 rejects the Z suffix
        return datetime.fromisoformat(text.replace("Z", "+00:00")).isoformat()
    except ValueError:
        raise InvalidValue(
            FieldErrorKind.INVALID_FORMAT, _message(field, "Value must be an ISO 8601 date"),
        ) from None


def _choice_value(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise InvalidValue(FieldErrorKind.INVALID_FORMAT, "Choice must be a string")
    if isinstance(value, str):
        return value
    return format_number(value)


def _validate_single_choice(value: Any, field: FieldDefinition) -> str:
    choice = _choice_value(value)
    allowed = field.option_values()
    if choice not in allowed:
        raise InvalidValue(
            FieldErrorKind.INVALID_OPTION, f"'{choice}' is not one of the options", options=allowed,
        )
    return choice


def _validate_multi_choice(value: Any, field: FieldDefinition) -> list[str]:
    if not isinstance(value, (list, tuple)):
        raise InvalidValue(FieldErrorKind.INVALID_FORMAT, "Value must be a list of options")
    choices = [_choice_value(v) for v in value]
    allowed = field.option_values()
    invalid = [c for c in choices if c not in allowed]
    if invalid:
        raise InvalidValue(
            FieldErrorKind.INVALID_OPTION,
            f"Not among the options: {', '.join(invalid)}",
            invalid=invalid, options=allowed,
        )
    seen, duplicates = set(), []
    for c in choices:
        if c in seen and c not in duplicates:
            duplicates.append(c)
        seen.add(c)
    if duplicates:
        raise InvalidValue(
            FieldErrorKind.DUPLICATE_OPTION,
            f"Options selected more than once: {', '.join(duplicates)}",
            duplicates=duplicates,
        )
    return choices


def _validate_upload(value: Any, field: FieldDefinition) -> str | list[str]:
    tokens = value if isinstance(value, (list, tuple)) else [value]
    for token in tokens:
        if not isinstance(token, str) or not token.strip():
            raise InvalidValue(FieldErrorKind.INVALID_FORMAT, "Value must be an upload reference")
    return list(tokens) if isinstance(value, (list, tuple)) else value


_TEXT = FieldTypeDescriptor(ValueShape.STRING, _validate_text)
_SINGLE = FieldTypeDescriptor(ValueShape.STRING, _validate_single_choice, is_choice=True)

FIELD_TYPES: dict[FieldType, FieldTypeDescriptor] = {
    FieldType.TEXT: _TEXT,
    FieldType.TEXTAREA: _TEXT,
    FieldType.EMAIL: FieldTypeDescriptor(ValueShape.STRING, _validate_email),
    FieldType.NUMBER: FieldTypeDescriptor(ValueShape.NUMBER, _validate_number),
    FieldType.DATE: FieldTypeDescriptor(ValueShape.STRING, _validate_date),
    FieldType.SELECT: _SINGLE,
    FieldType.RADIO: _SINGLE,
    FieldType.CHECKBOX: FieldTypeDescriptor(
        ValueShape.STRING_LIST, _validate_multi_choice, is_choice=True, is_multi=True,
    ),
    FieldType.FILE: FieldTypeDescriptor(ValueShape.FILE_REF, _validate_upload),
}


def describe(field_type: FieldType | str) -> FieldTypeDescriptor:
    """Look up a type's descriptor. Raises ValueError for unknown tags."""
    return FIELD_TYPES[FieldType(field_type)]
