import re
from enum import Enum

from pydantic import AliasChoices, BaseModel, Field, model_validator


class FieldType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    NUMBER = "number"
    EMAIL = "email"
    DATE = "date"
    FILE = "file"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            key = value.strip().lower()
            return cls._value2member_map_.get(key) or _TYPE_ALIASES.get(key)
        return None


_TYPE_ALIASES = {
    "long-text": FieldType.TEXTAREA,
    "single-choice": FieldType.RADIO,
    "multi-choice": FieldType.CHECKBOX,
    "numeric": FieldType.NUMBER,
    "upload": FieldType.FILE,
}


class FieldOption(BaseModel):
    value: str
    label: str | None = None


class FieldConstraints(BaseModel):
    minimum: float | None = Field(None, validation_alias=AliasChoices("minimum", "min"))
    maximum: float | None = Field(None, validation_alias=AliasChoices("maximum", "max"))
    pattern: str | None = None
    message: str | None = Field(None, validation_alias=AliasChoices("message", "custom_message", "customMessage"))

    @model_validator(mode="after")
    def check_bounds(self):
        if self.minimum is not None and self.maximum is not None and self.minimum > self.maximum:
            raise ValueError("minimum must not be greater than maximum")
        if self.pattern is not None:
            try:
                re.compile(self.pattern)
            except re.error as e:
                raise ValueError(f"invalid pattern: {e}") from e
        return self


class FieldDefinition(BaseModel):
    name: str = Field(min_length=1)
    label: str
    type: FieldType
    required: bool = False
    placeholder: str | None = None
    options: list[FieldOption] | None = None
    constraints: FieldConstraints | None = Field(
        None, validation_alias=AliasChoices("constraints", "validation"),
    )
    order: int = 0

    @model_validator(mode="after")
    def check_options(self):
        if self.type in (FieldType.SELECT, FieldType.RADIO, FieldType.CHECKBOX) and not self.options:
            raise ValueError(f"field '{self.name}' of type {self.type.value} needs at least one option")
        return self

    def option_values(self) -> list[str]:
        return [opt.value for opt in self.options or []]


def ordered_fields(fields: list[FieldDefinition]) -> list[FieldDefinition]:
    """Fields by `order`, ties kept in list position."""
    return sorted(fields, key=lambda f: f.order)
