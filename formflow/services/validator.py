import logging
from typing import Any, Callable

from formflow.models.fields import FieldType, ordered_fields
from formflow.models.forms import Form
from formflow.models.responses import (
    FieldError,
    FieldErrorKind,
    FileRef,
    NormalizedAnswer,
    ValidationFailure,
    ValidationResult,
    ValidationSuccess,
)
from formflow.services.field_types import InvalidValue, describe, is_empty

logger = logging.getLogger(__name__)

FileResolver = Callable[[list[str]], list[FileRef]]


def _bare_refs(tokens: list[str]) -> list[FileRef]:
    return [FileRef(token=t) for t in tokens]


def validate(
    form: Form,
    raw_values: dict[str, Any] | None,
    resolve_files: FileResolver | None = None,
) -> ValidationResult:
    """Check a raw answer set against a form's fields.

    Fields are visited in display order and every problem is collected, so the
    failure carries one entry per offending field. Keys that match no field are
    ignored. Never raises; branch on ``result.outcome``.
    """
    raw_values = raw_values or {}
    resolve_files = resolve_files or _bare_refs
    answers: list[NormalizedAnswer] = []
    errors: list[FieldError] = []

    for field in ordered_fields(form.fields):
        raw = raw_values.get(field.name)
        if is_empty(raw):
            if field.required:
                errors.append(FieldError(
                    field_name=field.name,
                    kind=FieldErrorKind.REQUIRED_MISSING,
                    message=f"{field.label} is required",
                ))
            continue
        try:
            value = describe(field.type).validate(raw, field)
        except InvalidValue as e:
            errors.append(FieldError(
                field_name=field.name, kind=e.kind, message=e.message, context=e.context,
            ))
            continue
        files = None
        if field.type == FieldType.FILE:
            files = resolve_files(value if isinstance(value, list) else [value])
        answers.append(NormalizedAnswer(
            field_name=field.name,
            field_label=field.label,
            field_type=field.type.value,
            value=value,
            files=files,
        ))

    unknown = set(raw_values) - {f.name for f in form.fields}
    if unknown:
        logger.debug("Ignoring unknown keys for form %s: %s", form.id, sorted(unknown))

    if errors:
        return ValidationFailure(errors=errors)
    return ValidationSuccess(answers=answers)


def answers_as_values(answers: list[NormalizedAnswer]) -> dict[str, Any]:
    """Raw-value mapping of normalized answers, for re-validation."""
    return {a.field_name: a.value for a in answers}
