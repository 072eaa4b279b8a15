from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, EmailStr, Field, field_validator

from formflow.models.forms import as_utc, utcnow


class Submitter(BaseModel):
    """Who is submitting: an authenticated user, an anonymous email, or nobody."""
    user_id: str | None = None
    email: str | None = None

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None


class FileRef(BaseModel):
    token: str
    filename: str | None = None
    original_name: str | None = None
    mime_type: str | None = None
    size: int | None = None
    url: str | None = None


class NormalizedAnswer(BaseModel):
    field_name: str
    field_label: str
    field_type: str
    value: Any = None
    files: list[FileRef] | None = None


class FieldErrorKind(str, Enum):
    REQUIRED_MISSING = "required_missing"
    INVALID_FORMAT = "invalid_format"
    OUT_OF_RANGE = "out_of_range"
    INVALID_OPTION = "invalid_option"
    DUPLICATE_OPTION = "duplicate_option"


class FieldError(BaseModel):
    field_name: str
    kind: FieldErrorKind
    message: str
    context: dict[str, Any] = {}


class ValidationSuccess(BaseModel):
    outcome: Literal["valid"] = "valid"
    answers: list[NormalizedAnswer]


class ValidationFailure(BaseModel):
    outcome: Literal["invalid"] = "invalid"
    errors: list[FieldError]

    def errors_by_field(self) -> dict[str, list[FieldError]]:
        grouped: dict[str, list[FieldError]] = {}
        for err in self.errors:
            grouped.setdefault(err.field_name, []).append(err)
        return grouped


ValidationResult = Annotated[Union[ValidationSuccess, ValidationFailure], Field(discriminator="outcome")]


class GateErrorKind(str, Enum):
    FORM_NOT_FOUND = "form_not_found"
    FORM_NOT_ACCEPTING = "form_not_accepting"
    DEADLINE_PASSED = "deadline_passed"
    QUOTA_EXCEEDED = "quota_exceeded"
    AUTH_REQUIRED = "auth_required"


class GateError(BaseModel):
    kind: GateErrorKind
    message: str


class ResponseStatus(str, Enum):
    SUBMITTED = "submitted"
    REVIEWED = "reviewed"
    FLAGGED = "flagged"
    ARCHIVED = "archived"


class Review(BaseModel):
    reviewed_by: str
    reviewed_at: datetime = Field(default_factory=utcnow)
    notes: str | None = None
    rating: int | None = Field(None, ge=1, le=5)


class StoredResponse(BaseModel):
    """An accepted answer set as persisted."""
    id: str
    form_id: str
    submitted_by: str | None = None
    submitted_by_email: str | None = None
    answers: list[NormalizedAnswer]
    submitted_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    status: ResponseStatus = ResponseStatus.SUBMITTED
    review: Review | None = None

    @field_validator("submitted_at", "started_at")
    @classmethod
    def timestamps_utc(cls, v):
        return as_utc(v)


class ResponsePage(BaseModel):
    responses: list[StoredResponse]
    page: int
    limit: int
    total: int
    pages: int


class SubmitRequest(BaseModel):
    values: dict[str, Any]
    submitted_by_email: EmailStr | None = None
    started_at: datetime | None = None


class ValidateRequest(BaseModel):
    values: dict[str, Any]


class ReviewRequest(BaseModel):
    status: ResponseStatus = ResponseStatus.REVIEWED
    notes: str | None = None
    rating: int | None = Field(None, ge=1, le=5)


class SubmissionAccepted(BaseModel):
    outcome: Literal["accepted"] = "accepted"
    response_id: str
    answers: list[NormalizedAnswer]


class SubmissionRejected(BaseModel):
    outcome: Literal["rejected"] = "rejected"
    reason: GateErrorKind | Literal["field_errors"]
    message: str
    field_errors: list[FieldError] = []


SubmissionResult = Annotated[Union[SubmissionAccepted, SubmissionRejected], Field(discriminator="outcome")]
