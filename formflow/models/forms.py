from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from formflow.models.fields import FieldDefinition


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class FormStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"
    ARCHIVED = "archived"


class CollaboratorRole(str, Enum):
    VIEWER = "viewer"
    EDITOR = "editor"
    ADMIN = "admin"


class Collaborator(BaseModel):
    user_id: str
    role: CollaboratorRole = CollaboratorRole.VIEWER
    added_at: datetime = Field(default_factory=utcnow)


class FormSettings(BaseModel):
    is_public: bool = False
    allow_anonymous: bool = True
    collect_responses: bool = True
    show_response_summary: bool = False
    closes_at: datetime | None = None
    max_responses: int | None = Field(None, ge=0)

    @field_validator("closes_at")
    @classmethod
    def closes_at_utc(cls, v):
        return as_utc(v)


def _unique_names(fields: list[FieldDefinition]) -> list[FieldDefinition]:
    seen = set()
    for f in fields:
        if f.name in seen:
            raise ValueError(f"duplicate field name '{f.name}'")
        seen.add(f.name)
    return fields


class Form(BaseModel):
    id: str
    title: str
    description: str | None = None
    fields: list[FieldDefinition] = []
    creator: str
    collaborators: list[Collaborator] = []
    settings: FormSettings = Field(default_factory=FormSettings)
    status: FormStatus = FormStatus.DRAFT
    response_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("fields")
    @classmethod
    def unique_field_names(cls, v):
        return _unique_names(v)

    def accepting_responses(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        s = self.settings
        if self.status != FormStatus.ACTIVE or not s.collect_responses:
            return False
        if s.closes_at is not None and now >= s.closes_at:
            return False
        if s.max_responses is not None and self.response_count >= s.max_responses:
            return False
        return True

    def role_of(self, user_id: str | None) -> str | None:
        """'creator', a collaborator role value, or None."""
        if user_id is None:
            return None
        if user_id == self.creator:
            return "creator"
        for collab in self.collaborators:
            if collab.user_id == user_id:
                return collab.role.value
        return None


class FormSummary(BaseModel):
    id: str
    title: str
    status: FormStatus
    response_count: int
    is_public: bool
    updated_at: datetime


class FormPage(BaseModel):
    forms: list[FormSummary]
    page: int
    limit: int
    total: int
    pages: int


class CreateFormRequest(BaseModel):
    title: str = Field(min_length=1)
    description: str | None = None
    fields: list[FieldDefinition] = []
    settings: FormSettings = Field(default_factory=FormSettings)

    @field_validator("fields")
    @classmethod
    def unique_field_names(cls, v):
        return _unique_names(v)


class UpdateFormRequest(BaseModel):
    title: str | None = Field(None, min_length=1)
    description: str | None = None
    fields: list[FieldDefinition] | None = None
    settings: FormSettings | None = None

    @field_validator("fields")
    @classmethod
    def unique_field_names(cls, v):
        return v if v is None else _unique_names(v)


class StatusUpdateRequest(BaseModel):
    status: FormStatus


class AddCollaboratorRequest(BaseModel):
    user_id: str
    role: CollaboratorRole = CollaboratorRole.VIEWER


class UpdateCollaboratorRequest(BaseModel):
    role: CollaboratorRole
