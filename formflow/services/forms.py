import logging
import math
import uuid

from formflow.exceptions import AccessDeniedError, AuthenticationError, ConflictError, NotFoundError
from formflow.models.forms import (
    AddCollaboratorRequest,
    Collaborator,
    CollaboratorRole,
    CreateFormRequest,
    Form,
    FormPage,
    FormStatus,
    FormSummary,
    UpdateFormRequest,
    utcnow,
)
from formflow.models.responses import Submitter
from formflow.services import storage
from formflow.services.aggregator import get_analytics_cache

logger = logging.getLogger(__name__)

EDIT_ROLES = {"creator", "editor", "admin"}
MANAGE_ROLES = {"creator", "admin"}


def load_form(form_id: str) -> Form:
    form = storage.get_store().load_schema(form_id)
    if form is None:
        raise NotFoundError(f"Form {form_id} not found")
    return form


def require_role(form: Form, user: Submitter, roles: set[str] | None = None) -> str:
    """Check the user holds one of ``roles`` on the form (any role if None)."""
    if user.is_anonymous:
        raise AuthenticationError("Authentication required")
    role = form.role_of(user.user_id)
    if role is None or (roles is not None and role not in roles):
        raise AccessDeniedError("Access denied")
    return role


def _summary(form: Form) -> FormSummary:
    return FormSummary(
        id=form.id,
        title=form.title,
        status=form.status,
        response_count=form.response_count,
        is_public=form.settings.is_public,
        updated_at=form.updated_at,
    )


def create_form(request: CreateFormRequest, user: Submitter) -> Form:
    if user.is_anonymous:
        raise AuthenticationError("Authentication required")
    form = Form(
        id=uuid.uuid4().hex,
        title=request.title,
        description=request.description,
        fields=request.fields,
        creator=user.user_id,
        settings=request.settings,
    )
    storage.get_store().save_form(form)
    logger.info("Created form %s for user %s", form.id, user.user_id)
    return form


def get_form(form_id: str, user: Submitter) -> Form:
    """Public forms are readable by anyone; private ones by creator and collaborators."""
    form = load_form(form_id)
    if not form.settings.is_public:
        require_role(form, user)
    return form


def list_forms(
    user: Submitter,
    status: FormStatus | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> FormPage:
    if user.is_anonymous:
        raise AuthenticationError("Authentication required")
    forms = storage.get_store().list_forms(user.user_id)
    if status is not None:
        forms = [f for f in forms if f.status == status]
    if search:
        needle = search.lower()
        forms = [
            f for f in forms
            if needle in f.title.lower() or needle in (f.description or "").lower()
        ]
    forms.sort(key=lambda f: f.updated_at, reverse=True)
    start = (page - 1) * limit
    return FormPage(
        forms=[_summary(f) for f in forms[start:start + limit]],
        page=page,
        limit=limit,
        total=len(forms),
        pages=math.ceil(len(forms) / limit),
    )


def update_form(form_id: str, request: UpdateFormRequest, user: Submitter) -> Form:
    form = load_form(form_id)
    require_role(form, user, EDIT_ROLES)
    changes = {
        k: v for k, v in request.model_dump(exclude_unset=True).items()
        if v is not None or k == "description"
    }
    if request.fields is not None:
        changes["fields"] = request.fields
    if request.settings is not None:
        changes["settings"] = request.settings
    updated = form.model_copy(update={**changes, "updated_at": utcnow()})
    # re-run field validators on the merged form
    updated = Form.model_validate(updated.model_dump())
    storage.get_store().save_form(updated)
    get_analytics_cache().invalidate(form_id)
    return load_form(form_id)


def delete_form(form_id: str, user: Submitter) -> None:
    form = load_form(form_id)
    require_role(form, user, {"creator"})
    storage.get_store().delete_form(form_id)
    get_analytics_cache().invalidate(form_id)
    logger.info("Deleted form %s", form_id)


def set_status(form_id: str, status: FormStatus, user: Submitter) -> Form:
    form = load_form(form_id)
    require_role(form, user, MANAGE_ROLES)
    storage.get_store().save_form(form.model_copy(update={"status": status, "updated_at": utcnow()}))
    logger.info("Form %s status set to %s", form_id, status.value)
    return load_form(form_id)


def duplicate_form(form_id: str, user: Submitter) -> Form:
    form = load_form(form_id)
    if not form.settings.is_public:
        require_role(form, user, EDIT_ROLES)
    elif user.is_anonymous:
        raise AuthenticationError("Authentication required")
    now = utcnow()
    copy = Form(
        id=uuid.uuid4().hex,
        title=f"{form.title} (Copy)",
        description=form.description,
        fields=[f.model_copy(deep=True) for f in form.fields],
        creator=user.user_id,
        settings=form.settings.model_copy(update={"is_public": False}),
        status=FormStatus.DRAFT,
        created_at=now,
        updated_at=now,
    )
    storage.get_store().save_form(copy)
    return copy


def add_collaborator(form_id: str, request: AddCollaboratorRequest, user: Submitter) -> Form:
    form = load_form(form_id)
    require_role(form, user, MANAGE_ROLES)
    if form.role_of(request.user_id) is not None:
        raise ConflictError("User is already a collaborator")
    collaborators = form.collaborators + [Collaborator(user_id=request.user_id, role=request.role)]
    storage.get_store().save_form(form.model_copy(update={"collaborators": collaborators}))
    return load_form(form_id)


def update_collaborator(form_id: str, collaborator_id: str, role: CollaboratorRole, user: Submitter) -> Form:
    form = load_form(form_id)
    require_role(form, user, {"creator"})
    collaborators = [c.model_copy() for c in form.collaborators]
    for collab in collaborators:
        if collab.user_id == collaborator_id:
            collab.role = role
            break
    else:
        raise NotFoundError("Collaborator not found")
    storage.get_store().save_form(form.model_copy(update={"collaborators": collaborators}))
    return load_form(form_id)


def remove_collaborator(form_id: str, collaborator_id: str, user: Submitter) -> Form:
    form = load_form(form_id)
    if user.is_anonymous:
        raise AuthenticationError("Authentication required")
    if user.user_id != form.creator and user.user_id != collaborator_id:
        raise AccessDeniedError("Access denied")
    remaining = [c for c in form.collaborators if c.user_id != collaborator_id]
    if len(remaining) == len(form.collaborators):
        raise NotFoundError("Collaborator not found")
    storage.get_store().save_form(form.model_copy(update={"collaborators": remaining}))
    return load_form(form_id)
