from fastapi import APIRouter, Depends

from formflow.auth import get_current_user, require_user
from formflow.config import get_settings
from formflow.models.analytics import FormAnalytics
from formflow.models.common import MessageResponse
from formflow.models.forms import (
    AddCollaboratorRequest,
    CreateFormRequest,
    Form,
    FormPage,
    FormStatus,
    StatusUpdateRequest,
    UpdateCollaboratorRequest,
    UpdateFormRequest,
)
from formflow.models.responses import Submitter
from formflow.services import forms as forms_service
from formflow.services import responses as responses_service

router = APIRouter(prefix="/api/forms", tags=["forms"])


def page_limit(limit: int | None) -> int:
    settings = get_settings()
    if limit is None or limit < 1:
        return settings.default_page_size
    return min(limit, settings.max_page_size)


@router.get("")
def list_forms(
    status: FormStatus | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int | None = None,
    user: Submitter = Depends(require_user),
) -> FormPage:
    return forms_service.list_forms(user, status, search, max(page, 1), page_limit(limit))


@router.post("", status_code=201)
def create_form(request: CreateFormRequest, user: Submitter = Depends(require_user)) -> Form:
    return forms_service.create_form(request, user)


@router.get("/{form_id}")
def get_form(form_id: str, user: Submitter = Depends(get_current_user)) -> Form:
    return forms_service.get_form(form_id, user)


@router.put("/{form_id}")
def update_form(form_id: str, request: UpdateFormRequest, user: Submitter = Depends(require_user)) -> Form:
    return forms_service.update_form(form_id, request, user)


@router.delete("/{form_id}")
def delete_form(form_id: str, user: Submitter = Depends(require_user)) -> MessageResponse:
    forms_service.delete_form(form_id, user)
    return MessageResponse(message="Form deleted successfully")


@router.patch("/{form_id}/status")
def set_status(form_id: str, request: StatusUpdateRequest, user: Submitter = Depends(require_user)) -> Form:
    return forms_service.set_status(form_id, request.status, user)


@router.post("/{form_id}/duplicate", status_code=201)
def duplicate_form(form_id: str, user: Submitter = Depends(require_user)) -> Form:
    return forms_service.duplicate_form(form_id, user)


@router.post("/{form_id}/collaborators")
def add_collaborator(
    form_id: str, request: AddCollaboratorRequest, user: Submitter = Depends(require_user),
) -> Form:
    return forms_service.add_collaborator(form_id, request, user)


@router.put("/{form_id}/collaborators/{collaborator_id}")
def update_collaborator(
    form_id: str,
    collaborator_id: str,
    request: UpdateCollaboratorRequest,
    user: Submitter = Depends(require_user),
) -> Form:
    return forms_service.update_collaborator(form_id, collaborator_id, request.role, user)


@router.delete("/{form_id}/collaborators/{collaborator_id}")
def remove_collaborator(form_id: str, collaborator_id: str, user: Submitter = Depends(require_user)) -> Form:
    return forms_service.remove_collaborator(form_id, collaborator_id, user)


@router.get("/{form_id}/analytics")
def get_analytics(form_id: str, user: Submitter = Depends(require_user)) -> FormAnalytics:
    return responses_service.get_analytics(form_id, user)
