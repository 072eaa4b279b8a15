from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from formflow.auth import get_current_user, require_user
from formflow.models.common import MessageResponse
from formflow.models.responses import (
    GateErrorKind,
    ResponsePage,
    ResponseStatus,
    ReviewRequest,
    StoredResponse,
    SubmissionAccepted,
    SubmitRequest,
    Submitter,
    ValidateRequest,
    ValidationFailure,
)
from formflow.routers.forms import page_limit
from formflow.services import responses as responses_service

router = APIRouter(prefix="/api/responses", tags=["responses"])

REJECTION_STATUS = {
    GateErrorKind.FORM_NOT_FOUND: 404,
    GateErrorKind.FORM_NOT_ACCEPTING: 403,
    GateErrorKind.DEADLINE_PASSED: 403,
    GateErrorKind.QUOTA_EXCEEDED: 409,
    GateErrorKind.AUTH_REQUIRED: 401,
    "field_errors": 422,
}


@router.post("/form/{form_id}")
def submit_response(
    form_id: str, request: SubmitRequest, user: Submitter = Depends(get_current_user),
) -> JSONResponse:
    result = responses_service.submit(
        form_id, user, request.values,
        submitted_by_email=request.submitted_by_email,
        started_at=request.started_at,
    )
    if isinstance(result, SubmissionAccepted):
        return JSONResponse(status_code=201, content=result.model_dump(mode="json"))
    return JSONResponse(status_code=REJECTION_STATUS[result.reason], content=result.model_dump(mode="json"))


@router.post("/form/{form_id}/validate")
def validate_response(
    form_id: str, request: ValidateRequest, user: Submitter = Depends(get_current_user),
) -> JSONResponse:
    result = responses_service.validate_answers(form_id, request.values, user)
    status_code = 422 if isinstance(result, ValidationFailure) else 200
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.get("/form/{form_id}")
def list_responses(
    form_id: str,
    status: ResponseStatus | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int | None = None,
    user: Submitter = Depends(require_user),
) -> ResponsePage:
    return responses_service.list_responses(form_id, user, status, search, max(page, 1), page_limit(limit))


@router.get("/form/{form_id}/{response_id}")
def get_response(form_id: str, response_id: str, user: Submitter = Depends(require_user)) -> StoredResponse:
    return responses_service.get_response(form_id, response_id, user)


@router.patch("/form/{form_id}/{response_id}/review")
def review_response(
    form_id: str, response_id: str, request: ReviewRequest, user: Submitter = Depends(require_user),
) -> StoredResponse:
    return responses_service.review_response(form_id, response_id, request, user)


@router.delete("/form/{form_id}/{response_id}")
def delete_response(form_id: str, response_id: str, user: Submitter = Depends(require_user)) -> MessageResponse:
    responses_service.delete_response(form_id, response_id, user)
    return MessageResponse(message="Response deleted successfully")
