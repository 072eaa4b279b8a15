import logging
import math
import uuid
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from formflow.config import get_settings
from formflow.exceptions import NotFoundError
from formflow.models.analytics import FormAnalytics
from formflow.models.forms import utcnow
from formflow.models.responses import (
    GateErrorKind,
    Review,
    ReviewRequest,
    ResponsePage,
    ResponseStatus,
    StoredResponse,
    SubmissionAccepted,
    SubmissionRejected,
    SubmissionResult,
    Submitter,
    ValidationFailure,
    ValidationResult,
)
from formflow.services import gate, storage, validator
from formflow.services.aggregator import aggregate, get_analytics_cache
from formflow.services.forms import EDIT_ROLES, MANAGE_ROLES, get_form, load_form, require_role
from formflow.services.uploads import resolve_file_refs

logger = logging.getLogger(__name__)


def submit(
    form_id: str,
    submitter: Submitter,
    raw_values: dict[str, Any],
    submitted_by_email: str | None = None,
    started_at: datetime | None = None,
    now: datetime | None = None,
) -> SubmissionResult:
    """Gate, validate and record one submission.

    Rejections come back as values. Only StorageUnavailableError is raised; when
    it is, nothing was recorded and the call can be retried.
    """
    store = storage.get_store()
    form = store.load_schema(form_id)

    gate_error = gate.check(form, submitter, now)
    if gate_error is not None:
        logger.info("Submission to form %s rejected: %s", form_id, gate_error.kind.value)
        return SubmissionRejected(reason=gate_error.kind, message=gate_error.message)

    result = validator.validate(form, raw_values, resolve_files=resolve_file_refs)
    if isinstance(result, ValidationFailure):
        logger.info("Submission to form %s rejected with %d field errors", form_id, len(result.errors))
        return SubmissionRejected(
            reason="field_errors",
            message="One or more answers are invalid",
            field_errors=result.errors,
        )

    record = StoredResponse(
        id=uuid.uuid4().hex,
        form_id=form_id,
        submitted_by=submitter.user_id,
        submitted_by_email=submitter.email if not submitter.is_anonymous else submitted_by_email,
        answers=result.answers,
        submitted_at=now or utcnow(),
        started_at=started_at,
    )
    if not store.append_answer_set_if_under_quota(record.model_dump(mode="json")):
        if store.load_schema(form_id) is None:
            return SubmissionRejected(reason=GateErrorKind.FORM_NOT_FOUND, message="Form not found")
        logger.info("Submission to form %s rejected: quota reached", form_id)
        return SubmissionRejected(
            reason=GateErrorKind.QUOTA_EXCEEDED, message="Form has reached maximum responses",
        )

    if get_settings().analytics_cache:
        get_analytics_cache().record(form_id, record)
    logger.info("Accepted response %s for form %s", record.id, form_id)
    return SubmissionAccepted(response_id=record.id, answers=record.answers)


def validate_answers(form_id: str, raw_values: dict[str, Any], user: Submitter) -> ValidationResult:
    """Dry run: validate without gating or recording."""
    form = get_form(form_id, user)
    return validator.validate(form, raw_values)


def _records(form_id: str) -> list[StoredResponse]:
    records = []
    for data in storage.get_store().load_answer_sets(form_id):
        try:
            records.append(StoredResponse.model_validate(data))
        except ValidationError:
            logger.warning("Skipping corrupted response record for form %s", form_id)
    return records


def _matches(record: StoredResponse, needle: str) -> bool:
    if record.submitted_by_email and needle in record.submitted_by_email.lower():
        return True
    for answer in record.answers:
        values = answer.value if isinstance(answer.value, list) else [answer.value]
        if any(needle in str(v).lower() for v in values if v is not None):
            return True
    return False


def list_responses(
    form_id: str,
    user: Submitter,
    status: ResponseStatus | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> ResponsePage:
    form = load_form(form_id)
    require_role(form, user)
    records = _records(form_id)
    if status is not None:
        records = [r for r in records if r.status == status]
    if search:
        needle = search.lower()
        records = [r for r in records if _matches(r, needle)]
    records.sort(key=lambda r: r.submitted_at, reverse=True)
    start = (page - 1) * limit
    return ResponsePage(
        responses=records[start:start + limit],
        page=page,
        limit=limit,
        total=len(records),
        pages=math.ceil(len(records) / limit),
    )


def _load_response(form_id: str, response_id: str) -> StoredResponse:
    data = storage.get_store().get_answer_set(form_id, response_id)
    if data is None:
        raise NotFoundError(f"Response {response_id} not found")
    return StoredResponse.model_validate(data)


def get_response(form_id: str, response_id: str, user: Submitter) -> StoredResponse:
    require_role(load_form(form_id), user)
    return _load_response(form_id, response_id)


def review_response(form_id: str, response_id: str, request: ReviewRequest, user: Submitter) -> StoredResponse:
    require_role(load_form(form_id), user, EDIT_ROLES)
    record = _load_response(form_id, response_id)
    record.status = request.status
    record.review = Review(reviewed_by=user.user_id, notes=request.notes, rating=request.rating)
    storage.get_store().update_answer_set(form_id, response_id, record.model_dump(mode="json"))
    return record


def delete_response(form_id: str, response_id: str, user: Submitter) -> None:
    require_role(load_form(form_id), user, MANAGE_ROLES)
    store = storage.get_store()
    if not store.delete_answer_set(form_id, response_id):
        raise NotFoundError(f"Response {response_id} not found")
    store.decrement_response_count(form_id)
    get_analytics_cache().invalidate(form_id)
    logger.info("Deleted response %s from form %s", response_id, form_id)


def get_analytics(form_id: str, user: Submitter) -> FormAnalytics:
    """Analytics for a form; ``user`` must be its creator or a collaborator."""
    form = load_form(form_id)
    require_role(form, user)
    store = storage.get_store()
    if get_settings().analytics_cache:
        return get_analytics_cache().get(form, lambda: store.load_answer_sets(form_id))
    return aggregate(form, store.load_answer_sets(form_id))
