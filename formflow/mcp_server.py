from fastmcp import FastMCP
from pydantic import ValidationError

from formflow.auth import resolve_user
from formflow.exceptions import (
    AccessDeniedError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    StorageUnavailableError,
)
from formflow.models.responses import SubmitRequest, Submitter
from formflow.services import forms as forms_service
from formflow.services import responses as responses_service

mcp = FastMCP("Formflow")

_DOMAIN_ERRORS = (
    AccessDeniedError, AuthenticationError, ConflictError, NotFoundError, StorageUnavailableError,
)


def _handle_mcp_error(e: Exception) -> dict:
    """Convert exceptions to agent-friendly error dicts."""
    if isinstance(e, NotFoundError):
        return {"error": "not_found", "message": str(e)}
    if isinstance(e, (AuthenticationError, AccessDeniedError)):
        return {"error": "access_denied", "message": str(e), "action": "Pass the token of a user with access"}
    if isinstance(e, StorageUnavailableError):
        return {"error": "storage_unavailable", "message": str(e), "action": "Retry the call"}
    if isinstance(e, ConflictError):
        return {"error": "conflict", "message": str(e)}
    return {"error": "unknown_error", "message": str(e)}


def _submitter(token: str | None) -> Submitter:
    """Resolve a bearer token the same way the HTTP API does; no token means anonymous."""
    return resolve_user(f"Bearer {token}" if token else None)


@mcp.tool
def forms_get(form_id: str, token: str | None = None) -> dict:
    """Get a form definition: title, status, settings and its ordered list of fields
    with their types, options and constraints. Private forms need the bearer token
    of the creator or a collaborator."""
    try:
        return forms_service.get_form(form_id, _submitter(token)).model_dump(mode="json")
    except _DOMAIN_ERRORS as e:
        return _handle_mcp_error(e)


@mcp.tool
def forms_submit(form_id: str, values: dict, token: str | None = None, email: str | None = None) -> dict:
    """Submit answers to a form. `values` maps field names to answers
    (strings, numbers, or lists of option values for checkbox fields).
    Pass a bearer token to submit as a user, or an email to submit anonymously.
    Returns outcome 'accepted' with the stored answers, or 'rejected' with a reason
    and, for invalid answers, one entry per offending field."""
    try:
        request = SubmitRequest(values=values, submitted_by_email=email)
    except ValidationError as e:
        return {"error": "invalid_request", "message": str(e)}
    try:
        result = responses_service.submit(
            form_id, _submitter(token), request.values, submitted_by_email=request.submitted_by_email,
        )
        return result.model_dump(mode="json")
    except _DOMAIN_ERRORS as e:
        return _handle_mcp_error(e)


@mcp.tool
def forms_validate(form_id: str, values: dict, token: str | None = None) -> dict:
    """Check answers against a form without submitting them. Returns outcome 'valid'
    with normalized answers or 'invalid' with every field error."""
    try:
        result = responses_service.validate_answers(form_id, values, _submitter(token))
        return result.model_dump(mode="json")
    except _DOMAIN_ERRORS as e:
        return _handle_mcp_error(e)


@mcp.tool
def forms_analytics(form_id: str, token: str | None = None) -> dict:
    """Response statistics for a form: total responses, completion rate, and per field
    the response count, option distribution and most common value (choice fields)
    or min/max/mean (number fields). Needs the bearer token of the creator or a collaborator."""
    try:
        return responses_service.get_analytics(form_id, _submitter(token)).model_dump(mode="json")
    except _DOMAIN_ERRORS as e:
        return _handle_mcp_error(e)
