from datetime import datetime

from formflow.models.forms import Form, FormStatus, utcnow
from formflow.models.responses import GateError, GateErrorKind, Submitter


def check(form: Form | None, submitter: Submitter, now: datetime | None = None) -> GateError | None:
    """Form-level checks run before any answer is looked at.

    Returns the first failing check, or None when the submission may proceed to
    validation. The quota check here is advisory; the storage layer repeats it
    atomically when the response is recorded.
    """
    if form is None:
        return GateError(kind=GateErrorKind.FORM_NOT_FOUND, message="Form not found")

    settings = form.settings
    if form.status != FormStatus.ACTIVE or not settings.collect_responses:
        return GateError(
            kind=GateErrorKind.FORM_NOT_ACCEPTING, message="Form is not accepting responses",
        )

    now = now or utcnow()
    if settings.closes_at is not None and now >= settings.closes_at:
        return GateError(
            kind=GateErrorKind.DEADLINE_PASSED, message="Form submission deadline has passed",
        )

    if settings.max_responses is not None and form.response_count >= settings.max_responses:
        return GateError(
            kind=GateErrorKind.QUOTA_EXCEEDED, message="Form has reached maximum responses",
        )

    if submitter.is_anonymous and not settings.allow_anonymous:
        return GateError(
            kind=GateErrorKind.AUTH_REQUIRED, message="Authentication required for this form",
        )

    return None
