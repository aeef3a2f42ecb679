"""Form responses API handler.

Submissions are public (anonymous visitors, optionally authenticated);
reading and deleting responses is limited to the form owner or an admin.
"""

from typing import Any

import boto3
import structlog
from pydantic import ValidationError as PydanticValidationError

from triddle.models.response import Response, SubmitResponseRequest
from triddle.repositories.base import store_config
from triddle.repositories.form import FormRepository
from triddle.repositories.response import ResponseRepository
from triddle.repositories.visit import VisitRepository
from triddle.services.blob_store import S3BlobStore
from triddle.services.file_attachments import FileAttachmentResolver
from triddle.services.response_merge import ResponseMergeEngine
from triddle.services.visit_tracker import VisitTracker
from triddle.utils.auth import AuthContext, get_auth_context, get_optional_auth_context, require_owner_or_admin
from triddle.utils.exceptions import UploadError, ValidationError
from triddle.utils.rate_limiter import enforce_rate_limit
from triddle.utils.request import get_client_ip, get_request_context, parse_submission
from triddle.utils.responses import created, error, error_from_exception, success

logger = structlog.get_logger()

SUBMIT_REQUESTS_PER_MINUTE = 10
SUBMIT_REQUESTS_PER_HOUR = 100


def handler(event: dict[str, Any], context: Any) -> dict:
    """Handle responses API requests.

    Routes:
        POST   /api/v1/forms/{form_id}/responses   (public)
        GET    /api/v1/forms/{form_id}/responses
        GET    /api/v1/responses/{response_id}
        DELETE /api/v1/responses/{response_id}
    """
    try:
        http_method = event.get("httpMethod", "").upper()
        path_params = event.get("pathParameters", {}) or {}
        form_id = path_params.get("form_id")
        response_id = path_params.get("response_id")

        dynamodb = boto3.resource("dynamodb", config=store_config())
        forms = FormRepository(dynamodb=dynamodb)
        responses = ResponseRepository(dynamodb=dynamodb)

        if http_method == "POST" and form_id:
            visits = VisitRepository(dynamodb=dynamodb)
            engine = ResponseMergeEngine(
                visits,
                responses,
                tracker=VisitTracker(visits),
                attachments=FileAttachmentResolver(S3BlobStore()),
            )
            return submit_response(forms, engine, form_id, event)

        auth = get_auth_context(event)

        if http_method == "GET" and form_id:
            return list_responses(forms, responses, auth, form_id)
        elif http_method == "GET" and response_id:
            return get_response(forms, responses, auth, response_id)
        elif http_method == "DELETE" and response_id:
            return delete_response(forms, responses, auth, response_id)
        else:
            return error("Method not allowed", 405)

    except PydanticValidationError as e:
        return error_from_exception(ValidationError.from_pydantic(e))
    except Exception as e:
        return error_from_exception(e)


def submit_response(
    forms: FormRepository,
    engine: ResponseMergeEngine,
    form_id: str,
    event: dict,
) -> dict:
    """Create a response or merge answers into the visit's open response.

    Accepts JSON or multipart bodies. Returns the stored response and the
    visit ID the client should send with later partial submissions.
    """
    enforce_rate_limit(
        get_client_ip(event),
        "response_submit",
        requests_per_minute=SUBMIT_REQUESTS_PER_MINUTE,
        requests_per_hour=SUBMIT_REQUESTS_PER_HOUR,
    )

    form = forms.get_or_raise_by_id(form_id)

    payload, files = parse_submission(event)
    request = SubmitResponseRequest.model_validate(payload)

    # Forms marked as requiring sign-in still accept anonymous answers
    caller = get_optional_auth_context(event)

    response, visit = engine.submit_answers(
        form,
        request.visit_id,
        request.answers,
        request.is_complete,
        get_request_context(event),
        respondent_id=caller.user_id if caller else None,
        files=files,
    )

    logger.info(
        "Response submitted",
        form_id=form_id,
        response_id=response.id,
        visit_id=visit.visit_id,
        is_complete=response.is_complete,
        authenticated=caller is not None,
    )

    return created(response.to_api(), visitId=visit.visit_id)


def list_responses(
    forms: FormRepository,
    responses: ResponseRepository,
    auth: AuthContext,
    form_id: str,
) -> dict:
    """List a form's responses, newest first."""
    form = forms.get_or_raise_by_id(form_id)
    require_owner_or_admin(auth, form.owner_id, "access responses for this form")

    items = responses.list_by_form(form_id)

    return success([r.to_api() for r in items], count=len(items))


def _load_owned_response(
    forms: FormRepository,
    responses: ResponseRepository,
    auth: AuthContext,
    response_id: str,
    action: str,
) -> Response:
    response = responses.get_or_raise_by_id(response_id)
    form = forms.get_or_raise_by_id(response.form_id)
    require_owner_or_admin(auth, form.owner_id, action, resource_type="Response")
    return response


def get_response(
    forms: FormRepository,
    responses: ResponseRepository,
    auth: AuthContext,
    response_id: str,
) -> dict:
    """Get a single response."""
    response = _load_owned_response(forms, responses, auth, response_id, "view this response")
    return success(response.to_api())


def delete_response(
    forms: FormRepository,
    responses: ResponseRepository,
    auth: AuthContext,
    response_id: str,
    blob_store: S3BlobStore | None = None,
) -> dict:
    """Delete a response and, best-effort, its attached files."""
    response = _load_owned_response(forms, responses, auth, response_id, "delete this response")

    responses.delete_response(response.form_id, response.id)

    public_ids = [a.file_public_id for a in response.answers if a.file_public_id]
    if public_ids:
        try:
            undeleted = (blob_store or S3BlobStore()).delete_many(public_ids)
        except UploadError as e:
            undeleted = public_ids
            logger.warning("Attachment cleanup failed", error=e.message)
        if undeleted:
            logger.warning("Attachments left behind", response_id=response.id, public_ids=undeleted)

    logger.info("Response deleted", response_id=response.id, form_id=response.form_id, user_id=auth.user_id)

    return success({})
