"""Forms API handler."""

import os
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from triddle.models.form import CreateFormRequest, Form, FormStatus, UpdateFormRequest
from triddle.repositories.form import FormRepository
from triddle.repositories.response import ResponseRepository
from triddle.services.analytics import response_counts
from triddle.services.blob_store import S3BlobStore
from triddle.services.file_attachments import form_asset_folder
from triddle.utils.auth import AuthContext, get_auth_context, get_caller, require_owner_or_admin
from triddle.utils.exceptions import ForbiddenError, ValidationError
from triddle.utils.request import get_header, parse_json_body, parse_multipart
from triddle.utils.responses import created, error, error_from_exception, success

logger = structlog.get_logger()


def handler(event: dict[str, Any], context: Any) -> dict:
    """Handle forms API requests.

    Routes:
        GET    /api/v1/forms
        POST   /api/v1/forms
        GET    /api/v1/forms/{form_id}          (published forms are public)
        PUT    /api/v1/forms/{form_id}
        DELETE /api/v1/forms/{form_id}
        PUT    /api/v1/forms/{form_id}/publish
        PUT    /api/v1/forms/{form_id}/archive
        POST   /api/v1/forms/{form_id}/upload    (multipart, part "file")
    """
    try:
        http_method = event.get("httpMethod", "").upper()
        path = event.get("path", "")
        path_params = event.get("pathParameters", {}) or {}
        form_id = path_params.get("form_id")

        repo = FormRepository()

        if http_method == "GET" and form_id:
            return get_form(repo, form_id, get_caller(event))

        auth = get_auth_context(event)

        if http_method == "PUT" and path.endswith("/publish"):
            return set_status(repo, auth, form_id, FormStatus.PUBLISHED)
        elif http_method == "PUT" and path.endswith("/archive"):
            return set_status(repo, auth, form_id, FormStatus.ARCHIVED)
        elif http_method == "POST" and form_id and path.endswith("/upload"):
            return upload_asset(repo, auth, form_id, event)
        elif http_method == "GET":
            return list_forms(repo, ResponseRepository(), auth, event)
        elif http_method == "POST":
            return create_form(repo, auth, event)
        elif http_method == "PUT" and form_id:
            return update_form(repo, auth, form_id, event)
        elif http_method == "DELETE" and form_id:
            return delete_form(repo, auth, form_id)
        else:
            return error("Method not allowed", 405)

    except PydanticValidationError as e:
        return error_from_exception(ValidationError.from_pydantic(e))
    except Exception as e:
        return error_from_exception(e)


def public_url(form: Form) -> str | None:
    """Link to the public renderer of a published form."""
    if not form.is_published:
        return None
    frontend_url = os.environ.get("FRONTEND_URL", "http://localhost:3000").rstrip("/")
    return f"{frontend_url}/f/{form.slug}/{form.id}"


def form_to_api(form: Form) -> dict:
    """API representation of a form."""
    return {**form.to_api(), "publicUrl": public_url(form)}


def list_forms(repo: FormRepository, responses: ResponseRepository, auth: AuthContext, event: dict) -> dict:
    """List the caller's forms, newest first, with their response counts.

    Admins also see every published form.
    """
    query_params = event.get("queryStringParameters", {}) or {}
    status = query_params.get("status")
    if status and status not in {s.value for s in FormStatus}:
        raise ValidationError(f"Invalid status filter '{status}'")

    forms = repo.list_all_by_owner(auth.user_id)

    if auth.is_admin:
        seen = {form.id for form in forms}
        forms.extend(form for form in repo.list_published() if form.id not in seen)
        forms.sort(key=lambda f: f.created_at, reverse=True)

    if status:
        forms = [form for form in forms if form.status == status]

    data = [{**form_to_api(form), **response_counts(responses.list_by_form(form.id))} for form in forms]

    return success(data, count=len(forms))


def get_form(repo: FormRepository, form_id: str, caller: AuthContext | None) -> dict:
    """Get a single form.

    Published forms are readable by anyone; others only by owner or admin.
    """
    form = repo.get_or_raise_by_id(form_id)

    if not form.is_published:
        if caller is None:
            raise ForbiddenError("This form is not currently available to the public")
        require_owner_or_admin(caller, form.owner_id, "access this form")

    return success(form_to_api(form))


def create_form(repo: FormRepository, auth: AuthContext, event: dict) -> dict:
    """Create a new form owned by the caller."""
    request = CreateFormRequest.model_validate(parse_json_body(event))

    form = Form(
        owner_id=auth.user_id,
        title=request.title,
        description=request.description,
        fields=request.fields,
        logic_jumps=request.logic_jumps,
        settings=request.settings,
        status=request.status,
    )
    _check_unique_field_ids(form)

    form = repo.create_form(form)

    logger.info("Form created", form_id=form.id, owner_id=auth.user_id)

    return created(form_to_api(form))


def update_form(repo: FormRepository, auth: AuthContext, form_id: str, event: dict) -> dict:
    """Update an existing form."""
    form = repo.get_or_raise_by_id(form_id)
    require_owner_or_admin(auth, form.owner_id, "update this form")

    request = UpdateFormRequest.model_validate(parse_json_body(event))

    # Only explicitly sent fields change
    for name in request.model_fields_set:
        value = getattr(request, name)
        if value is not None:
            setattr(form, name, value)
    _check_unique_field_ids(form)

    form = repo.update_form(form)

    logger.info("Form updated", form_id=form_id, user_id=auth.user_id)

    return success(form_to_api(form))


def set_status(repo: FormRepository, auth: AuthContext, form_id: str, status: FormStatus) -> dict:
    """Publish or archive a form."""
    form = repo.get_or_raise_by_id(form_id)
    action = "publish this form" if status == FormStatus.PUBLISHED else "archive this form"
    require_owner_or_admin(auth, form.owner_id, action)

    form.status = status
    form = repo.update_form(form)

    logger.info("Form status changed", form_id=form_id, status=form.status)

    return success(form_to_api(form))


def upload_asset(
    repo: FormRepository,
    auth: AuthContext,
    form_id: str,
    event: dict,
    blob_store: S3BlobStore | None = None,
) -> dict:
    """Store a file the designer attaches to a form (images, documents)."""
    form = repo.get_or_raise_by_id(form_id)
    require_owner_or_admin(auth, form.owner_id, "upload files to this form")

    content_type = (get_header(event, "Content-Type") or "").lower()
    if not content_type.startswith("multipart/form-data"):
        raise ValidationError("Please upload a file")

    _, files = parse_multipart(event)
    upload = files.get("file")
    if upload is None or not upload.data:
        raise ValidationError("Please upload a file")

    blob_store = blob_store or S3BlobStore()
    blob = blob_store.upload(upload.data, upload.filename, form_asset_folder(form.id), upload.content_type)

    logger.info("Form asset uploaded", form_id=form_id, key=blob.public_id, size=blob.bytes)

    return success(
        {
            "name": upload.filename,
            "url": blob.url,
            "publicId": blob.public_id,
            "size": blob.bytes,
            "type": blob.format,
        }
    )


def delete_form(repo: FormRepository, auth: AuthContext, form_id: str) -> dict:
    """Delete a form with its visits and responses."""
    form = repo.get_or_raise_by_id(form_id)
    require_owner_or_admin(auth, form.owner_id, "delete this form")

    repo.delete_form(form_id)

    return success({})


def _check_unique_field_ids(form: Form) -> None:
    seen: set[str] = set()
    for field in form.fields:
        if field.field_id in seen:
            raise ValidationError(
                "Duplicate field ID",
                errors=[{"field": "fields", "message": f"Field ID '{field.field_id}' is used more than once"}],
            )
        seen.add(field.field_id)
