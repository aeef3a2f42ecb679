"""Analytics and export API handler."""

from typing import Any

import boto3
import structlog

from triddle.models.form import Form
from triddle.repositories.base import store_config
from triddle.repositories.form import FormRepository
from triddle.repositories.response import ResponseRepository
from triddle.repositories.visit import VisitRepository
from triddle.services.analytics import field_analytics, form_analytics, visit_analytics
from triddle.services.export import export_responses
from triddle.utils.auth import AuthContext, get_auth_context, require_owner_or_admin
from triddle.utils.responses import error, error_from_exception, file_download, success

logger = structlog.get_logger()


def handler(event: dict[str, Any], context: Any) -> dict:
    """Handle analytics API requests.

    Routes:
        GET /api/v1/forms/{form_id}/analytics
        GET /api/v1/forms/{form_id}/analytics/fields
        GET /api/v1/forms/{form_id}/analytics/visits
        GET /api/v1/forms/{form_id}/export?format=json|csv
    """
    try:
        http_method = event.get("httpMethod", "").upper()
        path = event.get("path", "").rstrip("/")
        path_params = event.get("pathParameters", {}) or {}
        form_id = path_params.get("form_id")

        if http_method != "GET" or not form_id:
            return error("Method not allowed", 405)

        auth = get_auth_context(event)

        dynamodb = boto3.resource("dynamodb", config=store_config())
        forms = FormRepository(dynamodb=dynamodb)
        visits = VisitRepository(dynamodb=dynamodb)
        responses = ResponseRepository(dynamodb=dynamodb)

        form = _load_form(forms, auth, form_id)

        if path.endswith("/analytics/fields"):
            return success(field_analytics(form, responses.list_by_form(form_id)))
        elif path.endswith("/analytics/visits"):
            return success(visit_analytics(form, visits.list_by_form(form_id)))
        elif path.endswith("/analytics"):
            return success(form_analytics(form, visits.list_by_form(form_id), responses.list_by_form(form_id)))
        elif path.endswith("/export"):
            return export(form, responses, event)
        else:
            return error("Not found", 404)

    except Exception as e:
        return error_from_exception(e)


def _load_form(forms: FormRepository, auth: AuthContext, form_id: str) -> Form:
    form = forms.get_or_raise_by_id(form_id)
    require_owner_or_admin(auth, form.owner_id, "view analytics for this form")
    return form


def export(form: Form, responses: ResponseRepository, event: dict) -> dict:
    """Download completed responses as CSV, or list them as JSON."""
    query_params = event.get("queryStringParameters", {}) or {}

    result = export_responses(form, responses.list_by_form(form.id), query_params.get("format") or "json")

    if result.format == "csv":
        return file_download(result.body, result.content_type, result.filename)

    return success(result.body, count=result.count)
