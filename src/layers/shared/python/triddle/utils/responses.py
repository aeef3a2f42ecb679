"""API response helper functions."""

import json
import os
from datetime import datetime
from typing import Any

import structlog
from pydantic import BaseModel as PydanticBaseModel

from triddle.utils.exceptions import RateLimitError, TriddleError

logger = structlog.get_logger()

# Get allowed CORS origin from environment
# Defaults to the hosted frontend, localhost allowed in dev
_ALLOWED_ORIGIN = os.environ.get("CORS_ALLOWED_ORIGIN", "https://triddle-form-builder.vercel.app")
_STAGE = os.environ.get("STAGE", "dev")


def _get_cors_origin(request_origin: str | None = None) -> str:
    """Get the appropriate CORS origin for the response.

    In dev, also allows localhost for local development.
    """
    if _STAGE == "dev" and request_origin:
        if request_origin.startswith("http://localhost:"):
            return request_origin

    return _ALLOWED_ORIGIN


def get_cors_headers(request_origin: str | None = None) -> dict:
    """Get CORS headers with the appropriate origin."""
    return {
        "Access-Control-Allow-Origin": _get_cors_origin(request_origin),
        "Access-Control-Allow-Headers": "Content-Type,Authorization,X-Amz-Date,X-Api-Key,X-Amz-Security-Token",
        "Access-Control-Allow-Methods": "GET,POST,PUT,PATCH,DELETE,OPTIONS",
        "Access-Control-Allow-Credentials": "true",
        "Content-Type": "application/json",
    }


CORS_HEADERS = get_cors_headers()


def _json_serializer(obj: Any) -> Any:
    """JSON serializer for objects not serializable by default."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, PydanticBaseModel):
        return obj.model_dump(mode="json", by_alias=True)
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def _serialize(data: Any) -> str:
    """Serialize data to JSON string."""
    return json.dumps(data, default=_json_serializer)


def success(data: Any, status_code: int = 200, **extra: Any) -> dict:
    """Create a successful API response.

    The body is the ``{"success": true, "data": ...}`` envelope; keyword
    arguments are added next to ``data`` (e.g. ``count`` or ``visitId``).

    Args:
        data: Response data (dict, list, or Pydantic model).
        status_code: HTTP status code (default 200).

    Returns:
        API Gateway response dict.
    """
    if isinstance(data, PydanticBaseModel):
        data = data.model_dump(mode="json", by_alias=True)

    body: dict[str, Any] = {"success": True, **extra, "data": data}

    return {
        "statusCode": status_code,
        "headers": CORS_HEADERS,
        "body": _serialize(body),
    }


def created(data: Any, **extra: Any) -> dict:
    """Create a 201 Created response."""
    return success(data, status_code=201, **extra)


def file_download(content: str, content_type: str, filename: str) -> dict:
    """Create a response that the browser saves as a file.

    Args:
        content: File body.
        content_type: MIME type of the body.
        filename: Suggested download name.

    Returns:
        API Gateway response dict.
    """
    safe_name = filename.replace('"', "")
    return {
        "statusCode": 200,
        "headers": {
            **CORS_HEADERS,
            "Content-Type": content_type,
            "Content-Disposition": f'attachment; filename="{safe_name}"',
        },
        "body": content,
    }


def error(
    message: str,
    status_code: int = 500,
    error_code: str | None = None,
    details: dict | None = None,
) -> dict:
    """Create an error API response.

    Args:
        message: Error message.
        status_code: HTTP status code.
        error_code: Machine-readable error code.
        details: Additional error details.

    Returns:
        API Gateway response dict.
    """
    body: dict[str, Any] = {
        "success": False,
        "error": message,
    }

    if error_code:
        body["error_code"] = error_code
    if details:
        body["details"] = details

    return {
        "statusCode": status_code,
        "headers": CORS_HEADERS,
        "body": _serialize(body),
    }


def error_from_exception(exc: Exception) -> dict:
    """Format any handler-level exception as an API error response.

    Known errors keep their status and message; anything else is logged and
    reported as a generic 500.
    """
    if isinstance(exc, RateLimitError):
        response = error(exc.message, exc.status_code, exc.error_code, exc.details)
        if exc.retry_after:
            response["headers"] = {**response["headers"], "Retry-After": str(exc.retry_after)}
        return response
    if isinstance(exc, TriddleError):
        return error(exc.message, exc.status_code, exc.error_code, exc.details)

    logger.exception("Unhandled error", error=str(exc))
    return error("Internal server error", 500)


def validation_error(errors: list[dict]) -> dict:
    """Create a validation error response."""
    return error(
        message="Validation failed",
        status_code=400,
        error_code="VALIDATION_ERROR",
        details={"errors": errors},
    )


def not_found(resource_type: str, resource_id: str) -> dict:
    """Create a 404 Not Found response."""
    return error(
        message=f"{resource_type} not found with id of {resource_id}",
        status_code=404,
        error_code="NOT_FOUND",
        details={"resource_type": resource_type, "resource_id": resource_id},
    )
