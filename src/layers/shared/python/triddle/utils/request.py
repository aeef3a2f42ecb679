"""Request parsing helpers for API Gateway events."""

import base64
import json
from dataclasses import dataclass
from email import policy
from email.parser import BytesParser
from typing import Any

import structlog

from triddle.utils.exceptions import ValidationError

logger = structlog.get_logger()


@dataclass
class RequestContext:
    """Client metadata recorded on visits and responses."""

    user_agent: str | None = None
    ip_address: str | None = None
    referrer: str | None = None


@dataclass
class UploadedFile:
    """A file part of a multipart request."""

    field_name: str
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def get_header(event: dict[str, Any], name: str) -> str | None:
    """Case-insensitive header lookup."""
    headers = event.get("headers", {}) or {}
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def get_client_ip(event: dict[str, Any]) -> str:
    """Extract client IP, honouring X-Forwarded-For behind CloudFront/ALB."""
    forwarded_for = get_header(event, "X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    identity = (event.get("requestContext", {}) or {}).get("identity", {}) or {}
    return identity.get("sourceIp") or "unknown"


def get_request_context(event: dict[str, Any]) -> RequestContext:
    """Build the request metadata for a visit or response."""
    user_agent = get_header(event, "User-Agent")
    referrer = get_header(event, "Referer")
    return RequestContext(
        user_agent=user_agent[:500] if user_agent else None,
        ip_address=get_client_ip(event),
        referrer=referrer[:2000] if referrer else None,
    )


def _raw_body(event: dict[str, Any]) -> bytes:
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        return base64.b64decode(body)
    return body.encode("utf-8") if isinstance(body, str) else body


def parse_json_body(event: dict[str, Any]) -> dict[str, Any]:
    """Decode a JSON object body.

    Raises:
        ValidationError: If the body is not a JSON object.
    """
    raw = _raw_body(event)
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON body")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def parse_multipart(event: dict[str, Any]) -> tuple[dict[str, str], dict[str, UploadedFile]]:
    """Split a multipart/form-data body into text fields and file parts.

    Returns:
        Tuple of (fields, files) keyed by form part name.
    """
    content_type = get_header(event, "Content-Type") or ""
    raw = _raw_body(event)

    message = BytesParser(policy=policy.HTTP).parsebytes(
        f"Content-Type: {content_type}\r\n\r\n".encode("utf-8") + raw
    )
    if not message.is_multipart():
        raise ValidationError("Malformed multipart body")

    fields: dict[str, str] = {}
    files: dict[str, UploadedFile] = {}

    for part in message.iter_parts():
        name = part.get_param("name", header="content-disposition")
        if not name:
            continue
        payload = part.get_payload(decode=True) or b""
        filename = part.get_filename()
        if filename is not None:
            files[name] = UploadedFile(
                field_name=name,
                filename=filename,
                content_type=part.get_content_type(),
                data=payload,
            )
        else:
            fields[name] = payload.decode(part.get_content_charset() or "utf-8")

    return fields, files


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def parse_submission(event: dict[str, Any]) -> tuple[dict[str, Any], dict[str, UploadedFile]]:
    """Normalise a response submission body.

    Accepts either a JSON body or a multipart form whose ``answers`` part is
    a JSON string and whose file parts are keyed by field ID.

    Returns:
        Tuple of (payload with answers/visitId/isComplete, files by field ID).

    Raises:
        ValidationError: If the answers cannot be decoded.
    """
    content_type = (get_header(event, "Content-Type") or "").lower()

    if content_type.startswith("multipart/form-data"):
        fields, files = parse_multipart(event)
        payload: dict[str, Any] = {
            "visitId": fields.get("visitId") or None,
            "isComplete": _as_bool(fields.get("isComplete", False)),
        }
        raw_answers = fields.get("answers", "[]")
    else:
        files = {}
        body = parse_json_body(event)
        payload = {
            "visitId": body.get("visitId") or None,
            "isComplete": _as_bool(body.get("isComplete", False)),
        }
        raw_answers = body.get("answers") or []

    if isinstance(raw_answers, str):
        try:
            raw_answers = json.loads(raw_answers)
        except json.JSONDecodeError:
            logger.warning("Unparsable answers field in submission")
            raise ValidationError("Invalid answers format")

    if not isinstance(raw_answers, list):
        raise ValidationError("Invalid answers format")

    payload["answers"] = raw_answers
    return payload, files
