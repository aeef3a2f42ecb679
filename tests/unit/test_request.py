"""Tests for request parsing helpers."""

import base64
import json

import pytest

from triddle.utils.exceptions import ValidationError
from triddle.utils.request import get_client_ip, get_request_context, parse_json_body, parse_submission

BOUNDARY = "----triddle-boundary"


def _multipart_event(parts: list[tuple[str, str | None, bytes]], base64_encoded: bool = True) -> dict:
    """Build a multipart/form-data event from (name, filename, payload) parts."""
    chunks = []
    for name, filename, payload in parts:
        disposition = f'form-data; name="{name}"'
        headers = f"Content-Disposition: {disposition}"
        if filename:
            headers = f'Content-Disposition: {disposition}; filename="{filename}"\r\nContent-Type: application/pdf'
        chunks.append(f"--{BOUNDARY}\r\n{headers}\r\n\r\n".encode() + payload + b"\r\n")
    body = b"".join(chunks) + f"--{BOUNDARY}--\r\n".encode()

    return {
        "headers": {"content-type": f"multipart/form-data; boundary={BOUNDARY}"},
        "body": base64.b64encode(body).decode() if base64_encoded else body.decode(),
        "isBase64Encoded": base64_encoded,
    }


class TestGetClientIp:
    """Tests for get_client_ip."""

    def test_get_client_ip_from_forwarded_for(self):
        """Should extract the first IP from X-Forwarded-For header."""
        event = {"headers": {"X-Forwarded-For": "1.2.3.4, 5.6.7.8"}, "requestContext": {}}

        assert get_client_ip(event) == "1.2.3.4"

    def test_get_client_ip_from_source_ip(self):
        """Should fall back to requestContext.identity.sourceIp."""
        event = {"headers": {}, "requestContext": {"identity": {"sourceIp": "10.0.0.1"}}}

        assert get_client_ip(event) == "10.0.0.1"

    def test_get_client_ip_unknown(self):
        """Should return 'unknown' when no IP info is available."""
        assert get_client_ip({"headers": None, "requestContext": {}}) == "unknown"


def test_request_context_headers_case_insensitive():
    """User agent and referrer are read regardless of header case."""
    event = {
        "headers": {"user-agent": "pytest", "referer": "https://example.com/post"},
        "requestContext": {"identity": {"sourceIp": "10.0.0.1"}},
    }

    context = get_request_context(event)

    assert context.user_agent == "pytest"
    assert context.referrer == "https://example.com/post"
    assert context.ip_address == "10.0.0.1"


class TestParseJsonBody:
    """Tests for parse_json_body."""

    def test_empty_body(self):
        """A missing body parses as an empty object."""
        assert parse_json_body({"body": None}) == {}

    def test_invalid_json(self):
        """Malformed JSON is a validation error."""
        with pytest.raises(ValidationError):
            parse_json_body({"body": "{not json"})

    def test_non_object(self):
        """Only JSON objects are accepted."""
        with pytest.raises(ValidationError):
            parse_json_body({"body": "[1, 2]"})


class TestParseSubmission:
    """Tests for parse_submission."""

    def test_json_submission(self):
        """JSON bodies carry answers, visit ID and completion flag."""
        event = {
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps(
                {"answers": [{"fieldId": "name", "value": "Ann"}], "visitId": "v1", "isComplete": True}
            ),
        }

        payload, files = parse_submission(event)

        assert payload == {"visitId": "v1", "isComplete": True, "answers": [{"fieldId": "name", "value": "Ann"}]}
        assert files == {}

    def test_answers_as_json_string(self):
        """Answers may arrive JSON-encoded."""
        event = {"headers": {}, "body": json.dumps({"answers": '[{"fieldId": "a", "value": 1}]'})}

        payload, _ = parse_submission(event)

        assert payload["answers"] == [{"fieldId": "a", "value": 1}]
        assert payload["visitId"] is None
        assert payload["isComplete"] is False

    def test_invalid_answers(self):
        """Unparsable answers are rejected."""
        with pytest.raises(ValidationError):
            parse_submission({"headers": {}, "body": json.dumps({"answers": "not json"})})
        with pytest.raises(ValidationError):
            parse_submission({"headers": {}, "body": json.dumps({"answers": {"fieldId": "a"}})})

    def test_multipart_submission(self):
        """Multipart bodies carry answers as JSON text plus file parts."""
        event = _multipart_event(
            [
                ("answers", None, json.dumps([{"fieldId": "resume"}]).encode()),
                ("visitId", None, b"v1"),
                ("isComplete", None, b"true"),
                ("resume", "cv.pdf", b"%PDF-1.4 data"),
            ]
        )

        payload, files = parse_submission(event)

        assert payload["visitId"] == "v1"
        assert payload["isComplete"] is True
        assert payload["answers"] == [{"fieldId": "resume"}]
        assert list(files) == ["resume"]
        assert files["resume"].filename == "cv.pdf"
        assert files["resume"].content_type == "application/pdf"
        assert files["resume"].data == b"%PDF-1.4 data"
        assert files["resume"].size == len(b"%PDF-1.4 data")
