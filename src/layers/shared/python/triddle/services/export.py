"""Export of completed responses as JSON or CSV."""

import csv
import io
import re
from dataclasses import dataclass
from typing import Any, Iterable

import structlog

from triddle.models.form import Form
from triddle.models.response import Response
from triddle.services.field_types import aggregator_for, format_scalar
from triddle.utils.exceptions import ValidationError

logger = structlog.get_logger()

EXPORT_FORMATS = ("json", "csv")
CSV_FIXED_HEADERS = ["Response ID", "Submission Date", "Time Spent (seconds)"]


@dataclass
class ExportResult:
    """Rendered export.

    ``body`` is the list of exported rows for JSON and the CSV text for CSV.
    """

    format: str
    body: Any
    count: int
    content_type: str
    filename: str


def export_filename(title: str, extension: str = "csv") -> str:
    """Download filename derived from a form title: whitespace runs become ``_``."""
    base = re.sub(r"\s+", "_", title)
    return f"{base}_responses.{extension}"


def _submitted_at(response: Response) -> str | None:
    completed_at = response.metadata.completed_at
    return completed_at.isoformat() if completed_at else None


def _completed_newest_first(responses: Iterable[Response]) -> list[Response]:
    complete = [r for r in responses if r.is_complete]
    return sorted(complete, key=lambda r: r.created_at, reverse=True)


def to_json_rows(form: Form, responses: list[Response]) -> list[dict[str, Any]]:
    """One object per response with answers keyed by field label."""
    labels = form.field_labels()
    rows = []
    for response in responses:
        answers: dict[str, Any] = {}
        for answer in response.answers:
            label = labels.get(answer.field_id) or answer.field_id
            answers[label] = answer.file_url or answer.value
        rows.append(
            {
                "id": response.id,
                "submittedAt": _submitted_at(response),
                "timeSpent": response.metadata.time_spent,
                "answers": answers,
            }
        )
    return rows


def to_csv(form: Form, responses: list[Response]) -> str:
    """CSV text with one column per form field, in field order."""
    fields = form.ordered_fields()
    renderers = [aggregator_for(field) for field in fields]

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_FIXED_HEADERS + [field.label for field in fields])

    for response in responses:
        row = [
            response.id,
            _submitted_at(response) or "",
            format_scalar(response.metadata.time_spent),
        ]
        for field, renderer in zip(fields, renderers):
            row.append(renderer.render(response.answer_for(field.field_id)))
        writer.writerow(row)

    return buffer.getvalue()


def export_responses(form: Form, responses: Iterable[Response], fmt: str = "json") -> ExportResult:
    """Render a form's completed responses, most recent first.

    Args:
        form: The form.
        responses: Responses of the form; incomplete ones are skipped.
        fmt: ``json`` or ``csv``.

    Returns:
        ExportResult with the rendered body.

    Raises:
        ValidationError: If the format is not supported.
    """
    fmt = (fmt or "json").lower()
    if fmt not in EXPORT_FORMATS:
        raise ValidationError(f"Unsupported export format '{fmt}'. Use one of: {', '.join(EXPORT_FORMATS)}")

    complete = _completed_newest_first(responses)
    logger.info("Exporting responses", form_id=form.id, format=fmt, count=len(complete))

    if fmt == "csv":
        return ExportResult(
            format=fmt,
            body=to_csv(form, complete),
            count=len(complete),
            content_type="text/csv",
            filename=export_filename(form.title, "csv"),
        )

    return ExportResult(
        format=fmt,
        body=to_json_rows(form, complete),
        count=len(complete),
        content_type="application/json",
        filename=export_filename(form.title, "json"),
    )
