"""Per-field-type behavior for analytics and export.

Each kind of field gets one aggregator class owning how answers accumulate,
how the aggregate serializes, and how an answer renders in a CSV cell.
``aggregator_for`` picks the class by matching on the field type.
"""

import math
from typing import Any

from triddle.models.form import FieldType, FormField
from triddle.models.response import Answer


def parse_number(value: Any) -> int | float | None:
    """Numeric value of an answer, or None when it is not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def format_scalar(value: Any) -> str:
    """Text of a scalar answer value for a CSV cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class FieldAggregate:
    """Answer statistics shared by every field kind."""

    def __init__(self, field: FormField) -> None:
        self.field = field
        self.response_count = 0
        self.values: list[Any] = []

    def add(self, answer: Answer) -> None:
        """Count one answer to this field."""
        self.response_count += 1
        self.values.append(answer.value)
        self.accumulate(answer)

    def accumulate(self, answer: Answer) -> None:
        """Type-specific accumulation hook."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "fieldId": self.field.field_id,
            "label": self.field.label,
            "type": self.field.type,
            "responseCount": self.response_count,
            "values": self.values,
        }

    def render(self, answer: Answer | None) -> str:
        """CSV cell for an answer to this field."""
        if answer is None:
            return ""
        if answer.file_url:
            return answer.file_url
        if isinstance(answer.value, list):
            return ", ".join(format_scalar(v) for v in answer.value)
        return format_scalar(answer.value)


class PlainAggregate(FieldAggregate):
    """Free text and date fields: counts and raw values only."""


class ChoiceAggregate(FieldAggregate):
    """Single-choice fields (radio, dropdown)."""

    def __init__(self, field: FormField) -> None:
        super().__init__(field)
        self.option_counts: dict[str, int] = {option.value: 0 for option in field.options}

    def accumulate(self, answer: Answer) -> None:
        self.count_option(answer.value)

    def count_option(self, value: Any) -> None:
        if value is None or value == "" or isinstance(value, (list, dict)):
            return
        key = format_scalar(value)
        self.option_counts[key] = self.option_counts.get(key, 0) + 1

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "optionCounts": self.option_counts}


class MultiChoiceAggregate(ChoiceAggregate):
    """Multi-choice fields (checkbox, multiSelect); every selected value counts."""

    def accumulate(self, answer: Answer) -> None:
        if not isinstance(answer.value, list):
            return
        for item in answer.value:
            self.count_option(item)


class NumberAggregate(FieldAggregate):
    """Number fields: min, max, sum and mean over numeric answers.

    Malformed values still count towards ``responseCount`` but not towards
    the mean.
    """

    def __init__(self, field: FormField) -> None:
        super().__init__(field)
        self.min: int | float | None = None
        self.max: int | float | None = None
        self.sum: int | float = 0
        self.numeric_count = 0

    def accumulate(self, answer: Answer) -> None:
        number = parse_number(answer.value)
        if number is None:
            return
        self.sum += number
        self.numeric_count += 1
        if self.min is None or number < self.min:
            self.min = number
        if self.max is None or number > self.max:
            self.max = number

    @property
    def average(self) -> float:
        return self.sum / self.numeric_count if self.numeric_count else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "min": self.min,
            "max": self.max,
            "sum": self.sum,
            "average": self.average,
        }


class FileAggregate(FieldAggregate):
    """File upload fields: also counts answers that carry a stored file."""

    def __init__(self, field: FormField) -> None:
        super().__init__(field)
        self.file_count = 0

    def accumulate(self, answer: Answer) -> None:
        if answer.file_url:
            self.file_count += 1

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "fileCount": self.file_count}


def aggregator_for(field: FormField) -> FieldAggregate:
    """Aggregator instance for a field, chosen by its type."""
    match FieldType(field.type):
        case FieldType.RADIO | FieldType.DROPDOWN:
            return ChoiceAggregate(field)
        case FieldType.CHECKBOX | FieldType.MULTI_SELECT:
            return MultiChoiceAggregate(field)
        case FieldType.NUMBER:
            return NumberAggregate(field)
        case FieldType.FILE_UPLOAD:
            return FileAggregate(field)
        case _:
            # text, longText, textarea, date
            return PlainAggregate(field)
