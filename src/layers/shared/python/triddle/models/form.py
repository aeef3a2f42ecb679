"""Form model for published questionnaires."""

import re
import secrets
from enum import Enum
from typing import Any, ClassVar

from pydantic import Field

from triddle.models.base import BaseModel, CamelModel


class FormStatus(str, Enum):
    """Form lifecycle status."""

    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class FieldType(str, Enum):
    """Form field types.

    ``longText``/``textarea`` and ``checkbox``/``multiSelect`` are aliases the
    designer has used interchangeably over time.
    """

    TEXT = "text"
    LONG_TEXT = "longText"
    TEXTAREA = "textarea"
    NUMBER = "number"
    CHECKBOX = "checkbox"
    MULTI_SELECT = "multiSelect"
    RADIO = "radio"
    DROPDOWN = "dropdown"
    DATE = "date"
    FILE_UPLOAD = "fileUpload"


class FieldOption(CamelModel):
    """A selectable option for choice fields."""

    label: str
    value: str


class FormField(CamelModel):
    """A single field in a form."""

    field_id: str = Field(..., min_length=1, description="Stable field ID, unique within the form")
    type: FieldType = Field(default=FieldType.TEXT)
    label: str = Field(default="")
    placeholder: str | None = None
    required: bool = False
    options: list[FieldOption] = Field(default_factory=list)
    validations: dict[str, Any] = Field(default_factory=dict)
    file_settings: dict[str, Any] = Field(default_factory=dict)
    order: int = 0


class LogicJump(CamelModel):
    """Conditional branching rule. Opaque to response collection."""

    field_id: str
    condition: str
    value: Any = None
    destination: str


class ThemeSettings(CamelModel):
    """Visual theme of the public form."""

    primary_color: str = "#3B82F6"
    background_color: str = "#F9FAFB"
    font_family: str = "Inter, sans-serif"


class ProgressBarSettings(CamelModel):
    """Progress indicator shown while filling the form."""

    show: bool = True
    type: str = "bar"


class SubmitButtonSettings(CamelModel):
    """Submit button configuration."""

    text: str = "Submit"


class FormSettings(CamelModel):
    """Presentation settings for a form."""

    theme: ThemeSettings = Field(default_factory=ThemeSettings)
    progress_bar: ProgressBarSettings = Field(default_factory=ProgressBarSettings)
    submit_button: SubmitButtonSettings = Field(default_factory=SubmitButtonSettings)
    success_message: str = "Thank you for your submission!"
    show_question_numbers: bool = True


def slugify(title: str) -> str:
    """Derive a unique URL slug from a form title."""
    base = re.sub(r"[^a-z0-9]+", "-", (title or "").lower()).strip("-") or "untitled-form"
    return f"{base}-{secrets.token_hex(4)}"


class Form(BaseModel):
    """Form entity.

    Key Pattern:
        PK: FORM#{id}
        SK: META
        GSI1PK: USER#{owner_id}#FORMS
        GSI1SK: {created_at}
    """

    _pk_prefix: ClassVar[str] = "FORM#"
    _sk_prefix: ClassVar[str] = "META"

    owner_id: str = Field(..., description="User who owns the form")
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)
    slug: str = Field(default="")

    fields: list[FormField] = Field(default_factory=list)
    logic_jumps: list[LogicJump] = Field(default_factory=list)
    settings: FormSettings = Field(default_factory=FormSettings)
    status: FormStatus = Field(default=FormStatus.DRAFT)

    def model_post_init(self, __context: Any) -> None:
        """Derive the slug from the title when none was given."""
        if not self.slug:
            self.slug = slugify(self.title)

    def get_pk(self) -> str:
        """Get partition key: FORM#{id}."""
        return f"FORM#{self.id}"

    def get_sk(self) -> str:
        """Get sort key: META."""
        return "META"

    def get_gsi1_keys(self) -> dict[str, str]:
        """Get GSI1 keys for listing forms by owner."""
        return {
            "GSI1PK": f"USER#{self.owner_id}#FORMS",
            "GSI1SK": self.created_at.isoformat(),
        }

    @property
    def is_published(self) -> bool:
        """Whether the form currently accepts responses."""
        return self.status == FormStatus.PUBLISHED

    def ordered_fields(self) -> list[FormField]:
        """Fields in render order (stable for equal order indexes)."""
        return sorted(self.fields, key=lambda f: f.order)

    def get_field(self, field_id: str) -> FormField | None:
        """Look up a field by its ID."""
        for field in self.fields:
            if field.field_id == field_id:
                return field
        return None

    def field_labels(self) -> dict[str, str]:
        """Map of field ID to label."""
        return {field.field_id: field.label for field in self.fields}


class CreateFormRequest(CamelModel):
    """Request model for creating a form."""

    title: str = Field(default="Untitled form", min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)
    fields: list[FormField] = Field(default_factory=list)
    logic_jumps: list[LogicJump] = Field(default_factory=list)
    settings: FormSettings = Field(default_factory=FormSettings)
    status: FormStatus = FormStatus.DRAFT


class UpdateFormRequest(CamelModel):
    """Request model for updating a form."""

    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)
    fields: list[FormField] | None = None
    logic_jumps: list[LogicJump] | None = None
    settings: FormSettings | None = None
    status: FormStatus | None = None
