"""Response model for (possibly partial) form submissions."""

from datetime import datetime
from typing import Any, ClassVar

from pydantic import Field

from triddle.models.base import BaseModel, CamelModel, utc_now


class Answer(CamelModel):
    """A single answer to a form field."""

    field_id: str = Field(..., min_length=1)
    value: Any = None
    file_url: str | None = None
    file_public_id: str | None = None


class ResponseMetadata(CamelModel):
    """Lifecycle timestamps and request metadata of a response."""

    visit_id: str | None = None
    started_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime | None = None
    submitted_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None
    time_spent: float | None = Field(None, description="Seconds from start to completion")
    is_complete: bool = False
    user_agent: str | None = None
    ip_address: str | None = None
    referrer: str | None = None


class Response(BaseModel):
    """Form response record.

    Key Pattern:
        PK: FORM#{form_id}
        SK: RESPONSE#{id}
        GSI1PK: RESPONSE#{id}
        GSI1SK: FORM#{form_id}
    """

    _pk_prefix: ClassVar[str] = "FORM#"
    _sk_prefix: ClassVar[str] = "RESPONSE#"

    form_id: str
    visit_id: str
    answers: list[Answer] = Field(default_factory=list)
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)
    respondent_id: str | None = Field(None, description="Submitting user, when authenticated")

    def get_pk(self) -> str:
        """Get partition key: FORM#{form_id}."""
        return f"FORM#{self.form_id}"

    def get_sk(self) -> str:
        """Get sort key: RESPONSE#{id}."""
        return f"RESPONSE#{self.id}"

    def get_gsi1_keys(self) -> dict[str, str]:
        """Get GSI1 keys for looking a response up by ID alone."""
        return {
            "GSI1PK": f"RESPONSE#{self.id}",
            "GSI1SK": f"FORM#{self.form_id}",
        }

    @property
    def is_complete(self) -> bool:
        return bool(self.metadata.is_complete)

    def answer_for(self, field_id: str) -> Answer | None:
        """Latest answer recorded for a field, if any."""
        for answer in reversed(self.answers):
            if answer.field_id == field_id:
                return answer
        return None


class SubmitResponseRequest(CamelModel):
    """Request model for a (partial) submission to a public form."""

    answers: list[Answer] = Field(default_factory=list)
    visit_id: str | None = Field(None, max_length=128)
    is_complete: bool = False
