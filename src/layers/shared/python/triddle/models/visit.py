"""Visit model for anonymous form visit tracking.

A visit spans one browser session's interaction with a public form, from
first load to abandonment or completion.

DynamoDB keys:
    PK: FORM#{form_id}
    SK: VISIT#{visit_id}
"""

from datetime import datetime
from enum import Enum

from pydantic import Field

from triddle.models.base import BaseModel, CamelModel, utc_now


class DeviceType(str, Enum):
    """Coarse device classification derived from the user agent."""

    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"
    UNKNOWN = "unknown"


class VisitMetadata(CamelModel):
    """Request metadata captured when the visit starts."""

    started_at: datetime = Field(default_factory=utc_now)
    ended_at: datetime | None = None
    user_agent: str | None = None
    ip_address: str | None = None
    referrer: str = ""
    device: DeviceType = DeviceType.UNKNOWN
    browser: str | None = None
    operating_system: str | None = None


class Visit(BaseModel):
    """One visitor's session on a public form."""

    form_id: str
    visit_id: str

    metadata: VisitMetadata = Field(default_factory=VisitMetadata)
    completed: bool = False

    # Last response produced by this visit
    response_id: str | None = None
    # Incomplete response currently collecting answers for this visit
    open_response_id: str | None = None

    def get_pk(self) -> str:
        """Get the partition key."""
        return f"FORM#{self.form_id}"

    def get_sk(self) -> str:
        """Get the sort key."""
        return f"VISIT#{self.visit_id}"
