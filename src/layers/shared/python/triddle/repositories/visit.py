"""Visit repository for anonymous form visit tracking.

The visit item doubles as the lock for its open response: the
``openResponseId`` attribute is claimed with a conditional write, so at most
one incomplete response can be started per (form, visit).
"""

from datetime import datetime, timezone
from typing import Any

import structlog
from botocore.exceptions import ClientError

from triddle.models.visit import Visit
from triddle.repositories.base import BaseRepository, is_conditional_check_failure
from triddle.utils.exceptions import ConflictError

logger = structlog.get_logger()


class VisitRepository(BaseRepository[Visit]):
    """Repository for Visit records in DynamoDB."""

    def __init__(self, table_name: str | None = None, dynamodb: Any = None):
        """Initialize visit repository."""
        super().__init__(Visit, table_name, dynamodb)

    def get_by_visit_id(self, form_id: str, visit_id: str) -> Visit | None:
        """Get a visit by form and visit ID.

        Args:
            form_id: Form ID.
            visit_id: Client-correlatable visit ID.

        Returns:
            Visit or None if not found.
        """
        return self.get(pk=f"FORM#{form_id}", sk=f"VISIT#{visit_id}")

    def create_visit(self, visit: Visit) -> Visit:
        """Create a visit, failing if the visit ID is already taken.

        Raises:
            ConflictError: If another request created the visit first.
        """
        return self.create(visit)

    def list_by_form(self, form_id: str) -> list[Visit]:
        """Every visit recorded for a form."""
        return list(self.iter_query(f"FORM#{form_id}", sk_begins_with="VISIT#"))

    def claim_open_response(
        self,
        form_id: str,
        visit_id: str,
        response_id: str,
        expected: str | None = None,
    ) -> None:
        """Point the visit at a new open response, atomically.

        Args:
            form_id: Form ID.
            visit_id: Visit ID.
            response_id: The newly created response.
            expected: Current claim being replaced (a stale pointer), or
                None when the visit must not have an open response yet.

        Raises:
            ConflictError: If another request holds or replaced the claim.
        """
        if expected is None:
            condition = "attribute_not_exists(openResponseId)"
            values: dict[str, Any] = {":rid": response_id}
        else:
            condition = "openResponseId = :expected"
            values = {":rid": response_id, ":expected": expected}

        try:
            self.table.update_item(
                Key={"PK": f"FORM#{form_id}", "SK": f"VISIT#{visit_id}"},
                UpdateExpression="SET openResponseId = :rid, responseId = :rid",
                ConditionExpression=f"attribute_exists(PK) AND {condition}",
                ExpressionAttributeValues=values,
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                raise ConflictError("Visit already has an open response", conflict_type="open_response")
            logger.error("Failed to claim open response", error=str(e), visit_id=visit_id)
            raise

    def release_open_response(self, form_id: str, visit_id: str, response_id: str) -> None:
        """Drop the claim on an open response if it still points at ``response_id``."""
        try:
            self.table.update_item(
                Key={"PK": f"FORM#{form_id}", "SK": f"VISIT#{visit_id}"},
                UpdateExpression="REMOVE openResponseId",
                ConditionExpression="openResponseId = :rid",
                ExpressionAttributeValues={":rid": response_id},
            )
        except ClientError as e:
            if not is_conditional_check_failure(e):
                raise

    def mark_completed(self, form_id: str, visit_id: str, response_id: str) -> None:
        """Mark a visit completed, link it to its response and release the claim.

        Args:
            form_id: Form ID.
            visit_id: Visit ID.
            response_id: The completed response.
        """
        now = datetime.now(timezone.utc).isoformat()
        self.table.update_item(
            Key={"PK": f"FORM#{form_id}", "SK": f"VISIT#{visit_id}"},
            UpdateExpression=(
                "SET #completed = :true, responseId = :rid, #meta.endedAt = :now, updatedAt = :now"
            ),
            ConditionExpression="attribute_exists(PK)",
            ExpressionAttributeNames={"#completed": "completed", "#meta": "metadata"},
            ExpressionAttributeValues={":true": True, ":rid": response_id, ":now": now},
        )
        self.release_open_response(form_id, visit_id, response_id)

