"""Form repository for DynamoDB operations."""

from typing import Any

import structlog
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from triddle.models.form import Form, FormStatus
from triddle.repositories.base import BaseRepository

logger = structlog.get_logger()


class FormRepository(BaseRepository[Form]):
    """Repository for Form entities."""

    def __init__(self, table_name: str | None = None, dynamodb: Any = None):
        """Initialize form repository."""
        super().__init__(Form, table_name, dynamodb)

    def get_by_id(self, form_id: str) -> Form | None:
        """Get form by ID.

        Args:
            form_id: The form ID.

        Returns:
            Form or None if not found.
        """
        return self.get(pk=f"FORM#{form_id}", sk="META")

    def get_or_raise_by_id(self, form_id: str) -> Form:
        """Get form by ID or raise NotFoundError."""
        return self.get_or_raise(pk=f"FORM#{form_id}", sk="META", resource_type="Form")

    def list_by_owner(
        self,
        owner_id: str,
        limit: int = 50,
        last_key: dict | None = None,
    ) -> tuple[list[Form], dict | None]:
        """List a user's forms using GSI1, newest first.

        Args:
            owner_id: The owning user ID.
            limit: Maximum forms to return.
            last_key: Pagination cursor.

        Returns:
            Tuple of (forms, next_page_key).
        """
        return self.query(
            pk=f"USER#{owner_id}#FORMS",
            index_name="GSI1",
            limit=limit,
            last_key=last_key,
            scan_forward=False,  # Most recent first
        )

    def list_all_by_owner(self, owner_id: str) -> list[Form]:
        """Every form of a user, newest first."""
        return list(self.iter_query(f"USER#{owner_id}#FORMS", index_name="GSI1", scan_forward=False))

    def list_published(self) -> list[Form]:
        """List every published form across owners.

        Only used by admin listings, so a filtered scan is acceptable.
        """
        forms: list[Form] = []
        kwargs: dict[str, Any] = {
            "FilterExpression": Attr("SK").eq("META") & Attr("status").eq(FormStatus.PUBLISHED.value),
        }
        try:
            while True:
                response = self.table.scan(**kwargs)
                forms.extend(Form.from_dynamodb(item) for item in response.get("Items", []))
                if "LastEvaluatedKey" not in response:
                    break
                kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as e:
            logger.error("DynamoDB scan for published forms failed", error=str(e))
            raise
        return forms

    def create_form(self, form: Form) -> Form:
        """Create a new form.

        Args:
            form: The form to create.

        Returns:
            The created form.
        """
        return self.create(form, gsi_keys=form.get_gsi1_keys())

    def update_form(self, form: Form) -> Form:
        """Update an existing form.

        Args:
            form: The form to update.

        Returns:
            The updated form.
        """
        return self.update(form, gsi_keys=form.get_gsi1_keys())

    def delete_form(self, form_id: str) -> int:
        """Delete a form together with its visits and responses.

        Args:
            form_id: The form ID.

        Returns:
            Number of items removed (form included).
        """
        deleted = self.delete_partition(f"FORM#{form_id}")
        logger.info("Form deleted", form_id=form_id, items_removed=deleted)
        return deleted
