"""Response repository for DynamoDB operations."""

from typing import Any

from triddle.models.response import Response
from triddle.repositories.base import BaseRepository
from triddle.utils.exceptions import NotFoundError


class ResponseRepository(BaseRepository[Response]):
    """Repository for Response entities.

    Response IDs are ULIDs, so sort-key order within a form partition is
    creation order.
    """

    def __init__(self, table_name: str | None = None, dynamodb: Any = None):
        """Initialize response repository."""
        super().__init__(Response, table_name, dynamodb)

    def get_for_form(self, form_id: str, response_id: str) -> Response | None:
        """Get a response of a known form (strongly consistent read).

        Args:
            form_id: The form ID.
            response_id: The response ID.

        Returns:
            Response or None if not found.
        """
        return self.get(pk=f"FORM#{form_id}", sk=f"RESPONSE#{response_id}")

    def get_by_id(self, response_id: str) -> Response | None:
        """Get a response by ID alone using GSI1.

        Args:
            response_id: The response ID.

        Returns:
            Response or None if not found.
        """
        items, _ = self.query(pk=f"RESPONSE#{response_id}", index_name="GSI1", limit=1)
        return items[0] if items else None

    def get_or_raise_by_id(self, response_id: str) -> Response:
        """Get a response by ID or raise NotFoundError."""
        response = self.get_by_id(response_id)
        if not response:
            raise NotFoundError("Response", response_id)
        return response

    def list_by_form(self, form_id: str, newest_first: bool = True) -> list[Response]:
        """Every response recorded for a form.

        Args:
            form_id: The form ID.
            newest_first: Sort direction by creation time.

        Returns:
            List of responses.
        """
        return list(
            self.iter_query(
                f"FORM#{form_id}",
                sk_begins_with="RESPONSE#",
                scan_forward=not newest_first,
            )
        )

    def create_response(self, response: Response) -> Response:
        """Create a new response.

        Args:
            response: The response to create.

        Returns:
            The created response.
        """
        return self.create(response, gsi_keys=response.get_gsi1_keys())

    def update_response(self, response: Response) -> Response:
        """Compare-and-swap update of a response on its version.

        Raises:
            ConflictError: If the response changed since it was read.
        """
        return self.update(response, gsi_keys=response.get_gsi1_keys())

    def delete_response(self, form_id: str, response_id: str) -> bool:
        """Delete a response.

        Returns:
            True if deleted, False if not found.
        """
        return self.delete(pk=f"FORM#{form_id}", sk=f"RESPONSE#{response_id}")
