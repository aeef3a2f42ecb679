"""Base repository class for DynamoDB operations."""

import os
from typing import Any, Generic, Iterator, TypeVar

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import ClientError

from triddle.models.base import BaseModel
from triddle.utils.exceptions import ConflictError, NotFoundError

logger = structlog.get_logger()

T = TypeVar("T", bound=BaseModel)


def store_config() -> Config:
    """Client config with explicit timeouts so store calls fail instead of hanging."""
    return Config(
        connect_timeout=float(os.environ.get("STORE_CONNECT_TIMEOUT", "3")),
        read_timeout=float(os.environ.get("STORE_READ_TIMEOUT", "5")),
        retries={"max_attempts": 3, "mode": "standard"},
    )


def is_conditional_check_failure(exc: ClientError) -> bool:
    """Whether a ClientError is a failed condition expression."""
    return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class BaseRepository(Generic[T]):
    """Base repository for DynamoDB single-table design.

    Provides common CRUD operations with optimistic locking support.
    """

    def __init__(
        self,
        model_class: type[T],
        table_name: str | None = None,
        dynamodb: Any = None,
    ):
        """Initialize repository.

        Args:
            model_class: The Pydantic model class for this repository.
            table_name: DynamoDB table name. Defaults to TABLE_NAME env var.
            dynamodb: Optional boto3 DynamoDB resource to share between
                repositories. Created lazily when omitted.
        """
        self.model_class = model_class
        self.table_name = table_name or os.environ.get("TABLE_NAME", "triddle-dev")
        self._dynamodb = dynamodb
        self._table = None

    @property
    def dynamodb(self):
        """Get DynamoDB resource (lazy initialization)."""
        if self._dynamodb is None:
            self._dynamodb = boto3.resource("dynamodb", config=store_config())
        return self._dynamodb

    @property
    def table(self):
        """Get DynamoDB table (lazy initialization)."""
        if self._table is None:
            self._table = self.dynamodb.Table(self.table_name)
        return self._table

    def _build_key(self, pk: str, sk: str) -> dict[str, str]:
        """Build key dictionary for DynamoDB operations."""
        return {"PK": pk, "SK": sk}

    def get(self, pk: str, sk: str) -> T | None:
        """Get an item by its primary key (strongly consistent).

        Args:
            pk: Partition key value.
            sk: Sort key value.

        Returns:
            Model instance or None if not found.
        """
        try:
            response = self.table.get_item(Key=self._build_key(pk, sk), ConsistentRead=True)
            item = response.get("Item")

            if not item:
                return None

            return self.model_class.from_dynamodb(item)

        except ClientError as e:
            logger.error("DynamoDB get_item failed", error=str(e), pk=pk, sk=sk)
            raise

    def get_or_raise(self, pk: str, sk: str, resource_type: str) -> T:
        """Get an item or raise NotFoundError.

        Args:
            pk: Partition key value.
            sk: Sort key value.
            resource_type: Resource type name for error message.

        Returns:
            Model instance.

        Raises:
            NotFoundError: If item not found.
        """
        item = self.get(pk, sk)
        if not item:
            resource_id = pk.split("#", 1)[-1] if sk == "META" else sk.split("#", 1)[-1]
            raise NotFoundError(resource_type, resource_id)
        return item

    def put(
        self,
        item: T,
        condition_expression: str | None = None,
        gsi_keys: dict[str, str] | None = None,
    ) -> T:
        """Put an item into DynamoDB.

        Args:
            item: Model instance to save.
            condition_expression: Optional condition expression.
            gsi_keys: Optional GSI key values to add.

        Returns:
            The saved model instance.

        Raises:
            ConflictError: If the condition expression fails.
        """
        try:
            item.update_timestamp()

            db_item = item.to_dynamodb()
            db_item.update(item.get_keys())

            if gsi_keys:
                db_item.update(gsi_keys)

            kwargs: dict[str, Any] = {"Item": db_item}
            if condition_expression:
                kwargs["ConditionExpression"] = condition_expression

            self.table.put_item(**kwargs)

            logger.debug(
                "Item saved",
                pk=db_item["PK"],
                sk=db_item["SK"],
                model=self.model_class.__name__,
            )

            return item

        except ClientError as e:
            if is_conditional_check_failure(e):
                raise ConflictError("Item already exists or version mismatch")
            logger.error("DynamoDB put_item failed", error=str(e))
            raise

    def create(self, item: T, gsi_keys: dict[str, str] | None = None) -> T:
        """Create a new item (fails if exists).

        Raises:
            ConflictError: If item already exists.
        """
        return self.put(
            item,
            condition_expression="attribute_not_exists(PK)",
            gsi_keys=gsi_keys,
        )

    def update(
        self,
        item: T,
        gsi_keys: dict[str, str] | None = None,
        check_version: bool = True,
    ) -> T:
        """Replace an existing item, compare-and-swap on its version.

        Args:
            item: Model instance to update.
            gsi_keys: Optional GSI key values.
            check_version: Whether to check version for optimistic locking.

        Returns:
            The updated model instance.

        Raises:
            ConflictError: If version mismatch (concurrent modification).
        """
        old_version = item.version
        item.increment_version()
        item.update_timestamp()

        try:
            db_item = item.to_dynamodb()
            db_item.update(item.get_keys())

            if gsi_keys:
                db_item.update(gsi_keys)

            kwargs: dict[str, Any] = {"Item": db_item}
            if check_version:
                kwargs["ConditionExpression"] = "version = :old_version"
                kwargs["ExpressionAttributeValues"] = {":old_version": old_version}

            self.table.put_item(**kwargs)

            logger.debug(
                "Item updated",
                pk=db_item["PK"],
                sk=db_item["SK"],
                version=item.version,
            )

            return item

        except ClientError as e:
            # Leave the in-memory copy as it was so callers can reload and retry
            item.version = old_version
            if is_conditional_check_failure(e):
                raise ConflictError("Item was modified by another process", conflict_type="version")
            logger.error("DynamoDB update failed", error=str(e))
            raise

    def delete(self, pk: str, sk: str) -> bool:
        """Delete an item.

        Returns:
            True if deleted, False if not found.
        """
        try:
            self.table.delete_item(
                Key=self._build_key(pk, sk),
                ConditionExpression="attribute_exists(PK)",
            )
            logger.debug("Item deleted", pk=pk, sk=sk)
            return True

        except ClientError as e:
            if is_conditional_check_failure(e):
                return False
            logger.error("DynamoDB delete_item failed", error=str(e))
            raise

    def query(
        self,
        pk: str,
        sk_begins_with: str | None = None,
        index_name: str | None = None,
        limit: int | None = None,
        scan_forward: bool = True,
        last_key: dict | None = None,
    ) -> tuple[list[T], dict | None]:
        """Query one page of items by partition key.

        Args:
            pk: Partition key value.
            sk_begins_with: Sort key prefix for begins_with condition.
            index_name: Optional GSI name (only GSI1 is defined).
            limit: Maximum items to return.
            scan_forward: Sort direction (True = ascending).
            last_key: Last evaluated key for pagination.

        Returns:
            Tuple of (items, last_evaluated_key).
        """
        pk_name, sk_name = ("GSI1PK", "GSI1SK") if index_name == "GSI1" else ("PK", "SK")

        key_condition = "#pk = :pk"
        names = {"#pk": pk_name}
        values: dict[str, Any] = {":pk": pk}
        if sk_begins_with:
            key_condition += " AND begins_with(#sk, :sk_prefix)"
            names["#sk"] = sk_name
            values[":sk_prefix"] = sk_begins_with

        kwargs: dict[str, Any] = {
            "KeyConditionExpression": key_condition,
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": values,
            "ScanIndexForward": scan_forward,
        }
        if index_name:
            kwargs["IndexName"] = index_name
        if limit:
            kwargs["Limit"] = limit
        if last_key:
            kwargs["ExclusiveStartKey"] = last_key

        try:
            response = self.table.query(**kwargs)
        except ClientError as e:
            logger.error("DynamoDB query failed", error=str(e), pk=pk)
            raise

        items = [self.model_class.from_dynamodb(item) for item in response.get("Items", [])]
        return items, response.get("LastEvaluatedKey")

    def iter_query(self, pk: str, sk_begins_with: str | None = None, **kwargs: Any) -> Iterator[T]:
        """Iterate over every item of a query, following pagination."""
        last_key = None
        while True:
            items, last_key = self.query(pk, sk_begins_with=sk_begins_with, last_key=last_key, **kwargs)
            yield from items
            if not last_key:
                break

    def delete_partition(self, pk: str) -> int:
        """Delete every item stored under a partition key.

        Returns:
            Number of items deleted.
        """
        deleted = 0
        last_key = None
        try:
            with self.table.batch_writer() as batch:
                while True:
                    kwargs: dict[str, Any] = {
                        "KeyConditionExpression": "PK = :pk",
                        "ExpressionAttributeValues": {":pk": pk},
                        "ProjectionExpression": "PK, SK",
                    }
                    if last_key:
                        kwargs["ExclusiveStartKey"] = last_key
                    response = self.table.query(**kwargs)
                    for key in response.get("Items", []):
                        batch.delete_item(Key={"PK": key["PK"], "SK": key["SK"]})
                        deleted += 1
                    last_key = response.get("LastEvaluatedKey")
                    if not last_key:
                        break
        except ClientError as e:
            logger.error("DynamoDB partition delete failed", error=str(e), pk=pk)
            raise

        logger.debug("Partition deleted", pk=pk, count=deleted)
        return deleted
