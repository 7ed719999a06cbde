"""
crud_core.client — Table Access Layer over a single-key DynamoDB table.

Thin wrapper around six DynamoDB operations (get, put, update, delete,
query, scan).  No business logic: only argument marshaling and error
normalization into the crud_core.exceptions taxonomy.

Guarantees:
  - Every key is exactly {"id": <non-empty str>}; every written item has one.
  - Python floats are converted to Decimal before they reach boto3, and
    numbers the N type cannot hold are rejected as InvalidArgument.
  - No retries: the client is built with a single attempt and bounded
    connect/read timeouts so calls stay inside the Lambda time budget.
  - Error messages never carry ARNs; raw boto error detail is only logged.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal, DecimalException
from typing import Any, Protocol

import boto3
from aws_lambda_powertools import Logger
from boto3.dynamodb.types import DYNAMODB_CONTEXT
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from crud_core.config import Settings
from crud_core.exceptions import InvalidArgument, NotFound, PreconditionFailed, StoreUnavailable
from crud_core.models import PARTITION_KEY

logger = Logger(service="crud-core")

_UNAVAILABLE_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
        "InternalServerError",
        "ServiceUnavailable",
        "LimitExceededException",
    }
)
_INVALID_CODES = frozenset({"ValidationException", "SerializationException"})
_ARN_PATTERN = re.compile(r"arn:aws[\w-]*:\S+")


class TableStore(Protocol):
    """Contract the Operation Registry relies on.

    Implemented by DynamoTableStore; tests substitute an in-memory fake.
    """

    def get(self, table_name: str, key: dict[str, Any]) -> dict[str, Any]: ...

    def put(self, table_name: str, item: dict[str, Any]) -> None: ...

    def update(
        self,
        table_name: str,
        key: dict[str, Any],
        update_expression: str,
        attribute_values: dict[str, Any] | None,
        *,
        attribute_names: dict[str, str] | None = None,
        condition_expression: str | None = None,
    ) -> None: ...

    def delete(self, table_name: str, key: dict[str, Any]) -> None: ...

    def query(
        self,
        table_name: str,
        key_condition: str,
        attribute_values: dict[str, Any],
        *,
        attribute_names: dict[str, str] | None = None,
    ) -> Iterator[dict[str, Any]]: ...

    def scan(self, table_name: str) -> Iterator[dict[str, Any]]: ...


# ---------------------------------------------------------------------------
# Argument marshaling
# ---------------------------------------------------------------------------


def _to_number(value: int | float | Decimal) -> int | Decimal:
    """Check a number fits the DynamoDB N type: finite, 38 digits, 1e-130..1e126."""
    try:
        number = DYNAMODB_CONTEXT.create_decimal(str(value) if isinstance(value, float) else value)
    except (TypeError, DecimalException) as exc:
        raise InvalidArgument("number out of range for the table store") from exc
    if not number.is_finite():
        raise InvalidArgument("number out of range for the table store")
    if isinstance(value, int):
        return value
    return number


def to_dynamo(value: Any) -> Any:
    """Recursively convert floats to Decimal; DynamoDB rejects float."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int | float | Decimal):
        return _to_number(value)
    if isinstance(value, dict):
        return {k: to_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_dynamo(v) for v in value]
    return value


def validate_table_name(table_name: Any) -> str:
    if not isinstance(table_name, str) or not table_name.strip():
        raise InvalidArgument("tableName must be a non-empty string")
    return table_name


def validate_key(key: Any) -> dict[str, str]:
    """Return a clean key dict or raise InvalidArgument.

    The table has a partition key only, so the key must contain exactly
    the partition key attribute.
    """
    if not isinstance(key, dict):
        raise InvalidArgument("key must be an object")
    key_id = key.get(PARTITION_KEY)
    if not isinstance(key_id, str) or not key_id:
        raise InvalidArgument(f"key attribute {PARTITION_KEY!r} must be a non-empty string")
    extra = sorted(set(key) - {PARTITION_KEY})
    if extra:
        raise InvalidArgument(f"Unexpected key attribute(s): {', '.join(extra)}")
    return {PARTITION_KEY: key_id}


def validate_item(item: Any) -> dict[str, Any]:
    if not isinstance(item, dict):
        raise InvalidArgument("item must be an object")
    item_id = item.get(PARTITION_KEY)
    if not isinstance(item_id, str) or not item_id:
        raise InvalidArgument(f"item attribute {PARTITION_KEY!r} must be a non-empty string")
    return item


# ---------------------------------------------------------------------------
# Error normalization
# ---------------------------------------------------------------------------


def _scrub(message: str) -> str:
    return _ARN_PATTERN.sub("<redacted>", message)


@contextmanager
def translate_errors(operation: str) -> Iterator[None]:
    """Map boto3/botocore failures raised inside the block onto the taxonomy."""
    try:
        yield
    except ClientError as exc:
        error = exc.response.get("Error", {})
        code = str(error.get("Code", "Unknown"))
        detail = str(error.get("Message", ""))
        if code == "ConditionalCheckFailedException":
            raise PreconditionFailed() from exc
        if code == "ResourceNotFoundException":
            logger.warning("Table not found", store_call=operation, error_code=code)
            raise InvalidArgument("Requested table does not exist") from exc
        if code in _INVALID_CODES:
            logger.warning(
                "Store rejected request arguments",
                store_call=operation,
                error_code=code,
                error_message=detail,
            )
            raise InvalidArgument(_scrub(detail) or "Invalid key or expression") from exc
        if code not in _UNAVAILABLE_CODES:
            logger.exception("Unexpected store client error", store_call=operation, error_code=code)
        else:
            logger.warning("Store unavailable", store_call=operation, error_code=code)
        raise StoreUnavailable(error_code=code) from exc
    except BotoCoreError as exc:
        logger.exception(
            "Store connectivity failure",
            store_call=operation,
            error_code=type(exc).__name__,
        )
        raise StoreUnavailable(error_code=type(exc).__name__) from exc


# ---------------------------------------------------------------------------
# DynamoTableStore
# ---------------------------------------------------------------------------


class DynamoTableStore:
    """
    boto3-backed TableStore.

    Holds only the DynamoDB resource (connection pool + config); it keeps no
    per-request state, so one instance is safely reused across warm
    invocations of the same process.
    """

    def __init__(
        self,
        *,
        dynamodb_resource: Any = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or Settings.from_env()
        self._dynamodb: Any = dynamodb_resource or boto3.resource(
            "dynamodb",
            region_name=settings.region,
            config=client_config(settings),
        )

    def _table(self, table_name: str) -> Any:
        return self._dynamodb.Table(validate_table_name(table_name))

    def get(self, table_name: str, key: dict[str, Any]) -> dict[str, Any]:
        """Return the item for key; raise NotFound when it does not exist."""
        clean_key = validate_key(key)
        table = self._table(table_name)
        with translate_errors("get"):
            response = table.get_item(Key=clean_key)
        item = response.get("Item")
        if item is None:
            raise NotFound()
        return item

    def put(self, table_name: str, item: dict[str, Any]) -> None:
        """Write an item, overwriting any existing item with the same id."""
        clean_item = to_dynamo(validate_item(item))
        table = self._table(table_name)
        with translate_errors("put"):
            table.put_item(Item=clean_item)

    def update(
        self,
        table_name: str,
        key: dict[str, Any],
        update_expression: str,
        attribute_values: dict[str, Any] | None,
        *,
        attribute_names: dict[str, str] | None = None,
        condition_expression: str | None = None,
    ) -> None:
        clean_key = validate_key(key)
        if not isinstance(update_expression, str) or not update_expression.strip():
            raise InvalidArgument("updateExpression must be a non-empty string")
        table = self._table(table_name)
        kwargs: dict[str, Any] = {
            "Key": clean_key,
            "UpdateExpression": update_expression,
            "ReturnValues": "NONE",
        }
        if attribute_values:
            kwargs["ExpressionAttributeValues"] = to_dynamo(attribute_values)
        if attribute_names:
            kwargs["ExpressionAttributeNames"] = attribute_names
        if condition_expression is not None:
            kwargs["ConditionExpression"] = condition_expression
        with translate_errors("update"):
            table.update_item(**kwargs)

    def delete(self, table_name: str, key: dict[str, Any]) -> None:
        """Delete an item.  Deleting an absent key succeeds."""
        clean_key = validate_key(key)
        table = self._table(table_name)
        with translate_errors("delete"):
            table.delete_item(Key=clean_key)

    def query(
        self,
        table_name: str,
        key_condition: str,
        attribute_values: dict[str, Any],
        *,
        attribute_names: dict[str, str] | None = None,
    ) -> Iterator[dict[str, Any]]:
        """Lazily yield every item matching key_condition.

        Arguments are validated eagerly; store failures surface while
        iterating.  The returned iterator cannot be restarted.
        """
        if not isinstance(key_condition, str) or not key_condition.strip():
            raise InvalidArgument("keyConditionExpression must be a non-empty string")
        if not isinstance(attribute_values, dict) or not attribute_values:
            raise InvalidArgument("expressionAttributeValues must be a non-empty object")
        table = self._table(table_name)
        kwargs: dict[str, Any] = {
            "KeyConditionExpression": key_condition,
            "ExpressionAttributeValues": to_dynamo(attribute_values),
        }
        if attribute_names:
            kwargs["ExpressionAttributeNames"] = attribute_names
        return _paginate(table.query, "query", kwargs)

    def scan(self, table_name: str) -> Iterator[dict[str, Any]]:
        """Lazily yield every item in the table.  Intended for small tables."""
        table = self._table(table_name)
        return _paginate(table.scan, "scan", {})


def _paginate(call: Any, operation: str, kwargs: dict[str, Any]) -> Iterator[dict[str, Any]]:
    """Follow LastEvaluatedKey until the store reports the final page."""
    request = dict(kwargs)
    while True:
        with translate_errors(operation):
            page = call(**request)
        yield from page.get("Items", [])
        start_key = page.get("LastEvaluatedKey")
        if not start_key:
            return
        request["ExclusiveStartKey"] = start_key


def client_config(settings: Settings) -> Config:
    """botocore Config with one attempt and bounded timeouts."""
    return Config(
        connect_timeout=settings.connect_timeout,
        read_timeout=settings.read_timeout,
        retries={"total_max_attempts": 1, "mode": "standard"},
    )
