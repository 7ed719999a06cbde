"""
crud_core.operations — Fixed registry of CRUD operations.

Maps each Operation to a handler taking (store, table_name, payload) and
returning the success body.  The mapping is closed: adding an operation
means adding an Operation member and a handler here.

    operation  store call  payload
    ---------  ----------  ---------------------------------------------------
    create     put         full item, "id" required (overwrites)
    read       get         {"id": ...}
    update     update      {"id", "updateExpression", "expressionAttributeValues",
                            "expressionAttributeNames"?}
    delete     delete      {"id": ...}  (absent key is not an error)
    list       scan        ignored
    query      query       {"keyConditionExpression", "expressionAttributeValues",
                            "expressionAttributeNames"?}
    echo       -           returned unchanged
    ping       -           ignored, returns "pong"
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any

from crud_core.client import TableStore
from crud_core.exceptions import InvalidArgument, UnsupportedOperation
from crud_core.models import PARTITION_KEY, Operation

OperationHandler = Callable[[TableStore, str, Any], Any]


def _require_object(payload: Any, operation: Operation) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise InvalidArgument(f"payload for {operation.value!r} must be an object")
    return payload


def _key_from(payload: dict[str, Any]) -> dict[str, Any]:
    if PARTITION_KEY not in payload:
        raise InvalidArgument(f"payload must include key attribute {PARTITION_KEY!r}")
    return {PARTITION_KEY: payload[PARTITION_KEY]}


def _optional_names(payload: dict[str, Any]) -> dict[str, str] | None:
    names = payload.get("expressionAttributeNames")
    if names is None:
        return None
    if not isinstance(names, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in names.items()
    ):
        raise InvalidArgument("expressionAttributeNames must map strings to strings")
    return names


def _optional_values(payload: dict[str, Any]) -> dict[str, Any] | None:
    values = payload.get("expressionAttributeValues")
    if values is None:
        return None
    if not isinstance(values, dict):
        raise InvalidArgument("expressionAttributeValues must be an object")
    return values


def _create(store: TableStore, table_name: str, payload: Any) -> dict[str, Any]:
    store.put(table_name, _require_object(payload, Operation.CREATE))
    return {}


def _read(store: TableStore, table_name: str, payload: Any) -> dict[str, Any]:
    key = _key_from(_require_object(payload, Operation.READ))
    return store.get(table_name, key)


def _update(store: TableStore, table_name: str, payload: Any) -> dict[str, Any]:
    body = _require_object(payload, Operation.UPDATE)
    expression = body.get("updateExpression")
    if not isinstance(expression, str) or not expression.strip():
        raise InvalidArgument("payload must include a non-empty 'updateExpression'")
    store.update(
        table_name,
        _key_from(body),
        expression,
        _optional_values(body),
        attribute_names=_optional_names(body),
    )
    return {}


def _delete(store: TableStore, table_name: str, payload: Any) -> dict[str, Any]:
    key = _key_from(_require_object(payload, Operation.DELETE))
    store.delete(table_name, key)
    return {}


def _list(store: TableStore, table_name: str, _payload: Any) -> list[dict[str, Any]]:
    return list(store.scan(table_name))


def _query(store: TableStore, table_name: str, payload: Any) -> list[dict[str, Any]]:
    body = _require_object(payload, Operation.QUERY)
    condition = body.get("keyConditionExpression")
    if not isinstance(condition, str) or not condition.strip():
        raise InvalidArgument("payload must include a non-empty 'keyConditionExpression'")
    values = _optional_values(body)
    if not values:
        raise InvalidArgument("payload must include 'expressionAttributeValues'")
    return list(
        store.query(
            table_name,
            condition,
            values,
            attribute_names=_optional_names(body),
        )
    )


def _echo(_store: TableStore, _table_name: str, payload: Any) -> Any:
    return payload


def _ping(_store: TableStore, _table_name: str, _payload: Any) -> str:
    return "pong"


OPERATIONS: Mapping[Operation, OperationHandler] = MappingProxyType(
    {
        Operation.CREATE: _create,
        Operation.READ: _read,
        Operation.UPDATE: _update,
        Operation.DELETE: _delete,
        Operation.LIST: _list,
        Operation.QUERY: _query,
        Operation.ECHO: _echo,
        Operation.PING: _ping,
    }
)


def resolve(name: str) -> tuple[Operation, OperationHandler]:
    """Return the Operation and handler for name, or raise UnsupportedOperation."""
    try:
        operation = Operation(name)
    except ValueError as exc:
        raise UnsupportedOperation(name) from exc
    return operation, OPERATIONS[operation]
