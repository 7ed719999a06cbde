"""
crud_core.models — Envelope shapes and constrained vocabularies.

Table schema (single table, provisioned outside this repository):
    PK: id (S)   no sort key, no secondary indexes

Request Envelope (JSON, one per invocation):
    {"operation": str, "tableName": str, "payload": <operation-specific>}

Response Envelope (JSON, exactly one per invocation):
    success: {"status": "ok",    "body": <result>}
    error:   {"status": "error", "body": {"kind": str, "message": str}}
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from typing import Any

from boto3.dynamodb.types import Binary

# Partition key attribute name of the backing table.
PARTITION_KEY: str = "id"


# ---------------------------------------------------------------------------
# Enums: constrained vocabulary
# ---------------------------------------------------------------------------


class Operation(StrEnum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    LIST = "list"
    QUERY = "query"
    ECHO = "echo"
    PING = "ping"


class ErrorKind(StrEnum):
    BAD_REQUEST = "BadRequest"
    UNSUPPORTED_OPERATION = "UnsupportedOperation"
    INVALID_ARGUMENT = "InvalidArgument"
    NOT_FOUND = "NotFound"
    PRECONDITION_FAILED = "PreconditionFailed"
    STORE_UNAVAILABLE = "StoreUnavailable"
    INTERNAL_ERROR = "InternalError"


class ResponseStatus(StrEnum):
    OK = "ok"
    ERROR = "error"


class DispatchState(StrEnum):
    """Dispatcher lifecycle: PARSING → EXECUTING → RESPONDING."""

    PARSING = "parsing"
    EXECUTING = "executing"
    RESPONDING = "responding"


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RequestEnvelope:
    """Validated inbound request.

    Constructed by the dispatcher once per invocation; never mutated.
    payload is whatever JSON value the caller sent (None when omitted).
    """

    operation: str
    table_name: str
    payload: Any = None


@dataclass(frozen=True)
class ResponseEnvelope:
    """Outcome of a single invocation.

    status_code is the HTTP status the Entry Point may use; it is not part
    of the JSON document.
    """

    status: ResponseStatus
    body: Any = field(default_factory=dict)
    status_code: int = 200

    @classmethod
    def ok(cls, body: Any) -> ResponseEnvelope:
        return cls(status=ResponseStatus.OK, body=body, status_code=200)

    @classmethod
    def error(cls, kind: ErrorKind, message: str, *, status_code: int) -> ResponseEnvelope:
        return cls(
            status=ResponseStatus.ERROR,
            body={"kind": kind.value, "message": message},
            status_code=status_code,
        )

    @property
    def is_error(self) -> bool:
        return self.status is ResponseStatus.ERROR

    @property
    def error_kind(self) -> str | None:
        if not self.is_error:
            return None
        return self.body["kind"]

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status.value, "body": self.body}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=json_default, allow_nan=False)


# ---------------------------------------------------------------------------
# JSON helpers: DynamoDB hands numbers back as Decimal
# ---------------------------------------------------------------------------


def json_default(value: Any) -> Any:
    """json.dumps default= hook rendering Decimal as int or float."""
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, set):
        return sorted(value, key=str)
    if isinstance(value, Binary):
        value = value.value
    if isinstance(value, bytes | bytearray):
        return base64.b64encode(value).decode("ascii")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
