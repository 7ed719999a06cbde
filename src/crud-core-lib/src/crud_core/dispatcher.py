"""
crud_core.dispatcher — Request Dispatcher.

Turns one raw inbound envelope into exactly one ResponseEnvelope:

    PARSING    — decode JSON, check operation/tableName; failure → BadRequest
                 and EXECUTING is skipped.
    EXECUTING  — registry lookup and store call(s); lazy sequences are
                 materialized here so their failures are captured.
    RESPONDING — success body, or error kind + message.  No stack detail.

The dispatcher holds nothing but the injected TableStore.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from typing import Any

from aws_lambda_powertools import Logger

from crud_core.client import TableStore
from crud_core.exceptions import BadRequest, CrudError
from crud_core.models import DispatchState, RequestEnvelope, ResponseEnvelope
from crud_core.operations import resolve

logger = Logger(service="crud-core")


def _reject_constant(token: str) -> Any:
    raise ValueError(f"{token} is not a JSON number")


def _has_non_finite(value: Any) -> bool:
    if isinstance(value, float):
        return not math.isfinite(value)
    if isinstance(value, Mapping):
        return any(_has_non_finite(v) for v in value.values())
    if isinstance(value, list | tuple):
        return any(_has_non_finite(v) for v in value)
    return False


def parse_envelope(raw: Any) -> RequestEnvelope:
    """Validate raw input (JSON text or decoded mapping) into a RequestEnvelope."""
    if isinstance(raw, bytes | bytearray):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise BadRequest("Request body must be UTF-8 encoded JSON") from exc
    if isinstance(raw, str):
        try:
            raw = json.loads(raw, parse_constant=_reject_constant)
        except ValueError as exc:
            raise BadRequest("Request body is not valid JSON") from exc
    if not isinstance(raw, Mapping):
        raise BadRequest("Request envelope must be a JSON object")
    if _has_non_finite(raw):
        # Direct invocations arrive already decoded, NaN included.
        raise BadRequest("Request envelope contains a non-finite number")

    operation = raw.get("operation")
    if operation is None:
        raise BadRequest("'operation' is required")
    if not isinstance(operation, str) or not operation:
        raise BadRequest("'operation' must be a non-empty string")

    table_name = raw.get("tableName")
    if table_name is None:
        raise BadRequest("'tableName' is required")
    if not isinstance(table_name, str) or not table_name.strip():
        raise BadRequest("'tableName' must be a non-empty string")

    return RequestEnvelope(
        operation=operation,
        table_name=table_name,
        payload=raw.get("payload"),
    )


class Dispatcher:
    def __init__(self, store: TableStore) -> None:
        self._store = store

    def dispatch(self, raw: Any) -> ResponseEnvelope:
        state = DispatchState.PARSING
        logger.remove_keys(["operation", "table_name"])
        try:
            envelope = parse_envelope(raw)
            logger.append_keys(operation=envelope.operation, table_name=envelope.table_name)
            state = DispatchState.EXECUTING
            operation, handler = resolve(envelope.operation)
            logger.debug("Executing operation")
            result = handler(self._store, envelope.table_name, envelope.payload)
        except CrudError as exc:
            logger.info(
                "Request failed",
                state=state.value,
                error_kind=exc.kind.value,
                error_message=exc.message,
            )
            return ResponseEnvelope.error(exc.kind, exc.message, status_code=exc.status_code)

        state = DispatchState.RESPONDING
        logger.debug("Operation succeeded", resolved=operation.value, state=state.value)
        return ResponseEnvelope.ok(result)
