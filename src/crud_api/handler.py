"""
crud_api.handler — CRUD dispatch Lambda behind a single POST route.

Receives a Request Envelope from API Gateway (proxy integration) or from a
direct invocation, delegates to crud_core.Dispatcher and renders exactly one
Response Envelope.  Never raises: unanticipated failures become InternalError.

Process-wide state is limited to the DynamoDB-backed TableStore, created on
cold start and reused by warm invocations.

Environment:
    AWS_REGION, DDB_CONNECT_TIMEOUT_SECONDS, DDB_READ_TIMEOUT_SECONDS,
    ERROR_STATUS_MODE  (see crud_core.config)
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.logging import correlation_paths
from aws_lambda_powertools.utilities.typing import LambdaContext
from crud_core import (
    BadRequest,
    CrudError,
    Dispatcher,
    DynamoTableStore,
    ErrorStatusMode,
    InternalError,
    ResponseEnvelope,
    Settings,
)

logger = Logger(service="crud-api")
tracer = Tracer()

# ---------------------------------------------------------------------------
# Global clients: connection reuse across warm starts
# ---------------------------------------------------------------------------
_settings: Settings | None = None
_store: DynamoTableStore | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def get_store() -> DynamoTableStore:
    """Lazy initialization of the Table Access Layer client."""
    global _store
    if _store is None:
        _store = DynamoTableStore(settings=get_settings())
    return _store


def _dispatcher() -> Dispatcher:
    return Dispatcher(get_store())


# ---------------------------------------------------------------------------
# Platform event decoding
# ---------------------------------------------------------------------------


def _is_proxy_event(event: Any) -> bool:
    """REST v1 proxy events carry httpMethod, HTTP API v2 events a routeKey."""
    return isinstance(event, dict) and ("httpMethod" in event or "routeKey" in event)


def _http_method(event: dict[str, Any]) -> str:
    method = event.get("httpMethod")
    if not method:
        method = event.get("requestContext", {}).get("http", {}).get("method")
    return str(method or "").upper()


def _request_body(event: dict[str, Any]) -> str | bytes:
    raw_body = event.get("body")
    if raw_body is None:
        raise BadRequest("Request body is required")
    if not isinstance(raw_body, str):
        raise BadRequest("Request body must be a JSON string")
    if event.get("isBase64Encoded"):
        try:
            return base64.b64decode(raw_body, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise BadRequest("Request body is not valid base64") from exc
    return raw_body


def _handle(event: Any, *, proxy: bool) -> ResponseEnvelope:
    if not proxy:
        return _dispatcher().dispatch(event)
    method = _http_method(event)
    if method and method != "POST":
        raise BadRequest("Only POST is supported")
    body = _request_body(event)
    return _dispatcher().dispatch(body)


# ---------------------------------------------------------------------------
# Response rendering
# ---------------------------------------------------------------------------


def _error_envelope(exc: CrudError) -> ResponseEnvelope:
    return ResponseEnvelope.error(exc.kind, exc.message, status_code=exc.status_code)


def _status_code(envelope: ResponseEnvelope) -> int:
    # Settings may be unset if cold-start configuration itself failed.
    mode = _settings.error_status_mode if _settings is not None else ErrorStatusMode.MAPPED
    if mode is ErrorStatusMode.EMBEDDED:
        return 200
    return envelope.status_code


def _proxy_response(envelope: ResponseEnvelope, body: str) -> dict[str, Any]:
    return {
        "statusCode": _status_code(envelope),
        "headers": {"Content-Type": "application/json"},
        "body": body,
    }


@logger.inject_lambda_context(
    correlation_id_path=correlation_paths.API_GATEWAY_REST,
    clear_state=True,
    log_event=False,
)
@tracer.capture_lambda_handler
def lambda_handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    """CRUD Lambda entry point."""
    proxy = _is_proxy_event(event)
    try:
        envelope = _handle(event, proxy=proxy)
        body = envelope.to_json()
    except CrudError as exc:
        envelope = _error_envelope(exc)
        body = envelope.to_json()
    except Exception:
        logger.exception("Unhandled CRUD handler error")
        envelope = _error_envelope(InternalError())
        body = envelope.to_json()

    logger.info(
        "Request complete",
        status=envelope.status.value,
        status_code=envelope.status_code,
        error_kind=envelope.error_kind,
    )
    if proxy:
        return _proxy_response(envelope, body)
    return json.loads(body)
