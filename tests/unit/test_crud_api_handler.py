from __future__ import annotations

import base64
import json
import sys
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import boto3
import pytest
from moto import mock_aws

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src" / "crud-core-lib" / "src"))

from crud_core import Dispatcher, StoreUnavailable

from src.crud_api import handler as crud_api_handler

REGION = "eu-west-2"
TABLE_NAME = "crud-items"


class FakeLambdaContext:
    function_name = "crud-api"
    memory_limit_in_mb = 128
    invoked_function_arn = "arn:aws:lambda:eu-west-2:111111111111:function:crud-api"
    aws_request_id = "req-123"


@pytest.fixture(autouse=True)
def aws_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AWS_REGION", REGION)
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")  # pragma: allowlist secret
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")  # pragma: allowlist secret
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.delenv("ERROR_STATUS_MODE", raising=False)
    # Each test is a cold start.
    monkeypatch.setattr(crud_api_handler, "_settings", None)
    monkeypatch.setattr(crud_api_handler, "_store", None)


@pytest.fixture
def items_table(aws_env: None) -> Any:
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name=REGION)
        table = dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
            AttributeDefinitions=[{"AttributeName": "id", "AttributeType": "S"}],
            BillingMode="PAY_PER_REQUEST",
        )
        yield table


def _proxy_event(
    envelope: dict[str, Any] | None = None,
    *,
    method: str = "POST",
    raw_body: str | None = None,
    base64_encoded: bool = False,
) -> dict[str, Any]:
    body = raw_body
    if envelope is not None:
        body = json.dumps(envelope)
    if base64_encoded and body is not None:
        body = base64.b64encode(body.encode("utf-8")).decode("ascii")
    return {
        "httpMethod": method,
        "path": "/items",
        "body": body,
        "isBase64Encoded": base64_encoded,
        "requestContext": {"requestId": "api-req-1", "stage": "prod"},
    }


def _request(operation: str, payload: Any = None) -> dict[str, Any]:
    request: dict[str, Any] = {"operation": operation, "tableName": TABLE_NAME}
    if payload is not None:
        request["payload"] = payload
    return request


def _invoke(event: Any) -> dict[str, Any]:
    return crud_api_handler.lambda_handler(event, FakeLambdaContext())


def _body(response: dict[str, Any]) -> dict[str, Any]:
    return json.loads(response["body"])


def _error_kind(response: dict[str, Any]) -> str:
    body = _body(response)
    assert body["status"] == "error"
    return body["body"]["kind"]


# ---------------------------------------------------------------------------
# End-to-end against a moto table
# ---------------------------------------------------------------------------


def test_create_then_read_round_trip(items_table: Any) -> None:
    created = _invoke(_proxy_event(_request("create", {"id": "42", "name": "a"})))
    assert created["statusCode"] == 200
    assert _body(created) == {"status": "ok", "body": {}}

    read = _invoke(_proxy_event(_request("read", {"id": "42"})))
    assert read["statusCode"] == 200
    assert read["headers"]["Content-Type"] == "application/json"
    assert _body(read) == {"status": "ok", "body": {"id": "42", "name": "a"}}


def test_read_missing_item_is_not_found(items_table: Any) -> None:
    response = _invoke(_proxy_event(_request("read", {"id": "99"})))
    assert response["statusCode"] == 404
    assert _error_kind(response) == "NotFound"


def test_list_after_two_creates_returns_both(items_table: Any) -> None:
    _invoke(_proxy_event(_request("create", {"id": "1", "name": "a"})))
    _invoke(_proxy_event(_request("create", {"id": "2", "name": "b", "score": 1.5})))

    response = _invoke(_proxy_event(_request("list")))

    assert response["statusCode"] == 200
    items = sorted(_body(response)["body"], key=lambda item: item["id"])
    assert items == [{"id": "1", "name": "a"}, {"id": "2", "name": "b", "score": 1.5}]


def test_update_then_read_reflects_change(items_table: Any) -> None:
    _invoke(_proxy_event(_request("create", {"id": "u", "count": 1})))
    updated = _invoke(
        _proxy_event(
            _request(
                "update",
                {
                    "id": "u",
                    "updateExpression": "SET #c = #c + :inc",
                    "expressionAttributeNames": {"#c": "count"},
                    "expressionAttributeValues": {":inc": 2},
                },
            )
        )
    )
    assert updated["statusCode"] == 200

    read = _invoke(_proxy_event(_request("read", {"id": "u"})))
    assert _body(read)["body"] == {"id": "u", "count": 3}


def test_delete_then_read_is_not_found_and_delete_is_idempotent(items_table: Any) -> None:
    _invoke(_proxy_event(_request("create", {"id": "d"})))

    first = _invoke(_proxy_event(_request("delete", {"id": "d"})))
    second = _invoke(_proxy_event(_request("delete", {"id": "d"})))
    read = _invoke(_proxy_event(_request("read", {"id": "d"})))

    assert first["statusCode"] == 200
    assert second["statusCode"] == 200
    assert _error_kind(read) == "NotFound"


def test_query_by_id(items_table: Any) -> None:
    _invoke(_proxy_event(_request("create", {"id": "q1"})))
    _invoke(_proxy_event(_request("create", {"id": "q2"})))

    response = _invoke(
        _proxy_event(
            _request(
                "query",
                {
                    "keyConditionExpression": "#k = :id",
                    "expressionAttributeNames": {"#k": "id"},
                    "expressionAttributeValues": {":id": "q2"},
                },
            )
        )
    )

    assert _body(response)["body"] == [{"id": "q2"}]


def test_echo_returns_payload_unchanged(items_table: Any) -> None:
    response = _invoke(_proxy_event(_request("echo", {"x": 1})))
    assert response["statusCode"] == 200
    assert _body(response) == {"status": "ok", "body": {"x": 1}}
    assert items_table.scan()["Items"] == []


def test_direct_invocation_returns_envelope_dict(items_table: Any) -> None:
    _invoke(_request("create", {"id": "direct", "n": 5}))
    response = _invoke(_request("read", {"id": "direct"}))
    assert response == {"status": "ok", "body": {"id": "direct", "n": 5}}


def test_base64_encoded_body_is_decoded(items_table: Any) -> None:
    response = _invoke(_proxy_event(_request("ping"), base64_encoded=True))
    assert _body(response) == {"status": "ok", "body": "pong"}


def test_store_client_is_created_once_per_process(items_table: Any) -> None:
    _invoke(_proxy_event(_request("list")))
    store = crud_api_handler._store
    _invoke(_proxy_event(_request("list")))
    assert store is not None
    assert crud_api_handler._store is store


def test_unknown_table_is_invalid_argument_without_identifiers(items_table: Any) -> None:
    request = _request("read", {"id": "1"})
    request["tableName"] = "missing-table"
    response = _invoke(_proxy_event(request))
    assert response["statusCode"] == 400
    assert _error_kind(response) == "InvalidArgument"
    assert "arn:" not in response["body"]


# ---------------------------------------------------------------------------
# Envelope and event validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "event",
    [
        _proxy_event(raw_body="not-json"),
        _proxy_event(raw_body=None),
        _proxy_event({"tableName": TABLE_NAME}),
        _proxy_event({"operation": "read"}),
        _proxy_event(_request("list"), method="GET"),
        {
            "httpMethod": "POST",
            "body": "%%%",
            "isBase64Encoded": True,
            "requestContext": {"requestId": "api-req-2"},
        },
    ],
)
def test_malformed_requests_are_bad_request(event: dict[str, Any]) -> None:
    response = _invoke(event)
    assert response["statusCode"] == 400
    assert _error_kind(response) == "BadRequest"


@pytest.mark.parametrize(
    "raw_body",
    [
        '{"operation": "echo", "tableName": "crud-items", "payload": {"x": NaN}}',
        '{"operation": "create", "tableName": "crud-items", "payload": {"id": "1", "x": Infinity}}',
        '{"operation": "create", "tableName": "crud-items", "payload": {"id": "1", "x": 1e400}}',
    ],
)
def test_non_finite_numbers_are_bad_request(raw_body: str) -> None:
    response = _invoke(_proxy_event(raw_body=raw_body))
    assert response["statusCode"] == 400
    assert _error_kind(response) == "BadRequest"


def test_direct_invocation_with_nan_is_bad_request() -> None:
    response = _invoke(_request("echo", {"x": float("nan")}))
    assert response["status"] == "error"
    assert response["body"]["kind"] == "BadRequest"


@pytest.mark.parametrize(
    "value",
    [123456789012345678901234567890123456789012, 1e-200, 1e200],
)
def test_numbers_outside_store_range_are_invalid_argument(items_table: Any, value: Any) -> None:
    response = _invoke(_proxy_event(_request("create", {"id": "1", "x": value})))
    assert response["statusCode"] == 400
    assert _error_kind(response) == "InvalidArgument"
    assert items_table.scan()["Items"] == []


def test_update_with_number_outside_store_range_is_invalid_argument(items_table: Any) -> None:
    payload = {
        "id": "1",
        "updateExpression": "SET #x = :x",
        "expressionAttributeNames": {"#x": "x"},
        "expressionAttributeValues": {":x": 10**41},
    }
    response = _invoke(_proxy_event(_request("update", payload)))
    assert response["statusCode"] == 400
    assert _error_kind(response) == "InvalidArgument"


def test_direct_envelope_with_request_context_is_not_a_proxy_event(items_table: Any) -> None:
    request = _request("echo", {"x": 1})
    request["requestContext"] = {"requestId": "caller-supplied"}
    response = _invoke(request)
    assert response == {"status": "ok", "body": {"x": 1}}


def test_http_api_v2_event_is_a_proxy_event(items_table: Any) -> None:
    event = {
        "version": "2.0",
        "routeKey": "POST /items",
        "body": json.dumps(_request("ping")),
        "isBase64Encoded": False,
        "requestContext": {"http": {"method": "POST"}, "requestId": "api-req-3"},
    }
    response = _invoke(event)
    assert response["statusCode"] == 200
    assert _body(response) == {"status": "ok", "body": "pong"}


def test_unsupported_operation_never_reaches_store(monkeypatch: pytest.MonkeyPatch) -> None:
    store = MagicMock()
    monkeypatch.setattr(crud_api_handler, "_dispatcher", lambda: Dispatcher(store))

    response = _invoke(_proxy_event(_request("drop", {"id": "1"})))

    assert response["statusCode"] == 400
    assert _error_kind(response) == "UnsupportedOperation"
    assert store.mock_calls == []


def test_store_unavailable_maps_to_503(monkeypatch: pytest.MonkeyPatch) -> None:
    store = MagicMock()
    store.get.side_effect = StoreUnavailable(error_code="ThrottlingException")
    monkeypatch.setattr(crud_api_handler, "_dispatcher", lambda: Dispatcher(store))

    response = _invoke(_proxy_event(_request("read", {"id": "1"})))

    assert response["statusCode"] == 503
    assert _error_kind(response) == "StoreUnavailable"
    assert "Throttling" not in response["body"]


def test_unhandled_exception_becomes_internal_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def _boom() -> Dispatcher:
        raise RuntimeError("secret internal detail")

    monkeypatch.setattr(crud_api_handler, "_dispatcher", _boom)

    response = _invoke(_proxy_event(_request("list")))

    assert response["statusCode"] == 500
    assert _error_kind(response) == "InternalError"
    assert "secret internal detail" not in response["body"]


def test_invalid_configuration_becomes_internal_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DDB_READ_TIMEOUT_SECONDS", "never")
    response = _invoke(_proxy_event(_request("list")))
    assert response["statusCode"] == 500
    assert _error_kind(response) == "InternalError"


# ---------------------------------------------------------------------------
# ERROR_STATUS_MODE=embedded: single-status gateway integration
# ---------------------------------------------------------------------------


def test_embedded_mode_returns_200_with_error_kind(
    items_table: Any, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("ERROR_STATUS_MODE", "embedded")

    response = _invoke(_proxy_event(_request("read", {"id": "absent"})))

    assert response["statusCode"] == 200
    assert _error_kind(response) == "NotFound"
